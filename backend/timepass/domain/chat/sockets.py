"""Socket.IO namespace streaming live conversations and the unread badge."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import socketio
from fastapi import HTTPException

from timepass.infra.auth import AuthenticatedUser, user_from_headers, verify_access_jwt
from timepass.infra.store import Subscription
from timepass.obs import logging as obs_logging
from timepass.obs import metrics as obs_metrics

from .exceptions import ChatError
from .models import ChatMessage, UserProfile
from .service import ChatService, conversation_key, get_chat_service
from .unread import UnreadWatch

logger = logging.getLogger(__name__)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _authenticate(scope: dict, auth: Optional[dict]) -> Optional[AuthenticatedUser]:
	auth = auth or {}
	token = auth.get("token")
	if not token:
		authorization = _header(scope, "authorization") or ""
		if authorization.lower().startswith("bearer "):
			token = authorization[7:].strip()
	if token:
		try:
			return verify_access_jwt(token)
		except HTTPException:
			return None
	headers = {key.decode().lower(): value.decode() for key, value in scope.get("headers", [])}
	if auth.get("userId"):
		headers["x-user-id"] = str(auth["userId"])
	return user_from_headers(headers)


class ChatNamespace(socketio.AsyncNamespace):
	"""Namespace that places clients in a per-user room and streams open chats to them."""

	def __init__(self, service: Optional[ChatService] = None) -> None:
		super().__init__("/chat")
		self._service = service
		self._sessions: Dict[str, AuthenticatedUser] = {}
		self._views: Dict[Tuple[str, str], Subscription] = {}
		self._unread: Dict[str, UnreadWatch] = {}

	@property
	def service(self) -> ChatService:
		return self._service or get_chat_service()

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		scope = environ.get("asgi.scope", environ)
		user = _authenticate(scope, auth or environ.get("auth"))
		if user is None:
			raise ConnectionRefusedError("unauthenticated")
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("chat:ack", {"ok": True, "user_id": user.id}, room=sid)

		async def _push_unread(count: int) -> None:
			obs_metrics.socket_event(self.namespace, "chat:unread")
			await self.emit("chat:unread", {"count": count}, room=sid)

		try:
			watcher = await self.service.watch_unread_count(user.id, _push_unread)
		except ChatError as exc:
			logger.warning("chat_unread_watch_failed", extra={"user_id": user.id, "reason": exc.reason})
			return
		if sid not in self._sessions:
			# Disconnected before the watch was ready.
			watcher.unsubscribe()
			return
		self._unread[sid] = watcher

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		user = self._sessions.pop(sid, None)
		if user is None:
			return
		obs_metrics.socket_disconnected(self.namespace)
		watcher = self._unread.pop(sid, None)
		if watcher is not None:
			watcher.unsubscribe()
		for key in [key for key in self._views if key[0] == sid]:
			self._views.pop(key).unsubscribe()
		await self.leave_room(sid, self.user_room(user.id))

	def _user(self, sid: str) -> AuthenticatedUser:
		user = self._sessions.get(sid)
		if user is None:
			raise ConnectionRefusedError("unauthenticated")
		return user

	async def on_chat_open(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_open")
		user = self._user(sid)
		peer_id = str((payload or {}).get("peer_id") or "")
		with obs_logging.log_context(sid=sid, user_id=user.id):
			return await self._open_view(sid, user, peer_id)

	async def _open_view(self, sid: str, user: AuthenticatedUser, peer_id: str) -> dict:
		try:
			conversation_id = await self.service.ensure_conversation(user.id, peer_id)

			async def _push(messages: list[ChatMessage]) -> None:
				obs_metrics.socket_event(self.namespace, "chat:messages")
				await self.emit(
					"chat:messages",
					{"conversation_id": conversation_id, "messages": [item.to_dict() for item in messages]},
					room=sid,
				)

			subscription = await self.service.subscribe_messages(conversation_id, _push)
		except ChatError as exc:
			return {"ok": False, "error": exc.reason}
		if sid not in self._sessions:
			subscription.unsubscribe()
			return {"ok": False, "error": "disconnected"}
		existing = self._views.pop((sid, conversation_id), None)
		if existing is not None:
			existing.unsubscribe()
		self._views[(sid, conversation_id)] = subscription
		return {"ok": True, "conversation_id": conversation_id}

	async def on_chat_close(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_close")
		user = self._user(sid)
		peer_id = str((payload or {}).get("peer_id") or "")
		try:
			target = conversation_key(user.id, peer_id).conversation_id if peer_id else None
		except ChatError as exc:
			return {"ok": False, "error": exc.reason}
		closed = 0
		for key in [key for key in self._views if key[0] == sid]:
			if target is None or key[1] == target:
				self._views.pop(key).unsubscribe()
				closed += 1
		return {"ok": True, "closed": closed}

	async def on_chat_send(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_send")
		user = self._user(sid)
		payload = payload or {}
		try:
			with obs_logging.log_context(sid=sid, user_id=user.id):
				message = await self.service.send_to_peer(
					user.id,
					str(payload.get("peer_id") or ""),
					str(payload.get("text") or ""),
					sender_profile=UserProfile(id=user.id, username=user.handle, avatar_url=user.avatar_url),
				)
		except ChatError as exc:
			return {"ok": False, "error": exc.reason}
		return {"ok": True, "message": message.to_dict()}

	async def on_chat_seen(self, sid: str, payload: dict) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_seen")
		user = self._user(sid)
		payload = payload or {}
		try:
			conversation_id = conversation_key(user.id, str(payload.get("peer_id") or "")).conversation_id
			marked = await self.service.mark_seen(
				conversation_id, user.id, [str(item) for item in payload.get("message_ids") or []]
			)
		except ChatError as exc:
			return {"ok": False, "error": exc.reason}
		return {"ok": True, "marked": marked}

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"

	def open_views(self, sid: str) -> int:
		return sum(1 for key in self._views if key[0] == sid)

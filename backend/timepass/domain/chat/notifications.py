"""Notification records created for messages and likes.

Message notifications exist so other clients can raise a badge, but they
are filtered out of the general notification feed: unread messages surface
through the chat unread aggregate instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from timepass.infra.store import SERVER_TIMESTAMP, DocumentStore, Query, StoreError, get_store
from timepass.obs import metrics as obs_metrics
from timepass.settings import settings

from .conversations import load_profile
from .exceptions import NotificationNotFound, NotificationWriteFailure, PermissionDenied
from .models import NOTIFICATION_LIKE, NOTIFICATION_MESSAGE, NOTIFICATIONS, Notification, UserProfile

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


def build_preview(text: str, limit: Optional[int] = None) -> str:
	limit = settings.chat_preview_max_chars if limit is None else limit
	if len(text) > limit:
		return f"{text[:limit]}{ELLIPSIS}"
	return text


class NotificationEmitter:
	def __init__(self, store: Optional[DocumentStore] = None, *, preview_max_chars: Optional[int] = None) -> None:
		self._store = store
		self._preview_max_chars = preview_max_chars

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	async def _sender(self, sender_id: str, profile: Optional[UserProfile]) -> UserProfile:
		if profile is not None:
			return profile
		return await load_profile(self.store, sender_id)

	async def _write(self, kind: str, body: Dict[str, Any]) -> Notification:
		try:
			doc = await self.store.add(NOTIFICATIONS, body)
		except StoreError as exc:
			raise NotificationWriteFailure() from exc
		obs_metrics.inc_notification_written(kind)
		return Notification.from_document(doc)

	async def emit_message(
		self,
		recipient_id: str,
		sender_id: str,
		text: str,
		*,
		sender_profile: Optional[UserProfile] = None,
	) -> Optional[Notification]:
		"""Write a message notification; raises NotificationWriteFailure."""
		if not recipient_id or recipient_id == sender_id:
			return None
		try:
			sender = await self._sender(sender_id, sender_profile)
		except StoreError as exc:
			raise NotificationWriteFailure() from exc
		return await self._write(
			NOTIFICATION_MESSAGE,
			{
				"user_id": recipient_id,
				"type": NOTIFICATION_MESSAGE,
				"sender_id": sender_id,
				"sender_username": sender.username,
				"sender_avatar_url": sender.avatar_url,
				"message_preview": build_preview(text, self._preview_max_chars),
				"created_at": SERVER_TIMESTAMP,
				"read": False,
			},
		)

	async def notify_message(
		self,
		recipient_id: str,
		sender_id: str,
		text: str,
		*,
		sender_profile: Optional[UserProfile] = None,
	) -> Optional[Notification]:
		"""Best-effort variant used on send: failures are logged and counted only."""
		try:
			return await self.emit_message(recipient_id, sender_id, text, sender_profile=sender_profile)
		except NotificationWriteFailure as exc:
			obs_metrics.inc_notification_failure(NOTIFICATION_MESSAGE)
			logger.warning(
				"chat_notification_failed",
				extra={"recipient_id": recipient_id, "sender_id": sender_id, "error": str(exc.__cause__ or exc)},
			)
			return None

	async def emit_like(
		self,
		recipient_id: str,
		sender_id: str,
		post_id: str,
		*,
		post_type: str = "story",
		sender_profile: Optional[UserProfile] = None,
	) -> Optional[Notification]:
		if not recipient_id or recipient_id == sender_id:
			return None
		try:
			sender = await self._sender(sender_id, sender_profile)
			return await self._write(
				NOTIFICATION_LIKE,
				{
					"user_id": recipient_id,
					"type": NOTIFICATION_LIKE,
					"sender_id": sender_id,
					"sender_username": sender.username,
					"sender_avatar_url": sender.avatar_url,
					"post_id": post_id,
					"post_type": post_type,
					"message": f"liked your {post_type}",
					"created_at": SERVER_TIMESTAMP,
					"read": False,
				},
			)
		except (NotificationWriteFailure, StoreError) as exc:
			obs_metrics.inc_notification_failure(NOTIFICATION_LIKE)
			logger.warning(
				"like_notification_failed",
				extra={"recipient_id": recipient_id, "post_id": post_id, "error": str(exc)},
			)
			return None


class NotificationFeed:
	"""Recipient-facing reads over the notifications collection."""

	def __init__(self, store: Optional[DocumentStore] = None) -> None:
		self._store = store

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	def _base_query(self, user_id: str) -> Query:
		return Query(NOTIFICATIONS).where("user_id", "==", user_id).where("type", "!=", NOTIFICATION_MESSAGE)

	async def list_for_user(self, user_id: str, *, limit: int = 50) -> List[Notification]:
		query = self._base_query(user_id).ordered("created_at", descending=True)
		docs = await self.store.query(query)
		return [Notification.from_document(doc) for doc in docs[:limit]]

	async def unread_count(self, user_id: str) -> int:
		docs = await self.store.query(self._base_query(user_id).where("read", "==", False))
		return len(docs)

	async def mark_read(self, user_id: str, notification_id: str) -> Notification:
		path = f"{NOTIFICATIONS}/{notification_id}"
		doc = await self.store.get(path)
		if doc is None:
			raise NotificationNotFound()
		if doc.data.get("user_id") != user_id:
			raise PermissionDenied("not_recipient")
		if doc.data.get("read"):
			return Notification.from_document(doc)
		updated = await self.store.update(path, {"read": True})
		return Notification.from_document(updated)

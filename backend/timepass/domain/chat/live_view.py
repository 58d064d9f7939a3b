"""UI-facing controller for one open conversation.

Owns the live message subscription, marks visible messages seen after a
dwell delay, and keeps compose/edit state that survives failures. Closing
the view releases the subscription and cancels any pending dwell timer.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Union

from timepass.infra.store import Subscription
from timepass.obs import metrics as obs_metrics
from timepass.settings import settings

from .exceptions import ChatError, ValidationError
from .instants import format_relative
from .messages import Clipboard, MemoryClipboard
from .models import ChatMessage, UserProfile
from .receipts import is_seen_by_other, select_candidates
from .service import ChatService

logger = logging.getLogger(__name__)

RenderCallback = Callable[[List["MessageGroup"]], Union[Awaitable[None], None]]

SEND_FAILED = "Failed to send message"
EDIT_FAILED = "Failed to edit message"
DELETE_FAILED = "Failed to delete message"
COPIED = "Message copied"


@dataclass(slots=True)
class Notice:
	level: str
	text: str
	reason: Optional[str] = None


@dataclass(slots=True)
class EditState:
	message_id: str
	original_text: str
	draft: str


@dataclass(slots=True)
class RenderedMessage:
	id: str
	text: str
	is_own: bool
	is_story_reply: bool
	story_id: Optional[str]
	is_edited: bool
	seen: bool
	relative_time: str
	can_modify: bool
	editing: bool = False


@dataclass(slots=True)
class MessageGroup:
	"""Consecutive messages from one sender."""

	sender_id: str
	is_own: bool
	messages: List[RenderedMessage] = field(default_factory=list)


class LiveViewController:
	def __init__(
		self,
		service: ChatService,
		viewer_id: str,
		peer_id: str,
		*,
		dwell_seconds: Optional[float] = None,
		on_render: Optional[RenderCallback] = None,
		clipboard: Optional[Clipboard] = None,
		viewer_profile: Optional[UserProfile] = None,
	) -> None:
		self._service = service
		self.viewer_id = viewer_id
		self.peer_id = peer_id
		self._dwell_seconds = settings.chat_dwell_seconds if dwell_seconds is None else dwell_seconds
		self._on_render = on_render
		self._viewer_profile = viewer_profile
		self.clipboard: Clipboard = clipboard or MemoryClipboard()
		self.conversation_id: Optional[str] = None
		self.messages: List[ChatMessage] = []
		self.draft = ""
		self.editing: Optional[EditState] = None
		self.notices: List[Notice] = []
		self.visible = True
		self._subscription: Optional[Subscription] = None
		self._dwell_task: Optional[asyncio.Task] = None
		self._marking = False
		self._rearm = False
		self._closed = False

	@property
	def is_open(self) -> bool:
		return self._subscription is not None and not self._closed

	async def open(self) -> "LiveViewController":
		if self._subscription is not None:
			return self
		self.conversation_id = await self._service.ensure_conversation(self.viewer_id, self.peer_id)
		if self._closed:
			return self
		subscription = await self._service.subscribe_messages(self.conversation_id, self._on_snapshot)
		if self._closed:
			# Closed while subscribing.
			subscription.unsubscribe()
			return self
		self._subscription = subscription
		obs_metrics.live_view_opened()
		return self

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		await self._cancel_dwell()
		if self._subscription is not None:
			self._subscription.unsubscribe()
			obs_metrics.live_view_closed()

	async def __aenter__(self) -> "LiveViewController":
		return await self.open()

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.close()

	async def _on_snapshot(self, messages: List[ChatMessage]) -> None:
		if self._closed:
			return
		self.messages = messages
		if self.editing is not None and not any(item.id == self.editing.message_id for item in messages):
			self.editing = None
		if self._on_render is not None:
			result = self._on_render(self.render())
			if inspect.isawaitable(result):
				await result
		if self.visible:
			self._schedule_dwell()

	# seen-marking

	def set_visible(self, visible: bool) -> None:
		self.visible = visible
		if visible:
			self._schedule_dwell()
		elif self._dwell_task is not None:
			self._dwell_task.cancel()
			self._dwell_task = None

	def _schedule_dwell(self) -> None:
		if self._closed or self.conversation_id is None:
			return
		if not select_candidates(self.messages, self.viewer_id):
			return
		if self._marking:
			# Our own seen writes echo back as snapshots; rearm once the batch is done.
			self._rearm = True
			return
		# A pending timer keeps running; the dwell counts from first visibility.
		if self._dwell_task is not None and not self._dwell_task.done():
			return
		self._dwell_task = asyncio.create_task(self._dwell(), name=f"chat-dwell:{self.conversation_id}")

	async def _dwell(self) -> None:
		await asyncio.sleep(self._dwell_seconds)
		if self._closed or not self.visible or self.conversation_id is None:
			return
		candidates = select_candidates(self.messages, self.viewer_id)
		if not candidates:
			return
		self._marking = True
		self._rearm = False
		try:
			await self._service.mark_seen(self.conversation_id, self.viewer_id, candidates)
		except ChatError as exc:
			logger.warning(
				"chat_mark_seen_failed",
				extra={"conversation_id": self.conversation_id, "reason": exc.reason},
			)
		except Exception:
			logger.exception("chat_mark_seen_error", extra={"conversation_id": self.conversation_id})
		finally:
			self._marking = False
		if self._rearm and not self._closed:
			self._rearm = False
			self._dwell_task = None
			self._schedule_dwell()

	async def _cancel_dwell(self) -> None:
		task, self._dwell_task = self._dwell_task, None
		if task is None or task.done():
			return
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass

	async def flush_seen(self) -> None:
		"""Wait for a pending dwell timer to finish."""
		task = self._dwell_task
		if task is not None and not task.done():
			await asyncio.shield(task)

	# compose

	def set_draft(self, text: str) -> None:
		self.draft = text

	def _notice(self, level: str, text: str, reason: Optional[str] = None) -> None:
		self.notices.append(Notice(level=level, text=text, reason=reason))

	def _require_open(self) -> str:
		if self.conversation_id is None or self._closed:
			raise RuntimeError("live view is not open")
		return self.conversation_id

	async def send(self, text: Optional[str] = None) -> Optional[ChatMessage]:
		"""Send the draft (or `text`); the draft is kept whenever sending fails."""
		conversation_id = self._require_open()
		body = self.draft if text is None else text
		try:
			message = await self._service.send_message(
				conversation_id, self.viewer_id, body, sender_profile=self._viewer_profile
			)
		except ChatError as exc:
			self._notice("error", SEND_FAILED, exc.reason)
			if isinstance(exc, ValidationError):
				return None
			logger.warning("chat_send_failed", extra={"conversation_id": conversation_id, "reason": exc.reason})
			return None
		if text is None:
			self.draft = ""
		return message

	# edit / delete / copy

	def begin_edit(self, message_id: str) -> bool:
		message = self._find(message_id)
		if message is None or message.sender_id != self.viewer_id:
			return False
		self.editing = EditState(message_id=message_id, original_text=message.text, draft=message.text)
		return True

	def update_edit(self, text: str) -> None:
		if self.editing is not None:
			self.editing.draft = text

	def cancel_edit(self) -> None:
		self.editing = None

	async def save_edit(self) -> Optional[ChatMessage]:
		conversation_id = self._require_open()
		state = self.editing
		if state is None:
			return None
		if state.draft.strip() == state.original_text:
			self.editing = None
			return None
		try:
			message = await self._service.edit_message(conversation_id, state.message_id, self.viewer_id, state.draft)
		except ChatError as exc:
			# Back to the pre-edit display.
			self.editing = None
			self._notice("error", EDIT_FAILED, exc.reason)
			return None
		self.editing = None
		return message

	async def delete(self, message_id: str) -> bool:
		conversation_id = self._require_open()
		try:
			await self._service.delete_message(conversation_id, message_id, self.viewer_id)
		except ChatError as exc:
			self._notice("error", DELETE_FAILED, exc.reason)
			return False
		if self.editing is not None and self.editing.message_id == message_id:
			self.editing = None
		return True

	async def copy(self, message_id: str) -> Optional[str]:
		conversation_id = self._require_open()
		try:
			text = await self._service.copy_text(conversation_id, message_id, self.clipboard)
		except ChatError as exc:
			self._notice("error", "Failed to copy message", exc.reason)
			return None
		self._notice("info", COPIED)
		return text

	def _find(self, message_id: str) -> Optional[ChatMessage]:
		for message in self.messages:
			if message.id == message_id:
				return message
		return None

	# rendering

	def render(self, now: Optional[datetime] = None) -> List[MessageGroup]:
		groups: List[MessageGroup] = []
		for message in self.messages:
			is_own = message.sender_id == self.viewer_id
			editing = self.editing is not None and self.editing.message_id == message.id
			item = RenderedMessage(
				id=message.id,
				text=self.editing.draft if editing and self.editing is not None else message.text,
				is_own=is_own,
				is_story_reply=message.is_story_reply,
				story_id=message.story_id,
				is_edited=message.is_edited,
				seen=is_own and is_seen_by_other(message),
				relative_time=format_relative(message.created_at, now),
				can_modify=is_own,
				editing=editing,
			)
			if groups and groups[-1].sender_id == message.sender_id:
				groups[-1].messages.append(item)
			else:
				groups.append(MessageGroup(sender_id=message.sender_id, is_own=is_own, messages=[item]))
		return groups

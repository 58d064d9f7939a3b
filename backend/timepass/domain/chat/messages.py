"""Per-conversation message log.

Messages live under ``chats/{conversation_id}/messages``. Appending is three
independent writes (message, conversation summary, recipient notification);
a failure between them leaves each record individually valid.
"""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Union

from timepass.infra.store import SERVER_TIMESTAMP, DocumentStore, Query, Subscription, get_store
from timepass.obs import metrics as obs_metrics
from timepass.settings import settings

from .conversations import ConversationStore
from .exceptions import ConversationNotFound, MessageNotFound, PermissionDenied, ValidationError
from .models import ChatMessage, UserProfile, message_path, messages_collection
from .notifications import NotificationEmitter

logger = logging.getLogger(__name__)

MessagesCallback = Callable[[List[ChatMessage]], Union[Awaitable[None], None]]


class Clipboard(Protocol):
	def write_text(self, text: str) -> None:
		...


class MemoryClipboard:
	"""Process-local clipboard; the default target for `copy_text`."""

	def __init__(self) -> None:
		self.text: Optional[str] = None

	def write_text(self, text: str) -> None:
		self.text = text


def clean_text(text: Optional[str], *, max_length: Optional[int] = None) -> str:
	cleaned = (text or "").strip()
	if not cleaned:
		raise ValidationError("empty_text")
	limit = settings.chat_max_text_length if max_length is None else max_length
	if len(cleaned) > limit:
		raise ValidationError("text_too_long")
	return cleaned


def log_query(conversation_id: str) -> Query:
	return Query(messages_collection(conversation_id)).ordered("created_at")


class MessageLog:
	def __init__(
		self,
		store: Optional[DocumentStore] = None,
		*,
		conversations: Optional[ConversationStore] = None,
		notifier: Optional[NotificationEmitter] = None,
		clipboard: Optional[Clipboard] = None,
	) -> None:
		self._store = store
		self._conversations = conversations or ConversationStore(store)
		self._notifier = notifier or NotificationEmitter(store)
		self._clipboard = clipboard or MemoryClipboard()

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	async def append(
		self,
		conversation_id: str,
		sender_id: str,
		text: str,
		*,
		is_story_reply: bool = False,
		story_id: Optional[str] = None,
		sender_profile: Optional[UserProfile] = None,
	) -> ChatMessage:
		body = clean_text(text)
		if not sender_id:
			raise ValidationError("missing_identifier")
		if is_story_reply and not story_id:
			raise ValidationError("missing_identifier")
		conversation = await self._conversations.get(conversation_id)
		if conversation is None:
			raise ConversationNotFound()
		if not conversation.has_participant(sender_id):
			raise PermissionDenied("not_participant")

		doc = await self.store.add(
			messages_collection(conversation_id),
			{
				"text": body,
				"sender_id": sender_id,
				"created_at": SERVER_TIMESTAMP,
				"seen_by": [sender_id],
				"seen_at": None,
				"is_story_reply": bool(is_story_reply),
				"story_id": story_id if is_story_reply else None,
				"is_edited": False,
			},
		)
		message = ChatMessage.from_document(conversation_id, doc)
		obs_metrics.inc_chat_send("story_reply" if is_story_reply else "text")
		# Summary carries the full text; only notification previews are truncated.
		await self._conversations.record_last_message(conversation_id, body, sender_id, message.created_at)

		recipient_id = conversation.other_participant(sender_id)
		if recipient_id is not None:
			await self._notifier.notify_message(recipient_id, sender_id, body, sender_profile=sender_profile)
		logger.info(
			"chat_message_sent",
			extra={"conversation_id": conversation_id, "message_id": message.id, "story_reply": message.is_story_reply},
		)
		return message

	async def list_messages(self, conversation_id: str) -> List[ChatMessage]:
		docs = await self.store.query(log_query(conversation_id))
		return [ChatMessage.from_document(conversation_id, doc) for doc in docs]

	async def get(self, conversation_id: str, message_id: str) -> ChatMessage:
		doc = await self.store.get(message_path(conversation_id, message_id))
		if doc is None:
			raise MessageNotFound()
		return ChatMessage.from_document(conversation_id, doc)

	async def subscribe(self, conversation_id: str, on_update: MessagesCallback) -> Subscription:
		"""Replay the current log, then redeliver it in `created_at` order after every change."""

		async def _deliver(docs) -> None:
			result = on_update([ChatMessage.from_document(conversation_id, doc) for doc in docs])
			if inspect.isawaitable(result):
				await result

		return await self.store.watch(log_query(conversation_id), _deliver)

	async def edit(self, conversation_id: str, message_id: str, actor_id: str, new_text: str) -> ChatMessage:
		body = clean_text(new_text)
		message = await self.get(conversation_id, message_id)
		if message.sender_id != actor_id:
			raise PermissionDenied("not_sender")
		doc = await self.store.update(
			message_path(conversation_id, message_id),
			{"text": body, "is_edited": True, "edited_at": SERVER_TIMESTAMP},
		)
		obs_metrics.inc_chat_edit()
		return ChatMessage.from_document(conversation_id, doc)

	async def delete(self, conversation_id: str, message_id: str, actor_id: str) -> None:
		message = await self.get(conversation_id, message_id)
		if message.sender_id != actor_id:
			raise PermissionDenied("not_sender")
		await self.store.delete(message_path(conversation_id, message_id))
		obs_metrics.inc_chat_delete()
		logger.info("chat_message_deleted", extra={"conversation_id": conversation_id, "message_id": message_id})

	async def copy_text(
		self,
		conversation_id: str,
		message_id: str,
		clipboard: Optional[Clipboard] = None,
	) -> str:
		message = await self.get(conversation_id, message_id)
		(clipboard or self._clipboard).write_text(message.text)
		return message.text

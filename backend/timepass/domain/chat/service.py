"""Messaging facade used by the HTTP router, the socket namespace and live views."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from timepass.infra.store import DocumentNotFound, DocumentStore, StoreError, Subscription
from timepass.obs import metrics as obs_metrics

from .conversations import ConversationStore, sort_by_recency
from .exceptions import MessageNotFound, PermissionDenied, StoreUnavailable, ValidationError
from .identity import ConversationKey
from .instants import format_relative
from .messages import Clipboard, MessageLog, MessagesCallback
from .models import ChatMessage, Conversation, ConversationSummary, Notification, UserProfile
from .notifications import NotificationEmitter, NotificationFeed
from .receipts import ReadReceiptTracker
from .unread import CountCallback, UnreadAggregator, UnreadWatch

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
	try:
		yield
	except DocumentNotFound as exc:
		raise MessageNotFound() from exc
	except StoreError as exc:
		obs_metrics.inc_store_error(operation)
		logger.warning("chat_store_failure", extra={"operation": operation, "error": str(exc)})
		raise StoreUnavailable() from exc


def conversation_key(user_id: str, peer_id: str) -> ConversationKey:
	if not user_id or not peer_id:
		raise ValidationError("missing_identifier")
	key = ConversationKey.from_participants(user_id, peer_id)
	if key.is_self:
		raise ValidationError("cannot_dm_self")
	return key


class ChatService:
	def __init__(
		self,
		store: Optional[DocumentStore] = None,
		*,
		conversations: Optional[ConversationStore] = None,
		notifier: Optional[NotificationEmitter] = None,
		messages: Optional[MessageLog] = None,
		receipts: Optional[ReadReceiptTracker] = None,
		unread: Optional[UnreadAggregator] = None,
		feed: Optional[NotificationFeed] = None,
	) -> None:
		self.conversations = conversations or ConversationStore(store)
		self.notifier = notifier or NotificationEmitter(store)
		self.messages = messages or MessageLog(store, conversations=self.conversations, notifier=self.notifier)
		self.receipts = receipts or ReadReceiptTracker(store)
		self.unread = unread or UnreadAggregator(store)
		self.feed = feed or NotificationFeed(store)

	async def _require_participant(self, conversation_id: str, user_id: str) -> Conversation:
		conversation = await self.conversations.get(conversation_id)
		if conversation is None or not conversation.has_participant(user_id):
			raise PermissionDenied("not_participant")
		return conversation

	async def ensure_conversation(self, user_id: str, peer_id: str) -> str:
		key = conversation_key(user_id, peer_id)
		with _store_errors("ensure_conversation"):
			await self.conversations.ensure_conversation(key.conversation_id, key.user_a, key.user_b)
		return key.conversation_id

	async def send_message(
		self,
		conversation_id: str,
		sender_id: str,
		text: str,
		*,
		is_story_reply: bool = False,
		story_id: Optional[str] = None,
		sender_profile: Optional[UserProfile] = None,
	) -> ChatMessage:
		if not conversation_id:
			raise ValidationError("missing_identifier")
		with _store_errors("send_message"):
			return await self.messages.append(
				conversation_id,
				sender_id,
				text,
				is_story_reply=is_story_reply,
				story_id=story_id,
				sender_profile=sender_profile,
			)

	async def send_to_peer(
		self,
		sender_id: str,
		peer_id: str,
		text: str,
		*,
		sender_profile: Optional[UserProfile] = None,
	) -> ChatMessage:
		conversation_id = await self.ensure_conversation(sender_id, peer_id)
		return await self.send_message(conversation_id, sender_id, text, sender_profile=sender_profile)

	async def reply_to_story(
		self,
		sender_id: str,
		story_owner_id: str,
		story_id: str,
		text: str,
		*,
		sender_profile: Optional[UserProfile] = None,
	) -> ChatMessage:
		"""Reply to a story by messaging its owner; the message is flagged as a story reply."""
		if not story_id:
			raise ValidationError("missing_identifier")
		conversation_id = await self.ensure_conversation(sender_id, story_owner_id)
		return await self.send_message(
			conversation_id,
			sender_id,
			text,
			is_story_reply=True,
			story_id=story_id,
			sender_profile=sender_profile,
		)

	async def notify_like(
		self,
		sender_id: str,
		recipient_id: str,
		post_id: str,
		*,
		post_type: str = "story",
		sender_profile: Optional[UserProfile] = None,
	) -> Optional[Notification]:
		return await self.notifier.emit_like(
			recipient_id, sender_id, post_id, post_type=post_type, sender_profile=sender_profile
		)

	async def subscribe_messages(self, conversation_id: str, on_update: MessagesCallback) -> Subscription:
		with _store_errors("subscribe_messages"):
			return await self.messages.subscribe(conversation_id, on_update)

	async def list_messages(self, conversation_id: str, viewer_id: str) -> List[ChatMessage]:
		with _store_errors("list_messages"):
			await self._require_participant(conversation_id, viewer_id)
			return await self.messages.list_messages(conversation_id)

	async def mark_seen(self, conversation_id: str, viewer_id: str, message_ids: Iterable[str]) -> List[str]:
		if not viewer_id:
			raise ValidationError("missing_identifier")
		with _store_errors("mark_seen"):
			return await self.receipts.mark_seen(conversation_id, viewer_id, message_ids)

	async def edit_message(self, conversation_id: str, message_id: str, actor_id: str, new_text: str) -> ChatMessage:
		with _store_errors("edit_message"):
			return await self.messages.edit(conversation_id, message_id, actor_id, new_text)

	async def delete_message(self, conversation_id: str, message_id: str, actor_id: str) -> None:
		with _store_errors("delete_message"):
			await self.messages.delete(conversation_id, message_id, actor_id)

	async def copy_text(self, conversation_id: str, message_id: str, clipboard: Optional[Clipboard] = None) -> str:
		with _store_errors("copy_text"):
			return await self.messages.copy_text(conversation_id, message_id, clipboard)

	async def list_conversations(
		self,
		user_id: str,
		*,
		strategy: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> List[ConversationSummary]:
		if not user_id:
			raise ValidationError("missing_identifier")
		with _store_errors("list_conversations"):
			conversations = sort_by_recency(await self.conversations.list_for_user(user_id))
			flags = await self.unread.flags(user_id, conversations, strategy=strategy)
			summaries: List[ConversationSummary] = []
			for conversation in conversations:
				other_id = conversation.other_participant(user_id)
				if other_id is None:
					continue
				profile = await self.conversations.get_profile(other_id)
				summaries.append(
					ConversationSummary(
						conversation_id=conversation.id,
						other_user=profile,
						last_message=conversation.last_message,
						last_message_at=conversation.last_message_at,
						last_message_sender=conversation.last_message_sender,
						has_unread=flags.get(conversation.id, False),
						relative_time=format_relative(conversation.last_message_at, now),
					)
				)
		return summaries

	async def get_unread_count(self, user_id: str, *, strategy: Optional[str] = None) -> int:
		with _store_errors("unread_count"):
			return await self.unread.count(user_id, strategy=strategy)

	async def watch_unread_count(
		self,
		user_id: str,
		on_count: CountCallback,
		*,
		strategy: Optional[str] = None,
	) -> UnreadWatch:
		with _store_errors("watch_unread"):
			return await self.unread.watch(user_id, on_count, strategy=strategy)

	async def list_notifications(self, user_id: str, *, limit: int = 50) -> List[Notification]:
		with _store_errors("list_notifications"):
			return await self.feed.list_for_user(user_id, limit=limit)

	async def unread_notifications(self, user_id: str) -> int:
		with _store_errors("unread_notifications"):
			return await self.feed.unread_count(user_id)

	async def mark_notification_read(self, user_id: str, notification_id: str) -> Notification:
		with _store_errors("mark_notification_read"):
			return await self.feed.mark_read(user_id, notification_id)


_SERVICE: Optional[ChatService] = None


def get_chat_service() -> ChatService:
	global _SERVICE
	if _SERVICE is None:
		_SERVICE = ChatService()
	return _SERVICE


def set_chat_service(service: Optional[ChatService]) -> None:
	global _SERVICE
	_SERVICE = service

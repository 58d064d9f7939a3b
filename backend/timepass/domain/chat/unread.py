"""Unread aggregate for the conversation list and the global badge.

Two strategies:

- ``coarse``: a conversation is unread when its last message came from the
  other participant. No message reads, but stays unread after the viewer
  has actually seen the message.
- ``precise``: a conversation is unread when any message from the last
  sender still lacks the viewer in its seen-by set.

The badge counts conversations, not messages.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from timepass.infra.store import Document, DocumentStore, Query, Subscription, get_store
from timepass.obs import metrics as obs_metrics
from timepass.settings import settings

from .conversations import participant_query
from .models import ChatMessage, Conversation, messages_collection

logger = logging.getLogger(__name__)

COARSE = "coarse"
PRECISE = "precise"
STRATEGIES = (COARSE, PRECISE)

CountCallback = Callable[[int], Union[Awaitable[None], None]]


def resolve_strategy(strategy: Optional[str]) -> str:
	choice = (strategy or settings.chat_unread_strategy or PRECISE).lower()
	if choice not in STRATEGIES:
		raise ValueError(f"unknown unread strategy: {strategy}")
	return choice


def has_unread_coarse(conversation: Conversation, viewer_id: str) -> bool:
	return (
		conversation.last_message is not None
		and conversation.last_message_sender is not None
		and conversation.last_message_sender != viewer_id
	)


def has_unread_precise(conversation: Conversation, viewer_id: str, messages: Iterable[ChatMessage]) -> bool:
	if not has_unread_coarse(conversation, viewer_id):
		return False
	last_sender = conversation.last_message_sender
	return any(
		message.sender_id == last_sender and viewer_id not in message.seen_by
		for message in messages
	)


class UnreadAggregator:
	def __init__(self, store: Optional[DocumentStore] = None, *, strategy: Optional[str] = None) -> None:
		self._store = store
		self._strategy = strategy

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	def strategy(self, override: Optional[str] = None) -> str:
		return resolve_strategy(override or self._strategy)

	async def has_unread(self, conversation: Conversation, viewer_id: str, *, strategy: Optional[str] = None) -> bool:
		if self.strategy(strategy) == COARSE:
			return has_unread_coarse(conversation, viewer_id)
		if not has_unread_coarse(conversation, viewer_id):
			return False
		query = Query(messages_collection(conversation.id)).where(
			"sender_id", "==", conversation.last_message_sender
		)
		docs = await self.store.query(query)
		messages = [ChatMessage.from_document(conversation.id, doc) for doc in docs]
		return has_unread_precise(conversation, viewer_id, messages)

	async def flags(
		self,
		viewer_id: str,
		conversations: Optional[List[Conversation]] = None,
		*,
		strategy: Optional[str] = None,
	) -> Dict[str, bool]:
		if conversations is None:
			docs = await self.store.query(participant_query(viewer_id))
			conversations = [Conversation.from_document(doc) for doc in docs]
		return {
			conversation.id: await self.has_unread(conversation, viewer_id, strategy=strategy)
			for conversation in conversations
		}

	async def count(self, viewer_id: str, *, strategy: Optional[str] = None) -> int:
		choice = self.strategy(strategy)
		obs_metrics.inc_unread_count(choice)
		flags = await self.flags(viewer_id, strategy=choice)
		return sum(1 for value in flags.values() if value)

	async def watch(
		self,
		viewer_id: str,
		on_count: CountCallback,
		*,
		strategy: Optional[str] = None,
	) -> "UnreadWatch":
		"""Deliver the current count now and again whenever it changes."""
		watcher = UnreadWatch(self.store, viewer_id, on_count, self.strategy(strategy))
		await watcher.start()
		return watcher


class UnreadWatch:
	"""Live unread count for one viewer.

	Follows the viewer's conversations and, for the precise strategy, each
	conversation's message log, so a seen-mark clears the badge without the
	conversation record changing.
	"""

	def __init__(self, store: DocumentStore, viewer_id: str, on_count: CountCallback, strategy: str) -> None:
		self._store = store
		self._viewer_id = viewer_id
		self._on_count = on_count
		self._strategy = strategy
		self._conversations: Dict[str, Conversation] = {}
		self._messages: Dict[str, List[ChatMessage]] = {}
		self._message_subs: Dict[str, Subscription] = {}
		self._chats_sub: Optional[Subscription] = None
		self._lock = asyncio.Lock()
		self._active = True
		self._ready = False
		self.count: Optional[int] = None

	@property
	def active(self) -> bool:
		return self._active

	@property
	def strategy(self) -> str:
		return self._strategy

	async def start(self) -> None:
		subscription = await self._store.watch(participant_query(self._viewer_id), self._on_chats)
		if not self._active:
			subscription.unsubscribe()
			return
		self._chats_sub = subscription
		self._ready = True
		await self._recompute()

	def unsubscribe(self) -> None:
		if not self._active:
			return
		self._active = False
		if self._chats_sub is not None:
			self._chats_sub.unsubscribe()
		for subscription in self._message_subs.values():
			subscription.unsubscribe()
		self._message_subs.clear()

	async def _on_chats(self, docs: List[Document]) -> None:
		if not self._active:
			return
		async with self._lock:
			self._conversations = {doc.id: Conversation.from_document(doc) for doc in docs}
			if self._strategy == PRECISE:
				await self._sync_message_watches()
		if self._ready:
			await self._recompute()

	async def _sync_message_watches(self) -> None:
		wanted = set(self._conversations)
		for conversation_id in list(self._message_subs):
			if conversation_id not in wanted:
				self._message_subs.pop(conversation_id).unsubscribe()
				self._messages.pop(conversation_id, None)
		for conversation_id in sorted(wanted - set(self._message_subs)):
			if not self._active:
				return
			subscription = await self._store.watch(
				Query(messages_collection(conversation_id)),
				self._message_callback(conversation_id),
			)
			# unsubscribe() may have run while the watch was being set up.
			if not self._active:
				subscription.unsubscribe()
				return
			self._message_subs[conversation_id] = subscription

	def _message_callback(self, conversation_id: str):
		async def _on_messages(docs: List[Document]) -> None:
			if not self._active:
				return
			self._messages[conversation_id] = [ChatMessage.from_document(conversation_id, doc) for doc in docs]
			if self._ready and conversation_id in self._message_subs:
				await self._recompute()

		return _on_messages

	def _compute(self) -> int:
		total = 0
		for conversation in self._conversations.values():
			if self._strategy == COARSE:
				flagged = has_unread_coarse(conversation, self._viewer_id)
			else:
				flagged = has_unread_precise(conversation, self._viewer_id, self._messages.get(conversation.id, ()))
			if flagged:
				total += 1
		return total

	async def _recompute(self) -> None:
		if not self._active:
			return
		value = self._compute()
		if value == self.count:
			return
		self.count = value
		result = self._on_count(value)
		if inspect.isawaitable(result):
			await result

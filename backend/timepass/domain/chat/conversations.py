"""Conversation records: lazy creation, last-message summary and listing."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from timepass.infra.store import SERVER_TIMESTAMP, DocumentStore, Query, SnapshotCallback, Subscription, get_store

from .models import CHATS, USERS, Conversation, UserProfile, chat_path

logger = logging.getLogger(__name__)


async def load_profile(store: DocumentStore, user_id: str) -> UserProfile:
	"""Read-only profile lookup; unknown users fall back to a bare id."""
	doc = await store.get(f"{USERS}/{user_id}")
	if doc is None:
		return UserProfile(id=user_id)
	return UserProfile.from_document(doc)


def participant_query(user_id: str) -> Query:
	return Query(CHATS).where("participants", "array_contains", user_id)


class ConversationStore:
	def __init__(self, store: Optional[DocumentStore] = None) -> None:
		self._store = store

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	async def ensure_conversation(self, conversation_id: str, user_a: str, user_b: str) -> bool:
		"""Create the conversation if absent; returns True only for the creating caller.

		Uses the store's conditional create so two participants opening the
		chat at the same moment still converge on a single record.
		"""
		created = await self.store.create(
			chat_path(conversation_id),
			{
				"participants": sorted((user_a, user_b)),
				"created_at": SERVER_TIMESTAMP,
				"last_message": None,
				"last_message_at": None,
				"last_message_sender": None,
			},
			if_absent=True,
		)
		if created:
			logger.info("chat_conversation_created", extra={"conversation_id": conversation_id})
		return created

	async def record_last_message(
		self,
		conversation_id: str,
		text: str,
		sender_id: str,
		at: Any = SERVER_TIMESTAMP,
	) -> None:
		# Plain overwrite: whichever write reaches the store last wins.
		await self.store.update(
			chat_path(conversation_id),
			{
				"last_message": text,
				"last_message_at": at,
				"last_message_sender": sender_id,
			},
		)

	async def get(self, conversation_id: str) -> Optional[Conversation]:
		doc = await self.store.get(chat_path(conversation_id))
		if doc is None:
			return None
		return Conversation.from_document(doc)

	async def list_for_user(self, user_id: str) -> List[Conversation]:
		docs = await self.store.query(participant_query(user_id))
		return [Conversation.from_document(doc) for doc in docs]

	async def watch_for_user(self, user_id: str, callback: SnapshotCallback) -> Subscription:
		return await self.store.watch(participant_query(user_id), callback)

	async def get_profile(self, user_id: str) -> UserProfile:
		return await load_profile(self.store, user_id)


def sort_by_recency(conversations: List[Conversation]) -> List[Conversation]:
	"""Newest `last_message_at` first; conversations without one sort last."""
	dated = [item for item in conversations if item.last_message_at is not None]
	undated = [item for item in conversations if item.last_message_at is None]
	dated.sort(key=lambda item: (item.last_message_at or datetime.min, item.id), reverse=True)
	return dated + undated

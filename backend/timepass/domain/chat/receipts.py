"""Read receipts: which participants have seen which messages."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from timepass.infra.store import SERVER_TIMESTAMP, ArrayUnion, DocumentNotFound, DocumentStore, get_store
from timepass.obs import metrics as obs_metrics

from .models import ChatMessage, message_path

logger = logging.getLogger(__name__)


def select_candidates(messages: Iterable[ChatMessage], viewer_id: str) -> List[str]:
	"""Ids in the loaded window sent by someone else and not yet seen by the viewer."""
	return [
		message.id
		for message in messages
		if message.sender_id != viewer_id and viewer_id not in message.seen_by
	]


def is_seen_by_other(message: ChatMessage) -> bool:
	"""Checkmark proxy: anyone besides the sender has seen it.

	Only equivalent to "seen by the recipient" while conversations have
	exactly two participants; use `seen_by_counterpart` where that matters.
	"""
	return len(message.seen_by) > 1


def seen_by_counterpart(message: ChatMessage, counterpart_id: str) -> bool:
	return counterpart_id != message.sender_id and counterpart_id in message.seen_by


class ReadReceiptTracker:
	def __init__(self, store: Optional[DocumentStore] = None) -> None:
		self._store = store

	@property
	def store(self) -> DocumentStore:
		return self._store if self._store is not None else get_store()

	async def mark_seen(self, conversation_id: str, viewer_id: str, message_ids: Iterable[str]) -> List[str]:
		"""Add `viewer_id` to each message's seen-by set; returns the ids actually changed.

		Already-seen, own and vanished messages are skipped, so repeating a
		call with the same ids writes nothing.
		"""
		marked: List[str] = []
		for message_id in dict.fromkeys(message_ids):
			path = message_path(conversation_id, message_id)
			doc = await self.store.get(path)
			if doc is None:
				continue
			seen_by = doc.data.get("seen_by") or []
			if doc.data.get("sender_id") == viewer_id or viewer_id in seen_by:
				continue
			try:
				await self.store.update(path, {"seen_by": ArrayUnion([viewer_id]), "seen_at": SERVER_TIMESTAMP})
			except DocumentNotFound:
				# Deleted between the read and the write.
				continue
			marked.append(message_id)
		obs_metrics.inc_chat_seen(len(marked))
		if marked:
			logger.debug(
				"chat_messages_seen",
				extra={"conversation_id": conversation_id, "viewer_id": viewer_id, "count": len(marked)},
			)
		return marked

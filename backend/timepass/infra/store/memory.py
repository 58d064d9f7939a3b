"""In-process document store used by tests and single-node deployments."""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .base import (
	Document,
	DocumentNotFound,
	Query,
	SnapshotCallback,
	Subscription,
	apply_changes,
	join_path,
	new_document_id,
	split_path,
	utcnow,
)

logger = logging.getLogger(__name__)


class MemoryDocumentStore:
	"""Lock-guarded dictionaries with synchronous watcher fan-out."""

	def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
		self._lock = asyncio.Lock()
		self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
		self._watchers: Dict[str, List[Subscription]] = {}
		self._clock = clock or utcnow

	async def get(self, path: str) -> Optional[Document]:
		collection, doc_id = split_path(path)
		async with self._lock:
			data = self._collections.get(collection, {}).get(doc_id)
			if data is None:
				return None
			return Document(id=doc_id, path=path, data=copy.deepcopy(data))

	async def create(self, path: str, data: Mapping[str, Any], *, if_absent: bool = True) -> bool:
		collection, doc_id = split_path(path)
		async with self._lock:
			documents = self._collections.setdefault(collection, {})
			if if_absent and doc_id in documents:
				return False
			documents[doc_id] = apply_changes({}, data, self._clock())
		await self._notify(collection)
		return True

	async def add(self, collection: str, data: Mapping[str, Any]) -> Document:
		doc_id = new_document_id()
		async with self._lock:
			body = apply_changes({}, data, self._clock())
			self._collections.setdefault(collection, {})[doc_id] = body
			snapshot = copy.deepcopy(body)
		await self._notify(collection)
		return Document(id=doc_id, path=join_path(collection, doc_id), data=snapshot)

	async def update(self, path: str, changes: Mapping[str, Any]) -> Document:
		collection, doc_id = split_path(path)
		async with self._lock:
			documents = self._collections.get(collection, {})
			current = documents.get(doc_id)
			if current is None:
				raise DocumentNotFound(path)
			body = apply_changes(current, changes, self._clock())
			documents[doc_id] = body
			snapshot = copy.deepcopy(body)
		await self._notify(collection)
		return Document(id=doc_id, path=path, data=snapshot)

	async def delete(self, path: str) -> None:
		collection, doc_id = split_path(path)
		async with self._lock:
			removed = self._collections.get(collection, {}).pop(doc_id, None)
		if removed is not None:
			await self._notify(collection)

	async def query(self, query: Query) -> List[Document]:
		async with self._lock:
			documents = [
				Document(id=doc_id, path=join_path(query.collection, doc_id), data=copy.deepcopy(body))
				for doc_id, body in self._collections.get(query.collection, {}).items()
			]
		return query.apply(documents)

	async def watch(self, query: Query, callback: SnapshotCallback) -> Subscription:
		subscription = Subscription(query, callback, on_close=self._forget)
		self._watchers.setdefault(query.collection, []).append(subscription)
		await subscription.deliver(await self.query(query))
		return subscription

	def watcher_count(self, collection: Optional[str] = None) -> int:
		if collection is not None:
			return len(self._watchers.get(collection, ()))
		return sum(len(items) for items in self._watchers.values())

	async def close(self) -> None:
		for subscriptions in list(self._watchers.values()):
			for subscription in list(subscriptions):
				subscription.unsubscribe()
		self._watchers.clear()

	def _forget(self, subscription: Subscription) -> None:
		subscriptions = self._watchers.get(subscription.query.collection)
		if not subscriptions:
			return
		if subscription in subscriptions:
			subscriptions.remove(subscription)
		if not subscriptions:
			self._watchers.pop(subscription.query.collection, None)

	async def _notify(self, collection: str) -> None:
		for subscription in list(self._watchers.get(collection, ())):
			if not subscription.active:
				continue
			try:
				await subscription.deliver(await self.query(subscription.query))
			except Exception:
				# Subscriber faults must not fail the write that triggered them.
				logger.exception("store_watch_callback_failed", extra={"collection": collection})

"""Document store selection.

`get_store()` returns the process-wide store built from ``STORE_BACKEND``;
tests swap it with `set_store()`.
"""

from __future__ import annotations

import logging
from typing import Optional

from .base import (
	SERVER_TIMESTAMP,
	ArrayRemove,
	ArrayUnion,
	Document,
	DocumentNotFound,
	DocumentStore,
	Filter,
	Increment,
	Query,
	SnapshotCallback,
	StoreError,
	StoreUnavailableError,
	Subscription,
)
from .memory import MemoryDocumentStore
from .redis_store import RedisDocumentStore

logger = logging.getLogger(__name__)

_store: Optional[DocumentStore] = None


def build_store(backend: Optional[str] = None) -> DocumentStore:
	from timepass.settings import settings

	choice = (backend or settings.store_backend or "memory").lower()
	if choice == "memory":
		return MemoryDocumentStore()
	if choice == "redis":
		return RedisDocumentStore()
	raise ValueError(f"unknown store backend: {choice}")


def get_store() -> DocumentStore:
	global _store
	if _store is None:
		_store = build_store()
		logger.info("store_initialised", extra={"backend": type(_store).__name__})
	return _store


def set_store(store: Optional[DocumentStore]) -> None:
	global _store
	_store = store


async def close_store() -> None:
	global _store
	if _store is None:
		return
	store, _store = _store, None
	await store.close()


__all__ = [
	"ArrayRemove",
	"ArrayUnion",
	"Document",
	"DocumentNotFound",
	"DocumentStore",
	"Filter",
	"Increment",
	"MemoryDocumentStore",
	"Query",
	"RedisDocumentStore",
	"SERVER_TIMESTAMP",
	"SnapshotCallback",
	"StoreError",
	"StoreUnavailableError",
	"Subscription",
	"build_store",
	"close_store",
	"get_store",
	"set_store",
]

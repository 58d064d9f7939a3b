"""Redis-backed document store.

Layout under the configured key prefix:
- ``doc:{path}``          JSON body of one document
- ``col:{collection}``    set of document ids in a collection
- ``changes:{collection}`` pub/sub channel carrying the changed path

Conditional creates use ``SET NX``; field transforms run inside
``WATCH``/``MULTI`` optimistic transactions and are retried on contention.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager, suppress
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from redis.exceptions import RedisError, WatchError

from timepass.infra.redis import redis_client
from timepass.obs import metrics as obs_metrics
from timepass.settings import settings

from .base import (
	Document,
	DocumentNotFound,
	Query,
	SnapshotCallback,
	StoreUnavailableError,
	Subscription,
	apply_changes,
	join_path,
	new_document_id,
	split_path,
	utcnow,
)

logger = logging.getLogger(__name__)

_TS_TAG = "$ts"
_POLL_TIMEOUT_SECONDS = 1.0


def _encode(value: Any) -> Any:
	if isinstance(value, datetime):
		return {_TS_TAG: value.isoformat()}
	if isinstance(value, dict):
		return {key: _encode(item) for key, item in value.items()}
	if isinstance(value, (list, tuple)):
		return [_encode(item) for item in value]
	return value


def _decode(value: Any) -> Any:
	if isinstance(value, dict):
		if len(value) == 1 and _TS_TAG in value:
			return datetime.fromisoformat(value[_TS_TAG])
		return {key: _decode(item) for key, item in value.items()}
	if isinstance(value, list):
		return [_decode(item) for item in value]
	return value


def dumps(data: Mapping[str, Any]) -> str:
	return json.dumps(_encode(dict(data)), separators=(",", ":"))


def loads(raw: str) -> Dict[str, Any]:
	return _decode(json.loads(raw))


class RedisDocumentStore:
	def __init__(
		self,
		client: Any = None,
		*,
		prefix: Optional[str] = None,
		clock: Optional[Callable[[], datetime]] = None,
		retries: Optional[int] = None,
	) -> None:
		self._redis = client if client is not None else redis_client
		self._prefix = settings.store_key_prefix if prefix is None else prefix
		self._clock = clock or utcnow
		self._retries = max(1, retries if retries is not None else settings.store_transaction_retries)
		self._pumps: Dict[Subscription, asyncio.Task] = {}

	def _doc_key(self, path: str) -> str:
		return f"{self._prefix}doc:{path}"

	def _collection_key(self, collection: str) -> str:
		return f"{self._prefix}col:{collection}"

	def _channel(self, collection: str) -> str:
		return f"{self._prefix}changes:{collection}"

	@contextmanager
	def _guard(self, operation: str) -> Iterator[None]:
		try:
			yield
		except RedisError as exc:
			obs_metrics.inc_store_error(operation)
			logger.warning("store_redis_error", extra={"operation": operation, "error": str(exc)})
			raise StoreUnavailableError(operation) from exc

	async def get(self, path: str) -> Optional[Document]:
		_, doc_id = split_path(path)
		with self._guard("get"):
			raw = await self._redis.get(self._doc_key(path))
		if raw is None:
			return None
		return Document(id=doc_id, path=path, data=loads(raw))

	async def create(self, path: str, data: Mapping[str, Any], *, if_absent: bool = True) -> bool:
		collection, doc_id = split_path(path)
		payload = dumps(apply_changes({}, data, self._clock()))
		with self._guard("create"):
			if if_absent:
				created = bool(await self._redis.set(self._doc_key(path), payload, nx=True))
			else:
				await self._redis.set(self._doc_key(path), payload)
				created = True
			if created:
				await self._redis.sadd(self._collection_key(collection), doc_id)
				await self._publish(collection, path)
		return created

	async def add(self, collection: str, data: Mapping[str, Any]) -> Document:
		doc_id = new_document_id()
		path = join_path(collection, doc_id)
		body = apply_changes({}, data, self._clock())
		with self._guard("add"):
			await self._redis.set(self._doc_key(path), dumps(body))
			await self._redis.sadd(self._collection_key(collection), doc_id)
			await self._publish(collection, path)
		return Document(id=doc_id, path=path, data=body)

	async def update(self, path: str, changes: Mapping[str, Any]) -> Document:
		collection, doc_id = split_path(path)
		key = self._doc_key(path)
		with self._guard("update"):
			for _attempt in range(self._retries):
				async with self._redis.pipeline(transaction=True) as pipe:
					try:
						await pipe.watch(key)
						raw = await pipe.get(key)
						if raw is None:
							raise DocumentNotFound(path)
						body = apply_changes(loads(raw), changes, self._clock())
						pipe.multi()
						pipe.set(key, dumps(body))
						await pipe.execute()
					except WatchError:
						continue
				await self._publish(collection, path)
				return Document(id=doc_id, path=path, data=body)
		obs_metrics.inc_store_error("update_contention")
		raise StoreUnavailableError("update_contention")

	async def delete(self, path: str) -> None:
		collection, doc_id = split_path(path)
		with self._guard("delete"):
			removed = await self._redis.delete(self._doc_key(path))
			await self._redis.srem(self._collection_key(collection), doc_id)
			if removed:
				await self._publish(collection, path)

	async def query(self, query: Query) -> List[Document]:
		with self._guard("query"):
			ids = sorted(await self._redis.smembers(self._collection_key(query.collection)))
			if not ids:
				return []
			paths = [join_path(query.collection, doc_id) for doc_id in ids]
			raws = await self._redis.mget([self._doc_key(path) for path in paths])
		documents = [
			Document(id=doc_id, path=path, data=loads(raw))
			for doc_id, path, raw in zip(ids, paths, raws)
			if raw is not None
		]
		return query.apply(documents)

	async def watch(self, query: Query, callback: SnapshotCallback) -> Subscription:
		subscription = Subscription(query, callback, on_close=self._release)
		ready: asyncio.Future = asyncio.get_running_loop().create_future()
		task = asyncio.create_task(self._pump(subscription, ready), name=f"store-watch:{query.collection}")
		self._pumps[subscription] = task
		try:
			await ready
			await subscription.deliver(await self.query(query))
		except BaseException:
			subscription.unsubscribe()
			raise
		return subscription

	async def close(self) -> None:
		subscriptions = list(self._pumps)
		tasks = [self._pumps[item] for item in subscriptions]
		for subscription in subscriptions:
			subscription.unsubscribe()
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)

	def _release(self, subscription: Subscription) -> None:
		task = self._pumps.pop(subscription, None)
		if task is not None and not task.done():
			task.cancel()

	async def _publish(self, collection: str, path: str) -> None:
		await self._redis.publish(self._channel(collection), path)

	async def _pump(self, subscription: Subscription, ready: asyncio.Future) -> None:
		pubsub = self._redis.pubsub()
		try:
			try:
				await pubsub.subscribe(self._channel(subscription.query.collection))
			except RedisError as exc:
				obs_metrics.inc_store_error("watch")
				if not ready.done():
					ready.set_exception(StoreUnavailableError("watch"))
				logger.warning("store_watch_subscribe_failed", extra={"error": str(exc)})
				return
			if not ready.done():
				ready.set_result(None)
			while subscription.active:
				try:
					message = await pubsub.get_message(
						ignore_subscribe_messages=True, timeout=_POLL_TIMEOUT_SECONDS
					)
					if message is None:
						continue
					# Coalesce bursts into a single redelivery.
					while await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.0) is not None:
						pass
					if not subscription.active:
						break
					await subscription.deliver(await self.query(subscription.query))
				except (RedisError, StoreUnavailableError) as exc:
					logger.warning("store_watch_redis_error", extra={"error": str(exc)})
					await asyncio.sleep(_POLL_TIMEOUT_SECONDS)
				except asyncio.CancelledError:
					raise
				except Exception:
					logger.exception(
						"store_watch_callback_failed",
						extra={"collection": subscription.query.collection},
					)
		finally:
			if not ready.done():
				ready.cancel()
			with suppress(RedisError, RuntimeError):
				await pubsub.unsubscribe()
				await pubsub.aclose()

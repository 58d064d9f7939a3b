"""Shared ``redis.asyncio`` client.

Modules import `redis_client` once; the object behind it is a proxy so tests
can point it at fakeredis, and shutdown can close the real connection pool,
without touching those imports.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from timepass.settings import settings

logger = logging.getLogger(__name__)


def _connect(url: str) -> redis.Redis:
	# Pub/sub pumps hold idle connections open; health checks catch dead ones.
	return redis.from_url(url, decode_responses=True, health_check_interval=30)


class RedisProxy:
	"""Forwards attribute access to whichever client is currently installed."""

	def __init__(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


redis_client = RedisProxy(_connect(settings.redis_url))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	"""Release the pool of the installed client; a later command reconnects lazily."""
	try:
		await redis_client.client.aclose()
	except redis.RedisError:
		logger.warning("redis_close_failed", exc_info=True)

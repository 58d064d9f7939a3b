import asyncio
import itertools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

from timepass.domain.chat.service import set_chat_service
from timepass.infra.store import MemoryDocumentStore, set_store
from timepass.main import app
from timepass.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from timepass.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


def ticking_clock(start: datetime | None = None, step: timedelta = timedelta(milliseconds=1)):
	"""Strictly increasing clock so created_at ordering is deterministic."""
	base = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
	counter = itertools.count()
	return lambda: base + step * next(counter)


@pytest_asyncio.fixture(autouse=True)
async def memory_store():
	store = MemoryDocumentStore(clock=ticking_clock())
	set_store(store)
	set_chat_service(None)
	try:
		yield store
	finally:
		await store.close()
		set_chat_service(None)
		set_store(None)


class SlowWatchStore(MemoryDocumentStore):
	"""Memory store whose watch registration yields to the loop first."""

	def __init__(self, delay: float = 0.05, **kwargs) -> None:
		super().__init__(**kwargs)
		self.delay = delay

	async def watch(self, query, callback):
		await asyncio.sleep(self.delay)
		return await super().watch(query, callback)


@pytest_asyncio.fixture
async def slow_watch_store():
	store = SlowWatchStore(clock=ticking_clock())
	try:
		yield store
	finally:
		await store.close()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id headers, which are only accepted in
	dev mode.
	"""
	original_env = settings.environment
	original_backend = settings.store_backend
	settings.environment = "dev"
	settings.store_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.store_backend = original_backend


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client

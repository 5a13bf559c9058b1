"""Fixtures: in-memory Redis page store."""

import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from siteschema.store.redis import RedisPageStore


@pytest_asyncio.fixture
async def page_store():
    """RedisPageStore backed by an in-memory FakeRedis instance."""
    client = FakeRedis(decode_responses=True)
    store = RedisPageStore(client)
    yield store
    await client.flushall()
    await client.aclose()

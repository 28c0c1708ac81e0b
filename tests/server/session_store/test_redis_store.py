from unittest.mock import patch

import pytest

from mcp_http.server.exceptions import SessionStoreError
from mcp_http.server.session_store.redis import RedisSessionStore

# Set up fakeredis for testing
try:
    from fakeredis import aioredis as fake_redis
except ImportError:
    pytest.skip("fakeredis is required for testing Redis functionality", allow_module_level=True)

pytestmark = pytest.mark.anyio


class FakeClock:
    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def redis_store(clock: FakeClock):
    """Create a Redis session store backed by a fake Redis client."""
    with patch("mcp_http.server.session_store.redis.redis", fake_redis.FakeRedis):
        store = RedisSessionStore("redis://localhost:6379/0", ttl=60, active_window=30, clock=clock)
        await store._redis.flushall()
        try:
            yield store
        finally:
            await store.aclose()


async def test_create_and_get_session(redis_store: RedisSessionStore):
    record = await redis_store.create_session("abc", {"transport": "sse"})

    assert await redis_store.get_session("abc") == record
    assert record.data == {"transport": "sse"}


async def test_records_live_under_prefixed_keys_with_ttl(redis_store: RedisSessionStore):
    await redis_store.create_session("abc")

    assert await redis_store._redis.exists("mcp:session:abc") == 1
    ttl = await redis_store._redis.ttl("mcp:session:abc")
    assert 0 < ttl <= 60


async def test_update_refreshes_expiry_and_merges(redis_store: RedisSessionStore, clock: FakeClock):
    await redis_store.create_session("abc", {"a": 1})
    clock.now += 5

    updated = await redis_store.update_session("abc", {"b": 2})

    assert updated is not None
    assert updated.data == {"a": 1, "b": 2}
    assert updated.last_activity == updated.created + 5
    assert await redis_store._redis.ttl("mcp:session:abc") > 0


async def test_update_missing_session(redis_store: RedisSessionStore):
    assert await redis_store.update_session("abc") is None


async def test_delete_session(redis_store: RedisSessionStore):
    await redis_store.create_session("abc")

    assert await redis_store.delete_session("abc") is True
    assert await redis_store.delete_session("abc") is False
    assert await redis_store.get_session("abc") is None


async def test_stats_and_cleanup(redis_store: RedisSessionStore, clock: FakeClock):
    await redis_store.create_session("aaa")
    clock.now += 45
    await redis_store.create_session("bbb")

    stats = await redis_store.stats()
    assert stats.model_dump() == {"total": 2, "active": 1, "storage": "redis"}

    clock.now += 30
    assert await redis_store.cleanup_expired() == 1
    assert await redis_store.get_session("aaa") is None
    assert await redis_store.get_session("bbb") is not None


async def test_unreachable_redis_raises_session_store_error():
    store = RedisSessionStore(client=fake_redis.FakeRedis(connected=False))

    with pytest.raises(SessionStoreError):
        await store.get_session("abc")
    with pytest.raises(SessionStoreError):
        await store.create_session("abc")
    with pytest.raises(SessionStoreError):
        await store.stats()

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gateway.core.cache.store import CacheUnavailableError, MemoryCacheStore, RedisCacheStore, create_cache_store


class TestMemoryCacheStore:
    """In-process store semantics."""

    @pytest.mark.asyncio
    async def test_set_and_get_stringifies_values(self, memory_store):
        await memory_store.set("counter", 5)

        assert await memory_store.get("counter") == "5"
        assert await memory_store.exists("counter") is True

    @pytest.mark.asyncio
    async def test_values_expire_with_the_clock(self, memory_store, clock):
        await memory_store.set("session", "abc", ttl=10)

        clock.advance(9)
        assert await memory_store.get("session") == "abc"

        clock.advance(1)
        assert await memory_store.get("session") is None
        assert await memory_store.exists("session") is False

    @pytest.mark.asyncio
    async def test_incr_starts_at_one_and_sets_expiry(self, memory_store, clock):
        assert await memory_store.incr("hits", expire=60) == 1
        assert await memory_store.incr("hits", expire=60) == 2
        assert memory_store.ttl("hits") == 60

        clock.advance(60)
        assert await memory_store.incr("hits", expire=60) == 1

    @pytest.mark.asyncio
    async def test_incr_without_expire_keeps_existing_expiry(self, memory_store, clock):
        await memory_store.incr("hits", expire=30)
        clock.advance(10)

        await memory_store.incr("hits")

        assert memory_store.ttl("hits") == 20

    @pytest.mark.asyncio
    async def test_delete_counts_only_live_keys(self, memory_store, clock):
        await memory_store.set("a", "1")
        await memory_store.set("b", "1", ttl=1)
        clock.advance(5)

        assert await memory_store.delete("a", "b", "missing") == 1
        assert await memory_store.get("a") is None

    @pytest.mark.asyncio
    async def test_write_batch_sets_and_deletes(self, memory_store):
        await memory_store.set("old", "x")

        await memory_store.write_batch(set={"new": "y", "other": 3}, delete=["old"])

        assert await memory_store.get("new") == "y"
        assert await memory_store.get("other") == "3"
        assert await memory_store.get("old") is None

    @pytest.mark.asyncio
    async def test_ping_and_clear(self, memory_store):
        await memory_store.set("k", "v")
        memory_store.clear()

        assert await memory_store.ping() is True
        assert await memory_store.get("k") is None


class TestRedisCacheStore:
    """Redis error translation and pipeline usage, with a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock()
        client.set = AsyncMock()
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_get_wraps_redis_errors(self, redis_client):
        redis_client.get.side_effect = RedisConnectionError("connection refused")
        store = RedisCacheStore("redis://localhost:6379/0", client=redis_client)

        with pytest.raises(CacheUnavailableError):
            await store.get("key")

    @pytest.mark.asyncio
    async def test_set_passes_ttl_as_ex(self, redis_client):
        store = RedisCacheStore("redis://localhost:6379/0", client=redis_client)

        await store.set("key", "value", ttl=30)

        redis_client.set.assert_awaited_once_with("key", "value", ex=30)

    @pytest.mark.asyncio
    async def test_incr_uses_transaction_pipeline(self, redis_client):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[3, True])
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=False)
        redis_client.pipeline = MagicMock(return_value=pipe)
        store = RedisCacheStore("redis://localhost:6379/0", client=redis_client)

        count = await store.incr("rate_limit:1:api/ip:1.2.3.4", expire=60)

        assert count == 3
        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipe.incr.assert_called_once_with("rate_limit:1:api/ip:1.2.3.4")
        pipe.expire.assert_called_once_with("rate_limit:1:api/ip:1.2.3.4", 60)

    @pytest.mark.asyncio
    async def test_close_releases_client(self, redis_client):
        store = RedisCacheStore("redis://localhost:6379/0", client=redis_client)

        await store.close()

        redis_client.aclose.assert_awaited_once()


class TestCreateCacheStore:
    def test_memory_backend(self, settings):
        assert isinstance(create_cache_store(settings), MemoryCacheStore)

    def test_redis_backend(self, settings):
        redis_settings = settings.model_copy(update={"CACHE_BACKEND": "redis"})

        store = create_cache_store(redis_settings)

        assert isinstance(store, RedisCacheStore)
        assert store.backend == "redis"

"""
Shared cache stores.

Gateway state that every worker must agree on (circuit breaker counters,
rate-limit windows, revoked token ids) lives behind the CacheStore interface.
Redis is the production backend; the memory store keeps the same semantics
inside one process for development and tests.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gateway.config.settings import Settings

logger = logging.getLogger(__name__)


class CacheUnavailableError(Exception):
    """Raised when the backing store cannot be reached or rejects a command."""


class CacheStore(ABC):
    """Async key/value store with the atomic primitives the gateway relies on."""

    backend: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored at key, or None."""

    @abstractmethod
    async def set(self, key: str, value: str | int | float, ttl: int | None = None) -> None:
        """Store value at key, expiring after ttl seconds when given."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether key is present."""

    @abstractmethod
    async def incr(self, key: str, expire: int | None = None) -> int:
        """Atomically increment key and (re)set its expiry in the same transaction."""

    @abstractmethod
    async def write_batch(
        self,
        set: Mapping[str, str | int | float] | None = None,
        delete: Iterable[str] = (),
    ) -> None:
        """Apply several writes as one atomic unit."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers."""

    async def close(self) -> None:
        """Release connections held by the store."""


class RedisCacheStore(CacheStore):
    """CacheStore backed by redis.asyncio with MULTI/EXEC pipelines."""

    backend = "redis"

    def __init__(self, url: str, socket_timeout: float = 1.0, client: aioredis.Redis | None = None):
        self._client = client or aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def set(self, key: str, value: str | int | float, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._client.delete(*keys)
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def incr(self, key: str, expire: int | None = None) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                if expire is not None:
                    pipe.expire(key, expire)
                results = await pipe.execute()
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e
        return int(results[0])

    async def write_batch(
        self,
        set: Mapping[str, str | int | float] | None = None,
        delete: Iterable[str] = (),
    ) -> None:
        keys_to_delete = list(delete)
        if not set and not keys_to_delete:
            return
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for key, value in (set or {}).items():
                    pipe.set(key, value)
                if keys_to_delete:
                    pipe.delete(*keys_to_delete)
                await pipe.execute()
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            raise CacheUnavailableError(str(e)) from e

    async def close(self) -> None:
        await self._client.aclose()


class MemoryCacheStore(CacheStore):
    """Process-local CacheStore with expiry, driven by an injectable clock."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl: int | None) -> float | None:
        return self._clock() + ttl if ttl is not None else None

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    async def set(self, key: str, value: str | int | float, ttl: int | None = None) -> None:
        with self._lock:
            self._data[key] = (str(value), self._expiry(ttl))

    async def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    removed += 1
                self._data.pop(key, None)
            return removed

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    async def incr(self, key: str, expire: int | None = None) -> int:
        with self._lock:
            current = self._live(key)
            value = int(current) + 1 if current is not None else 1
            if expire is not None:
                expires_at = self._expiry(expire)
            else:
                expires_at = self._data[key][1] if current is not None else None
            self._data[key] = (str(value), expires_at)
            return value

    async def write_batch(
        self,
        set: Mapping[str, str | int | float] | None = None,
        delete: Iterable[str] = (),
    ) -> None:
        with self._lock:
            for key, value in (set or {}).items():
                self._data[key] = (str(value), None)
            for key in delete:
                self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> float | None:
        """Seconds until key expires, None when it has no expiry or is missing."""
        with self._lock:
            if self._live(key) is None:
                return None
            expires_at = self._data[key][1]
            return expires_at - self._clock() if expires_at is not None else None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def create_cache_store(settings: Settings) -> CacheStore:
    """Build the cache store selected by CACHE_BACKEND."""
    if settings.CACHE_BACKEND == "memory":
        logger.warning("Using in-process memory cache store; state is not shared between workers")
        return MemoryCacheStore()
    return RedisCacheStore(settings.redis_url, socket_timeout=settings.REDIS_SOCKET_TIMEOUT)

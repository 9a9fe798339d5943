"""
Cache Module

Shared state backends for circuit breakers, rate limiting and token revocation.
"""

from gateway.core.cache.store import (
    CacheStore,
    CacheUnavailableError,
    MemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)

__all__ = [
    "CacheStore",
    "CacheUnavailableError",
    "MemoryCacheStore",
    "RedisCacheStore",
    "create_cache_store",
]

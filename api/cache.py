"""
Cache stores for CarBot API.

The cache is injected wherever it is used (query caching, rate limiting)
instead of living in module globals. A single instance uses the
in-process ``LocalCacheStore``; several instances share a
``RedisCacheStore`` so summaries and rate-limit windows agree.
"""

import json
import logging
import time
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol, runtime_checkable

import redis
from cachetools import TLRUCache

from .middleware.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for key/value caches with per-entry TTL."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    def evict(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class _Entry(NamedTuple):
    value: Any
    ttl: float


def _expires_at(key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class LocalCacheStore:
    """
    Bounded in-process cache.

    Entries expire ``ttl`` seconds after being set. When ``max_keys`` is
    reached, expired entries go first, then the least recently used one.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        max_keys: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._cache = TLRUCache(maxsize=max_keys, ttu=_expires_at, timer=clock)

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = _Entry(value, ttl)

    def evict(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)


class RedisCacheStore:
    """
    Redis-backed cache shared between API instances.

    Values are stored as JSON under ``prefix`` with ``SET ... EX``.
    Redis errors are logged and treated as a cache miss.
    """

    def __init__(self, client: "redis.Redis", default_ttl: float = 300, prefix: str = "carbot:"):
        self.r = client
        self.default_ttl = default_ttl
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCacheStore":
        return cls(redis.from_url(url, decode_responses=True), **kwargs)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.r.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        try:
            self.r.set(self.prefix + key, json.dumps(value, default=str), ex=max(1, int(ttl)))
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")

    def evict(self, key: str) -> None:
        try:
            self.r.delete(self.prefix + key)
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")

    def clear(self) -> None:
        try:
            keys = list(self.r.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.r.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Redis clear failed: {e}")


def create_cache_store(
    redis_url: Optional[str], default_ttl: float, max_keys: int, prefix: str = "carbot:"
) -> CacheStore:
    """Redis when a URL is configured, the in-process store otherwise."""
    if redis_url:
        logger.info("Using Redis cache store")
        return RedisCacheStore.from_url(redis_url, default_ttl=default_ttl, prefix=prefix)
    return LocalCacheStore(default_ttl=default_ttl, max_keys=max_keys)


async def cached_query(
    cache: CacheStore,
    key: str,
    query_fn: Callable[[], Awaitable[Any]],
    ttl: Optional[float] = None,
    cache_type: str = "query",
) -> Any:
    """Return the cached value for key, or run query_fn and cache a non-None result."""
    cached = cache.get(key)
    if cached is not None:
        record_cache_hit(cache_type)
        return cached

    record_cache_miss(cache_type)
    result = await query_fn()
    if result is not None:
        cache.set(key, result, ttl)
    return result

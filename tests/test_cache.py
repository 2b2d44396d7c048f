"""Tests for the cache stores, query caching and rate limiting."""

import asyncio

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.cache import CacheStore, LocalCacheStore, RedisCacheStore, cached_query, create_cache_store
from api.middleware.rate_limit import RateLimitMiddleware


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ── LocalCacheStore ───────────────────────────────────

class TestLocalCacheStore:
    def test_is_cache_store(self):
        assert isinstance(LocalCacheStore(), CacheStore)

    def test_get_set(self):
        cache = LocalCacheStore()
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None

    def test_expiry(self):
        clock = FakeClock()
        cache = LocalCacheStore(default_ttl=10, clock=clock)
        cache.set("a", 1)
        clock.now += 9
        assert cache.get("a") == 1
        clock.now += 1
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = LocalCacheStore(default_ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)
        clock.now += 5
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_oldest_evicted_when_full(self):
        cache = LocalCacheStore(max_keys=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_expired_entries_evicted_first(self):
        clock = FakeClock()
        cache = LocalCacheStore(default_ttl=10, max_keys=2, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)
        clock.now += 5
        cache.set("new", 3)
        assert cache.get("long") == 2
        assert cache.get("new") == 3

    def test_evict_and_clear(self):
        cache = LocalCacheStore()
        cache.set("lead_summary:a", 1)
        cache.set("lead_summary:b", 2)
        cache.evict("lead_summary:a")
        assert cache.get("lead_summary:a") is None
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


# ── RedisCacheStore ───────────────────────────────────

class FakeRedis:
    """Dict-backed stand-in for the redis client calls the store makes."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, name):
        return self.data.get(name)

    def set(self, name, value, ex=None):
        self.data[name] = value
        self.expiry[name] = ex
        return True

    def delete(self, *names):
        return sum(1 for n in names if self.data.pop(n, None) is not None)

    def scan_iter(self, match=None):
        prefix = match.rstrip("*")
        return [k for k in list(self.data) if k.startswith(prefix)]


class DownRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("connection refused")
        return fail


class TestRedisCacheStore:
    def test_is_cache_store(self):
        assert isinstance(RedisCacheStore(FakeRedis()), CacheStore)

    def test_round_trips_json_with_ttl(self):
        client = FakeRedis()
        cache = RedisCacheStore(client, default_ttl=300, prefix="carbot:query:")
        cache.set("lead_summary:*", {"total": 3})
        assert cache.get("lead_summary:*") == {"total": 3}
        assert client.expiry["carbot:query:lead_summary:*"] == 300

    def test_evict_and_clear_stay_in_prefix(self):
        client = FakeRedis()
        client.data["other:key"] = "1"
        cache = RedisCacheStore(client, prefix="carbot:query:")
        cache.set("a", 1, ttl=5)
        cache.set("b", 2)
        cache.evict("a")
        assert cache.get("a") is None
        cache.clear()
        assert cache.get("b") is None
        assert client.data == {"other:key": "1"}

    def test_redis_errors_read_as_miss(self):
        cache = RedisCacheStore(DownRedis())
        cache.set("a", 1)
        cache.evict("a")
        cache.clear()
        assert cache.get("a") is None

    def test_factory_picks_local_without_url(self):
        assert isinstance(create_cache_store(None, default_ttl=60, max_keys=10), LocalCacheStore)


# ── cached_query ──────────────────────────────────────

class TestCachedQuery:
    def test_second_call_hits_cache(self):
        cache = LocalCacheStore()
        calls = []

        async def query():
            calls.append(1)
            return {"total": 3}

        async def run():
            first = await cached_query(cache, "k", query)
            second = await cached_query(cache, "k", query)
            return first, second

        first, second = asyncio.run(run())
        assert first == second == {"total": 3}
        assert len(calls) == 1

    def test_none_is_not_cached(self):
        cache = LocalCacheStore()
        calls = []

        async def query():
            calls.append(1)
            return None

        async def run():
            await cached_query(cache, "k", query)
            await cached_query(cache, "k", query)

        asyncio.run(run())
        assert len(calls) == 2


# ── Rate limiting ─────────────────────────────────────

def _limited_app(limit: int, clock: FakeClock) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_per_minute=limit, clock=clock)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


class TestRateLimit:
    def test_blocks_over_limit(self):
        clock = FakeClock()
        client = TestClient(_limited_app(2, clock))
        assert client.get("/ping").status_code == 200
        response = client.get("/ping")
        assert response.headers["X-RateLimit-Remaining"] == "0"
        blocked = client.get("/ping")
        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "60"

    def test_window_slides(self):
        clock = FakeClock()
        client = TestClient(_limited_app(1, clock))
        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 429
        clock.now += 61
        assert client.get("/ping").status_code == 200

    def test_exempt_paths(self):
        client = TestClient(_limited_app(1, FakeClock()))
        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_clients_are_separate(self):
        client = TestClient(_limited_app(1, FakeClock()))
        assert client.get("/ping", headers={"X-API-Key": "key-aaaaaaaa"}).status_code == 200
        assert client.get("/ping", headers={"X-API-Key": "key-bbbbbbbb"}).status_code == 200

"""
Unit Tests - Response Cache
"""
import hashlib
import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from backoffice.analytics.exceptions import CacheFailure
from backoffice.analytics.periods import DashboardFilters
from backoffice.serving import cache as cache_module
from backoffice.serving.cache import CacheManager, DashboardCache, cache_get, cache_set


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def redis_client(monkeypatch) -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    monkeypatch.setattr(cache_module, "_redis_client", client)
    return client


@pytest.fixture
def no_redis(monkeypatch):
    monkeypatch.setattr(cache_module, "_redis_client", None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dashboard_cache(clock) -> DashboardCache:
    return DashboardCache(CacheManager("analytics", default_ttl=300), dedup_ttl=5.0, clock=clock)


class TestCacheHelpers:
    """Tests for Redis helpers"""

    async def test_get_decodes_json(self, redis_client):
        """Test cached JSON is decoded"""
        redis_client.get.return_value = '{"totalSales": 10}'

        assert await cache_get("k") == {"totalSales": 10}

    async def test_set_uses_ttl(self, redis_client):
        """Test values are written with an expiry"""
        assert await cache_set("k", {"a": 1}, ttl=300) is True

        redis_client.setex.assert_awaited_once_with("k", 300, '{"a": 1}')

    async def test_redis_error_becomes_cache_failure(self, redis_client):
        """Test Redis errors are translated"""
        redis_client.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CacheFailure) as exc_info:
            await cache_get("k")

        assert exc_info.value.error_code == "CACHE_FAILED"

    async def test_uninitialized_client(self, no_redis):
        """Test reads without a client fail as CacheFailure"""
        with pytest.raises(CacheFailure):
            await cache_get("k")

    async def test_manager_namespaces_keys(self, redis_client):
        """Test namespaced keys"""
        await CacheManager("analytics").get("store-1:x")

        redis_client.get.assert_awaited_once_with("analytics:store-1:x")


class TestDashboardCacheKey:
    """Tests for dashboard cache keys"""

    def test_key_format(self, dashboard_cache):
        """Key is analytics:{store}:dashboard:{sha1 of sorted filters}"""
        digest = hashlib.sha1(b'{"month":1,"year":2025}').hexdigest()

        assert dashboard_cache.key("store-1", DashboardFilters(month=1, year=2025)) == (
            f"analytics:store-1:dashboard:{digest}"
        )

    def test_key_ignores_argument_order(self, dashboard_cache):
        """Test equal filters give equal keys"""
        first = DashboardFilters(year=2025, month=1, status=None)
        second = DashboardFilters(month=1, year=2025)

        assert dashboard_cache.key("s", first) == dashboard_cache.key("s", second)

    def test_key_is_per_store(self, dashboard_cache):
        """Test stores never share entries"""
        filters = DashboardFilters(date_range="7d")

        assert dashboard_cache.key("a", filters) != dashboard_cache.key("b", filters)


class TestDashboardCache:
    """Tests for the two cache tiers"""

    async def test_redis_hit_skips_compute(self, dashboard_cache, redis_client):
        """Test a Redis hit is returned without computing"""
        redis_client.get.return_value = json.dumps({"totalSales": 5})
        factory = AsyncMock(return_value={"totalSales": 99})

        payload = await dashboard_cache.get_or_compute("s", DashboardFilters(), factory)

        assert payload == {"totalSales": 5}
        factory.assert_not_awaited()

    async def test_miss_computes_and_stores(self, dashboard_cache, redis_client):
        """Test a miss computes and writes with the dashboard TTL"""
        factory = AsyncMock(return_value={"totalSales": 99})
        filters = DashboardFilters()

        payload = await dashboard_cache.get_or_compute("s", filters, factory)

        assert payload == {"totalSales": 99}
        redis_client.setex.assert_awaited_once_with(
            dashboard_cache.key("s", filters), 300, json.dumps({"totalSales": 99})
        )

    async def test_redis_failure_is_a_miss(self, dashboard_cache, redis_client):
        """Test Redis errors never fail the request"""
        redis_client.get.side_effect = RedisConnectionError("down")
        redis_client.setex.side_effect = RedisConnectionError("down")
        factory = AsyncMock(return_value={"totalSales": 1})

        assert await dashboard_cache.get_or_compute("s", DashboardFilters(), factory) == {"totalSales": 1}

    async def test_dedup_tier_absorbs_bursts(self, dashboard_cache, no_redis, clock):
        """Identical requests within the dedup window compute once"""
        factory = AsyncMock(return_value={"totalSales": 1})
        filters = DashboardFilters(date_range="7d")

        await dashboard_cache.get_or_compute("s", filters, factory)
        clock.now += 4.0
        await dashboard_cache.get_or_compute("s", filters, factory)

        assert factory.await_count == 1

    async def test_dedup_tier_expires(self, dashboard_cache, no_redis, clock):
        """Test the local tier only holds entries for the dedup window"""
        factory = AsyncMock(return_value={"totalSales": 1})
        filters = DashboardFilters(date_range="7d")

        await dashboard_cache.get_or_compute("s", filters, factory)
        clock.now += 5.0
        await dashboard_cache.get_or_compute("s", filters, factory)

        assert factory.await_count == 2

    async def test_invalidate_clears_local_entries(self, dashboard_cache, no_redis):
        """Test invalidation drops a store's entries only"""
        await dashboard_cache.set("a", DashboardFilters(), {"x": 1})
        await dashboard_cache.set("b", DashboardFilters(), {"x": 2})

        assert await dashboard_cache.invalidate("a") == 0
        assert await dashboard_cache.get("a", DashboardFilters()) is None
        assert await dashboard_cache.get("b", DashboardFilters()) == {"x": 2}

"""
Tests for the Redis Snapshot Cache

Tests cover:
- Key formats per scope and window set
- Snapshot and series hit/miss/set with TTL
- Degraded views are never cached
- Invalidation via scan_iter
- Connection handling (with Redis unavailable)
- cached_snapshot read-through helper
"""

import pytest
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from typing import List

from hiretrack.schemas.stats import MetricSnapshot, TimeSeries
from hiretrack.services.aggregator import Scope
from hiretrack.services.cache import (
    SnapshotCache,
    cached_snapshot,
    get_cache,
    series_key,
    snapshot_key,
)


def _snapshot(**overrides) -> MetricSnapshot:
    data = {
        "scope": "platform",
        "generated_at": datetime(2026, 3, 10, 12, 0),
        "totals": {"applications": 4},
        "status_breakdown": {"pending": 4},
    }
    data.update(overrides)
    return MetricSnapshot(**data)


class AsyncIteratorMock:
    """Mock async iterator for scan_iter."""

    def __init__(self, items: List):
        self.items = items
        self.index = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.index >= len(self.items):
            raise StopAsyncIteration
        item = self.items[self.index]
        self.index += 1
        return item


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.scan_iter = MagicMock(return_value=AsyncIteratorMock([]))
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def cache_service(mock_redis):
    """Create SnapshotCache instance with mock Redis."""
    cache = SnapshotCache(redis_url="redis://localhost:6379", ttl=30)
    cache.redis = mock_redis
    return cache


class TestKeys:
    """Test cache key generation."""

    def test_snapshot_key_platform_all_windows(self):
        assert snapshot_key(Scope()) == "snap:platform:30d,7d,today"

    def test_snapshot_key_window_order_irrelevant(self):
        """Same window set in any order maps to one key."""
        scope = Scope.parse("employer", "e1")
        assert snapshot_key(scope, ["today", "7d"]) == snapshot_key(scope, ["7d", "today"])
        assert snapshot_key(scope, ["7d"]).startswith("snap:employer:e1:")

    def test_series_key(self):
        assert series_key(Scope.parse("candidate", "c1"), 7) == "series:candidate:c1:7"


class TestSnapshotCache:
    """Test snapshot get/set."""

    @pytest.mark.asyncio
    async def test_get_snapshot_miss(self, cache_service, mock_redis):
        """Should return None on cache miss."""
        result = await cache_service.get_snapshot(Scope())

        assert result is None
        mock_redis.get.assert_called_once_with("snap:platform:30d,7d,today")
        assert cache_service.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_get_snapshot_hit(self, cache_service, mock_redis):
        """Should rebuild the snapshot, including generated_at, on hit."""
        snapshot = _snapshot()
        mock_redis.get.return_value = snapshot.model_dump_json()

        result = await cache_service.get_snapshot(Scope())

        assert result == snapshot
        assert result.generated_at == datetime(2026, 3, 10, 12, 0)
        assert cache_service.stats["hits"] == 1

    @pytest.mark.asyncio
    async def test_get_snapshot_unreadable(self, cache_service, mock_redis):
        """Corrupt entries are treated as a miss."""
        mock_redis.get.return_value = '{"scope": 1}'

        assert await cache_service.get_snapshot(Scope()) is None

    @pytest.mark.asyncio
    async def test_set_snapshot_with_ttl(self, cache_service, mock_redis):
        """Should store with the configured TTL."""
        assert await cache_service.set_snapshot(Scope(), None, _snapshot()) is True

        mock_redis.setex.assert_called_once()
        call_args = mock_redis.setex.call_args
        assert call_args[0][0] == "snap:platform:30d,7d,today"
        assert call_args[0][1] == 30

    @pytest.mark.asyncio
    async def test_degraded_snapshot_not_cached(self, cache_service, mock_redis):
        """A partially failed snapshot is served but never stored."""
        result = await cache_service.set_snapshot(
            Scope(), None, _snapshot(degraded=["status_breakdown"])
        )

        assert result is False
        mock_redis.setex.assert_not_called()


class TestSeriesCache:
    """Test time series get/set."""

    @pytest.mark.asyncio
    async def test_series_roundtrip_through_redis_value(self, cache_service, mock_redis):
        series = TimeSeries(
            scope="platform",
            days=[date(2026, 3, 9), date(2026, 3, 10)],
            series={"applications": [1, 2]},
        )
        await cache_service.set_series(Scope(), 2, series)
        stored = mock_redis.setex.call_args[0][2]
        mock_redis.get.return_value = stored

        result = await cache_service.get_series(Scope(), 2)

        assert result.series == {"applications": [1, 2]}
        assert result.days[0] == date(2026, 3, 9)


class TestInvalidation:
    """Test cache invalidation operations."""

    @pytest.mark.asyncio
    async def test_invalidate_scope(self, cache_service, mock_redis):
        """Should delete snapshot and series keys found via scan_iter."""
        mock_redis.scan_iter = MagicMock(
            side_effect=[
                AsyncIteratorMock(["snap:employer:e1:7d", "snap:employer:e1:30d,7d,today"]),
                AsyncIteratorMock(["series:employer:e1:7"]),
            ]
        )
        mock_redis.delete.return_value = 3

        deleted = await cache_service.invalidate_scope(Scope.parse("employer", "e1"))

        assert deleted == 3
        mock_redis.delete.assert_called_once_with(
            "snap:employer:e1:7d", "snap:employer:e1:30d,7d,today", "series:employer:e1:7"
        )

    @pytest.mark.asyncio
    async def test_invalidate_nothing(self, cache_service, mock_redis):
        assert await cache_service.invalidate_scope(Scope()) == 0
        mock_redis.delete.assert_not_called()


class TestRedisUnavailable:
    """Test graceful degradation when Redis is down."""

    @pytest.mark.asyncio
    async def test_get_returns_none_on_error(self, cache_service, mock_redis):
        mock_redis.get.side_effect = ConnectionError("Redis down")

        assert await cache_service.get_snapshot(Scope()) is None
        assert cache_service.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_set_returns_false_on_error(self, cache_service, mock_redis):
        mock_redis.setex.side_effect = ConnectionError("Redis down")

        assert await cache_service.set_snapshot(Scope(), None, _snapshot()) is False

    @pytest.mark.asyncio
    async def test_health_check_false_on_error(self, cache_service, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("Redis down")

        assert await cache_service.health_check() is False

    @pytest.mark.asyncio
    async def test_connect_failure_is_a_miss(self):
        """If the client cannot be created every call degrades."""
        cache = SnapshotCache(redis_url="redis://localhost:6379")
        with patch("hiretrack.services.cache.redis.from_url", side_effect=ValueError("bad url")):
            assert await cache.get_snapshot(Scope()) is None
            assert await cache.set_snapshot(Scope(), None, _snapshot()) is False


class TestStats:
    """Test hit-rate statistics."""

    @pytest.mark.asyncio
    async def test_hit_rate(self, cache_service, mock_redis):
        mock_redis.get.side_effect = [None, _snapshot().model_dump_json()]

        await cache_service.get_snapshot(Scope())
        await cache_service.get_snapshot(Scope())

        stats = cache_service.get_stats()
        assert stats["total"] == 2
        assert stats["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_close(self, cache_service, mock_redis):
        await cache_service.close()

        mock_redis.aclose.assert_called_once()
        assert cache_service.redis is None


class TestCachedSnapshot:
    """Test the read-through helper."""

    @pytest.mark.asyncio
    async def test_miss_computes_and_stores(self, cache_service, mock_redis):
        aggregator = MagicMock()
        aggregator.get_snapshot = AsyncMock(return_value=_snapshot())

        result = await cached_snapshot(aggregator, cache_service, Scope(), ["7d"])

        assert result.totals == {"applications": 4}
        aggregator.get_snapshot.assert_called_once_with(Scope(), ["7d"])
        mock_redis.setex.assert_called_once()

    @pytest.mark.asyncio
    async def test_hit_skips_aggregator(self, cache_service, mock_redis):
        mock_redis.get.return_value = _snapshot().model_dump_json()
        aggregator = MagicMock()
        aggregator.get_snapshot = AsyncMock()

        await cached_snapshot(aggregator, cache_service, Scope())

        aggregator.get_snapshot.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_cache(self):
        aggregator = MagicMock()
        aggregator.get_snapshot = AsyncMock(return_value=_snapshot())

        result = await cached_snapshot(aggregator, None, Scope())

        assert result.scope == "platform"


class TestFactory:
    """Test the cache singleton."""

    @pytest.mark.asyncio
    async def test_get_cache_singleton(self):
        with patch("hiretrack.services.cache._cache_instance", None):
            first = await get_cache("redis://example:6379")
            second = await get_cache()

            assert first is second
            assert first.redis_url == "redis://example:6379"

"""
Redis Snapshot Cache

Keeps the most recent metric snapshot per scope so dashboards polling
every few seconds don't recompute on each request.

Cache Key Patterns:
    - snap:{scope_key}:{windows} - MetricSnapshot JSON
    - series:{scope_key}:{days} - TimeSeries JSON

A cached snapshot always carries its own generated_at; window boundaries
are computed when the snapshot is built, never reused across builds.

Usage:
    cache = await get_cache()

    snapshot = await cache.get_snapshot(scope, windows)
    if snapshot is None:
        snapshot = await aggregator.get_snapshot(scope, windows)
        await cache.set_snapshot(scope, windows, snapshot)
"""

import logging
from typing import Dict, Optional, Sequence

import redis.asyncio as redis
from pydantic import ValidationError

from hiretrack.config import get_settings
from hiretrack.middleware.metrics import record_cache_hit, record_cache_miss
from hiretrack.schemas.stats import MetricSnapshot, TimeSeries
from hiretrack.services.aggregator import WINDOW_NAMES, MetricsAggregator, Scope

logger = logging.getLogger(__name__)


def snapshot_key(scope: Scope, windows: Optional[Sequence[str]] = None) -> str:
    names = ",".join(sorted(windows or WINDOW_NAMES))
    return f"snap:{scope.key}:{names}"


def series_key(scope: Scope, days: int) -> str:
    return f"series:{scope.key}:{days}"


class SnapshotCache:
    """
    Redis cache for derived metric views.

    Provides graceful degradation when Redis is unavailable, behaving as a
    miss instead of raising exceptions.

    Attributes:
        redis: Async Redis client
        ttl: Seconds a cached view stays fresh
        stats: Dict tracking hits/misses
    """

    def __init__(self, redis_url: str, ttl: Optional[int] = None):
        self.redis_url = redis_url
        self.ttl = ttl if ttl is not None else get_settings().snapshot_cache_ttl
        self.redis: Optional[redis.Redis] = None
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0}

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        """Ensure Redis connection is established."""
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    async def _get(self, key: str, layer: str) -> Optional[str]:
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            cached = await client.get(key)
            if cached:
                self.stats["hits"] += 1
                record_cache_hit(layer)
                return cached

            self.stats["misses"] += 1
            record_cache_miss(layer)
            return None

        except Exception as e:
            logger.warning(f"Redis get error ({layer} cache): {e}")
            self.stats["misses"] += 1
            record_cache_miss(layer)
            return None

    async def _set(self, key: str, payload: str, layer: str) -> bool:
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.setex(key, self.ttl, payload)
            return True

        except Exception as e:
            logger.warning(f"Redis set error ({layer} cache): {e}")
            return False

    # ==================== Snapshots ====================

    async def get_snapshot(
        self,
        scope: Scope,
        windows: Optional[Sequence[str]] = None,
    ) -> Optional[MetricSnapshot]:
        """
        Get a cached snapshot.

        Returns:
            MetricSnapshot or None on miss/error
        """
        cached = await self._get(snapshot_key(scope, windows), "snapshot")
        if cached is None:
            return None
        try:
            return MetricSnapshot.model_validate_json(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached snapshot: {e}")
            return None

    async def set_snapshot(
        self,
        scope: Scope,
        windows: Optional[Sequence[str]],
        snapshot: MetricSnapshot,
    ) -> bool:
        """
        Cache a snapshot. Degraded snapshots are not cached, so the next
        request retries the failing queries.

        Returns:
            True if cached successfully
        """
        if snapshot.degraded:
            return False
        return await self._set(snapshot_key(scope, windows), snapshot.model_dump_json(), "snapshot")

    # ==================== Time Series ====================

    async def get_series(self, scope: Scope, days: int) -> Optional[TimeSeries]:
        cached = await self._get(series_key(scope, days), "series")
        if cached is None:
            return None
        try:
            return TimeSeries.model_validate_json(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached series: {e}")
            return None

    async def set_series(self, scope: Scope, days: int, series: TimeSeries) -> bool:
        if series.degraded:
            return False
        return await self._set(series_key(scope, days), series.model_dump_json(), "series")

    # ==================== Invalidation ====================

    async def invalidate_scope(self, scope: Scope) -> int:
        """
        Drop every cached view for a scope.

        Returns:
            Number of keys deleted
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return 0

            keys = []
            for pattern in (f"snap:{scope.key}:*", f"series:{scope.key}:*"):
                async for key in client.scan_iter(match=pattern):
                    keys.append(key)

            if keys:
                return await client.delete(*keys)
            return 0

        except Exception as e:
            logger.warning(f"Redis delete error: {e}")
            return 0

    # ==================== Health & Stats ====================

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is responsive
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.ping()
            return True

        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def get_stats(self) -> Dict[str, float]:
        hits = self.stats["hits"]
        misses = self.stats["misses"]
        total = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "total": total,
            "hit_rate": hits / total if total > 0 else 0.0,
        }

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None


async def cached_snapshot(
    aggregator: MetricsAggregator,
    cache: Optional[SnapshotCache],
    scope: Scope,
    windows: Optional[Sequence[str]] = None,
) -> MetricSnapshot:
    """Serve a snapshot from cache, recomputing and storing it on a miss."""
    if cache is not None:
        snapshot = await cache.get_snapshot(scope, windows)
        if snapshot is not None:
            return snapshot

    snapshot = await aggregator.get_snapshot(scope, windows)
    if cache is not None:
        await cache.set_snapshot(scope, windows, snapshot)
    return snapshot


async def cached_series(
    aggregator: MetricsAggregator,
    cache: Optional[SnapshotCache],
    scope: Scope,
    days: int,
) -> TimeSeries:
    if cache is not None:
        series = await cache.get_series(scope, days)
        if series is not None:
            return series

    series = await aggregator.time_series(scope, days)
    if cache is not None:
        await cache.set_series(scope, days, series)
    return series


# ==================== Factory Function ====================

_cache_instance: Optional[SnapshotCache] = None


async def get_cache(redis_url: Optional[str] = None) -> SnapshotCache:
    """
    Get or create cache singleton.

    Args:
        redis_url: Optional Redis URL (uses settings if not provided)

    Returns:
        SnapshotCache instance
    """
    global _cache_instance

    if _cache_instance is None:
        url = redis_url or get_settings().redis_url
        _cache_instance = SnapshotCache(redis_url=url)

    return _cache_instance

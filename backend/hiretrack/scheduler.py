"""
Background Snapshot Scheduler

Refreshes the platform-wide metric snapshot into the Redis cache on a fixed
cadence using APScheduler, independently of the event stream. Dashboards
read the cached copy; a refresh never blocks a transition.

Default Schedule: every 30 seconds (configurable via METRICS_REFRESH_SECONDS)
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hiretrack.config import get_settings
from hiretrack.services.aggregator import MetricsAggregator, Scope
from hiretrack.services.cache import SnapshotCache

logger = logging.getLogger(__name__)

settings = get_settings()
scheduler = AsyncIOScheduler()


async def refresh_platform_snapshot(aggregator: MetricsAggregator, cache: SnapshotCache) -> None:
    """
    Recompute the platform snapshot and store it.

    Degraded snapshots are logged and left uncached so the next request
    recomputes them.
    """
    scope = Scope()
    snapshot = await aggregator.get_snapshot(scope)
    if snapshot.degraded:
        logger.warning(f"Platform snapshot degraded: {snapshot.degraded}")
    await cache.set_snapshot(scope, None, snapshot)


def start_scheduler(aggregator: MetricsAggregator, cache: SnapshotCache) -> None:
    """Start the background scheduler"""
    scheduler.add_job(
        refresh_platform_snapshot,
        trigger=IntervalTrigger(seconds=settings.metrics_refresh_seconds),
        args=[aggregator, cache],
        id="refresh_platform_snapshot",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: refreshing snapshot every {settings.metrics_refresh_seconds} seconds")


def stop_scheduler() -> None:
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)

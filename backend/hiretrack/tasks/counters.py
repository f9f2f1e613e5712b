"""
Background Tasks for Counter Maintenance

Celery tasks for:
- Reconciling job counters against their underlying rows
- Refreshing cached metric snapshots outside the web process

All tasks support:
- Automatic retries on failure
- Prometheus metrics
"""

import asyncio
import logging
import time
from typing import List, Optional

from prometheus_client import Counter, Histogram
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hiretrack.celery import celery_app
from hiretrack.config import get_settings
from hiretrack.database import database_url, get_db_session
from hiretrack.services.aggregator import MetricsAggregator, Scope
from hiretrack.services.cache import SnapshotCache
from hiretrack.services.counters import reconcile_counters_sync

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

TASK_DURATION = Histogram(
    "celery_task_duration_seconds",
    "Time spent executing Celery tasks",
    ["task_name"]
)

TASK_FAILURES = Counter(
    "celery_task_failures_total",
    "Number of Celery task failures",
    ["task_name"]
)

JOBS_RECONCILED = Counter(
    "jobs_reconciled_total",
    "Number of jobs whose counters were rewritten by the reconcile task"
)


# ==================== Helper Functions ====================

def run_async(coro):
    """Run a coroutine to completion from a synchronous Celery worker."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _refresh(scope: Scope, windows: Optional[List[str]]) -> dict:
    # Engines and Redis clients are bound to the loop that created them
    engine = create_async_engine(database_url, echo=False)
    cache = SnapshotCache(redis_url=get_settings().redis_url)
    try:
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        snapshot = await MetricsAggregator(session_factory).get_snapshot(scope, windows)
        cached = await cache.set_snapshot(scope, windows, snapshot)
        return {"scope": scope.key, "cached": cached, "degraded": snapshot.degraded}
    finally:
        await cache.close()
        await engine.dispose()


# ==================== Celery Tasks ====================

@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def reconcile_job_counters(self, job_ids: Optional[List[str]] = None) -> dict:
    """
    Recount applications_count and views_count from rows.

    Runs periodically from Celery beat and heals drift left by events that
    were dropped before the counter maintainer applied them.

    Args:
        job_ids: Restrict the pass to these jobs (default: every job)

    Returns:
        Dict with the number of corrected jobs and their ids
    """
    start_time = time.time()
    session = get_db_session()

    try:
        report = reconcile_counters_sync(session, job_ids)
        JOBS_RECONCILED.inc(report.jobs_corrected)
        logger.info(f"Reconciled counters: {report.jobs_corrected} jobs corrected")
        return {
            "jobs_corrected": report.jobs_corrected,
            "job_ids": [drift.job_id for drift in report.drifted],
        }

    except Exception as exc:
        session.rollback()
        TASK_FAILURES.labels(task_name="reconcile_job_counters").inc()
        logger.error(f"Counter reconciliation failed: {exc}")
        raise self.retry(exc=exc, countdown=60)

    finally:
        session.close()
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="reconcile_job_counters").observe(duration)


@celery_app.task(bind=True, max_retries=3)
def refresh_snapshot(
    self,
    scope_kind: str = "platform",
    scope_id: Optional[str] = None,
    windows: Optional[List[str]] = None,
) -> dict:
    """
    Recompute one scope's snapshot and store it in the cache.

    Args:
        scope_kind: platform, employer or candidate
        scope_id: Employer or candidate id for non-platform scopes
        windows: Subset of today/7d/30d (default all)

    Returns:
        Dict with scope key, whether it was cached, and degraded fields
    """
    start_time = time.time()

    try:
        scope = Scope.parse(scope_kind, scope_id)
    except ValueError as e:
        logger.error(f"Invalid snapshot scope: {e}")
        return {"error": str(e)}

    try:
        return run_async(_refresh(scope, windows))

    except Exception as exc:
        TASK_FAILURES.labels(task_name="refresh_snapshot").inc()
        logger.error(f"Snapshot refresh failed for {scope.key}: {exc}")
        raise self.retry(exc=exc, countdown=30)

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="refresh_snapshot").observe(duration)

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from hiretrack.api.deps import get_aggregator, get_counters, get_snapshot_cache, resolve_scope
from hiretrack.auth import Actor, get_current_actor, require_role
from hiretrack.schemas import JobDriftResponse, MetricSnapshot, ReconcileResponse, TimeSeries
from hiretrack.services.aggregator import WINDOW_NAMES, MetricsAggregator, Scope
from hiretrack.services.cache import SnapshotCache, cached_series, cached_snapshot
from hiretrack.services.counters import CounterMaintainer
from hiretrack.services.lifecycle import ActorRole

router = APIRouter()


@router.get("", response_model=MetricSnapshot)
async def get_stats(
    scope: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None),
    windows: Optional[str] = Query(None, description="Comma-separated: today,7d,30d"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
    cache: Optional[SnapshotCache] = Depends(get_snapshot_cache),
    actor: Actor = Depends(get_current_actor),
):
    resolved = resolve_scope(actor, scope, scope_id)

    requested = None
    if windows:
        requested = [w.strip() for w in windows.split(",") if w.strip()]
        unknown = [w for w in requested if w not in WINDOW_NAMES]
        if unknown:
            raise HTTPException(status_code=422, detail=f"Unknown windows: {unknown}")

    return await cached_snapshot(aggregator, cache, resolved, requested)


@router.get("/timeseries", response_model=TimeSeries)
async def get_time_series(
    scope: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None),
    days: int = Query(7, ge=1, le=90),
    aggregator: MetricsAggregator = Depends(get_aggregator),
    cache: Optional[SnapshotCache] = Depends(get_snapshot_cache),
    actor: Actor = Depends(get_current_actor),
):
    resolved = resolve_scope(actor, scope, scope_id)
    return await cached_series(aggregator, cache, resolved, days)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_counters(
    counters: CounterMaintainer = Depends(get_counters),
    cache: Optional[SnapshotCache] = Depends(get_snapshot_cache),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.ADMIN)
    report = await counters.reconcile()

    # Cached dashboards still show the drifted counters
    if cache is not None and report.drifted:
        stale = {Scope()} | {
            Scope.parse("employer", drift.employer_id)
            for drift in report.drifted
            if drift.employer_id
        }
        for scope in stale:
            await cache.invalidate_scope(scope)

    return ReconcileResponse(
        jobs_corrected=report.jobs_corrected,
        drifted=[JobDriftResponse(**vars(drift)) for drift in report.drifted],
    )

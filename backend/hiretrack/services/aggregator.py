"""
Metrics Aggregator - dashboard snapshots recomputed from the entity store

One component serves every dashboard (platform admin, employer, candidate).
Each call recomputes from current rows; window boundaries are derived from
the invocation time, never cached.

Formulas:
    growth      = round((current - previous) / max(previous, 1) * 100)
    conversion  = round(numerator / denominator * 100), 0 when denominator is 0
    average     = round(total / max(count, 1) * 10) / 10
    (round is half-up, matching the dashboards' rounding)

    The growth floor means an empty prior window reports the current count
    times 100 (0 → 5 is +500%). This is a known approximation, kept as is.

Failure Isolation:
    Every field group runs in its own session. A failing query is logged,
    its fields default to zero (or None for timings) and the field name is
    listed in snapshot.degraded. get_snapshot itself does not raise on
    store errors.

Query Plan:
    One conditional-count query per entity computes its total plus the
    current and previous count of every requested window:
        SELECT count(id),
               count(CASE WHEN created_at >= :w1 THEN id END),
               count(CASE WHEN created_at >= :p1 AND created_at < :w1 THEN id END), ...
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from hiretrack.config import get_settings
from hiretrack.database import utcnow
from hiretrack.middleware.metrics import record_snapshot_field_failure, record_snapshot_latency
from hiretrack.models import (
    Application,
    ApplicationStatus,
    ApplicationTransition,
    Candidate,
    Employer,
    Job,
    JobStatus,
    JobView,
    Profile,
    SavedJob,
)
from hiretrack.schemas.stats import MetricSnapshot, TimeSeries

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_NAMES = ("today", "7d", "30d")

# Dashboard figures in the original product that were hard-coded
# placeholders rather than computed from data.
NOT_IMPLEMENTED_METRICS = [
    "profile_completion_rate",
    "active_candidates",
    "active_employers",
    "verified_employers",
    "peak_concurrent_users",
]

REACHED_INTERVIEW = (
    ApplicationStatus.INTERVIEWED.value,
    ApplicationStatus.OFFERED.value,
    ApplicationStatus.HIRED.value,
)


# ==================== Formulas ====================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def growth_rate(current: int, previous: int) -> int:
    """Percent change between adjacent equal windows; previous is floored to 1."""
    return round_half_up(((current - previous) / max(previous, 1)) * 100)


def conversion_rate(numerator: int, denominator: int) -> int:
    """Rounded percentage; 0 when the denominator is 0."""
    if denominator == 0:
        return 0
    return round_half_up((numerator / denominator) * 100)


def average(total: int, count: int) -> float:
    """One-decimal average with the divisor floored to 1."""
    return math.floor((total / max(count, 1)) * 10 + 0.5) / 10


def _as_utc_naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def local_midnight(now: datetime, tz: str) -> datetime:
    """Start of the local calendar day containing now, as naive UTC."""
    local_now = _as_aware(now).astimezone(ZoneInfo(tz))
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return _as_utc_naive(midnight)


@dataclass(frozen=True)
class WindowBounds:
    name: str
    start: datetime
    previous_start: datetime

    @property
    def previous_end(self) -> datetime:
        return self.start


def window_bounds(name: str, now: datetime, tz: str = "UTC") -> WindowBounds:
    """
    Current window [start, now] and the preceding window of equal length.

    Args:
        name: "today" (since local midnight), "7d" or "30d"
        now: Invocation time (naive UTC or aware)
        tz: IANA zone defining local midnight

    Returns:
        WindowBounds with naive UTC datetimes
    """
    now_utc = _as_utc_naive(_as_aware(now))
    if name == "today":
        start = local_midnight(now, tz)
    elif name == "7d":
        start = now_utc - timedelta(days=7)
    elif name == "30d":
        start = now_utc - timedelta(days=30)
    else:
        raise ValueError(f"Unknown window '{name}', expected one of {WINDOW_NAMES}")

    return WindowBounds(name=name, start=start, previous_start=start - (now_utc - start))


def daily_buckets(
    timestamps: Iterable[datetime],
    days: int,
    now: datetime,
    tz: str = "UTC",
) -> List[Tuple[date, int]]:
    """
    Count timestamps per local calendar day over the last `days` days.

    Returns:
        (day, count) pairs, oldest first, one per day including days with
        no events
    """
    zone = ZoneInfo(tz)
    today = _as_aware(now).astimezone(zone).date()
    first = today - timedelta(days=days - 1)
    counts = {first + timedelta(days=i): 0 for i in range(days)}

    for ts in timestamps:
        day = _as_aware(ts).astimezone(zone).date()
        if day in counts:
            counts[day] += 1

    return sorted(counts.items())


# ==================== Scopes and Entity Sources ====================

@dataclass(frozen=True)
class Scope:
    kind: str = "platform"
    id: Optional[str] = None

    KINDS = ("platform", "employer", "candidate")

    @classmethod
    def parse(cls, kind: str, scope_id: Optional[str] = None) -> "Scope":
        if kind not in cls.KINDS:
            raise ValueError(f"Unknown scope '{kind}', expected one of {cls.KINDS}")
        if kind != "platform" and not scope_id:
            raise ValueError(f"Scope '{kind}' requires an id")
        return cls(kind=kind, id=scope_id if kind != "platform" else None)

    @property
    def key(self) -> str:
        return self.kind if self.id is None else f"{self.kind}:{self.id}"


def _employer_jobs(employer_id: str):
    return select(Job.id).where(Job.employer_id == employer_id)


def _candidate_applications(candidate_id: str):
    return select(Application.id).where(Application.candidate_id == candidate_id)


@dataclass(frozen=True)
class EntitySource:
    """
    Where to count one entity and how to narrow it to a scope.

    A scope filter of None means the entity has no meaning in that scope
    and is left out of the snapshot.
    """

    id_column: Any
    created_column: Any
    employer_filter: Optional[Callable[[str], Any]] = None
    candidate_filter: Optional[Callable[[str], Any]] = None
    where: Tuple[Any, ...] = ()

    def scope_clauses(self, scope: Scope) -> Optional[List[Any]]:
        if scope.kind == "platform":
            return []
        chosen = self.employer_filter if scope.kind == "employer" else self.candidate_filter
        if chosen is None:
            return None
        return [chosen(scope.id)]


ENTITY_SOURCES: Dict[str, EntitySource] = {
    "signups": EntitySource(Profile.id, Profile.created_at),
    "candidates": EntitySource(Candidate.id, Candidate.created_at),
    "employers": EntitySource(Employer.id, Employer.created_at),
    "jobs": EntitySource(
        Job.id,
        Job.created_at,
        employer_filter=lambda employer_id: Job.employer_id == employer_id,
    ),
    "applications": EntitySource(
        Application.id,
        Application.created_at,
        employer_filter=lambda employer_id: Application.job_id.in_(_employer_jobs(employer_id)),
        candidate_filter=lambda candidate_id: Application.candidate_id == candidate_id,
    ),
    "hires": EntitySource(
        ApplicationTransition.id,
        ApplicationTransition.created_at,
        employer_filter=lambda employer_id: ApplicationTransition.job_id.in_(_employer_jobs(employer_id)),
        candidate_filter=lambda candidate_id: ApplicationTransition.application_id.in_(
            _candidate_applications(candidate_id)
        ),
        where=(ApplicationTransition.to_status == ApplicationStatus.HIRED.value,),
    ),
    "views": EntitySource(
        JobView.id,
        JobView.created_at,
        employer_filter=lambda employer_id: JobView.job_id.in_(_employer_jobs(employer_id)),
    ),
    "saved_jobs": EntitySource(
        SavedJob.id,
        SavedJob.created_at,
        employer_filter=lambda employer_id: SavedJob.job_id.in_(_employer_jobs(employer_id)),
        candidate_filter=lambda candidate_id: SavedJob.candidate_id == candidate_id,
    ),
}

# Daily series shown per scope
SERIES_ENTITIES = {
    "platform": ("signups", "applications", "jobs"),
    "employer": ("applications", "jobs", "views"),
    "candidate": ("applications", "saved_jobs"),
}


@dataclass
class EntityCounts:
    total: int = 0
    current: Dict[str, int] = field(default_factory=dict)
    previous: Dict[str, int] = field(default_factory=dict)


# ==================== Aggregator ====================

class MetricsAggregator:
    """
    Computes MetricSnapshot and TimeSeries views for a scope.

    Attributes:
        session_factory: async_sessionmaker bound to the entity store
        tz: IANA zone for "today" and daily buckets
    """

    def __init__(self, session_factory: async_sessionmaker, tz: Optional[str] = None):
        self.session_factory = session_factory
        self.tz = tz or get_settings().local_timezone

    # ---------- snapshot ----------

    async def get_snapshot(
        self,
        scope: Scope = Scope(),
        windows: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> MetricSnapshot:
        """
        Build a complete snapshot for a scope.

        Args:
            scope: platform, employer or candidate scope
            windows: Subset of WINDOW_NAMES (default all)
            now: Invocation time override (naive UTC), for tests

        Returns:
            MetricSnapshot; fields whose queries failed are zeroed and
            named in snapshot.degraded
        """
        start_time = time.perf_counter()
        now = now or utcnow()
        windows = list(windows or WINDOW_NAMES)
        bounds = [window_bounds(name, now, self.tz) for name in windows]
        degraded: List[str] = []

        counts: Dict[str, EntityCounts] = {}
        for entity, source in ENTITY_SOURCES.items():
            clauses = source.scope_clauses(scope)
            if clauses is None:
                continue
            counts[entity] = await self._safe(
                f"counts.{entity}",
                lambda: self._entity_counts(source, clauses, bounds),
                EntityCounts(),
                degraded,
            )

        status_breakdown = await self._safe(
            "status_breakdown",
            lambda: self._status_breakdown(scope),
            {status.value: 0 for status in ApplicationStatus},
            degraded,
        )

        totals = {entity: c.total for entity, c in counts.items()}
        if "jobs" in counts:
            totals["published_jobs"] = await self._safe(
                "totals.published_jobs",
                lambda: self._published_jobs(scope),
                0,
                degraded,
            )

        snapshot = MetricSnapshot(
            scope=scope.kind,
            scope_id=scope.id,
            generated_at=now,
            totals=totals,
            status_breakdown=status_breakdown,
            windows={
                b.name: {entity: c.current.get(b.name, 0) for entity, c in counts.items()}
                for b in bounds
            },
            growth={
                b.name: {
                    entity: growth_rate(c.current.get(b.name, 0), c.previous.get(b.name, 0))
                    for entity, c in counts.items()
                }
                for b in bounds
            },
            rates=self._rates(totals, status_breakdown),
            averages=self._averages(totals),
            timings={
                "avg_response_hours": await self._safe(
                    "timings.avg_response_hours", lambda: self._avg_response_hours(scope), None, degraded
                ),
                "avg_days_to_hire": await self._safe(
                    "timings.avg_days_to_hire", lambda: self._avg_days_to_hire(scope), None, degraded
                ),
            },
            not_implemented=list(NOT_IMPLEMENTED_METRICS) if scope.kind == "platform" else [],
            degraded=degraded,
        )

        record_snapshot_latency(scope.kind, time.perf_counter() - start_time)
        return snapshot

    @staticmethod
    def _rates(totals: Dict[str, int], breakdown: Dict[str, int]) -> Dict[str, int]:
        applications = totals.get("applications", 0)
        hires = breakdown.get(ApplicationStatus.HIRED.value, 0)
        reached_interview = sum(breakdown.get(s, 0) for s in REACHED_INTERVIEW)

        rates = {
            "application_success": conversion_rate(hires, applications),
            "shortlist": conversion_rate(breakdown.get(ApplicationStatus.SHORTLISTED.value, 0), applications),
            "reject": conversion_rate(breakdown.get(ApplicationStatus.REJECTED.value, 0), applications),
            "withdraw": conversion_rate(breakdown.get(ApplicationStatus.WITHDRAWN.value, 0), applications),
            "application_to_interview": conversion_rate(reached_interview, applications),
            "interview_to_hire": conversion_rate(hires, reached_interview),
        }
        if "candidates" in totals and "signups" in totals:
            rates["signup_to_profile"] = conversion_rate(totals["candidates"], totals["signups"])
        if "candidates" in totals:
            rates["profile_to_application"] = conversion_rate(applications, totals["candidates"])
        if "jobs" in totals:
            rates["job_post_to_application"] = conversion_rate(applications, totals["jobs"])
            rates["job_fill"] = conversion_rate(hires, totals["jobs"])
        if "views" in totals:
            rates["view_to_apply"] = conversion_rate(applications, totals["views"])
        return rates

    @staticmethod
    def _averages(totals: Dict[str, int]) -> Dict[str, float]:
        averages = {}
        if "jobs" in totals:
            averages["applications_per_job"] = average(totals.get("applications", 0), totals["jobs"])
            if "views" in totals:
                averages["views_per_job"] = average(totals["views"], totals["jobs"])
        if "employers" in totals and "jobs" in totals:
            averages["jobs_per_employer"] = average(totals["jobs"], totals["employers"])
        if "candidates" in totals:
            averages["applications_per_candidate"] = average(totals.get("applications", 0), totals["candidates"])
            if "saved_jobs" in totals:
                averages["saved_jobs_per_candidate"] = average(totals["saved_jobs"], totals["candidates"])
        return averages

    # ---------- time series ----------

    async def time_series(
        self,
        scope: Scope = Scope(),
        days: int = 7,
        now: Optional[datetime] = None,
    ) -> TimeSeries:
        """
        Daily counts for the last `days` local calendar days, oldest first,
        zero-filled.
        """
        if days < 1:
            raise ValueError("days must be at least 1")

        now = now or utcnow()
        first_day_start = local_midnight(now, self.tz) - timedelta(days=days - 1)
        # Local midnights can shift by DST; widen by a day and let bucketing trim
        query_start = first_day_start - timedelta(days=1)
        degraded: List[str] = []
        series: Dict[str, List[int]] = {}
        day_list: List[date] = [day for day, _ in daily_buckets([], days, now, self.tz)]

        for entity in SERIES_ENTITIES[scope.kind]:
            source = ENTITY_SOURCES[entity]
            clauses = source.scope_clauses(scope) or []
            timestamps = await self._safe(
                f"series.{entity}",
                lambda: self._created_since(source, clauses, query_start),
                [],
                degraded,
            )
            series[entity] = [count for _, count in daily_buckets(timestamps, days, now, self.tz)]

        return TimeSeries(scope=scope.kind, scope_id=scope.id, days=day_list, series=series, degraded=degraded)

    # ---------- queries ----------

    async def _safe(
        self,
        field: str,
        compute: Callable[[], Awaitable[T]],
        default: T,
        degraded: List[str],
    ) -> T:
        try:
            return await compute()
        except Exception as e:
            logger.warning(f"Snapshot field {field} degraded to default: {e}")
            record_snapshot_field_failure(field)
            degraded.append(field)
            return default

    async def _entity_counts(
        self,
        source: EntitySource,
        clauses: List[Any],
        bounds: List[WindowBounds],
    ) -> EntityCounts:
        created = source.created_column
        columns = [func.count(source.id_column)]
        for b in bounds:
            columns.append(func.count(case((created >= b.start, source.id_column))))
            columns.append(
                func.count(
                    case((and_(created >= b.previous_start, created < b.previous_end), source.id_column))
                )
            )

        query = select(*columns).where(*source.where, *clauses)
        async with self.session_factory() as session:
            row = (await session.execute(query)).one()

        result = EntityCounts(total=row[0] or 0)
        for i, b in enumerate(bounds):
            result.current[b.name] = row[1 + 2 * i] or 0
            result.previous[b.name] = row[2 + 2 * i] or 0
        return result

    async def _status_breakdown(self, scope: Scope) -> Dict[str, int]:
        clauses = ENTITY_SOURCES["applications"].scope_clauses(scope) or []
        query = (
            select(Application.status, func.count(Application.id))
            .where(*clauses)
            .group_by(Application.status)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        breakdown = {status.value: 0 for status in ApplicationStatus}
        for status, count in rows:
            breakdown[status] = count
        return breakdown

    async def _published_jobs(self, scope: Scope) -> int:
        clauses = ENTITY_SOURCES["jobs"].scope_clauses(scope) or []
        query = select(func.count(Job.id)).where(Job.status == JobStatus.PUBLISHED.value, *clauses)
        async with self.session_factory() as session:
            return (await session.execute(query)).scalar() or 0

    async def _created_since(self, source: EntitySource, clauses: List[Any], start: datetime) -> List[datetime]:
        query = select(source.created_column).where(
            source.created_column >= start, *source.where, *clauses
        )
        async with self.session_factory() as session:
            return list((await session.execute(query)).scalars().all())

    async def _avg_response_hours(self, scope: Scope) -> Optional[float]:
        clauses = ENTITY_SOURCES["applications"].scope_clauses(scope) or []
        query = select(Application.created_at, Application.responded_at).where(
            Application.responded_at.is_not(None), *clauses
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        if not rows:
            return None
        hours = [(responded - created).total_seconds() / 3600 for created, responded in rows]
        return round(sum(hours) / len(hours), 1)

    async def _avg_days_to_hire(self, scope: Scope) -> Optional[float]:
        clauses = ENTITY_SOURCES["applications"].scope_clauses(scope) or []
        query = (
            select(Application.created_at, ApplicationTransition.created_at)
            .join(ApplicationTransition, ApplicationTransition.application_id == Application.id)
            .where(ApplicationTransition.to_status == ApplicationStatus.HIRED.value, *clauses)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        if not rows:
            return None
        days = [(hired - created).total_seconds() / 86400 for created, hired in rows]
        return round(sum(days) / len(days), 1)

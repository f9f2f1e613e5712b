"""
Counter Maintainer - denormalized job counters

Keeps Job.applications_count and Job.views_count in step with the
applications and job_views tables under at-least-once event delivery.

Increment Path:
    1. Insert the event's idempotency key into processed_events
    2. UPDATE jobs SET <counter> = <counter> + 1 (single atomic statement)
    Both happen in one transaction; a redelivered event hits the primary
    key on step 1 and the whole transaction becomes a no-op.

Reconciliation:
    recount_statement() rewrites both counters from COUNT(*) subqueries.
    It runs from Celery beat (sync session) and on demand (async session),
    healing drift left by dropped events. The same transaction writes the
    ledger keys of every counted row, so an event still in flight cannot
    add its row a second time.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import DateTime, exists, func, insert, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import Session, aliased

from hiretrack.database import utcnow
from hiretrack.middleware.metrics import record_counter_drift
from hiretrack.models import Application, Job, JobView, ProcessedEvent
from hiretrack.services.events import ApplicationCreated, DomainEvent, JobViewed

logger = logging.getLogger(__name__)


@dataclass
class JobDrift:
    job_id: str
    applications_before: int
    applications_after: int
    views_before: int
    views_after: int
    employer_id: Optional[str] = None


@dataclass
class ReconcileReport:
    """Result of one reconciliation pass."""

    drifted: List[JobDrift] = field(default_factory=list)

    @property
    def jobs_corrected(self) -> int:
        return len(self.drifted)


# ==================== Statements ====================

def _application_count():
    return (
        select(func.count(Application.id))
        .where(Application.job_id == Job.id)
        .scalar_subquery()
    )


def _view_count():
    return (
        select(func.count(JobView.id))
        .where(JobView.job_id == Job.id)
        .scalar_subquery()
    )


def drift_query(job_ids: Optional[Sequence[str]] = None):
    """Jobs whose stored counters differ from a recount of their rows."""
    applications = _application_count()
    views = _view_count()
    query = select(
        Job.id, Job.applications_count, applications, Job.views_count, views, Job.employer_id
    ).where(
        or_(Job.applications_count != applications, Job.views_count != views)
    )
    if job_ids:
        query = query.where(Job.id.in_(job_ids))
    return query


def recount_statement(job_ids: Sequence[str]):
    """Rewrite both counters of the given jobs from their rows."""
    return (
        update(Job)
        .where(Job.id.in_(job_ids))
        .values(applications_count=_application_count(), views_count=_view_count())
        .execution_options(synchronize_session=False)
    )


def _ledger_insert(prefix: str, counter: str, row_id, row_job_id, job_ids: Sequence[str]):
    key = literal(prefix) + row_id
    seen = aliased(ProcessedEvent)
    return insert(ProcessedEvent).from_select(
        ["key", "kind", "processed_at"],
        select(key, literal(counter), literal(utcnow(), DateTime))
        .where(row_job_id.in_(job_ids))
        .where(~exists().where(seen.key == key)),
    )


def ledger_statements(job_ids: Sequence[str]):
    """
    Mark every row counted by a recount as processed.

    A recount already includes applications and views whose events are
    still queued; their later delivery must then be a no-op.
    """
    return [
        _ledger_insert("created:", "applications_count", Application.id, Application.job_id, job_ids),
        _ledger_insert("view:", "views_count", JobView.id, JobView.job_id, job_ids),
    ]


def _report(rows) -> ReconcileReport:
    report = ReconcileReport(
        drifted=[
            JobDrift(
                job_id=row[0],
                applications_before=row[1],
                applications_after=row[2],
                views_before=row[3],
                views_after=row[4],
                employer_id=row[5],
            )
            for row in rows
        ]
    )
    for drift in report.drifted:
        if drift.applications_before != drift.applications_after:
            record_counter_drift("applications_count")
        if drift.views_before != drift.views_after:
            record_counter_drift("views_count")
        logger.warning(
            f"Counter drift on job {drift.job_id}: applications "
            f"{drift.applications_before}->{drift.applications_after}, views "
            f"{drift.views_before}->{drift.views_after}"
        )
    return report


def reconcile_counters_sync(session: Session, job_ids: Optional[Sequence[str]] = None) -> ReconcileReport:
    """
    Reconcile counters with a synchronous session (Celery workers).

    The caller owns the session; this commits on success.
    """
    rows = session.execute(drift_query(job_ids)).all()
    if rows:
        drifted = [row[0] for row in rows]
        session.execute(recount_statement(drifted))
        for statement in ledger_statements(drifted):
            session.execute(statement)
    session.commit()
    return _report(rows)


# ==================== Maintainer ====================

class CounterMaintainer:
    """
    Event consumer that applies counter increments exactly once per key.

    Attributes:
        session_factory: async_sessionmaker bound to the entity store
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def handle(self, event: DomainEvent) -> None:
        """EventBus handler."""
        if isinstance(event, ApplicationCreated):
            await self.increment_once(event.idempotency_key, event.job_id, "applications_count")
        elif isinstance(event, JobViewed):
            await self.increment_once(event.idempotency_key, event.job_id, "views_count")

    async def increment_once(self, key: str, job_id: str, counter: str) -> bool:
        """
        Increment one job counter unless key was already processed.

        Args:
            key: Idempotency key of the triggering event
            job_id: Job to update
            counter: "applications_count" or "views_count"

        Returns:
            True if the counter was incremented, False for a duplicate
        """
        column = getattr(Job, counter)

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    if await session.get(ProcessedEvent, key) is not None:
                        logger.debug(f"Skipping already processed event {key}")
                        return False

                    session.add(ProcessedEvent(key=key, kind=counter))
                    await session.flush()
                    await session.execute(
                        update(Job)
                        .where(Job.id == job_id)
                        .values({column: column + 1})
                        .execution_options(synchronize_session=False)
                    )
            except IntegrityError:
                # Concurrent redelivery won the insert
                logger.debug(f"Skipping already processed event {key}")
                return False

        return True

    async def reconcile(self, job_ids: Optional[Sequence[str]] = None) -> ReconcileReport:
        """Recount counters from rows and rewrite the jobs that drifted."""
        async with self.session_factory() as session:
            async with session.begin():
                rows = (await session.execute(drift_query(job_ids))).all()
                if rows:
                    drifted = [row[0] for row in rows]
                    await session.execute(recount_statement(drifted))
                    for statement in ledger_statements(drifted):
                        await session.execute(statement)

        report = _report(rows)
        logger.info(f"Reconciliation corrected {report.jobs_corrected} jobs")
        return report

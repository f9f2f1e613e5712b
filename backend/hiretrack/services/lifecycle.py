"""
Application Lifecycle - Transition Engine

The only write path for Application rows. Validates every status change
against the status graph and the role permission table, commits it
atomically, and publishes a domain event after commit.

Status Graph (edge → role that may drive it):
    pending      → reviewing (employer), rejected (employer), withdrawn (candidate)
    reviewing    → shortlisted (employer), rejected (employer), withdrawn (candidate)
    shortlisted  → interviewed (employer), rejected (employer)
    interviewed  → offered (employer), rejected (employer)
    offered      → hired (employer)
    hired / rejected / withdrawn: terminal

Concurrency:
    Every write is a conditional UPDATE guarded by Application.version, and
    the row is read FOR UPDATE where the database supports it. Of two racing
    transitions on one application exactly one commits; the other gets
    TransitionConflict (or IllegalTransition if it re-reads the new state).
    Each operation is bounded by settings.transition_timeout_seconds and
    rolls back on timeout.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hiretrack.config import get_settings
from hiretrack.database import utcnow
from hiretrack.middleware.metrics import record_rejection, record_transition
from hiretrack.models import (
    Application,
    ApplicationStatus,
    ApplicationTransition,
    Candidate,
    Job,
    JobStatus,
)
from hiretrack.services.events import ApplicationCreated, ApplicationTransitioned, EventBus

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ==================== Errors ====================

class LifecycleError(Exception):
    """Base class for errors surfaced synchronously to the caller."""

    @property
    def reason(self) -> str:
        return type(self).__name__


class IllegalTransition(LifecycleError):
    """Target status is not reachable from the current status."""


class Unauthorized(LifecycleError):
    """Actor lacks permission for the edge or does not own the record."""


class DuplicateApplication(LifecycleError):
    """A non-withdrawn application already exists for the candidate and job."""


class JobNotAcceptingApplications(LifecycleError):
    """The job is not published."""


class InvalidRating(LifecycleError):
    """Rating is not an integer between 1 and 5."""


class InvalidSchedule(LifecycleError):
    """Interview time set while the application is not interviewed."""


class NotFound(LifecycleError):
    pass


class TransitionConflict(LifecycleError):
    """A concurrent write changed the row between read and update."""


class OperationTimeout(LifecycleError):
    pass


class StoreUnavailable(LifecycleError):
    """The entity store failed; nothing was committed."""


# ==================== Status Graph ====================

class ActorRole(str, Enum):
    CANDIDATE = "candidate"
    EMPLOYER = "employer"
    ADMIN = "admin"


S = ApplicationStatus

# current status → {target status: role allowed to drive the edge}
APPLICATION_TRANSITIONS: Dict[ApplicationStatus, Dict[ApplicationStatus, ActorRole]] = {
    S.PENDING: {
        S.REVIEWING: ActorRole.EMPLOYER,
        S.REJECTED: ActorRole.EMPLOYER,
        S.WITHDRAWN: ActorRole.CANDIDATE,
    },
    S.REVIEWING: {
        S.SHORTLISTED: ActorRole.EMPLOYER,
        S.REJECTED: ActorRole.EMPLOYER,
        S.WITHDRAWN: ActorRole.CANDIDATE,
    },
    S.SHORTLISTED: {
        S.INTERVIEWED: ActorRole.EMPLOYER,
        S.REJECTED: ActorRole.EMPLOYER,
    },
    S.INTERVIEWED: {
        S.OFFERED: ActorRole.EMPLOYER,
        S.REJECTED: ActorRole.EMPLOYER,
    },
    S.OFFERED: {
        S.HIRED: ActorRole.EMPLOYER,
    },
    S.HIRED: {},
    S.REJECTED: {},
    S.WITHDRAWN: {},
}

TERMINAL_STATUSES: Set[ApplicationStatus] = {
    status for status, edges in APPLICATION_TRANSITIONS.items() if not edges
}


def allowed_targets(current: str, role: Optional[str] = None) -> List[ApplicationStatus]:
    """List statuses reachable from current, optionally only those role may drive."""
    edges = APPLICATION_TRANSITIONS[ApplicationStatus(current)]
    return [
        target for target, required in edges.items()
        if role is None or required == ActorRole(role)
    ]


def check_transition(current: str, target: str, role: str) -> None:
    """
    Validate one edge of the status graph.

    Raises:
        IllegalTransition: target is unknown or not reachable from current
        Unauthorized: role may not drive this edge
    """
    try:
        target_status = ApplicationStatus(target)
    except ValueError:
        raise IllegalTransition(f"Unknown application status '{target}'")

    edges = APPLICATION_TRANSITIONS[ApplicationStatus(current)]
    if target_status not in edges:
        raise IllegalTransition(
            f"Transition from '{current}' to '{target_status.value}' is not allowed"
        )

    required = edges[target_status]
    if ActorRole(role) != required:
        raise Unauthorized(
            f"Role '{role}' may not move an application from '{current}' "
            f"to '{target_status.value}'"
        )


def audit_transition_log(rows: Iterable[Any]) -> List[Tuple[str, str]]:
    """
    Find recorded edges that are not in the status graph.

    Args:
        rows: Objects with from_status/to_status attributes (e.g.
            ApplicationTransition rows) or (from, to) tuples

    Returns:
        List of illegal (from, to) pairs; empty for a healthy log
    """
    illegal = []
    for row in rows:
        if isinstance(row, tuple):
            from_status, to_status = row
        else:
            from_status, to_status = row.from_status, row.to_status
        try:
            edges = APPLICATION_TRANSITIONS[ApplicationStatus(from_status)]
            ok = ApplicationStatus(to_status) in edges
        except ValueError:
            ok = False
        if not ok:
            illegal.append((from_status, to_status))
    return illegal


# ==================== Job Status Graph ====================

JOB_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.DRAFT: {JobStatus.PUBLISHED},
    JobStatus.PUBLISHED: {JobStatus.CLOSED, JobStatus.FILLED},
    JobStatus.CLOSED: {JobStatus.PUBLISHED},
    JobStatus.FILLED: set(),
}


def check_job_transition(current: str, target: JobStatus) -> None:
    if target not in JOB_TRANSITIONS[JobStatus(current)]:
        raise IllegalTransition(
            f"Job cannot move from '{current}' to '{target.value}'"
        )


# ==================== Bounded Execution ====================

async def run_bounded(operation: str, coro: Awaitable[T], timeout: float) -> T:
    """
    Run one store operation under a timeout with uniform error reporting.

    Validation errors are logged and counted, store errors are converted to
    StoreUnavailable, and a timeout cancels the operation (rolling back its
    open transaction) before raising OperationTimeout.

    coro must end at its commit. Callers close the session and publish
    events after this returns, so a committed write is never reported as
    timed out.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        record_rejection(OperationTimeout.__name__)
        logger.error(f"{operation} timed out after {timeout}s, rolled back")
        raise OperationTimeout(f"{operation} did not complete within {timeout}s")
    except LifecycleError as e:
        record_rejection(e.reason)
        logger.warning(f"{operation} rejected: {e.reason}: {e}")
        raise
    except SQLAlchemyError as e:
        record_rejection(StoreUnavailable.__name__)
        logger.error(f"{operation} failed against the entity store: {e}")
        raise StoreUnavailable(f"{operation} failed: entity store unavailable") from e


# ==================== Transition Engine ====================

class TransitionEngine:
    """
    Sole mutation gateway for applications.

    Attributes:
        session_factory: async_sessionmaker bound to the entity store
        bus: EventBus receiving events after commit
        timeout: Per-operation bound in seconds
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        bus: EventBus,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.timeout = timeout if timeout is not None else get_settings().transition_timeout_seconds

    # ---------- submit ----------

    async def submit(
        self,
        candidate_id: str,
        job_id: str,
        notes: Optional[str] = None,
    ) -> Application:
        """
        Create a pending application for a published job.

        Raises:
            NotFound: unknown candidate or job
            JobNotAcceptingApplications: job status is not published
            DuplicateApplication: a non-withdrawn application exists for the pair
        """
        async with self.session_factory() as session:
            application, employer_id = await run_bounded(
                "submit", self._submit(session, candidate_id, job_id, notes), self.timeout
            )

        self.bus.publish(
            ApplicationCreated(
                application_id=application.id,
                candidate_id=candidate_id,
                job_id=job_id,
                employer_id=employer_id,
                occurred_at=application.created_at,
            )
        )
        logger.info(f"Application {application.id} submitted for job {job_id}")
        return application

    async def _submit(
        self, session: AsyncSession, candidate_id: str, job_id: str, notes: Optional[str]
    ) -> Tuple[Application, str]:
        async with session.begin():
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            if await session.get(Candidate, candidate_id) is None:
                raise NotFound(f"Candidate not found: {candidate_id}")
            if job.status != JobStatus.PUBLISHED.value:
                raise JobNotAcceptingApplications(
                    f"Job {job_id} is {job.status}, not published"
                )

            existing = await session.execute(
                select(Application.id).where(
                    Application.candidate_id == candidate_id,
                    Application.job_id == job_id,
                    Application.status != ApplicationStatus.WITHDRAWN.value,
                ).limit(1)
            )
            if existing.first() is not None:
                raise DuplicateApplication(
                    f"Candidate {candidate_id} already has an active application for job {job_id}"
                )

            application = Application(
                candidate_id=candidate_id,
                job_id=job_id,
                status=ApplicationStatus.PENDING.value,
                candidate_notes=notes,
            )
            session.add(application)
            try:
                await session.flush()
            except IntegrityError:
                # Lost the race against a concurrent submit for the same pair
                raise DuplicateApplication(
                    f"Candidate {candidate_id} already has an active application for job {job_id}"
                )
            employer_id = job.employer_id

        return application, employer_id

    # ---------- transition ----------

    async def transition(
        self,
        application_id: str,
        actor_role: str,
        target_status: str,
        actor_id: Optional[str] = None,
        interview_scheduled_at: Optional[datetime] = None,
    ) -> Application:
        """
        Move an application along one edge of the status graph.

        Args:
            application_id: Application UUID
            actor_role: "employer" or "candidate" ("admin" drives no edge)
            target_status: Desired ApplicationStatus value
            actor_id: Employer or candidate id; when given, ownership is enforced
            interview_scheduled_at: Only allowed when target is interviewed

        Raises:
            NotFound, Unauthorized, IllegalTransition, InvalidSchedule,
            TransitionConflict
        """
        try:
            role = ActorRole(actor_role)
        except ValueError:
            record_rejection(Unauthorized.__name__)
            raise Unauthorized(f"Unknown actor role '{actor_role}'")

        async with self.session_factory() as session:
            application, employer_id, from_status, now = await run_bounded(
                "transition",
                self._transition(
                    session, application_id, role, target_status, actor_id, interview_scheduled_at
                ),
                self.timeout,
            )

        record_transition(from_status, application.status)
        self.bus.publish(
            ApplicationTransitioned(
                application_id=application.id,
                candidate_id=application.candidate_id,
                job_id=application.job_id,
                employer_id=employer_id,
                from_status=from_status,
                to_status=application.status,
                actor_role=role.value,
                occurred_at=now,
            )
        )
        logger.info(
            f"Application {application.id}: {from_status} -> {application.status} by {role.value}"
        )
        return application

    async def _transition(
        self,
        session: AsyncSession,
        application_id: str,
        role: ActorRole,
        target_status: str,
        actor_id: Optional[str],
        interview_scheduled_at: Optional[datetime],
    ) -> Tuple[Application, str, str, datetime]:
        async with session.begin():
            application, job = await self._load_for_update(session, application_id)
            self._check_ownership(role, actor_id, application, job)

            from_status = application.status
            check_transition(from_status, target_status, role.value)
            target = ApplicationStatus(target_status)

            if interview_scheduled_at is not None and target != ApplicationStatus.INTERVIEWED:
                raise InvalidSchedule(
                    "Interview time can only be set when moving to interviewed"
                )

            now = utcnow()
            values: Dict[str, Any] = {"status": target.value, "updated_at": now}
            # responded_at is write-once: first employer move away from pending
            if role == ActorRole.EMPLOYER and application.responded_at is None:
                values["responded_at"] = now
            if interview_scheduled_at is not None:
                values["interview_scheduled_at"] = interview_scheduled_at

            await self._conditional_update(session, application, values)
            session.add(
                ApplicationTransition(
                    application_id=application.id,
                    job_id=application.job_id,
                    from_status=from_status,
                    to_status=target.value,
                    actor_role=role.value,
                    actor_id=actor_id,
                    created_at=now,
                )
            )
            employer_id = job.employer_id

        return application, employer_id, from_status, now

    # ---------- rate ----------

    async def rate(self, application_id: str, actor_employer_id: str, stars: int) -> Application:
        """
        Set the owning employer's 1-5 star rating. Overwrites any previous
        rating and never touches status.

        Raises:
            InvalidRating, NotFound, Unauthorized
        """
        async with self.session_factory() as session:
            return await run_bounded(
                "rate", self._rate(session, application_id, actor_employer_id, stars), self.timeout
            )

    async def _rate(
        self, session: AsyncSession, application_id: str, actor_employer_id: str, stars: int
    ) -> Application:
        if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
            raise InvalidRating(f"Rating must be an integer from 1 to 5, got {stars!r}")

        async with session.begin():
            application, job = await self._load_for_update(session, application_id)
            self._check_ownership(ActorRole.EMPLOYER, actor_employer_id, application, job)
            await self._conditional_update(
                session, application, {"employer_rating": stars, "updated_at": utcnow()}
            )

        return application

    # ---------- interview scheduling ----------

    async def schedule_interview(
        self,
        application_id: str,
        actor_employer_id: str,
        when: datetime,
    ) -> Application:
        """Set interview_scheduled_at on an application that is interviewed."""
        async with self.session_factory() as session:
            return await run_bounded(
                "schedule_interview",
                self._schedule_interview(session, application_id, actor_employer_id, when),
                self.timeout,
            )

    async def _schedule_interview(
        self, session: AsyncSession, application_id: str, actor_employer_id: str, when: datetime
    ) -> Application:
        async with session.begin():
            application, job = await self._load_for_update(session, application_id)
            self._check_ownership(ActorRole.EMPLOYER, actor_employer_id, application, job)
            if application.status != ApplicationStatus.INTERVIEWED.value:
                raise InvalidSchedule(
                    f"Application {application_id} is {application.status}, not interviewed"
                )
            await self._conditional_update(
                session, application, {"interview_scheduled_at": when, "updated_at": utcnow()}
            )

        return application

    # ---------- reads ----------

    async def get_application(self, application_id: str) -> Application:
        async with self.session_factory() as session:
            application = await session.get(Application, application_id)
            if application is None:
                raise NotFound(f"Application not found: {application_id}")
            return application

    async def history(self, application_id: str) -> List[ApplicationTransition]:
        """Committed transitions for one application, oldest first."""
        async with self.session_factory() as session:
            if await session.get(Application, application_id) is None:
                raise NotFound(f"Application not found: {application_id}")
            result = await session.execute(
                select(ApplicationTransition)
                .where(ApplicationTransition.application_id == application_id)
                .order_by(ApplicationTransition.created_at, ApplicationTransition.id)
            )
            return list(result.scalars().all())

    # ---------- helpers ----------

    async def _load_for_update(
        self, session: AsyncSession, application_id: str
    ) -> Tuple[Application, Job]:
        result = await session.execute(
            select(Application).where(Application.id == application_id).with_for_update()
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFound(f"Application not found: {application_id}")

        job = await session.get(Job, application.job_id)
        if job is None:
            raise NotFound(f"Job not found: {application.job_id}")
        return application, job

    @staticmethod
    def _check_ownership(
        role: ActorRole,
        actor_id: Optional[str],
        application: Application,
        job: Job,
    ) -> None:
        if actor_id is None:
            return
        if role == ActorRole.EMPLOYER and job.employer_id != actor_id:
            raise Unauthorized(f"Employer {actor_id} does not own job {job.id}")
        if role == ActorRole.CANDIDATE and application.candidate_id != actor_id:
            raise Unauthorized(
                f"Candidate {actor_id} does not own application {application.id}"
            )

    @staticmethod
    async def _conditional_update(
        session: AsyncSession,
        application: Application,
        values: Dict[str, Any],
    ) -> None:
        """UPDATE guarded by the version read earlier in this transaction."""
        seen_version = application.version
        result = await session.execute(
            update(Application)
            .where(Application.id == application.id, Application.version == seen_version)
            .values(version=seen_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TransitionConflict(
                f"Application {application.id} was modified concurrently"
            )
        await session.refresh(application)

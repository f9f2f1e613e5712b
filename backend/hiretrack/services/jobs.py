"""
Job Lifecycle Service

Owns job posting status (draft → published → closed/filled) and the
producers of job-side activity: detail page views and candidate bookmarks.
Counters on the job row are never written here; views are recorded as rows
and announced with a JobViewed event for the counter maintainer.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hiretrack.config import get_settings
from hiretrack.database import utcnow
from hiretrack.models import Candidate, Employer, Job, JobStatus, JobView, SavedJob
from hiretrack.services.events import EventBus, JobPosted, JobViewed
from hiretrack.services.lifecycle import (
    NotFound,
    Unauthorized,
    check_job_transition,
    run_bounded,
)

logger = logging.getLogger(__name__)


class JobService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        bus: EventBus,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.timeout = timeout if timeout is not None else get_settings().transition_timeout_seconds

    async def create_job(self, employer_id: str, title: str) -> Job:
        """Create a draft job with zeroed counters."""
        async with self.session_factory() as session:
            job = await run_bounded(
                "create_job", self._create_job(session, employer_id, title), self.timeout
            )
        logger.info(f"Job {job.id} created as draft for employer {employer_id}")
        return job

    async def _create_job(self, session: AsyncSession, employer_id: str, title: str) -> Job:
        async with session.begin():
            if await session.get(Employer, employer_id) is None:
                raise NotFound(f"Employer not found: {employer_id}")
            job = Job(employer_id=employer_id, title=title, status=JobStatus.DRAFT.value)
            session.add(job)
            await session.flush()
        return job

    async def publish(self, job_id: str, employer_id: str) -> Job:
        return await self._move(job_id, employer_id, JobStatus.PUBLISHED)

    async def reopen(self, job_id: str, employer_id: str) -> Job:
        return await self._move(job_id, employer_id, JobStatus.PUBLISHED)

    async def close(self, job_id: str, employer_id: str) -> Job:
        return await self._move(job_id, employer_id, JobStatus.CLOSED)

    async def mark_filled(self, job_id: str, employer_id: str) -> Job:
        return await self._move(job_id, employer_id, JobStatus.FILLED)

    async def _move(self, job_id: str, employer_id: str, target: JobStatus) -> Job:
        async with self.session_factory() as session:
            job = await run_bounded(
                f"job_{target.value}",
                self._apply_move(session, job_id, employer_id, target),
                self.timeout,
            )

        if target == JobStatus.PUBLISHED:
            self.bus.publish(
                JobPosted(
                    job_id=job.id,
                    employer_id=job.employer_id,
                    title=job.title,
                    occurred_at=job.published_at,
                )
            )
        logger.info(f"Job {job_id} is now {target.value}")
        return job

    async def _apply_move(
        self, session: AsyncSession, job_id: str, employer_id: str, target: JobStatus
    ) -> Job:
        async with session.begin():
            job = await session.get(Job, job_id, with_for_update=True)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            if job.employer_id != employer_id:
                raise Unauthorized(f"Employer {employer_id} does not own job {job_id}")
            check_job_transition(job.status, target)

            now = utcnow()
            job.status = target.value
            job.updated_at = now
            if target == JobStatus.PUBLISHED:
                job.published_at = now
        return job

    async def get_job(self, job_id: str) -> Job:
        async with self.session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            return job

    async def record_view(self, job_id: str) -> JobView:
        """Record one job detail render. Every render counts."""
        async with self.session_factory() as session:
            view, employer_id = await run_bounded(
                "record_view", self._record_view(session, job_id), self.timeout
            )

        self.bus.publish(
            JobViewed(view_id=view.id, job_id=job_id, employer_id=employer_id, occurred_at=view.created_at)
        )
        return view

    async def _record_view(self, session: AsyncSession, job_id: str) -> Tuple[JobView, str]:
        async with session.begin():
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            view = JobView(job_id=job_id)
            session.add(view)
            await session.flush()
        return view, job.employer_id

    async def save_job(self, candidate_id: str, job_id: str) -> SavedJob:
        """Bookmark a job for a candidate. Saving twice returns the first bookmark."""
        async with self.session_factory() as session:
            return await run_bounded(
                "save_job", self._save_job(session, candidate_id, job_id), self.timeout
            )

    async def _save_job(self, session: AsyncSession, candidate_id: str, job_id: str) -> SavedJob:
        if await session.get(Job, job_id) is None:
            raise NotFound(f"Job not found: {job_id}")
        if await session.get(Candidate, candidate_id) is None:
            raise NotFound(f"Candidate not found: {candidate_id}")

        saved = SavedJob(candidate_id=candidate_id, job_id=job_id)
        session.add(saved)
        try:
            await session.commit()
            return saved
        except IntegrityError:
            await session.rollback()

        result = await session.execute(
            select(SavedJob).where(
                SavedJob.candidate_id == candidate_id, SavedJob.job_id == job_id
            )
        )
        return result.scalar_one()

"""
Tests for the Job Lifecycle Service and the account Directory

Tests cover:
- Draft → published → closed/filled job status moves
- Ownership checks on job moves
- Views recorded as rows and announced on the bus
- Idempotent bookmarks
- Signup with duplicate email rejection
"""

import pytest
from sqlalchemy import func, select

from hiretrack.models import JobStatus, JobView, Profile
from hiretrack.services.directory import EmailAlreadyRegistered
from hiretrack.services.events import JobPosted, JobViewed, ProfileCreated
from hiretrack.services.lifecycle import IllegalTransition, NotFound, Unauthorized


class TestJobStatus:
    """Test job status moves."""

    @pytest.mark.asyncio
    async def test_new_job_is_draft_with_zero_counters(self, jobs, employer):
        job = await jobs.create_job(employer.id, "Data Engineer")

        assert job.status == JobStatus.DRAFT.value
        assert job.applications_count == 0
        assert job.views_count == 0
        assert job.published_at is None

    @pytest.mark.asyncio
    async def test_create_for_unknown_employer(self, jobs):
        with pytest.raises(NotFound):
            await jobs.create_job("missing", "Data Engineer")

    @pytest.mark.asyncio
    async def test_publish_sets_published_at(self, jobs, employer):
        job = await jobs.create_job(employer.id, "Data Engineer")

        published = await jobs.publish(job.id, employer.id)

        assert published.status == JobStatus.PUBLISHED.value
        assert published.published_at is not None

    @pytest.mark.asyncio
    async def test_close_and_reopen(self, jobs, employer, published_job):
        closed = await jobs.close(published_job.id, employer.id)
        assert closed.status == JobStatus.CLOSED.value

        reopened = await jobs.reopen(published_job.id, employer.id)
        assert reopened.status == JobStatus.PUBLISHED.value

    @pytest.mark.asyncio
    async def test_filled_is_final(self, jobs, employer, published_job):
        await jobs.mark_filled(published_job.id, employer.id)

        with pytest.raises(IllegalTransition):
            await jobs.reopen(published_job.id, employer.id)

    @pytest.mark.asyncio
    async def test_draft_cannot_close(self, jobs, employer):
        job = await jobs.create_job(employer.id, "Data Engineer")

        with pytest.raises(IllegalTransition):
            await jobs.close(job.id, employer.id)

    @pytest.mark.asyncio
    async def test_other_employer_cannot_move(self, jobs, directory, published_job):
        _, other = await directory.register_employer("jobs@globex.test", "Globex")

        with pytest.raises(Unauthorized):
            await jobs.close(published_job.id, other.id)

        job = await jobs.get_job(published_job.id)
        assert job.status == JobStatus.PUBLISHED.value

    @pytest.mark.asyncio
    async def test_publish_announces_job(self, jobs, bus, employer):
        seen = []

        async def record(event):
            seen.append(event)

        bus.register("recorder", record, (JobPosted,))
        await bus.start()

        job = await jobs.create_job(employer.id, "Data Engineer")
        await jobs.publish(job.id, employer.id)
        await bus.drain()

        assert [e.job_id for e in seen] == [job.id]
        assert seen[0].title == "Data Engineer"

    @pytest.mark.asyncio
    async def test_get_missing_job(self, jobs):
        with pytest.raises(NotFound):
            await jobs.get_job("missing")


class TestViewsAndBookmarks:
    """Test job-side activity producers."""

    @pytest.mark.asyncio
    async def test_view_recorded_and_announced(self, jobs, bus, session_factory, published_job):
        seen = []

        async def record(event):
            seen.append(event)

        bus.register("recorder", record, (JobViewed,))
        await bus.start()

        first = await jobs.record_view(published_job.id)
        second = await jobs.record_view(published_job.id)
        await bus.drain()

        assert first.id != second.id
        assert {e.view_id for e in seen} == {first.id, second.id}
        async with session_factory() as session:
            count = await session.scalar(select(func.count(JobView.id)))
        assert count == 2

    @pytest.mark.asyncio
    async def test_view_does_not_touch_counter(self, jobs, published_job):
        """Only the counter maintainer writes views_count."""
        await jobs.record_view(published_job.id)

        job = await jobs.get_job(published_job.id)
        assert job.views_count == 0

    @pytest.mark.asyncio
    async def test_view_missing_job(self, jobs):
        with pytest.raises(NotFound):
            await jobs.record_view("missing")

    @pytest.mark.asyncio
    async def test_save_job_idempotent(self, jobs, candidate, published_job):
        first = await jobs.save_job(candidate.id, published_job.id)
        second = await jobs.save_job(candidate.id, published_job.id)

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_save_missing_candidate(self, jobs, published_job):
        with pytest.raises(NotFound):
            await jobs.save_job("missing", published_job.id)


class TestDirectory:
    """Test candidate and employer signup."""

    @pytest.mark.asyncio
    async def test_register_candidate(self, directory, session_factory):
        profile, candidate = await directory.register_candidate(
            "grace@example.test", display_name="Grace", headline="Compilers"
        )

        assert profile.user_type == "candidate"
        assert candidate.profile_id == profile.id
        async with session_factory() as session:
            stored = await session.get(Profile, profile.id)
        assert stored.email == "grace@example.test"

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, directory, session_factory):
        await directory.register_employer("team@initech.test", "Initech")

        with pytest.raises(EmailAlreadyRegistered):
            await directory.register_candidate("team@initech.test")

        async with session_factory() as session:
            count = await session.scalar(select(func.count(Profile.id)))
        assert count == 1

    @pytest.mark.asyncio
    async def test_signup_announced(self, directory, bus):
        seen = []

        async def record(event):
            seen.append(event)

        bus.register("recorder", record, (ProfileCreated,))
        await bus.start()

        _, employer = await directory.register_employer("team@initech.test", "Initech")
        await bus.drain()

        assert len(seen) == 1
        assert seen[0].user_type == "employer"
        assert seen[0].account_id == employer.id

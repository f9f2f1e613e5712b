"""
Tests for the Live Feed Fan-out

Tests cover:
- Notification messages per event type
- Capped recent window, newest first
- Scope filtering
- Subscriber queues drop oldest when full
- Unsubscribe isolation
- End-to-end delivery through the event bus
"""

import asyncio
from datetime import datetime

import pytest

from hiretrack.services.aggregator import Scope
from hiretrack.services.events import (
    ApplicationCreated,
    ApplicationTransitioned,
    JobPosted,
    JobViewed,
    ProfileCreated,
)
from hiretrack.services.feed import ActivityEvent, FeedHub, to_activity


def _created(i: int, employer_id: str = "e1", candidate_id: str = "c1") -> ApplicationCreated:
    return ApplicationCreated(
        application_id=f"a{i}", candidate_id=candidate_id, job_id="j1", employer_id=employer_id
    )


class TestToActivity:
    """Test event → notification mapping."""

    def test_signup(self):
        event = ProfileCreated(profile_id="p1", user_type="candidate", account_id="c1")
        assert to_activity(event).message == "New candidate signed up"

    def test_employer_signup(self):
        event = ProfileCreated(profile_id="p1", user_type="employer", account_id="e1")
        assert to_activity(event).message == "New employer signed up"

    def test_application(self):
        activity = to_activity(_created(1))
        assert activity.type == "application"
        assert activity.message == "New job application submitted"
        assert activity.application_id == "a1"

    def test_job_posted(self):
        activity = to_activity(JobPosted(job_id="j1", employer_id="e1", title="SRE"))
        assert activity.message == "New job posted"

    def test_transition(self):
        event = ApplicationTransitioned(
            application_id="a1", candidate_id="c1", job_id="j1", employer_id="e1",
            from_status="reviewing", to_status="shortlisted", actor_role="employer",
        )
        assert to_activity(event).message == "Application moved from reviewing to shortlisted"

    def test_views_not_in_feed(self):
        """Job views only drive counters."""
        assert to_activity(JobViewed(view_id="v1", job_id="j1", employer_id="e1")) is None

    def test_timestamp_from_event(self):
        when = datetime(2026, 1, 2, 3, 4, 5)
        event = JobPosted(job_id="j1", employer_id="e1", title="SRE", occurred_at=when)
        assert to_activity(event).timestamp == when


class TestRecentWindow:
    """Test the capped recent window."""

    @pytest.mark.asyncio
    async def test_newest_first_and_capped(self):
        """Only the most recent capacity entries are kept, newest first."""
        hub = FeedHub(capacity=50, queue_size=10)

        for i in range(60):
            await hub.handle(_created(i))

        recent = hub.recent()
        assert len(recent) == 50
        assert recent[0].application_id == "a59"
        assert recent[-1].application_id == "a10"

    @pytest.mark.asyncio
    async def test_scope_filtering(self):
        """Employers and candidates only see their own activity."""
        hub = FeedHub(capacity=10, queue_size=10)
        await hub.handle(_created(1, employer_id="e1", candidate_id="c1"))
        await hub.handle(_created(2, employer_id="e2", candidate_id="c2"))
        await hub.handle(ProfileCreated(profile_id="p9", user_type="candidate", account_id="c9"))

        assert len(hub.recent(Scope())) == 3
        assert [a.application_id for a in hub.recent(Scope.parse("employer", "e2"))] == ["a2"]
        assert [a.application_id for a in hub.recent(Scope.parse("candidate", "c1"))] == ["a1"]


class TestSubscriptions:
    """Test subscriber delivery and release."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_in_arrival_order(self):
        hub = FeedHub(capacity=10, queue_size=10)
        subscription = hub.subscribe(replay=False)

        for i in range(3):
            await hub.handle(_created(i))

        received = [await asyncio.wait_for(subscription.__anext__(), 1) for _ in range(3)]
        assert [a.application_id for a in received] == ["a0", "a1", "a2"]

    @pytest.mark.asyncio
    async def test_replay_recent_on_subscribe(self):
        """New subscribers first get the recent window, oldest first."""
        hub = FeedHub(capacity=10, queue_size=10)
        await hub.handle(_created(1))
        await hub.handle(_created(2))

        subscription = hub.subscribe()

        first = await asyncio.wait_for(subscription.__anext__(), 1)
        second = await asyncio.wait_for(subscription.__anext__(), 1)
        assert (first.application_id, second.application_id) == ("a1", "a2")

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_oldest(self):
        """A full queue loses its oldest notification and never blocks the hub."""
        hub = FeedHub(capacity=50, queue_size=3)
        subscription = hub.subscribe(replay=False)

        for i in range(5):
            await hub.handle(_created(i))

        assert subscription.dropped == 2
        received = [subscription.queue.get_nowait().application_id for _ in range(3)]
        assert received == ["a2", "a3", "a4"]

    @pytest.mark.asyncio
    async def test_unsubscribe_isolated(self):
        """Unsubscribing one dashboard leaves the others receiving."""
        hub = FeedHub(capacity=10, queue_size=10)
        leaving = hub.subscribe(replay=False)
        staying = hub.subscribe(replay=False)
        assert hub.subscriber_count == 2

        leaving.unsubscribe()
        await hub.handle(_created(1))

        assert hub.subscriber_count == 1
        assert (await asyncio.wait_for(staying.__anext__(), 1)).application_id == "a1"
        assert leaving.queue.qsize() == 1  # only the close marker

    @pytest.mark.asyncio
    async def test_unsubscribe_ends_iteration(self):
        """A reader blocked on the subscription stops when it is released."""
        hub = FeedHub(capacity=10, queue_size=10)
        subscription = hub.subscribe(replay=False)
        received = []

        async def reader():
            async for activity in subscription:
                received.append(activity)

        task = asyncio.create_task(reader())
        await hub.handle(_created(1))
        await asyncio.sleep(0.01)
        subscription.unsubscribe()
        await asyncio.wait_for(task, 1)

        assert [a.application_id for a in received] == ["a1"]

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        hub = FeedHub(capacity=10, queue_size=10)

        async with hub.subscribe() as subscription:
            assert hub.subscriber_count == 1
            assert not subscription.closed

        assert hub.subscriber_count == 0
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_close_ends_all(self):
        hub = FeedHub(capacity=10, queue_size=1)
        subscriptions = [hub.subscribe(replay=False) for _ in range(3)]
        await hub.handle(_created(1))

        hub.close()

        assert hub.subscriber_count == 0
        assert all(s.closed for s in subscriptions)

    def test_scoped_push_skips_other_activity(self):
        hub = FeedHub(capacity=10, queue_size=10)
        subscription = hub.subscribe(Scope.parse("employer", "e1"), replay=False)

        hub.publish(ActivityEvent(type="signup", message="New candidate signed up", timestamp=datetime(2026, 1, 1)))

        assert subscription.queue.empty()


class TestFeedThroughBus:
    """Test the feed as an event bus consumer."""

    @pytest.mark.asyncio
    async def test_submit_reaches_feed(self, running_bus, engine, feed, candidate, published_job):
        """Signup, job post and application all land in the feed."""
        await engine.submit(candidate.id, published_job.id)
        await running_bus.drain()

        messages = [a.message for a in feed.recent()]
        assert messages[0] == "New job application submitted"
        assert "New job posted" in messages
        assert "New candidate signed up" in messages
        assert "New employer signed up" in messages

    @pytest.mark.asyncio
    async def test_failing_feed_does_not_block_counters(
        self, bus, counters, engine, session_factory, candidate, published_job
    ):
        """A broken feed consumer leaves counter maintenance unaffected."""
        from hiretrack.models import Job

        async def broken(event):
            raise RuntimeError("render failed")

        bus.register("counters", counters.handle, (ApplicationCreated,))
        bus.register("feed", broken)
        await bus.start()

        await engine.submit(candidate.id, published_job.id)
        await bus.drain()

        async with session_factory() as session:
            job = await session.get(Job, published_job.id)
        assert job.applications_count == 1

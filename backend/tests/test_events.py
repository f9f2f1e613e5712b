"""
Tests for the in-process Event Bus

Tests cover:
- Fan-out to independent consumers
- Event type filtering
- Retries of failing handlers
- Full queues drop instead of blocking the publisher
- Idempotency keys
"""

import asyncio
from dataclasses import FrozenInstanceError, dataclass
from typing import ClassVar

import pytest

from hiretrack.services.events import (
    ApplicationCreated,
    ApplicationTransitioned,
    DomainEvent,
    EventBus,
    JobPosted,
    JobViewed,
    ProfileCreated,
)


def _created(application_id: str = "a1") -> ApplicationCreated:
    return ApplicationCreated(
        application_id=application_id, candidate_id="c1", job_id="j1", employer_id="e1"
    )


class TestDomainEvents:
    """Test event identities."""

    def test_idempotency_keys(self):
        assert _created("a9").idempotency_key == "created:a9"
        assert JobViewed(view_id="v1", job_id="j1", employer_id="e1").idempotency_key == "view:v1"
        assert ProfileCreated(profile_id="p1", user_type="candidate", account_id="c1").idempotency_key == "profile:p1"

    def test_transition_key_includes_edge(self):
        event = ApplicationTransitioned(
            application_id="a1", candidate_id="c1", job_id="j1", employer_id="e1",
            from_status="pending", to_status="reviewing", actor_role="employer",
        )
        assert event.idempotency_key == "transition:a1:pending:reviewing"

    def test_base_event_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            DomainEvent()

    def test_subclass_without_key_rejected(self):
        """Forgetting idempotency_key fails at construction, not on first delivery."""

        @dataclass(frozen=True, kw_only=True)
        class Keyless(DomainEvent):
            event_type: ClassVar[str] = "keyless"

        with pytest.raises(TypeError):
            Keyless()

    def test_events_are_immutable(self):
        event = _created()
        with pytest.raises(FrozenInstanceError):
            event.job_id = "other"

    def test_event_types(self):
        assert _created().event_type == "application_created"
        assert JobPosted(job_id="j", employer_id="e", title="t").event_type == "job_posted"


class TestEventBus:
    """Test delivery semantics."""

    @pytest.mark.asyncio
    async def test_fan_out_to_all_consumers(self):
        bus = EventBus()
        first, second = [], []

        async def record_first(event):
            first.append(event)

        async def record_second(event):
            second.append(event)

        bus.register("first", record_first)
        bus.register("second", record_second)
        await bus.start()

        bus.publish(_created())
        await bus.drain()
        await bus.stop()

        assert len(first) == len(second) == 1

    @pytest.mark.asyncio
    async def test_event_type_filter(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.register("views", handler, (JobViewed,))
        await bus.start()

        bus.publish(_created())
        bus.publish(JobViewed(view_id="v1", job_id="j1", employer_id="e1"))
        await bus.drain()
        await bus.stop()

        assert [type(e) for e in seen] == [JobViewed]

    @pytest.mark.asyncio
    async def test_duplicate_consumer_name(self):
        bus = EventBus()

        async def handler(event):
            pass

        bus.register("x", handler)
        with pytest.raises(ValueError):
            bus.register("x", handler)

    @pytest.mark.asyncio
    async def test_failing_handler_retried(self):
        """A handler that fails transiently is retried until it succeeds."""
        bus = EventBus(max_attempts=3)
        attempts = []

        async def flaky(event):
            attempts.append(event)
            if len(attempts) < 3:
                raise RuntimeError("transient")

        bus.register("flaky", flaky)
        await bus.start()

        bus.publish(_created())
        await bus.drain()
        await bus.stop()

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_failing_consumer_does_not_stop_worker(self):
        """After giving up on one event the consumer keeps processing."""
        bus = EventBus(max_attempts=1)
        handled = []

        async def handler(event):
            if event.application_id == "bad":
                raise RuntimeError("poison")
            handled.append(event.application_id)

        bus.register("consumer", handler)
        await bus.start()

        bus.publish(_created("bad"))
        bus.publish(_created("good"))
        await bus.drain()
        await bus.stop()

        assert handled == ["good"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_blocking(self):
        """publish never blocks; a full consumer queue drops the event."""
        bus = EventBus(queue_size=2)
        release = asyncio.Event()
        handled = []

        async def slow(event):
            await release.wait()
            handled.append(event)

        bus.register("slow", slow)
        # Not started: nothing drains the queue
        for i in range(5):
            bus.publish(_created(f"a{i}"))

        assert bus.consumers["slow"].queue.qsize() == 2

        await bus.start()
        release.set()
        await bus.drain()
        await bus.stop()

        assert [e.application_id for e in handled] == ["a0", "a1"]

    @pytest.mark.asyncio
    async def test_slow_consumer_does_not_delay_others(self):
        bus = EventBus()
        release = asyncio.Event()
        fast_seen = []

        async def slow(event):
            await release.wait()

        async def fast(event):
            fast_seen.append(event)

        bus.register("slow", slow)
        bus.register("fast", fast)
        await bus.start()

        bus.publish(_created())
        await asyncio.wait_for(bus.consumers["fast"].queue.join(), 1)
        assert len(fast_seen) == 1

        release.set()
        await bus.stop()

    @pytest.mark.asyncio
    async def test_stop_and_running(self):
        bus = EventBus()

        async def handler(event):
            pass

        bus.register("c", handler)
        assert not bus.running
        await bus.start()
        assert bus.running
        await bus.stop()
        assert not bus.running

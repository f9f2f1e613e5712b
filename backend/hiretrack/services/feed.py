"""
Live Feed Fan-out

Turns domain events into short human-readable activity notifications and
pushes them to dashboard subscribers.

    EventBus ──> FeedHub.handle ──> recent window (newest first, capped)
                                └─> FeedSubscription queues (one per dashboard)

The feed is best-effort: a slow subscriber loses its oldest notifications,
never blocks the hub, and never affects counters or snapshots.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, List, Optional, Set

from hiretrack.config import get_settings
from hiretrack.middleware.metrics import update_feed_subscribers
from hiretrack.services.aggregator import Scope
from hiretrack.services.events import (
    ApplicationCreated,
    ApplicationTransitioned,
    DomainEvent,
    JobPosted,
    ProfileCreated,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEvent:
    type: str  # signup, application, job_posted, status_change
    message: str
    timestamp: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    job_id: Optional[str] = None
    application_id: Optional[str] = None
    employer_id: Optional[str] = None
    candidate_id: Optional[str] = None

    def visible_to(self, scope: Scope) -> bool:
        if scope.kind == "platform":
            return True
        if scope.kind == "employer":
            return self.employer_id == scope.id
        return self.candidate_id == scope.id


def to_activity(event: DomainEvent) -> Optional[ActivityEvent]:
    """Build the notification for an event, or None if it is not feed-worthy."""
    if isinstance(event, ProfileCreated):
        return ActivityEvent(
            type="signup",
            message=f"New {event.user_type} signed up",
            timestamp=event.occurred_at,
        )
    if isinstance(event, ApplicationCreated):
        return ActivityEvent(
            type="application",
            message="New job application submitted",
            timestamp=event.occurred_at,
            job_id=event.job_id,
            application_id=event.application_id,
            employer_id=event.employer_id,
            candidate_id=event.candidate_id,
        )
    if isinstance(event, JobPosted):
        return ActivityEvent(
            type="job_posted",
            message="New job posted",
            timestamp=event.occurred_at,
            job_id=event.job_id,
            employer_id=event.employer_id,
        )
    if isinstance(event, ApplicationTransitioned):
        return ActivityEvent(
            type="status_change",
            message=f"Application moved from {event.from_status} to {event.to_status}",
            timestamp=event.occurred_at,
            job_id=event.job_id,
            application_id=event.application_id,
            employer_id=event.employer_id,
            candidate_id=event.candidate_id,
        )
    return None


_CLOSED = object()


class FeedSubscription:
    """
    One dashboard's view of the feed.

    Usage:
        async with hub.subscribe(scope) as subscription:
            async for activity in subscription:
                ...

    Leaving the block (or calling unsubscribe()) releases the subscription
    without affecting other subscribers.
    """

    def __init__(self, hub: "FeedHub", scope: Scope, queue_size: int):
        self.hub = hub
        self.scope = scope
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.closed = False

    def push(self, activity: ActivityEvent) -> None:
        """Enqueue without blocking; a full queue loses its oldest entry."""
        if self.closed or not activity.visible_to(self.scope):
            return
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(activity)

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.hub._remove(self)
        # Wake a pending reader
        while self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "FeedSubscription":
        return self

    async def __anext__(self) -> ActivityEvent:
        item = await self.queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "FeedSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class FeedHub:
    """
    Event bus consumer holding the recent activity window and subscribers.

    Attributes:
        capacity: Size of the recent window
        queue_size: Per-subscriber queue bound
    """

    def __init__(self, capacity: Optional[int] = None, queue_size: Optional[int] = None):
        settings = get_settings()
        self.capacity = capacity or settings.feed_capacity
        self.queue_size = queue_size or settings.subscriber_queue_size
        self._recent: Deque[ActivityEvent] = deque(maxlen=self.capacity)
        self._subscribers: Set[FeedSubscription] = set()

    async def handle(self, event: DomainEvent) -> None:
        """EventBus handler."""
        activity = to_activity(event)
        if activity is not None:
            self.publish(activity)

    def publish(self, activity: ActivityEvent) -> None:
        self._recent.appendleft(activity)
        for subscription in list(self._subscribers):
            subscription.push(activity)

    def recent(self, scope: Scope = Scope()) -> List[ActivityEvent]:
        """Recent notifications visible to scope, newest first."""
        return [a for a in self._recent if a.visible_to(scope)]

    def subscribe(self, scope: Scope = Scope(), replay: bool = True) -> FeedSubscription:
        """
        Open a subscription.

        Args:
            scope: Restricts notifications to one employer or candidate
            replay: Queue the current recent window first, in arrival order
        """
        subscription = FeedSubscription(self, scope, self.queue_size)
        if replay:
            for activity in reversed(self._recent):
                subscription.push(activity)

        self._subscribers.add(subscription)
        update_feed_subscribers(len(self._subscribers))
        logger.debug(f"Feed subscriber added for {scope.key}")
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        """End every open subscription."""
        for subscription in list(self._subscribers):
            subscription.unsubscribe()

    def _remove(self, subscription: FeedSubscription) -> None:
        self._subscribers.discard(subscription)
        update_feed_subscribers(len(self._subscribers))

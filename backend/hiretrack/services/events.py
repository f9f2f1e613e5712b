"""
Domain Events and In-Process Event Bus

Committed writes publish immutable domain events. Each registered consumer
(counter maintainer, live feed) owns a bounded queue and a worker task, so
consumers run independently of each other and of the publisher:

    TransitionEngine --publish--> EventBus
                                   ├── queue → CounterMaintainer.handle
                                   └── queue → FeedHub.handle

Delivery Semantics:
    - publish() never blocks; a full consumer queue drops the event
      (counters heal through reconciliation, the feed is best-effort)
    - a handler that raises is retried up to max_attempts times, so
      handlers must be idempotent (at-least-once)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, ClassVar, Dict, Optional, Tuple, Type

from hiretrack.database import utcnow
from hiretrack.middleware.metrics import record_event_dropped, record_event_published

logger = logging.getLogger(__name__)


# ==================== Events ====================

@dataclass(frozen=True, kw_only=True)
class DomainEvent(ABC):
    """Base class for events published after a successful commit. Not instantiable."""

    event_type: ClassVar[str] = "event"
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    @abstractmethod
    def idempotency_key(self) -> str:
        """Key consumers use to apply the event at most once."""


@dataclass(frozen=True, kw_only=True)
class ApplicationCreated(DomainEvent):
    event_type: ClassVar[str] = "application_created"

    application_id: str
    candidate_id: str
    job_id: str
    employer_id: str

    @property
    def idempotency_key(self) -> str:
        return f"created:{self.application_id}"


@dataclass(frozen=True, kw_only=True)
class ApplicationTransitioned(DomainEvent):
    event_type: ClassVar[str] = "application_transitioned"

    application_id: str
    candidate_id: str
    job_id: str
    employer_id: str
    from_status: str
    to_status: str
    actor_role: str

    @property
    def idempotency_key(self) -> str:
        return f"transition:{self.application_id}:{self.from_status}:{self.to_status}"


@dataclass(frozen=True, kw_only=True)
class JobViewed(DomainEvent):
    event_type: ClassVar[str] = "job_viewed"

    view_id: str
    job_id: str
    employer_id: str

    @property
    def idempotency_key(self) -> str:
        return f"view:{self.view_id}"


@dataclass(frozen=True, kw_only=True)
class JobPosted(DomainEvent):
    event_type: ClassVar[str] = "job_posted"

    job_id: str
    employer_id: str
    title: str

    @property
    def idempotency_key(self) -> str:
        return f"posted:{self.job_id}:{self.occurred_at.isoformat()}"


@dataclass(frozen=True, kw_only=True)
class ProfileCreated(DomainEvent):
    event_type: ClassVar[str] = "profile_created"

    profile_id: str
    user_type: str
    # candidate or employer id created alongside the profile
    account_id: str

    @property
    def idempotency_key(self) -> str:
        return f"profile:{self.profile_id}"


Handler = Callable[[DomainEvent], Awaitable[None]]


# ==================== Bus ====================

@dataclass
class _Consumer:
    name: str
    handler: Handler
    event_types: Optional[Tuple[Type[DomainEvent], ...]]
    queue: asyncio.Queue
    max_attempts: int
    task: Optional[asyncio.Task] = None

    def accepts(self, event: DomainEvent) -> bool:
        return self.event_types is None or isinstance(event, self.event_types)


class EventBus:
    """
    Fan-out of domain events to independent asynchronous consumers.

    Attributes:
        consumers: Registered consumers keyed by name
    """

    def __init__(self, queue_size: int = 1000, max_attempts: int = 3):
        self.queue_size = queue_size
        self.max_attempts = max_attempts
        self.consumers: Dict[str, _Consumer] = {}

    def register(
        self,
        name: str,
        handler: Handler,
        event_types: Optional[Tuple[Type[DomainEvent], ...]] = None,
    ) -> None:
        """
        Register a consumer.

        Args:
            name: Unique consumer name (used in logs and metrics)
            handler: Coroutine called once per delivered event
            event_types: Restrict delivery to these event classes (None = all)
        """
        if name in self.consumers:
            raise ValueError(f"Consumer already registered: {name}")

        consumer = _Consumer(
            name=name,
            handler=handler,
            event_types=event_types,
            queue=asyncio.Queue(maxsize=self.queue_size),
            max_attempts=self.max_attempts,
        )
        self.consumers[name] = consumer

        if self.running:
            consumer.task = asyncio.create_task(self._run(consumer))

    @property
    def running(self) -> bool:
        return any(c.task is not None and not c.task.done() for c in self.consumers.values())

    async def start(self) -> None:
        """Start one worker task per consumer."""
        for consumer in self.consumers.values():
            if consumer.task is None or consumer.task.done():
                consumer.task = asyncio.create_task(self._run(consumer))
        logger.info(f"Event bus started with consumers: {sorted(self.consumers)}")

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending events (bounded by timeout) and stop workers."""
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Event bus stop timed out with undelivered events")

        for consumer in self.consumers.values():
            if consumer.task is not None:
                consumer.task.cancel()
        await asyncio.gather(
            *(c.task for c in self.consumers.values() if c.task is not None),
            return_exceptions=True,
        )
        for consumer in self.consumers.values():
            consumer.task = None

    def publish(self, event: DomainEvent) -> None:
        """Enqueue an event for every interested consumer without blocking."""
        record_event_published(event.event_type)

        for consumer in self.consumers.values():
            if not consumer.accepts(event):
                continue
            try:
                consumer.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    f"Consumer {consumer.name} queue full, dropping {event.event_type}"
                )
                record_event_dropped(consumer.name)

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await asyncio.gather(*(c.queue.join() for c in self.consumers.values()))

    async def _run(self, consumer: _Consumer) -> None:
        while True:
            event = await consumer.queue.get()
            try:
                await self._deliver(consumer, event)
            finally:
                consumer.queue.task_done()

    async def _deliver(self, consumer: _Consumer, event: DomainEvent) -> None:
        for attempt in range(1, consumer.max_attempts + 1):
            try:
                await consumer.handler(event)
                return
            except Exception as e:
                logger.error(
                    f"Consumer {consumer.name} failed on {event.event_type} "
                    f"(attempt {attempt}/{consumer.max_attempts}): {e}"
                )
                if attempt < consumer.max_attempts:
                    await asyncio.sleep(0.05 * attempt)

        record_event_dropped(consumer.name)


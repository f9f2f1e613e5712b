"""
Shared fixtures: a throwaway SQLite entity store, the event bus and the
services wired to it.

A file database (not :memory:) is used so concurrent sessions in one test
see the same data.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hiretrack.database import Base
from hiretrack.models import JobStatus
from hiretrack.services.aggregator import MetricsAggregator
from hiretrack.services.counters import CounterMaintainer
from hiretrack.services.directory import Directory
from hiretrack.services.events import ApplicationCreated, EventBus, JobViewed
from hiretrack.services.feed import FeedHub
from hiretrack.services.jobs import JobService
from hiretrack.services.lifecycle import TransitionEngine


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'hiretrack-test.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def bus():
    event_bus = EventBus()
    yield event_bus
    await event_bus.stop(timeout=1.0)


@pytest.fixture
def engine(session_factory, bus):
    return TransitionEngine(session_factory, bus, timeout=10.0)


@pytest.fixture
def jobs(session_factory, bus):
    return JobService(session_factory, bus, timeout=10.0)


@pytest.fixture
def directory(session_factory, bus):
    return Directory(session_factory, bus, timeout=10.0)


@pytest.fixture
def counters(session_factory):
    return CounterMaintainer(session_factory)


@pytest.fixture
def aggregator(session_factory):
    return MetricsAggregator(session_factory, tz="UTC")


@pytest.fixture
def feed():
    return FeedHub(capacity=50, queue_size=100)


@pytest_asyncio.fixture
async def running_bus(bus, counters, feed):
    """Bus with the counter maintainer and feed registered and started."""
    bus.register("counters", counters.handle, (ApplicationCreated, JobViewed))
    bus.register("feed", feed.handle)
    await bus.start()
    return bus


@pytest_asyncio.fixture
async def employer(directory):
    _, account = await directory.register_employer("hiring@acme.test", "Acme")
    return account


@pytest_asyncio.fixture
async def candidate(directory):
    _, account = await directory.register_candidate("ada@example.test", display_name="Ada")
    return account


@pytest_asyncio.fixture
async def published_job(jobs, employer):
    job = await jobs.create_job(employer.id, "Platform Engineer")
    job = await jobs.publish(job.id, employer.id)
    assert job.status == JobStatus.PUBLISHED.value
    return job

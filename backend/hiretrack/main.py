"""
HireTrack API - Main Application Entry Point

This module initializes the FastAPI application with:
- Database connection and schema initialization
- Event bus with the counter maintainer and live feed consumers
- Background snapshot refresh scheduler
- CORS middleware for dashboard communication
- Prometheus metrics and API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    │   └── app.state: engine, jobs, directory, counters, aggregator, feed, cache
    ├── CORS Middleware
    ├── Prometheus Middleware (/metrics)
    └── API Router
        ├── /applications - Submit, transition, rate, schedule
        ├── /jobs - Job lifecycle, views, bookmarks
        ├── /accounts - Candidate and employer signup
        ├── /stats - Dashboard snapshots and reconciliation
        └── /feed - Live activity (SSE) and recent window
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hiretrack.api import api_router
from hiretrack.config import get_settings
from hiretrack.database import async_session, init_db
from hiretrack.middleware.metrics import setup_metrics
from hiretrack.scheduler import start_scheduler, stop_scheduler
from hiretrack.services.aggregator import MetricsAggregator
from hiretrack.services.cache import get_cache
from hiretrack.services.counters import CounterMaintainer
from hiretrack.services.directory import Directory, EmailAlreadyRegistered
from hiretrack.services.events import ApplicationCreated, EventBus, JobViewed
from hiretrack.services.feed import FeedHub
from hiretrack.services.jobs import JobService
from hiretrack.services.lifecycle import (
    DuplicateApplication,
    IllegalTransition,
    InvalidRating,
    InvalidSchedule,
    JobNotAcceptingApplications,
    LifecycleError,
    NotFound,
    OperationTimeout,
    StoreUnavailable,
    TransitionConflict,
    TransitionEngine,
    Unauthorized,
)

logger = logging.getLogger(__name__)

settings = get_settings()

ERROR_STATUS: Dict[Type[LifecycleError], int] = {
    NotFound: 404,
    Unauthorized: 403,
    IllegalTransition: 409,
    DuplicateApplication: 409,
    JobNotAcceptingApplications: 409,
    TransitionConflict: 409,
    EmailAlreadyRegistered: 409,
    InvalidRating: 422,
    InvalidSchedule: 422,
    StoreUnavailable: 503,
    OperationTimeout: 504,
}


def wire_services(app: FastAPI, session_factory=async_session) -> EventBus:
    """
    Build the services and register the event consumers on app.state.

    Returns:
        The (not yet started) event bus
    """
    bus = EventBus()
    app.state.bus = bus
    app.state.engine = TransitionEngine(session_factory, bus)
    app.state.jobs = JobService(session_factory, bus)
    app.state.directory = Directory(session_factory, bus)
    app.state.counters = CounterMaintainer(session_factory)
    app.state.aggregator = MetricsAggregator(session_factory)
    app.state.feed = FeedHub()

    bus.register("counters", app.state.counters.handle, (ApplicationCreated, JobViewed))
    bus.register("feed", app.state.feed.handle)
    return bus


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables
        2. Wire services and start event bus consumers
        3. Start the snapshot refresh scheduler

    Shutdown:
        1. Stop the scheduler
        2. End feed subscriptions and drain the event bus
        3. Close the Redis cache

    Yields:
        Control to the application during its runtime
    """
    await init_db()
    bus = wire_services(app)
    app.state.cache = await get_cache()
    await bus.start()
    start_scheduler(app.state.aggregator, app.state.cache)
    yield
    stop_scheduler()
    app.state.feed.close()
    await bus.stop()
    await app.state.cache.close()


app = FastAPI(
    title="HireTrack API",
    description="Application lifecycle, counters and hiring dashboards",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)

app.include_router(api_router)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    status_code = next(
        (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
        400,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.reason, "detail": str(exc)},
    )


@app.get("/health")
async def health_check(request: Request):
    """Liveness plus Redis reachability and snapshot cache hit rates."""
    health = {"status": "healthy"}
    cache = getattr(request.app.state, "cache", None)
    if cache is not None:
        health["cache"] = {"connected": await cache.health_check(), **cache.get_stats()}
    return health

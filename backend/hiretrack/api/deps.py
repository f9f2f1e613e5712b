"""Request-scoped access to the services wired onto app.state at startup."""

from typing import Optional

from fastapi import HTTPException, Request, status

from hiretrack.auth import Actor
from hiretrack.services.aggregator import MetricsAggregator, Scope
from hiretrack.services.cache import SnapshotCache
from hiretrack.services.counters import CounterMaintainer
from hiretrack.services.directory import Directory
from hiretrack.services.feed import FeedHub
from hiretrack.services.jobs import JobService
from hiretrack.services.lifecycle import ActorRole, TransitionEngine


def get_engine(request: Request) -> TransitionEngine:
    return request.app.state.engine


def get_job_service(request: Request) -> JobService:
    return request.app.state.jobs


def get_directory(request: Request) -> Directory:
    return request.app.state.directory


def get_counters(request: Request) -> CounterMaintainer:
    return request.app.state.counters


def get_aggregator(request: Request) -> MetricsAggregator:
    return request.app.state.aggregator


def get_feed(request: Request) -> FeedHub:
    return request.app.state.feed


def get_snapshot_cache(request: Request) -> Optional[SnapshotCache]:
    return getattr(request.app.state, "cache", None)


def resolve_scope(actor: Actor, kind: Optional[str], scope_id: Optional[str]) -> Scope:
    """
    Pick the dashboard scope for an actor.

    Admins may read any scope. Employers and candidates only read their own,
    and default to it when no scope is given.
    """
    if kind is None:
        kind = "platform" if actor.role == ActorRole.ADMIN else actor.role.value
    if kind != "platform" and scope_id is None and actor.role.value == kind:
        scope_id = actor.id

    try:
        scope = Scope.parse(kind, scope_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if actor.role == ActorRole.ADMIN:
        return scope
    if scope.kind != actor.role.value or scope.id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Scope not permitted")
    return scope

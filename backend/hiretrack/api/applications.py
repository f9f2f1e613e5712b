from datetime import timezone
from typing import List

from fastapi import APIRouter, Depends

from hiretrack.api.deps import get_engine, get_job_service
from hiretrack.auth import Actor, get_current_actor, require_role
from hiretrack.models import Application
from hiretrack.schemas import (
    ApplicationResponse,
    InterviewRequest,
    RatingRequest,
    SubmitRequest,
    TransitionRecord,
    TransitionRequest,
)
from hiretrack.services.jobs import JobService
from hiretrack.services.lifecycle import ActorRole, TransitionEngine, Unauthorized, allowed_targets

router = APIRouter()


def _naive_utc(value):
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_response(application: Application, actor: Actor) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.next_statuses = [s.value for s in allowed_targets(application.status, actor.role.value)]
    return response


async def _check_can_read(
    application: Application, actor: Actor, jobs: JobService
) -> None:
    if actor.role == ActorRole.ADMIN:
        return
    if actor.role == ActorRole.CANDIDATE and application.candidate_id == actor.id:
        return
    if actor.role == ActorRole.EMPLOYER:
        job = await jobs.get_job(application.job_id)
        if job.employer_id == actor.id:
            return
    raise Unauthorized(f"{actor.role.value} {actor.id} may not read application {application.id}")


@router.post("", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    body: SubmitRequest,
    engine: TransitionEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.CANDIDATE)
    application = await engine.submit(actor.id, body.job_id, body.candidate_notes)
    return _to_response(application, actor)


@router.post("/{application_id}/transition", response_model=ApplicationResponse)
async def transition_application(
    application_id: str,
    body: TransitionRequest,
    engine: TransitionEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_actor),
):
    application = await engine.transition(
        application_id,
        actor.role.value,
        body.target_status,
        actor_id=actor.id,
        interview_scheduled_at=_naive_utc(body.interview_scheduled_at),
    )
    return _to_response(application, actor)


@router.put("/{application_id}/rating", response_model=ApplicationResponse)
async def rate_application(
    application_id: str,
    body: RatingRequest,
    engine: TransitionEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    application = await engine.rate(application_id, actor.id, body.stars)
    return _to_response(application, actor)


@router.put("/{application_id}/interview", response_model=ApplicationResponse)
async def schedule_interview(
    application_id: str,
    body: InterviewRequest,
    engine: TransitionEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    application = await engine.schedule_interview(
        application_id, actor.id, _naive_utc(body.scheduled_at)
    )
    return _to_response(application, actor)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    engine: TransitionEngine = Depends(get_engine),
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    application = await engine.get_application(application_id)
    await _check_can_read(application, actor, jobs)
    return _to_response(application, actor)


@router.get("/{application_id}/history", response_model=List[TransitionRecord])
async def get_history(
    application_id: str,
    engine: TransitionEngine = Depends(get_engine),
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    application = await engine.get_application(application_id)
    await _check_can_read(application, actor, jobs)
    rows = await engine.history(application_id)
    return [TransitionRecord.model_validate(row) for row in rows]

from fastapi import APIRouter, Depends

from hiretrack.api.deps import get_job_service
from hiretrack.auth import Actor, get_current_actor, require_role
from hiretrack.schemas import JobCreate, JobResponse, JobViewResponse, SavedJobResponse
from hiretrack.services.jobs import JobService
from hiretrack.services.lifecycle import ActorRole

router = APIRouter()


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    body: JobCreate,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    job = await jobs.create_job(actor.id, body.title)
    return JobResponse.model_validate(job)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    _: Actor = Depends(get_current_actor),
):
    job = await jobs.get_job(job_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/publish", response_model=JobResponse)
async def publish_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    return JobResponse.model_validate(await jobs.publish(job_id, actor.id))


@router.post("/{job_id}/close", response_model=JobResponse)
async def close_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    return JobResponse.model_validate(await jobs.close(job_id, actor.id))


@router.post("/{job_id}/fill", response_model=JobResponse)
async def fill_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    return JobResponse.model_validate(await jobs.mark_filled(job_id, actor.id))


@router.post("/{job_id}/reopen", response_model=JobResponse)
async def reopen_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.EMPLOYER)
    return JobResponse.model_validate(await jobs.reopen(job_id, actor.id))


@router.post("/{job_id}/views", response_model=JobViewResponse, status_code=201)
async def record_view(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    _: Actor = Depends(get_current_actor),
):
    view = await jobs.record_view(job_id)
    return JobViewResponse.model_validate(view)


@router.post("/{job_id}/save", response_model=SavedJobResponse)
async def save_job(
    job_id: str,
    jobs: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, ActorRole.CANDIDATE)
    saved = await jobs.save_job(actor.id, job_id)
    return SavedJobResponse.model_validate(saved)

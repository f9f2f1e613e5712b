from fastapi import APIRouter, Depends

from hiretrack.api.deps import get_directory
from hiretrack.schemas import AccountResponse, CandidateCreate, EmployerCreate
from hiretrack.services.directory import Directory

router = APIRouter()


@router.post("/candidates", response_model=AccountResponse, status_code=201)
async def register_candidate(
    body: CandidateCreate,
    directory: Directory = Depends(get_directory),
):
    profile, candidate = await directory.register_candidate(
        body.email, display_name=body.display_name, headline=body.headline
    )
    return AccountResponse(
        profile_id=profile.id,
        account_id=candidate.id,
        user_type=profile.user_type,
        created_at=profile.created_at,
    )


@router.post("/employers", response_model=AccountResponse, status_code=201)
async def register_employer(
    body: EmployerCreate,
    directory: Directory = Depends(get_directory),
):
    profile, employer = await directory.register_employer(
        body.email, body.company_name, display_name=body.display_name
    )
    return AccountResponse(
        profile_id=profile.id,
        account_id=employer.id,
        user_type=profile.user_type,
        created_at=profile.created_at,
    )

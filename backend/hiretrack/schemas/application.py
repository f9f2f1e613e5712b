from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class SubmitRequest(BaseModel):
    job_id: str
    candidate_notes: Optional[str] = Field(None, max_length=5000)


class TransitionRequest(BaseModel):
    target_status: str
    interview_scheduled_at: Optional[datetime] = None


class RatingRequest(BaseModel):
    stars: int = Field(..., ge=1, le=5)


class InterviewRequest(BaseModel):
    scheduled_at: datetime


class ApplicationResponse(BaseModel):
    id: str
    candidate_id: str
    job_id: str
    status: str
    match_score: Optional[float] = None
    employer_rating: Optional[int] = None
    candidate_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    responded_at: Optional[datetime] = None
    interview_scheduled_at: Optional[datetime] = None
    version: int
    next_statuses: list[str] = []

    class Config:
        from_attributes = True


class TransitionRecord(BaseModel):
    from_status: str
    to_status: str
    actor_role: str
    actor_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

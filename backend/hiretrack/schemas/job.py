from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)


class JobResponse(BaseModel):
    id: str
    employer_id: str
    title: str
    status: str
    applications_count: int
    views_count: int
    created_at: datetime
    published_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class JobViewResponse(BaseModel):
    id: str
    job_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class SavedJobResponse(BaseModel):
    id: str
    candidate_id: str
    job_id: str
    created_at: datetime

    class Config:
        from_attributes = True

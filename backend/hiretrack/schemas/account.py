from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CandidateCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    display_name: Optional[str] = None
    headline: Optional[str] = None


class EmployerCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    company_name: str = Field(..., min_length=1, max_length=300)
    display_name: Optional[str] = None


class AccountResponse(BaseModel):
    profile_id: str
    account_id: str
    user_type: str
    created_at: datetime

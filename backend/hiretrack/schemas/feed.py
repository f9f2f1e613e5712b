from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ActivityEventResponse(BaseModel):
    id: str
    type: str
    message: str
    timestamp: datetime
    job_id: Optional[str] = None
    application_id: Optional[str] = None

    class Config:
        from_attributes = True

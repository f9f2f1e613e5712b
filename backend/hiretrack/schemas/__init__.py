from hiretrack.schemas.application import (
    SubmitRequest,
    TransitionRequest,
    RatingRequest,
    InterviewRequest,
    ApplicationResponse,
    TransitionRecord,
)
from hiretrack.schemas.job import JobCreate, JobResponse, JobViewResponse, SavedJobResponse
from hiretrack.schemas.account import CandidateCreate, EmployerCreate, AccountResponse
from hiretrack.schemas.stats import MetricSnapshot, TimeSeries, ReconcileResponse, JobDriftResponse
from hiretrack.schemas.feed import ActivityEventResponse

__all__ = [
    "SubmitRequest",
    "TransitionRequest",
    "RatingRequest",
    "InterviewRequest",
    "ApplicationResponse",
    "TransitionRecord",
    "JobCreate",
    "JobResponse",
    "JobViewResponse",
    "SavedJobResponse",
    "CandidateCreate",
    "EmployerCreate",
    "AccountResponse",
    "MetricSnapshot",
    "TimeSeries",
    "ReconcileResponse",
    "JobDriftResponse",
    "ActivityEventResponse",
]

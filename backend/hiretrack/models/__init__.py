from hiretrack.models.status import ApplicationStatus, JobStatus, UserType
from hiretrack.models.account import Profile, Candidate, Employer
from hiretrack.models.job import Job, JobView, SavedJob
from hiretrack.models.application import Application, ApplicationTransition
from hiretrack.models.event_ledger import ProcessedEvent

__all__ = [
    "ApplicationStatus",
    "JobStatus",
    "UserType",
    "Profile",
    "Candidate",
    "Employer",
    "Job",
    "JobView",
    "SavedJob",
    "Application",
    "ApplicationTransition",
    "ProcessedEvent",
]

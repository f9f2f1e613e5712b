"""
Status vocabularies for applications, jobs and accounts.

Both enums inherit from ``(str, Enum)`` so members compare equal to the
plain strings stored in the database and serialize unchanged in JSON.
"""

from enum import Enum


class ApplicationStatus(str, Enum):
    """Pipeline stage of one candidate's application to one job.

    pending → reviewing → shortlisted → interviewed → offered → hired
    rejected and withdrawn are terminal side exits.
    """

    PENDING = "pending"
    REVIEWING = "reviewing"
    SHORTLISTED = "shortlisted"
    INTERVIEWED = "interviewed"
    OFFERED = "offered"
    HIRED = "hired"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class JobStatus(str, Enum):
    """Job posting lifecycle. Only published jobs accept applications."""

    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"
    FILLED = "filled"


class UserType(str, Enum):
    CANDIDATE = "candidate"
    EMPLOYER = "employer"
    ADMIN = "admin"

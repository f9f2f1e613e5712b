"""
Application Model - one candidate's submission to one job

Applications are created by the submit path and afterwards mutated only
by the transition engine. Rows are never deleted; withdrawal is a status.

Status Flow:
    pending → reviewing → shortlisted → interviewed → offered → hired
    pending/reviewing/shortlisted/interviewed → rejected (employer)
    pending/reviewing → withdrawn (candidate)
"""

from sqlalchemy import Column, String, Integer, Float, Text, DateTime, ForeignKey, Index, text
from hiretrack.database import Base, utcnow
from hiretrack.models.status import ApplicationStatus
import uuid


class Application(Base):
    """
    Candidate application with employer-side review state.

    Attributes:
        id: UUID primary key
        candidate_id/job_id: Immutable foreign keys
        status: ApplicationStatus value (indexed)
        match_score: External relevance score in [0, 1] (read-only here)
        employer_rating: 1-5 stars from the owning employer
        candidate_notes: Free text captured at submission
        responded_at: First employer-initiated move away from pending
        interview_scheduled_at: Only meaningful while interviewed
        version: Optimistic concurrency counter, bumped on every write
    """

    __tablename__ = "applications"
    __table_args__ = (
        # At most one non-withdrawn application per (candidate, job)
        Index(
            "uq_applications_active_pair",
            "candidate_id",
            "job_id",
            unique=True,
            sqlite_where=text("status != 'withdrawn'"),
            postgresql_where=text("status != 'withdrawn'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    status = Column(
        String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True
    )
    match_score = Column(Float, nullable=True)
    employer_rating = Column(Integer, nullable=True)
    candidate_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    responded_at = Column(DateTime, nullable=True)
    interview_scheduled_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)


class ApplicationTransition(Base):
    """
    Append-only log of committed status changes.

    One row per successful transition. Used for audits of the status graph
    and for time-to-hire metrics.
    """

    __tablename__ = "application_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(String, ForeignKey("applications.id"), nullable=False, index=True)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False, index=True)
    actor_role = Column(String(20), nullable=False)
    actor_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

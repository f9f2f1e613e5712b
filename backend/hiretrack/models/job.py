"""
Job Model - employer postings and their denormalized counters

applications_count and views_count are caches of COUNT(*) over the
applications and job_views tables. Only the counter maintainer writes
them, and reconciliation can always rebuild them from rows.

Status Flow:
    draft → published → closed/filled, closed → published
"""

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from hiretrack.database import Base, utcnow
from hiretrack.models.status import JobStatus
import uuid


class Job(Base):
    """
    Job posting entity owned by one employer.

    Attributes:
        id: UUID primary key
        employer_id: Owning employer
        title: Job title (max 500 chars)
        status: JobStatus value (indexed)
        applications_count: Applications ever submitted (never negative)
        views_count: Detail page renders (never negative)
        published_at: Most recent publish time
    """

    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint("applications_count >= 0", name="ck_jobs_applications_count"),
        CheckConstraint("views_count >= 0", name="ck_jobs_views_count"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    employer_id = Column(String, ForeignKey("employers.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.DRAFT.value, index=True)
    applications_count = Column(Integer, nullable=False, default=0)
    views_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    published_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class JobView(Base):
    """One rendered job detail page. Views are not deduplicated by viewer."""

    __tablename__ = "job_views"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class SavedJob(Base):
    __tablename__ = "saved_jobs"
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_id", name="uq_saved_jobs_candidate_job"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

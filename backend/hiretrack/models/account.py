"""
Account Models - identity anchors referenced by jobs and applications

A Profile is one signup. Candidates and employers hang off a profile and
own applications and jobs respectively.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey
from hiretrack.database import Base, utcnow
import uuid


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_type = Column(String(20), nullable=False, index=True)
    email = Column(String(320), nullable=False, unique=True)
    display_name = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, unique=True)
    headline = Column(String(300), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class Employer(Base):
    __tablename__ = "employers"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, unique=True)
    company_name = Column(String(300), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

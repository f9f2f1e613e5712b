"""
Processed-event ledger used as the idempotency store for counter updates.

Keys look like ``created:<application id>`` or ``view:<view id>``. A key is
inserted in the same transaction as the counter increment it guards, so a
redelivered event finds its key and becomes a no-op.
"""

from sqlalchemy import Column, String, DateTime
from hiretrack.database import Base, utcnow


class ProcessedEvent(Base):
    __tablename__ = "processed_events"

    key = Column(String(120), primary_key=True)
    kind = Column(String(30), nullable=False)
    processed_at = Column(DateTime, nullable=False, default=utcnow)

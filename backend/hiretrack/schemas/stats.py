"""
Metric snapshot schemas.

A snapshot is derived, never authoritative: every field can be rebuilt
from the entity store at any time.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Dict, List, Optional


class MetricSnapshot(BaseModel):
    scope: str
    scope_id: Optional[str] = None
    generated_at: datetime
    # entity → all-time count
    totals: Dict[str, int] = Field(default_factory=dict)
    # application status → count, every status present
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    # window → entity → count since window start
    windows: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    # window → entity → percent change vs the preceding equal-length window
    growth: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    rates: Dict[str, int] = Field(default_factory=dict)
    averages: Dict[str, float] = Field(default_factory=dict)
    timings: Dict[str, Optional[float]] = Field(default_factory=dict)
    # placeholder metrics with no data source yet
    not_implemented: List[str] = Field(default_factory=list)
    # fields that defaulted to zero after a store failure
    degraded: List[str] = Field(default_factory=list)


class TimeSeries(BaseModel):
    scope: str
    scope_id: Optional[str] = None
    days: List[date]
    series: Dict[str, List[int]]
    degraded: List[str] = Field(default_factory=list)


class JobDriftResponse(BaseModel):
    job_id: str
    applications_before: int
    applications_after: int
    views_before: int
    views_after: int


class ReconcileResponse(BaseModel):
    jobs_corrected: int
    drifted: List[JobDriftResponse]

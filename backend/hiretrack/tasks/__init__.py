"""
Celery Task Modules

Background tasks for counter maintenance:
- counters.py: Counter reconciliation and snapshot refresh
"""

from hiretrack.tasks.counters import (
    reconcile_job_counters,
    refresh_snapshot,
)

__all__ = [
    "reconcile_job_counters",
    "refresh_snapshot",
]

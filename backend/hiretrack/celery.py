"""
Celery Application Configuration

Configures Celery for background maintenance with:
- Redis as message broker and result backend
- Periodic counter reconciliation via Celery beat
- Task autodiscovery from hiretrack.tasks

Usage:
    # Start worker:
    celery -A hiretrack.celery worker --loglevel=info

    # Start beat scheduler (for periodic tasks):
    celery -A hiretrack.celery beat --loglevel=info

    # Enqueue a task:
    from hiretrack.tasks.counters import reconcile_job_counters
    reconcile_job_counters.delay(["job-123"])
"""

from celery import Celery
from hiretrack.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "hiretrack",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Configure Celery
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Fair task distribution
    worker_concurrency=2,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour
    task_track_started=True,

    # Retry settings
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,

    task_routes={
        "hiretrack.tasks.counters.reconcile_job_counters": {"queue": "maintenance"},
        "hiretrack.tasks.counters.refresh_snapshot": {"queue": "metrics"},
    },

    # Periodic drift healing
    beat_schedule={
        "reconcile-job-counters": {
            "task": "hiretrack.tasks.counters.reconcile_job_counters",
            "schedule": settings.reconcile_interval_minutes * 60.0,
        },
    },

    # Default queue
    task_default_queue="default",
)

# Autodiscover tasks
celery_app.autodiscover_tasks(["hiretrack.tasks"])

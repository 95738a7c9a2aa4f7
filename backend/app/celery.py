"""
Celery Application Configuration

Configures Celery for background match recomputation with:
- Redis as message broker and result backend
- Task autodiscovery from app.tasks module
- Retry policies for reliability
- A dedicated scoring queue

Usage:
    # Start worker:
    celery -A app.celery worker -Q scoring,default --loglevel=info

    # Enqueue a task:
    from app.tasks.matches import recompute_candidate_matches
    recompute_candidate_matches.delay(42, 20)
"""

from celery import Celery
from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "accessibility_matching",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Fair task distribution
    worker_concurrency=4,

    # Result settings
    result_expires=3600,
    task_track_started=True,

    # Retry settings
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,

    task_routes={
        "app.tasks.matches.recompute_candidate_matches": {"queue": "scoring"},
        "app.tasks.matches.recompute_job_matches": {"queue": "scoring"},
    },

    task_default_queue="default",
)

celery_app.autodiscover_tasks(["app.tasks"])

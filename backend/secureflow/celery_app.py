"""Celery application: Redis broker, pipeline queues and the scan beat schedule."""

from celery import Celery
from celery.schedules import crontab

from secureflow.config import settings

celery_app = Celery(
    "secureflow",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["secureflow.tasks.analysis", "secureflow.tasks.scheduling"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=86400,
    timezone="UTC",
    enable_utc=True,
    # A job is only acked after the orchestrator returns
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_routes={
        "secureflow.tasks.analysis.*": {"queue": "pipeline"},
        "secureflow.tasks.scheduling.*": {"queue": "scheduling"},
    },
)

celery_app.conf.beat_schedule = {
    "daily-security-scans": {
        "task": "secureflow.tasks.scheduling.run_scheduled_analyses",
        "schedule": crontab(hour=2, minute=0),
        "args": ("DAILY",),
    },
    "weekly-security-scans": {
        "task": "secureflow.tasks.scheduling.run_scheduled_analyses",
        "schedule": crontab(hour=1, minute=0, day_of_week="sunday"),
        "args": ("WEEKLY",),
    },
}

"""Celery application configuration."""

from datetime import timedelta

from celery import Celery

from ..config import settings

# Create Celery application
celery_app = Celery(
    "astra",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["astra.tasks.report_tasks"],
)

# Configure Celery
celery_app.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "check-scheduled-reports": {
        "task": "astra.tasks.report_tasks.check_scheduled_reports",
        "schedule": timedelta(seconds=settings.scheduler_check_interval_seconds),
    },
}

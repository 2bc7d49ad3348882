"""Celery application and reclamation schedule."""

import logging

from celery import Celery
from celery.schedules import crontab

from media_lifecycle.config import settings

logging.basicConfig(level=settings.log_level.upper())

celery_app = Celery(
    "media_lifecycle",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["media_lifecycle.tasks.reclamation"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    beat_schedule={
        "reclaim-assets-daily": {
            "task": "media_lifecycle.tasks.reclamation.reclaim_assets",
            "schedule": crontab(
                hour=settings.reclamation_cron_hour,
                minute=settings.reclamation_cron_minute,
            ),
        },
    },
)

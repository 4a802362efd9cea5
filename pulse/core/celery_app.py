"""
Celery application configuration.

Redis is both the message broker and result backend. Workers run the email
hand-off tasks; Celery beat runs the auth maintenance sweeps.
"""

from celery import Celery
from celery.schedules import crontab
from pulse.core.config import settings

celery_app = Celery(
    "pulse_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_time_limit=120,
    task_soft_time_limit=90,

    # Result backend
    result_expires=3600,  # Results expire after 1 hour

    # Worker behavior
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=200,

    beat_schedule={
        "purge-stale-sessions": {
            "task": "purge_stale_sessions",
            "schedule": crontab(hour=3, minute=0),
        },
        "cleanup-expired-single-use-tokens": {
            "task": "cleanup_expired_single_use_tokens",
            "schedule": crontab(minute=15),
        },
    },
)

celery_app.autodiscover_tasks(["pulse"])

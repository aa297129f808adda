"""
tasks/celery_app.py
Celery application instance, shared across all task modules.

Workers are started with:
    celery -A tasks.celery_app worker --loglevel=info --concurrency=2

Beat scheduler (periodic tasks):
    celery -A tasks.celery_app beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from config.settings import settings

celery_app = Celery(
    "wwjd_guidance",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.CELERY_BROKER_URL,
    include=[
        "tasks.digest_tasks",
    ],
)

# ── Configuration ─────────────────────────────────────────────────────────────

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Acknowledge after execution so a dying worker does not lose a digest run
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result expiry: keep task results for 1 hour
    result_expires=3600,

    task_annotations={
        "tasks.digest_tasks.send_digests": {"rate_limit": "1/m"},
    },

    task_routes={
        "tasks.digest_tasks.*": {"queue": "email"},
    },

    # Worker prefetch: 1 task at a time for long-running tasks
    worker_prefetch_multiplier=1,
)

# ── Periodic Tasks (Beat Schedule) ────────────────────────────────────────────

celery_app.conf.beat_schedule = {
    # Every morning at 07:00 UTC
    "send-daily-digests": {
        "task": "tasks.digest_tasks.send_digests",
        "schedule": crontab(hour=7, minute=0),
        "args": ("daily",),
    },

    # Mondays
    "send-weekly-digests": {
        "task": "tasks.digest_tasks.send_digests",
        "schedule": crontab(hour=7, minute=0, day_of_week=1),
        "args": ("weekly",),
    },

    # First of the month
    "send-monthly-digests": {
        "task": "tasks.digest_tasks.send_digests",
        "schedule": crontab(hour=7, minute=0, day_of_month=1),
        "args": ("monthly",),
    },
}

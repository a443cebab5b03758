"""
prizepool/tasks/celery_app.py
Celery application for settlement, notification and sweep tasks

Run a worker:   celery -A prizepool.tasks.celery_app worker -l info
Run the beat:   celery -A prizepool.tasks.celery_app beat -l info
"""
from celery import Celery

from prizepool.config.settings import CELERY_BROKER_URL, REDIS_URL
from prizepool.tasks.sweep import get_celery_beat_schedule

celery_app = Celery(
    "prizepool",
    broker=CELERY_BROKER_URL,
    backend=REDIS_URL,
    include=[
        "prizepool.tasks.settlement_tasks",
        "prizepool.tasks.notification_tasks",
        "prizepool.tasks.sweep",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    beat_schedule=get_celery_beat_schedule(),
)

"""
Background work: settlement jobs, notification delivery and the
auto-start sweep.

Importing the package loads the configured Celery app so shared tasks
enqueue through its broker and settings.
"""
from prizepool.tasks.celery_app import celery_app

__all__ = ("celery_app",)

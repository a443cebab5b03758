"""
Notification delivery task.
POSTs settlement notifications to the configured webhook.
"""
import logging
from typing import Any, Dict

import httpx
from celery import shared_task

from prizepool.config.settings import NOTIFICATION_WEBHOOK_URL

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def deliver_notification(self, message: Dict[str, Any]):
    """Deliver one notification; retried on HTTP failures."""
    if not NOTIFICATION_WEBHOOK_URL:
        logger.info(f"No webhook configured, notification {message.get('kind')} for {message.get('user_id')} logged only")
        return {"status": "logged"}

    try:
        response = httpx.post(NOTIFICATION_WEBHOOK_URL, json=message, timeout=10.0)
        response.raise_for_status()
        return {"status": "delivered", "code": response.status_code}
    except httpx.HTTPError as e:
        logger.error(f"Notification delivery failed for {message.get('user_id')}: {e}")
        raise self.retry(exc=e, countdown=15 * (2 ** self.request.retries))

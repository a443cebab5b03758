"""
Player notifications for settlement events.

Fire-and-forget: a failed notification is logged and never affects
the settlement that triggered it. With FEATURE_ASYNC_SETTLEMENT the
message is handed to the Celery delivery task; otherwise it is logged.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from prizepool.config.feature_flags import feature_flags
from prizepool.core.money import Number, to_json_amount

logger = logging.getLogger(__name__)


class NotificationKind:
    PRIZE_CREDITED = "PRIZE_CREDITED"
    REFUND_ISSUED = "REFUND_ISSUED"
    TOURNAMENT_STARTED = "TOURNAMENT_STARTED"


class NotificationService:
    def __init__(self, async_enabled: Optional[bool] = None):
        if async_enabled is None:
            async_enabled = feature_flags.FEATURE_ASYNC_SETTLEMENT
        self.async_enabled = async_enabled

    async def _send(self, user_id: str, kind: str, payload: Dict[str, Any]) -> bool:
        message = {"user_id": user_id, "kind": kind, "payload": payload}
        try:
            if self.async_enabled:
                from prizepool.tasks.notification_tasks import deliver_notification
                deliver_notification.delay(message)
            else:
                logger.info(f"Notification {kind} -> {user_id}: {payload}")
            return True
        except Exception as e:
            logger.error(f"Failed to send {kind} notification to {user_id}: {e}")
            return False

    async def notify_prize_credited(self, user_id: str, amount: Number, tournament_title: str,
                                    rank: Optional[int] = None) -> bool:
        return await self._send(user_id, NotificationKind.PRIZE_CREDITED, {
            "amount": to_json_amount(amount),
            "tournament": tournament_title,
            "rank": rank,
        })

    async def notify_refund_issued(self, user_id: str, amount: Number, tournament_title: str) -> bool:
        return await self._send(user_id, NotificationKind.REFUND_ISSUED, {
            "amount": to_json_amount(amount),
            "tournament": tournament_title,
        })

    async def notify_tournament_started(self, user_ids: Iterable[str], tournament_id: int,
                                        tournament_title: str) -> int:
        """Returns how many notifications were handed off."""
        sent = 0
        for user_id in user_ids:
            if await self._send(user_id, NotificationKind.TOURNAMENT_STARTED, {
                "tournament_id": tournament_id,
                "tournament": tournament_title,
            }):
                sent += 1
        return sent

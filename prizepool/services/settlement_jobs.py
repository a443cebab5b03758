"""
Settlement jobs triggered by lifecycle transitions.

The same entry point runs in-process (InlineDispatcher) or inside a
Celery worker (run_settlement_job_task).
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.exceptions import TournamentNotFound
from prizepool.orm.tournament import Tournament, TournamentParticipant, PaymentStatus
from prizepool.services.escrow_service import EscrowService
from prizepool.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

JOB_LOCK_POOL = "lock_pool"
JOB_DISTRIBUTE = "distribute"
JOB_REFUND = "refund"
JOB_NOTIFY_START = "notify_start"

SETTLEMENT_JOBS = (JOB_LOCK_POOL, JOB_DISTRIBUTE, JOB_REFUND, JOB_NOTIFY_START)


async def _notify_start(db: AsyncSession, tournament_id: int, notifier: NotificationService) -> Dict[str, Any]:
    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        raise TournamentNotFound(tournament_id)
    result = await db.execute(
        select(TournamentParticipant.user_id).where(
            TournamentParticipant.tournament_id == tournament_id,
            TournamentParticipant.payment_status == PaymentStatus.PAID.value,
        )
    )
    sent = await notifier.notify_tournament_started(result.scalars().all(), tournament_id, tournament.title)
    return {"tournament_id": tournament_id, "notified": sent}


async def run_settlement_job(
    db: AsyncSession,
    job: str,
    tournament_id: int,
    actor_id: Optional[str],
    escrow: Optional[EscrowService] = None,
    notifier: Optional[NotificationService] = None,
) -> Dict[str, Any]:
    """Execute one settlement job. Domain errors propagate to the caller."""
    escrow = escrow or EscrowService()
    notifier = notifier or escrow.notifier

    logger.info(f"Running settlement job {job} for tournament {tournament_id}")

    if job == JOB_LOCK_POOL:
        pool = await escrow.lock_pool(db, tournament_id, actor_id)
        return pool.to_dict()
    if job == JOB_DISTRIBUTE:
        return await escrow.distribute_pool(db, tournament_id, actor_id)
    if job == JOB_REFUND:
        return await escrow.refund_pool(db, tournament_id, actor_id)
    if job == JOB_NOTIFY_START:
        return await _notify_start(db, tournament_id, notifier)

    raise ValueError(f"Unknown settlement job: {job}")

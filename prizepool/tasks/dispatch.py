"""
prizepool/tasks/dispatch.py
Hand-off of post-transition settlement jobs.

Both dispatchers are fail-soft: a failed job or enqueue is logged and
reported as False, never raised into the transition that triggered it.
Operators can re-trigger distribute/refund manually.
"""
import logging
from typing import Optional

from prizepool.config.feature_flags import feature_flags
from prizepool.exceptions import SettlementError
from prizepool.services.escrow_service import EscrowService
from prizepool.services.settlement_jobs import run_settlement_job

logger = logging.getLogger(__name__)


class InlineDispatcher:
    """Runs the job in-process, in its own session, right after the transition commits."""

    def __init__(self, session_factory, escrow: Optional[EscrowService] = None):
        self.session_factory = session_factory
        self.escrow = escrow or EscrowService()

    async def dispatch(self, job: str, tournament_id: int, actor_id: Optional[str]) -> bool:
        try:
            async with self.session_factory() as session:
                await run_settlement_job(session, job, tournament_id, actor_id, escrow=self.escrow)
            return True
        except SettlementError as e:
            logger.warning(
                f"Settlement job {job} for tournament {tournament_id} rejected: {e.code} ({e.message})"
            )
            return False
        except Exception as e:
            logger.error(f"Settlement job {job} for tournament {tournament_id} failed: {e}", exc_info=True)
            return False


class CeleryDispatcher:
    """Enqueues the job for a Celery worker."""

    async def dispatch(self, job: str, tournament_id: int, actor_id: Optional[str]) -> bool:
        try:
            from prizepool.tasks.settlement_tasks import run_settlement_job_task
            run_settlement_job_task.delay(job, tournament_id, actor_id)
            logger.info(f"Enqueued settlement job {job} for tournament {tournament_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to enqueue settlement job {job} for tournament {tournament_id}: {e}")
            return False


def get_dispatcher(escrow: Optional[EscrowService] = None):
    """Celery when FEATURE_ASYNC_SETTLEMENT is on, otherwise in-process."""
    if feature_flags.FEATURE_ASYNC_SETTLEMENT:
        return CeleryDispatcher()
    from prizepool.database import AsyncSessionLocal
    return InlineDispatcher(AsyncSessionLocal, escrow)

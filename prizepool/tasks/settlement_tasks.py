"""
Settlement Celery Tasks
Background execution of pool lock, prize distribution and refunds.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from celery import shared_task
from sqlalchemy.pool import NullPool

from prizepool.config.feature_flags import feature_flags
from prizepool.config.settings import SettlementConfig, REDIS_URL
from prizepool.database import DATABASE_URL, make_engine, make_sessionmaker
from prizepool.exceptions import SettlementError
from prizepool.realtime.leaderboard_cache import create_leaderboard_cache
from prizepool.services.escrow_service import EscrowService
from prizepool.services.notification_service import NotificationService
from prizepool.services.settlement_jobs import run_settlement_job

logger = logging.getLogger(__name__)

RETRY_BASE_SECONDS = 30


async def run_job_once(database_url: str, job: str, tournament_id: int,
                       actor_id: Optional[str]) -> Dict[str, Any]:
    """Run one job with a private engine; worker event loops are short-lived."""
    engine = make_engine(database_url, poolclass=NullPool)
    session_factory = make_sessionmaker(engine)
    config = SettlementConfig.from_env()
    cache = create_leaderboard_cache(
        feature_flags.FEATURE_LEADERBOARD_CACHE, REDIS_URL, config.leaderboard_ttl_seconds
    )
    escrow = EscrowService(config, NotificationService(), cache)

    try:
        async with session_factory() as db:
            return await run_settlement_job(db, job, tournament_id, actor_id, escrow=escrow)
    finally:
        if cache is not None:
            await cache.close()
        await engine.dispose()


@shared_task(bind=True, max_retries=3)
def run_settlement_job_task(self, job: str, tournament_id: int, actor_id: Optional[str] = None):
    """
    Execute a settlement job.

    Domain rejections (pool already settled, no leaderboard...) are final
    and not retried. Infrastructure failures retry with exponential backoff.
    """
    try:
        result = asyncio.run(run_job_once(DATABASE_URL, job, tournament_id, actor_id))
        logger.info(f"Settlement job {job} completed for tournament {tournament_id}")
        return {"status": "success", "job": job, "tournament_id": tournament_id, "result": result}

    except SettlementError as e:
        logger.warning(f"Settlement job {job} for tournament {tournament_id} rejected: {e.code}")
        return {"status": "rejected", "job": job, "tournament_id": tournament_id,
                "code": e.code, "message": e.message}

    except Exception as e:
        countdown = RETRY_BASE_SECONDS * (2 ** self.request.retries)
        logger.error(
            f"Settlement job {job} for tournament {tournament_id} failed "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise self.retry(exc=e, countdown=countdown)

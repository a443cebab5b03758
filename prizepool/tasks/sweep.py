"""
prizepool/tasks/sweep.py
Auto-start sweep: OPEN tournaments whose start date has passed go LIVE
"""

import logging
import asyncio
from datetime import timedelta
from typing import Any, Dict

from celery import shared_task
from sqlalchemy.pool import NullPool

from prizepool.config.settings import SettlementConfig
from prizepool.database import make_engine, make_sessionmaker
from prizepool.services.escrow_service import EscrowService
from prizepool.services.lifecycle_service import LifecycleService, SYSTEM_ACTOR

logger = logging.getLogger(__name__)

EMPTY_SWEEP = {"succeeded": 0, "failed": 0, "total": 0, "failures": []}


async def run_sweep_once(database_url: str, actor_id: str = SYSTEM_ACTOR) -> Dict[str, Any]:
    """Run a single sweep cycle."""
    from prizepool.tasks.dispatch import InlineDispatcher, get_dispatcher
    from prizepool.config.feature_flags import feature_flags

    engine = make_engine(database_url, poolclass=NullPool)
    session_factory = make_sessionmaker(engine)
    config = SettlementConfig.from_env()
    escrow = EscrowService(config)
    if feature_flags.FEATURE_ASYNC_SETTLEMENT:
        dispatcher = get_dispatcher(escrow)
    else:
        dispatcher = InlineDispatcher(session_factory, escrow)
    lifecycle = LifecycleService(config, escrow, dispatcher)

    async with session_factory() as db:
        try:
            summary = await lifecycle.auto_start_due_tournaments(db, actor_id)
            logger.info(
                f"Sweep completed: {summary['succeeded']} started, {summary['failed']} failed"
            )
            return summary
        except Exception as e:
            logger.error(f"Sweep failed: {str(e)}")
            return dict(EMPTY_SWEEP)
        finally:
            await engine.dispose()


async def sweep_loop(database_url: str, interval_seconds: int = 60):
    """
    Background sweep loop.
    Runs every interval_seconds (default 1 minute).
    """
    logger.info(f"Starting sweep loop with interval {interval_seconds}s")

    while True:
        try:
            await run_sweep_once(database_url)
        except Exception as e:
            logger.error(f"Sweep loop error: {str(e)}")

        await asyncio.sleep(interval_seconds)


def start_sweep_task(database_url: str, interval_seconds: int = 60):
    """Start the sweep as a background coroutine."""
    return asyncio.create_task(sweep_loop(database_url, interval_seconds))


@shared_task
def auto_start_sweep():
    """Celery beat entry point."""
    from prizepool.database import DATABASE_URL
    return asyncio.run(run_sweep_once(DATABASE_URL))


def get_celery_beat_schedule():
    """Return Celery beat schedule configuration."""
    return {
        "auto-start-due-tournaments": {
            "task": "prizepool.tasks.sweep.auto_start_sweep",
            "schedule": timedelta(minutes=1),
        },
    }


if __name__ == "__main__":
    import os
    from dotenv import load_dotenv

    load_dotenv()

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./prizepool.db")

    logging.basicConfig(level=logging.INFO)

    asyncio.run(run_sweep_once(DATABASE_URL))

"""
Settlement CLI Commands

Operator re-triggers: sweep, transition, distribute, refund
"""
import json
import asyncio
from typing import Any, Dict, Optional

from prizepool.exceptions import SettlementError


class SettlementCommand:
    """Settlement CLI command handler."""

    def __init__(self, dry_run: bool = False, database_url: Optional[str] = None):
        self.dry_run = dry_run
        self.database_url = database_url

    def _url(self) -> str:
        if self.database_url:
            return self.database_url
        from prizepool.database import DATABASE_URL
        return DATABASE_URL

    def execute(self, args) -> int:
        """Execute settlement command."""
        if args.tournament_action == "sweep":
            return self._sweep(args)
        elif args.tournament_action == "transition":
            return self._transition(args)
        elif args.tournament_action == "distribute":
            return self._job(args, "distribute")
        elif args.tournament_action == "refund":
            return self._job(args, "refund")
        else:
            print("Error: Unknown tournament action")
            return 1

    def _report(self, title: str, payload: Dict[str, Any]) -> None:
        print(f"=== {title} ===")
        print(json.dumps(payload, indent=2, default=str))

    def _sweep(self, args) -> int:
        """Start every OPEN tournament whose start date has passed."""
        if self.dry_run:
            print("[DRY RUN] Would start all due OPEN tournaments")
            return 0

        from prizepool.tasks.sweep import run_sweep_once

        summary = asyncio.run(run_sweep_once(self._url(), args.actor))
        self._report("Auto-start Sweep", summary)
        return 0 if summary["failed"] == 0 else 2

    def _transition(self, args) -> int:
        """Move one tournament to a new status."""
        if self.dry_run:
            print(f"[DRY RUN] Would move tournament {args.id} to {args.status}")
            return 0

        try:
            result = asyncio.run(self._async_transition(args.id, args.status, args.actor, args.reason))
        except SettlementError as e:
            print(f"Error: {e.code}: {e.message}")
            return 1
        self._report(f"Tournament {args.id} -> {args.status}", result)
        return 0

    async def _async_transition(self, tournament_id: int, target: str, actor_id: str,
                                reason: Optional[str]) -> Dict[str, Any]:
        from sqlalchemy.pool import NullPool
        from prizepool.config.settings import SettlementConfig
        from prizepool.database import make_engine, make_sessionmaker
        from prizepool.orm.tournament import TournamentStatus
        from prizepool.services.escrow_service import EscrowService
        from prizepool.services.lifecycle_service import LifecycleService
        from prizepool.tasks.dispatch import InlineDispatcher

        engine = make_engine(self._url(), poolclass=NullPool)
        session_factory = make_sessionmaker(engine)
        config = SettlementConfig.from_env()
        escrow = EscrowService(config)
        lifecycle = LifecycleService(config, escrow, InlineDispatcher(session_factory, escrow))
        try:
            async with session_factory() as db:
                return await lifecycle.transition(db, tournament_id, TournamentStatus(target), actor_id, reason)
        finally:
            await engine.dispose()

    def _job(self, args, job: str) -> int:
        """Run distribute or refund directly, bypassing the queue."""
        if self.dry_run:
            print(f"[DRY RUN] Would run {job} for tournament {args.id}")
            return 0

        from prizepool.tasks.settlement_tasks import run_job_once

        try:
            result = asyncio.run(run_job_once(self._url(), job, args.id, args.actor))
        except SettlementError as e:
            print(f"Error: {e.code}: {e.message}")
            return 1
        self._report(f"{job.title()} for Tournament {args.id}", result)
        return 0

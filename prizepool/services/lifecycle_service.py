"""
Tournament Lifecycle Service.

Deterministic tournament state machine. Every status change commits
together with its audit entry; settlement side effects (pool lock,
distribution, refund, start notifications) are dispatched after commit
and can never roll the transition back.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config.settings import SettlementConfig
from prizepool.exceptions import (
    InsufficientTeams,
    InvalidTransition,
    SettlementError,
    StartDateExpired,
    TournamentNotFound,
)
from prizepool.orm.base import utcnow
from prizepool.orm.compliance import ComplianceEvent
from prizepool.orm.tournament import Team, Tournament, TournamentStatus
from prizepool.services import compliance_service
from prizepool.services.escrow_service import EscrowService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class LifecycleService:
    """
    Tournament lifecycle orchestrator.

    COMPLETED and CANCELLED are terminal.
    """

    # State machine valid transitions
    VALID_TRANSITIONS = {
        TournamentStatus.DRAFT: [TournamentStatus.OPEN],
        TournamentStatus.OPEN: [TournamentStatus.LIVE, TournamentStatus.CANCELLED],
        TournamentStatus.LIVE: [TournamentStatus.COMPLETED, TournamentStatus.CANCELLED],
        TournamentStatus.COMPLETED: [],  # Terminal state
        TournamentStatus.CANCELLED: [],  # Terminal state
    }

    # Jobs dispatched after a successful transition into the key status
    SIDE_EFFECTS = {
        TournamentStatus.LIVE: ["lock_pool", "notify_start"],
        TournamentStatus.COMPLETED: ["distribute"],
        TournamentStatus.CANCELLED: ["refund"],
    }

    def __init__(
        self,
        config: Optional[SettlementConfig] = None,
        escrow: Optional[EscrowService] = None,
        dispatcher=None,
    ):
        self.config = config or SettlementConfig()
        self.escrow = escrow or EscrowService(self.config)
        self._dispatcher = dispatcher

    @property
    def dispatcher(self):
        if self._dispatcher is None:
            from prizepool.tasks.dispatch import get_dispatcher
            self._dispatcher = get_dispatcher(self.escrow)
        return self._dispatcher

    @staticmethod
    def _is_valid_transition(current: TournamentStatus, new: TournamentStatus) -> bool:
        """Check if status transition is valid."""
        return new in LifecycleService.VALID_TRANSITIONS.get(current, [])

    @staticmethod
    def allowed_transitions(current: TournamentStatus) -> List[str]:
        return [status.value for status in LifecycleService.VALID_TRANSITIONS.get(current, [])]

    # ==========================================================================
    # Guards
    # ==========================================================================

    def _check_start_date(self, tournament: Tournament, now: datetime) -> None:
        """DRAFT -> OPEN is refused once the start date is more than the grace period old."""
        overdue = now - tournament.start_date
        minutes_overdue = int(overdue.total_seconds() // 60)
        if minutes_overdue > self.config.start_date_grace_minutes:
            raise StartDateExpired(minutes_overdue)

    async def _check_team_count(self, db: AsyncSession, tournament: Tournament) -> None:
        required = tournament.min_teams or self.config.default_min_teams
        actual = await db.scalar(
            select(func.count(Team.id)).where(Team.tournament_id == tournament.id)
        )
        if (actual or 0) < required:
            raise InsufficientTeams(required, actual or 0)

    # ==========================================================================
    # Lifecycle Operations
    # ==========================================================================

    async def transition(
        self,
        db: AsyncSession,
        tournament_id: int,
        target: TournamentStatus,
        actor_id: Optional[str],
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move a tournament to a new status.

        Raises:
            TournamentNotFound
            InvalidTransition: target not reachable from the current status
            StartDateExpired: DRAFT -> OPEN with a stale start date
            InsufficientTeams: OPEN -> LIVE below min_teams
        """
        target = TournamentStatus(target)
        actor_id = actor_id or SYSTEM_ACTOR

        try:
            tournament = await db.get(Tournament, tournament_id, populate_existing=True)
            if tournament is None:
                raise TournamentNotFound(tournament_id)

            current = TournamentStatus(tournament.status)
            if not self._is_valid_transition(current, target):
                logger.warning(
                    f"Rejected transition for tournament {tournament_id}: {current.value} -> {target.value}"
                )
                raise InvalidTransition(current.value, target.value, self.allowed_transitions(current))

            now = utcnow()
            if target == TournamentStatus.OPEN:
                self._check_start_date(tournament, now)
            if target == TournamentStatus.LIVE:
                await self._check_team_count(db, tournament)

            result = await db.execute(
                update(Tournament)
                .where(Tournament.id == tournament_id, Tournament.status == current.value)
                .values(status=target.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                latest = await db.get(Tournament, tournament_id, populate_existing=True)
                latest_status = TournamentStatus(latest.status)
                raise InvalidTransition(latest_status.value, target.value, self.allowed_transitions(latest_status))

            if target == TournamentStatus.OPEN:
                await self.escrow.initialize_pool(db, tournament_id, commit=False)

            await compliance_service.record(
                db,
                ComplianceEvent.TOURNAMENT_STATUS_CHANGED,
                performed_by=actor_id,
                details={"from": current.value, "to": target.value, "reason": reason, "actor": actor_id},
                tournament_id=tournament_id,
                organizer_id=tournament.organizer_id,
                target_id=tournament_id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Tournament {tournament_id}: {current.value} -> {target.value} by {actor_id}")

        dispatched = []
        for job in self.SIDE_EFFECTS.get(target, []):
            if await self.dispatcher.dispatch(job, tournament_id, actor_id):
                dispatched.append(job)

        return {
            "tournament_id": tournament_id,
            "previous_status": current.value,
            "status": target.value,
            "allowed_transitions": self.allowed_transitions(target),
            "dispatched": dispatched,
        }

    async def get_lifecycle_state(self, db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
        """Current status and allowed next transitions."""
        tournament = await db.get(Tournament, tournament_id, populate_existing=True)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        current = TournamentStatus(tournament.status)
        return {
            "id": tournament.id,
            "title": tournament.title,
            "status": current.value,
            "start_date": tournament.start_date.isoformat() if tournament.start_date else None,
            "allowed_transitions": self.allowed_transitions(current),
        }

    async def auto_start_due_tournaments(
        self,
        db: AsyncSession,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Attempt OPEN -> LIVE for every OPEN tournament whose start date has
        passed. One failure never stops the batch.
        """
        now = now or utcnow()
        result = await db.execute(
            select(Tournament.id)
            .where(Tournament.status == TournamentStatus.OPEN.value, Tournament.start_date <= now)
            .order_by(Tournament.start_date.asc(), Tournament.id.asc())
        )
        due_ids = list(result.scalars().all())

        succeeded = 0
        failures = []
        for tournament_id in due_ids:
            try:
                await self.transition(
                    db,
                    tournament_id,
                    TournamentStatus.LIVE,
                    actor_id or SYSTEM_ACTOR,
                    reason="Auto-transitioned at start time",
                )
                succeeded += 1
            except SettlementError as e:
                logger.warning(f"Auto-start skipped tournament {tournament_id}: {e.code}")
                failures.append({"tournament_id": tournament_id, "code": e.code, "message": e.message})
            except Exception as e:
                logger.error(f"Auto-start failed for tournament {tournament_id}: {e}", exc_info=True)
                failures.append({"tournament_id": tournament_id, "code": "INTERNAL_ERROR", "message": str(e)})

        if due_ids:
            logger.info(f"Auto-start sweep: {succeeded}/{len(due_ids)} tournaments went LIVE")

        return {
            "succeeded": succeeded,
            "failed": len(failures),
            "total": len(due_ids),
            "failures": failures,
        }

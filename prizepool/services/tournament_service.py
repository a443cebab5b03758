"""
Tournament administration.

Creation validates prize and scoring rules up front; status is never
changed here (see lifecycle_service).
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.exceptions import StateConflict, TournamentFrozen, TournamentNotFound, ValidationError
from prizepool.orm.compliance import ComplianceEvent
from prizepool.orm.escrow import EscrowPool, PoolStatus
from prizepool.orm.leaderboard import TournamentLeaderboard
from prizepool.orm.match import Match, MatchParticipation, ResultLock
from prizepool.orm.tournament import Team, TeamMember, Tournament, TournamentParticipant, TournamentStatus
from prizepool.schemas.prize_rules import PrizeRule, parse_prize_rules, prize_rules_to_json
from prizepool.schemas.tournament import TournamentCreate, TournamentUpdate
from prizepool.services import compliance_service

logger = logging.getLogger(__name__)

# Fields frozen once the tournament reaches the given statuses
FROZEN_FIELDS = {
    "entry_fee_per_person": {TournamentStatus.OPEN, TournamentStatus.LIVE,
                             TournamentStatus.COMPLETED, TournamentStatus.CANCELLED},
    "prize_distribution": {TournamentStatus.LIVE, TournamentStatus.COMPLETED, TournamentStatus.CANCELLED},
    "scoring_rules": {TournamentStatus.LIVE, TournamentStatus.COMPLETED, TournamentStatus.CANCELLED},
    "prize_pool": {TournamentStatus.COMPLETED, TournamentStatus.CANCELLED},
}

TERMINAL_STATUSES = {TournamentStatus.COMPLETED, TournamentStatus.CANCELLED}


def _rules_json(rules: Optional[List[PrizeRule]]):
    return prize_rules_to_json(rules) if rules else None


async def get_tournament(db: AsyncSession, tournament_id: int) -> Tournament:
    tournament = await db.get(Tournament, tournament_id, populate_existing=True)
    if tournament is None:
        raise TournamentNotFound(tournament_id)
    return tournament


async def create_tournament(
    db: AsyncSession,
    payload: TournamentCreate,
    actor_id: str,
    organizer_id: Optional[str] = None,
) -> Tournament:
    """Create a DRAFT tournament."""
    tournament = Tournament(
        title=payload.title,
        organizer_id=organizer_id if organizer_id is not None else payload.organizer_id,
        status=TournamentStatus.DRAFT.value,
        entry_fee_per_person=payload.entry_fee_per_person,
        prize_pool=payload.prize_pool,
        prize_distribution=_rules_json(payload.prize_distribution),
        scoring_rules=payload.scoring_rules,
        min_teams=payload.min_teams,
        max_teams=payload.max_teams,
        start_date=payload.start_date,
    )
    try:
        db.add(tournament)
        await db.flush()
        await compliance_service.record(
            db,
            ComplianceEvent.TOURNAMENT_CREATED,
            performed_by=actor_id,
            details={
                "title": tournament.title,
                "entry_fee_per_person": payload.entry_fee_per_person,
                "prize_distribution": tournament.prize_distribution,
                "start_date": payload.start_date,
            },
            tournament_id=tournament.id,
            organizer_id=tournament.organizer_id,
            target_id=tournament.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Tournament {tournament.id} created by {actor_id}")
    return tournament


async def update_tournament(
    db: AsyncSession,
    tournament_id: int,
    payload: TournamentUpdate,
) -> Tournament:
    """
    Administrative update of non-status fields.

    Raises:
        TournamentFrozen: a frozen field was changed for the current status
        ValidationError: max_teams below min_teams after the update
    """
    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True)
    try:
        tournament = await get_tournament(db, tournament_id)
        current = TournamentStatus(tournament.status)

        if current in TERMINAL_STATUSES and changes:
            raise TournamentFrozen(current.value, sorted(changes))
        frozen = sorted(field for field in changes if current in FROZEN_FIELDS.get(field, set()))
        if frozen:
            raise TournamentFrozen(current.value, frozen)

        if "prize_distribution" in changes:
            changes["prize_distribution"] = _rules_json(payload.prize_distribution)

        min_teams = changes.get("min_teams", tournament.min_teams)
        max_teams = changes.get("max_teams", tournament.max_teams)
        if min_teams and max_teams and max_teams < min_teams:
            raise ValidationError(
                "max_teams must be greater than or equal to min_teams",
                "INVALID_TEAM_BOUNDS",
                {"min_teams": min_teams, "max_teams": max_teams}
            )

        for field, value in changes.items():
            setattr(tournament, field, value)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Tournament {tournament_id} updated: {sorted(changes)}")
    return tournament


async def delete_tournament(db: AsyncSession, tournament_id: int) -> None:
    """
    Delete a tournament and everything hanging off it.

    Refused while the escrow pool still holds unsettled funds. Compliance
    entries are kept.
    """
    try:
        tournament = await get_tournament(db, tournament_id)
        pool = (await db.execute(
            select(EscrowPool).where(EscrowPool.tournament_id == tournament_id)
        )).scalar_one_or_none()
        if pool is not None and pool.status != PoolStatus.DISTRIBUTED.value and pool.total_collected > 0:
            raise StateConflict(
                "Tournament holds unsettled entry fees; refund before deleting",
                "UNSETTLED_FUNDS",
                {"pool_status": pool.status, "total_collected": str(pool.total_collected)}
            )

        match_ids = select(Match.id).where(Match.tournament_id == tournament_id)
        team_ids = select(Team.id).where(Team.tournament_id == tournament_id)

        for stmt in (
            delete(ResultLock).where(ResultLock.match_id.in_(match_ids)),
            delete(MatchParticipation).where(MatchParticipation.match_id.in_(match_ids)),
            delete(Match).where(Match.tournament_id == tournament_id),
            delete(TournamentLeaderboard).where(TournamentLeaderboard.tournament_id == tournament_id),
            delete(TournamentParticipant).where(TournamentParticipant.tournament_id == tournament_id),
            delete(TeamMember).where(TeamMember.team_id.in_(team_ids)),
            delete(Team).where(Team.tournament_id == tournament_id),
            delete(EscrowPool).where(EscrowPool.tournament_id == tournament_id),
        ):
            await db.execute(stmt.execution_options(synchronize_session=False))

        await db.delete(tournament)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning(f"Tournament {tournament_id} deleted")


__all__ = [
    "get_tournament",
    "create_tournament",
    "update_tournament",
    "delete_tournament",
    "parse_prize_rules",
]

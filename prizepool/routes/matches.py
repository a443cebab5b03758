"""
Match result submission and result lock endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.database import get_db
from prizepool.exceptions import TournamentNotFound
from prizepool.rbac import OPERATOR_ROLES, Actor, Role, require_role
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.routes.deps import ensure_can_manage, get_leaderboard_cache
from prizepool.schemas.settlement import MatchResultsRequest, OverrideRequest
from prizepool.services import match_service, result_lock_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/matches", tags=["Matches"])


async def _authorize_match(db: AsyncSession, match_id: int, actor: Actor) -> None:
    match, tournament = await result_lock_service.get_match_context(db, match_id)
    if tournament is None:
        raise TournamentNotFound(match.tournament_id)
    ensure_can_manage(tournament, actor)


@router.post("/{match_id}/results")
async def submit_results(
    match_id: int,
    payload: MatchResultsRequest,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
    cache: Optional[LeaderboardCache] = Depends(get_leaderboard_cache),
) -> Dict[str, Any]:
    """
    Score a match and fold it into the tournament leaderboard.

    Rejected with 409 RESULT_LOCKED while the match is locked.
    """
    await _authorize_match(db, match_id, actor)
    result = await match_service.submit_match_results(db, match_id, payload.results, cache=cache)
    logger.info(f"Results for match {match_id} submitted by {actor.id}")
    return {"success": True, "match": result}


@router.post("/{match_id}/lock", status_code=status.HTTP_201_CREATED)
async def lock_results(
    match_id: int,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await _authorize_match(db, match_id, actor)
    lock = await result_lock_service.lock_result(db, match_id, actor.id)
    return {"success": True, "lock": lock.to_dict()}


@router.post("/{match_id}/override")
async def override_lock(
    match_id: int,
    payload: OverrideRequest,
    actor: Actor = Depends(require_role([Role.SUPERADMIN])),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Lift a result lock. SUPERADMIN only; a reason of 10+ characters is required."""
    lock = await result_lock_service.override_result(db, match_id, actor.id, payload.reason)
    return {"success": True, "lock": lock.to_dict()}


@router.get("/{match_id}/lock")
async def get_lock(
    match_id: int,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await result_lock_service.get_match_context(db, match_id)
    audit = await result_lock_service.get_lock_audit(db, match_id)
    return {
        "success": True,
        "locked": bool(audit and not audit.get("is_overridden")),
        "lock": audit,
    }

"""
Tournament administration, lifecycle, escrow and leaderboard endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.database import get_db
from prizepool.rbac import ADMIN_ROLES, OPERATOR_ROLES, Actor, Role, get_current_actor, require_role
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.routes.deps import (
    ensure_can_manage,
    get_escrow_service,
    get_leaderboard_cache,
    get_lifecycle_service,
)
from prizepool.schemas.settlement import RegisterRequest, TransitionRequest
from prizepool.schemas.tournament import TournamentCreate, TournamentUpdate
from prizepool.services import leaderboard_service, registration_service, tournament_service
from prizepool.services.escrow_service import EscrowService
from prizepool.services.lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tournaments", tags=["Tournaments"])


# ================= ADMINISTRATION =================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tournament(
    payload: TournamentCreate,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Create a DRAFT tournament. Organizers always own what they create."""
    organizer_id = actor.id if actor.role == Role.ORGANIZER else None
    tournament = await tournament_service.create_tournament(db, payload, actor.id, organizer_id=organizer_id)
    return {"success": True, "tournament": tournament.to_dict()}


@router.get("/{tournament_id}")
async def get_tournament(
    tournament_id: int,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    tournament = await tournament_service.get_tournament(db, tournament_id)
    return {"success": True, "tournament": tournament.to_dict()}


@router.patch("/{tournament_id}")
async def update_tournament(
    tournament_id: int,
    payload: TournamentUpdate,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    ensure_can_manage(await tournament_service.get_tournament(db, tournament_id), actor)
    tournament = await tournament_service.update_tournament(db, tournament_id, payload)
    return {"success": True, "tournament": tournament.to_dict()}


@router.delete("/{tournament_id}")
async def delete_tournament(
    tournament_id: int,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await tournament_service.delete_tournament(db, tournament_id)
    logger.warning(f"Tournament {tournament_id} deleted by {actor.id}")
    return {"success": True, "deleted": tournament_id}


@router.post("/{tournament_id}/register", status_code=status.HTTP_201_CREATED)
async def register(
    tournament_id: int,
    payload: Optional[RegisterRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    escrow: EscrowService = Depends(get_escrow_service),
) -> Dict[str, Any]:
    """Register the caller, charging the entry fee from their wallet."""
    team_id = payload.team_id if payload else None
    participant = await registration_service.register_participant(
        db, tournament_id, actor.id, team_id=team_id, escrow=escrow
    )
    return {
        "success": True,
        "registration": {
            "tournament_id": tournament_id,
            "user_id": participant.user_id,
            "team_id": participant.team_id,
            "status": participant.status,
            "payment_status": participant.payment_status,
            "amount_paid": str(participant.amount_paid),
        }
    }


# ================= LIFECYCLE =================

@router.post("/lifecycle/sweep")
async def sweep_due_tournaments(
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Start every OPEN tournament whose start date has passed."""
    summary = await lifecycle.auto_start_due_tournaments(db, actor_id=actor.id)
    return {"success": True, "sweep": summary}


@router.get("/{tournament_id}/lifecycle")
async def get_lifecycle(
    tournament_id: int,
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    state = await lifecycle.get_lifecycle_state(db, tournament_id)
    return {"success": True, "lifecycle": state}


@router.post("/{tournament_id}/transition")
async def transition_tournament(
    tournament_id: int,
    payload: TransitionRequest,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """
    Move the tournament to a new status.

    Settlement side effects (pool lock, distribution, refunds) run after
    the status change is committed and never roll it back.
    """
    ensure_can_manage(await tournament_service.get_tournament(db, tournament_id), actor)
    result = await lifecycle.transition(db, tournament_id, payload.status, actor.id, payload.reason)
    return {"success": True, "transition": result}


# ================= ESCROW =================

@router.get("/{tournament_id}/escrow")
async def get_escrow(
    tournament_id: int,
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
    escrow: EscrowService = Depends(get_escrow_service),
) -> Dict[str, Any]:
    ensure_can_manage(await tournament_service.get_tournament(db, tournament_id), actor)
    pool = await escrow.get_pool(db, tournament_id)
    return {"success": True, "escrow": pool.to_dict()}


@router.post("/{tournament_id}/escrow/distribute")
async def distribute_escrow(
    tournament_id: int,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
    escrow: EscrowService = Depends(get_escrow_service),
) -> Dict[str, Any]:
    """Manual retry of prize distribution for a locked pool."""
    summary = await escrow.distribute_pool(db, tournament_id, actor_id=actor.id)
    return {"success": True, "distribution": summary}


@router.post("/{tournament_id}/escrow/refund")
async def refund_escrow(
    tournament_id: int,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
    escrow: EscrowService = Depends(get_escrow_service),
) -> Dict[str, Any]:
    """Manual retry of entry-fee refunds."""
    summary = await escrow.refund_pool(db, tournament_id, actor_id=actor.id)
    return {"success": True, "refund": summary}


# ================= LEADERBOARD =================

@router.get("/{tournament_id}/leaderboard")
async def get_leaderboard(
    tournament_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    cache: Optional[LeaderboardCache] = Depends(get_leaderboard_cache),
) -> Dict[str, Any]:
    """Ranked standings; served from the cache when it is warm."""
    await tournament_service.get_tournament(db, tournament_id)
    leaderboard = await leaderboard_service.get_leaderboard(db, tournament_id, cache, limit=limit)
    return {"success": True, "leaderboard": leaderboard}

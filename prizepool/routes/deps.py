"""
prizepool/routes/deps.py
Shared route dependencies: services, cache, rate limiter, ownership checks
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from prizepool.config.feature_flags import get_bool_env
from prizepool.config.settings import SettlementConfig
from prizepool.errors import ErrorCode
from prizepool.orm.tournament import Tournament
from prizepool.rbac import Actor, Role
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.services.escrow_service import EscrowService
from prizepool.services.lifecycle_service import LifecycleService
from prizepool.services.notification_service import NotificationService

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_bool_env("RATE_LIMIT_ENABLED", True),
)


@lru_cache()
def get_settlement_config() -> SettlementConfig:
    return SettlementConfig.from_env()


def get_leaderboard_cache(request: Request) -> Optional[LeaderboardCache]:
    """Set on app.state at startup; None when the cache is disabled."""
    return getattr(request.app.state, "leaderboard_cache", None)


def get_notifier() -> NotificationService:
    return NotificationService()


def get_escrow_service(
    config: SettlementConfig = Depends(get_settlement_config),
    notifier: NotificationService = Depends(get_notifier),
    cache: Optional[LeaderboardCache] = Depends(get_leaderboard_cache),
) -> EscrowService:
    return EscrowService(config, notifier, cache)


def get_lifecycle_service(
    config: SettlementConfig = Depends(get_settlement_config),
    escrow: EscrowService = Depends(get_escrow_service),
) -> LifecycleService:
    return LifecycleService(config, escrow)


def ensure_can_manage(tournament: Tournament, actor: Actor) -> None:
    """Organizers may only operate their own tournaments."""
    if actor.role == Role.ORGANIZER and tournament.organizer_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "Forbidden",
                "message": "You can only manage tournaments you organize",
                "code": ErrorCode.PERMISSION_DENIED
            }
        )

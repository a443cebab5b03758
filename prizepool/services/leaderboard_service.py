"""
Leaderboard Aggregator

Durable per-tournament standings, updated incrementally as match
results arrive. Ranking: total_points desc, then total_kills desc,
then team id asc. The redis cache is an optional read accelerator.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.core.upsert import dialect_insert
from prizepool.exceptions import TeamNotFound
from prizepool.orm.base import utcnow
from prizepool.orm.leaderboard import TournamentLeaderboard
from prizepool.realtime.leaderboard_cache import LeaderboardCache

logger = logging.getLogger(__name__)

RANKING_ORDER = (
    TournamentLeaderboard.total_points.desc(),
    TournamentLeaderboard.total_kills.desc(),
    TournamentLeaderboard.team_id.asc(),
)


async def apply_result(
    db: AsyncSession,
    tournament_id: int,
    team_id: int,
    points: int,
    kills: int,
    matches: int = 1,
) -> None:
    """
    Add points/kills/matches to a team's row, creating it on first result.
    Part of the caller's transaction.
    """
    stmt = dialect_insert(db, TournamentLeaderboard).values(
        tournament_id=tournament_id,
        team_id=team_id,
        total_points=points,
        total_kills=kills,
        matches_played=matches,
        updated_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tournament_id", "team_id"],
        set_={
            "total_points": TournamentLeaderboard.total_points + stmt.excluded.total_points,
            "total_kills": TournamentLeaderboard.total_kills + stmt.excluded.total_kills,
            "matches_played": TournamentLeaderboard.matches_played + stmt.excluded.matches_played,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def get_ranked_entries(
    db: AsyncSession,
    tournament_id: int,
    limit: Optional[int] = None,
) -> List[TournamentLeaderboard]:
    query = (
        select(TournamentLeaderboard)
        .where(TournamentLeaderboard.tournament_id == tournament_id)
        .order_by(*RANKING_ORDER)
        .execution_options(populate_existing=True)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_leaderboard(
    db: AsyncSession,
    tournament_id: int,
    cache: Optional[LeaderboardCache] = None,
    limit: int = 50,
) -> Dict[str, Any]:
    """
    Ranked standings. Reads the cache first; on a miss reads the table
    and reseeds the cache.
    """
    if cache is not None:
        cached = await cache.get_top(tournament_id, limit)
        if cached is not None:
            return {"tournament_id": tournament_id, "source": "cache", "entries": cached}

    entries = await get_ranked_entries(db, tournament_id, limit)
    rows = [entry.to_dict(rank=index + 1) for index, entry in enumerate(entries)]

    if cache is not None and rows:
        await rebuild_cache(db, tournament_id, cache)

    return {"tournament_id": tournament_id, "source": "database", "entries": rows}


async def get_team_standing(
    db: AsyncSession,
    tournament_id: int,
    team_id: int,
    cache: Optional[LeaderboardCache] = None,
) -> Dict[str, Any]:
    """Rank and totals of a single team."""
    if cache is not None:
        cached = await cache.get_team_rank(tournament_id, team_id)
        if cached is not None:
            return cached

    entries = await get_ranked_entries(db, tournament_id)
    for index, entry in enumerate(entries):
        if entry.team_id == team_id:
            return entry.to_dict(rank=index + 1)
    raise TeamNotFound(team_id)


async def rebuild_cache(db: AsyncSession, tournament_id: int, cache: LeaderboardCache) -> int:
    """Reseed the cache from the table. Returns the number of teams written."""
    entries = await get_ranked_entries(db, tournament_id)
    standings = [
        {"team_id": e.team_id, "total_points": e.total_points, "total_kills": e.total_kills}
        for e in entries
    ]
    if await cache.seed(tournament_id, standings):
        logger.info(f"Leaderboard cache rebuilt for tournament {tournament_id} ({len(standings)} teams)")
    return len(standings)

"""
Match Result Service

Records per-team placements and kills for a match, scores them and
folds them into the tournament leaderboard in one transaction.

A re-submission (only possible when the match is unlocked or its lock
was overridden) replaces the previous results: the leaderboard moves
by the difference, so totals never double count.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config.feature_flags import feature_flags
from prizepool.exceptions import (
    InvalidMatchResults,
    ResultLocked,
    TournamentNotFound,
    TournamentNotLive,
)
from prizepool.orm.base import utcnow
from prizepool.orm.match import Match, MatchParticipation, MatchStatus
from prizepool.orm.tournament import Team, Tournament, TournamentStatus
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.services import leaderboard_service, result_lock_service
from prizepool.services.scoring_service import score

logger = logging.getLogger(__name__)


def _normalize_results(results: Iterable[Any]) -> List[Dict[str, int]]:
    """Accept pydantic items or plain dicts; validate shape and uniqueness."""
    rows = []
    for item in results:
        data = item.model_dump() if hasattr(item, "model_dump") else dict(item)
        try:
            row = {
                "team_id": int(data["team_id"]),
                "placement": int(data["placement"]),
                "kills": int(data.get("kills", 0)),
            }
        except (KeyError, TypeError, ValueError):
            raise InvalidMatchResults("each result needs team_id, placement and kills")
        if row["placement"] < 1:
            raise InvalidMatchResults("placement must be at least 1", {"team_id": row["team_id"]})
        if row["kills"] < 0:
            raise InvalidMatchResults("kills cannot be negative", {"team_id": row["team_id"]})
        rows.append(row)

    if not rows:
        raise InvalidMatchResults("no results submitted")
    team_ids = [row["team_id"] for row in rows]
    if len(team_ids) != len(set(team_ids)):
        raise InvalidMatchResults("a team appears more than once", {"team_ids": team_ids})
    return rows


async def submit_match_results(
    db: AsyncSession,
    match_id: int,
    results: Iterable[Any],
    cache: Optional[LeaderboardCache] = None,
    require_live: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Score and store a match's results.

    Raises:
        InvalidMatchResults: malformed batch or teams outside the tournament
        MatchNotFound / TournamentNotFound
        TournamentNotLive: tournament not LIVE (when required)
        ResultLocked: the match has an active lock
    """
    rows = _normalize_results(results)
    if require_live is None:
        require_live = feature_flags.FEATURE_RESULT_REQUIRES_LIVE

    deltas: List[Dict[str, int]] = []
    try:
        match = await result_lock_service.load_match_for_update(db, match_id)
        tournament = await db.get(Tournament, match.tournament_id)
        if tournament is None:
            raise TournamentNotFound(match.tournament_id)
        if require_live and tournament.status != TournamentStatus.LIVE.value:
            raise TournamentNotLive(tournament.status)
        if await result_lock_service.is_locked(db, match_id):
            raise ResultLocked(match_id)

        team_ids = [row["team_id"] for row in rows]
        known = await db.execute(
            select(Team.id).where(Team.tournament_id == tournament.id, Team.id.in_(team_ids))
        )
        missing = sorted(set(team_ids) - set(known.scalars().all()))
        if missing:
            raise InvalidMatchResults("teams not registered in this tournament", {"team_ids": missing})

        existing_result = await db.execute(
            select(MatchParticipation)
            .where(MatchParticipation.match_id == match_id)
            .execution_options(populate_existing=True)
        )
        previous = {p.team_id: p for p in existing_result.scalars().all()}

        rules = tournament.scoring_rules
        for row in rows:
            points = score(row["placement"], row["kills"], rules)
            row["score"] = points
            prior = previous.pop(row["team_id"], None)
            if prior is None:
                db.add(MatchParticipation(
                    match_id=match_id,
                    team_id=row["team_id"],
                    placement=row["placement"],
                    kills=row["kills"],
                    score=points,
                ))
                delta = {"team_id": row["team_id"], "points": points, "kills": row["kills"], "matches": 1}
            else:
                delta = {
                    "team_id": row["team_id"],
                    "points": points - prior.score,
                    "kills": row["kills"] - prior.kills,
                    "matches": 0,
                }
                prior.placement = row["placement"]
                prior.kills = row["kills"]
                prior.score = points
            deltas.append(delta)

        # teams dropped from a re-submission lose their earlier contribution
        for team_id, prior in previous.items():
            deltas.append({"team_id": team_id, "points": -prior.score, "kills": -prior.kills, "matches": -1})
            await db.execute(
                delete(MatchParticipation)
                .where(MatchParticipation.id == prior.id)
                .execution_options(synchronize_session=False)
            )

        await db.flush()
        for delta in deltas:
            await leaderboard_service.apply_result(
                db,
                tournament.id,
                delta["team_id"],
                delta["points"],
                delta["kills"],
                delta["matches"],
            )

        match.status = MatchStatus.COMPLETED.value
        match.completed_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Results for match {match_id} recorded ({len(rows)} teams)")

    if cache is not None:
        # a cold key would otherwise hold only this match's teams
        if await cache.is_warm(tournament.id):
            for delta in deltas:
                if delta["points"] or delta["kills"]:
                    await cache.increment_score(tournament.id, delta["team_id"], delta["points"], delta["kills"])
        else:
            await leaderboard_service.rebuild_cache(db, tournament.id, cache)

    return {
        "match_id": match_id,
        "tournament_id": tournament.id,
        "status": MatchStatus.COMPLETED.value,
        "results": rows,
    }

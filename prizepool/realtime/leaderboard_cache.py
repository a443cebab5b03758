"""
Redis leaderboard cache.

Sorted-set mirror of the tournament_leaderboard table, one key per
tournament ("lb:{tournament_id}"). The database is the source of truth;
every method here degrades to None / empty on redis failure so callers
fall back to the table.

Scores are packed as points * KILL_SCALE + kills so the sorted set
orders by points then kills, matching the durable ranking. A team's
kill total must stay below KILL_SCALE, and points * KILL_SCALE below
2**53 so the double-precision score stays exact.
"""
import logging
from typing import Dict, List, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "lb:"
KILL_SCALE = 1_000_000


def pack_score(points: int, kills: int) -> int:
    return points * KILL_SCALE + kills


def unpack_score(score: float) -> Tuple[int, int]:
    value = int(score)
    return value // KILL_SCALE, value % KILL_SCALE


class LeaderboardCache:
    """
    Guarantees:
    - Never raises on redis errors (logged, None/[] returned)
    - TTL refreshed on every write
    - No cache state outside redis
    """

    def __init__(self, client: Optional[aioredis.Redis] = None, ttl: int = 300,
                 redis_url: str = "redis://localhost:6379/0"):
        self.redis_url = redis_url
        self.ttl = ttl
        self._redis = client

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    @staticmethod
    def _key(tournament_id: int) -> str:
        return f"{KEY_PREFIX}{tournament_id}"

    async def is_warm(self, tournament_id: int) -> bool:
        """True when the tournament's key exists."""
        key = self._key(tournament_id)
        try:
            return bool(await self._client().exists(key))
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache lookup failed for {key}: {e}")
            return False

    async def update_score(self, tournament_id: int, team_id: int, points: int, kills: int = 0) -> bool:
        """Set a team's absolute standing."""
        key = self._key(tournament_id)
        try:
            client = self._client()
            await client.zadd(key, {str(team_id): pack_score(points, kills)})
            await client.expire(key, self.ttl)
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache update failed for {key}: {e}")
            return False

    async def increment_score(self, tournament_id: int, team_id: int, points: int, kills: int = 0) -> bool:
        """Apply a delta to a team's standing."""
        key = self._key(tournament_id)
        try:
            client = self._client()
            await client.zincrby(key, pack_score(points, kills), str(team_id))
            await client.expire(key, self.ttl)
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache increment failed for {key}: {e}")
            return False

    async def get_top(self, tournament_id: int, limit: int = 50) -> Optional[List[Dict[str, int]]]:
        """
        Top teams, best first.

        Returns None on a miss (empty key) or redis failure.
        """
        key = self._key(tournament_id)
        try:
            rows = await self._client().zrevrange(key, 0, limit - 1, withscores=True)
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache read failed for {key}: {e}")
            return None
        if not rows:
            return None

        entries = []
        for member, score in rows:
            points, kills = unpack_score(score)
            entries.append({"team_id": int(member), "total_points": points, "total_kills": kills})
        # equal scores come back in reverse member order; re-apply team id tiebreak
        entries.sort(key=lambda e: (-e["total_points"], -e["total_kills"], e["team_id"]))
        for index, entry in enumerate(entries):
            entry["rank"] = index + 1
        return entries

    async def get_team_rank(self, tournament_id: int, team_id: int) -> Optional[Dict[str, int]]:
        """
        1-based rank and score of one team, None when absent.

        Teams on an equal packed score are ordered by team id, the same
        tiebreak get_top and the table use; zrevrank alone would order
        them by reverse member name.
        """
        key = self._key(tournament_id)
        try:
            client = self._client()
            score = await client.zscore(key, str(team_id))
            if score is None:
                return None
            value = int(score)
            higher = await client.zcount(key, f"({value}", "+inf")
            tied = await client.zrangebyscore(key, value, value)
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache rank lookup failed for {key}: {e}")
            return None
        ahead = sum(1 for member in tied if int(member) < team_id)
        points, kills = unpack_score(score)
        return {"team_id": team_id, "rank": higher + ahead + 1, "total_points": points, "total_kills": kills}

    async def clear(self, tournament_id: int) -> bool:
        key = self._key(tournament_id)
        try:
            await self._client().delete(key)
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache clear failed for {key}: {e}")
            return False

    async def seed(self, tournament_id: int, standings: List[Dict[str, int]]) -> bool:
        """Replace the cached set with the given standings."""
        key = self._key(tournament_id)
        try:
            client = self._client()
            await client.delete(key)
            if standings:
                mapping = {
                    str(row["team_id"]): pack_score(row["total_points"], row.get("total_kills", 0))
                    for row in standings
                }
                await client.zadd(key, mapping)
                await client.expire(key, self.ttl)
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Leaderboard cache seed failed for {key}: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_leaderboard_cache(enabled: bool, redis_url: str, ttl: int = 300) -> Optional[LeaderboardCache]:
    """
    Factory used at startup. Returns None when the cache is disabled.
    """
    if not enabled:
        return None
    return LeaderboardCache(ttl=ttl, redis_url=redis_url)

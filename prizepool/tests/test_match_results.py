"""
Match result submission: scoring, lock enforcement, re-submission and
leaderboard cache upkeep.
"""
import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from prizepool.exceptions import InvalidMatchResults, MatchNotFound, ResultLocked, TournamentNotLive
from prizepool.orm import TournamentStatus
from prizepool.realtime.leaderboard_cache import pack_score
from prizepool.services import leaderboard_service, match_service, result_lock_service


async def _live_match(factory, scoring_rules=None, teams=2):
    tournament = await factory.tournament(status=TournamentStatus.LIVE, scoring_rules=scoring_rules)
    created = [await factory.team(tournament.id, [f"p{i}"]) for i in range(teams)]
    match = await factory.match(tournament.id)
    return tournament, created, match


async def _totals(db, tournament_id):
    entries = await leaderboard_service.get_ranked_entries(db, tournament_id)
    return {e.team_id: (e.total_points, e.total_kills, e.matches_played) for e in entries}


# =============================================================================
# Submission
# =============================================================================

class TestSubmit:
    @pytest.mark.asyncio
    async def test_default_scoring(self, factory, db):
        tournament, (alpha, bravo), match = await _live_match(factory)

        result = await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 3},
            {"team_id": bravo.id, "placement": 2, "kills": 1},
        ])

        assert result["status"] == "COMPLETED"
        assert [r["score"] for r in result["results"]] == [13, 1]
        assert await _totals(db, tournament.id) == {alpha.id: (13, 3, 1), bravo.id: (1, 1, 1)}

    @pytest.mark.asyncio
    async def test_tournament_scoring_rules(self, factory, db):
        rules = {"1": 15, "2": 12, "kill": 2}
        tournament, (alpha, bravo), match = await _live_match(factory, scoring_rules=rules)

        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 2, "kills": 4},
            {"team_id": bravo.id, "placement": 1, "kills": 0},
        ])

        assert await _totals(db, tournament.id) == {alpha.id: (20, 4, 1), bravo.id: (15, 0, 1)}

    @pytest.mark.asyncio
    async def test_matches_accumulate(self, factory, db):
        tournament, (alpha, bravo), first = await _live_match(factory)
        second = await factory.match(tournament.id, number=2)

        await match_service.submit_match_results(db, first.id, [{"team_id": alpha.id, "placement": 1, "kills": 2}])
        await match_service.submit_match_results(db, second.id, [{"team_id": alpha.id, "placement": 1, "kills": 1}])

        assert await _totals(db, tournament.id) == {alpha.id: (23, 3, 2)}

    @pytest.mark.asyncio
    async def test_locked_match_rejected(self, factory, db):
        tournament, (alpha, _), match = await _live_match(factory)
        await result_lock_service.lock_result(db, match.id, "org-1")

        with pytest.raises(ResultLocked):
            await match_service.submit_match_results(db, match.id, [
                {"team_id": alpha.id, "placement": 1, "kills": 9},
            ])

        assert await _totals(db, tournament.id) == {}

    @pytest.mark.asyncio
    async def test_requires_live(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.OPEN)
        team = await factory.team(tournament.id, ["p1"])
        match = await factory.match(tournament.id)

        with pytest.raises(TournamentNotLive):
            await match_service.submit_match_results(
                db, match.id, [{"team_id": team.id, "placement": 1, "kills": 0}], require_live=True
            )

        result = await match_service.submit_match_results(
            db, match.id, [{"team_id": team.id, "placement": 1, "kills": 0}], require_live=False
        )
        assert result["results"][0]["score"] == 10

    @pytest.mark.asyncio
    async def test_team_from_other_tournament(self, factory, db):
        _, (alpha, _), match = await _live_match(factory)
        other = await factory.tournament(status=TournamentStatus.LIVE, title="Other Cup")
        stranger = await factory.team(other.id, ["x"])

        with pytest.raises(InvalidMatchResults) as exc:
            await match_service.submit_match_results(db, match.id, [
                {"team_id": alpha.id, "placement": 1, "kills": 0},
                {"team_id": stranger.id, "placement": 2, "kills": 0},
            ])

        assert exc.value.details == {"team_ids": [stranger.id]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rows", [
        [],
        [{"team_id": 1, "placement": 0, "kills": 0}],
        [{"team_id": 1, "placement": 1, "kills": -1}],
        [{"team_id": 1, "placement": 1, "kills": 0}, {"team_id": 1, "placement": 2, "kills": 0}],
        [{"placement": 1, "kills": 0}],
    ])
    async def test_malformed_batches(self, factory, db, rows):
        _, _, match = await _live_match(factory)
        with pytest.raises(InvalidMatchResults):
            await match_service.submit_match_results(db, match.id, rows)

    @pytest.mark.asyncio
    async def test_unknown_match(self, db):
        with pytest.raises(MatchNotFound):
            await match_service.submit_match_results(db, 404, [{"team_id": 1, "placement": 1, "kills": 0}])


# =============================================================================
# Re-submission after override
# =============================================================================

class TestResubmission:
    @pytest.mark.asyncio
    async def test_replaces_previous_results(self, factory, db):
        tournament, (alpha, bravo), match = await _live_match(factory)
        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 3},
            {"team_id": bravo.id, "placement": 2, "kills": 1},
        ])
        await result_lock_service.lock_result(db, match.id, "org-1")
        await result_lock_service.override_result(db, match.id, "super-1", "Placements were swapped")

        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 2, "kills": 3},
            {"team_id": bravo.id, "placement": 1, "kills": 1},
        ])

        assert await _totals(db, tournament.id) == {alpha.id: (3, 3, 1), bravo.id: (11, 1, 1)}

    @pytest.mark.asyncio
    async def test_dropped_team_loses_contribution(self, factory, db):
        tournament, (alpha, bravo), match = await _live_match(factory)
        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 2},
            {"team_id": bravo.id, "placement": 2, "kills": 4},
        ])

        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 2},
        ])

        assert await _totals(db, tournament.id) == {alpha.id: (12, 2, 1), bravo.id: (0, 0, 0)}


# =============================================================================
# Cache upkeep
# =============================================================================

class TestCacheUpkeep:
    @pytest.mark.asyncio
    async def test_cold_cache_is_rebuilt(self, factory, db, cache, fake_redis):
        tournament, (alpha, bravo), match = await _live_match(factory)

        await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 3},
            {"team_id": bravo.id, "placement": 2, "kills": 1},
        ], cache=cache)

        assert fake_redis.sets[f"lb:{tournament.id}"] == {
            str(alpha.id): float(pack_score(13, 3)),
            str(bravo.id): float(pack_score(1, 1)),
        }
        assert fake_redis.ttls[f"lb:{tournament.id}"] == 300

    @pytest.mark.asyncio
    async def test_warm_cache_is_incremented(self, factory, db, cache, fake_redis):
        tournament, (alpha, bravo), first = await _live_match(factory)
        second = await factory.match(tournament.id, number=2)
        await match_service.submit_match_results(db, first.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 0},
        ], cache=cache)

        await match_service.submit_match_results(db, second.id, [
            {"team_id": alpha.id, "placement": 2, "kills": 2},
            {"team_id": bravo.id, "placement": 1, "kills": 1},
        ], cache=cache)

        top = await cache.get_top(tournament.id)
        assert [(e["team_id"], e["total_points"], e["total_kills"]) for e in top] == [
            (alpha.id, 12, 2),
            (bravo.id, 11, 1),
        ]

    @pytest.mark.asyncio
    async def test_redis_down_does_not_fail_submission(self, factory, db, broken_cache):
        tournament, (alpha, _), match = await _live_match(factory)

        result = await match_service.submit_match_results(db, match.id, [
            {"team_id": alpha.id, "placement": 1, "kills": 1},
        ], cache=broken_cache)

        assert result["results"][0]["score"] == 11
        assert await _totals(db, tournament.id) == {alpha.id: (11, 1, 1)}


# =============================================================================
# Row locking
# =============================================================================

class TestMatchRowLock:
    @pytest.fixture
    def match_locks(self, db):
        """Postgres rendering of every SELECT ... FOR UPDATE issued against matches."""
        seen = []

        def capture(state):
            if state.is_select:
                sql = str(state.statement.compile(dialect=postgresql.dialect()))
                if "FROM matches" in sql and "FOR UPDATE" in sql:
                    seen.append(sql)

        event.listen(db.sync_session, "do_orm_execute", capture)
        yield seen
        event.remove(db.sync_session, "do_orm_execute", capture)

    @pytest.mark.asyncio
    async def test_submission_locks_match_row(self, factory, db, match_locks):
        tournament, (alpha, _), match = await _live_match(factory)

        await match_service.submit_match_results(db, match.id, [{"team_id": alpha.id, "placement": 1, "kills": 0}])

        assert len(match_locks) == 1

    @pytest.mark.asyncio
    async def test_result_lock_locks_match_row(self, factory, db, match_locks):
        tournament, _, match = await _live_match(factory)

        await result_lock_service.lock_result(db, match.id, "org-1")

        assert len(match_locks) == 1

    @pytest.mark.asyncio
    async def test_submission_after_lock_rejected(self, factory, session_factory, db):
        tournament, (alpha, _), match = await _live_match(factory)
        async with session_factory() as other:
            await result_lock_service.lock_result(other, match.id, "org-1")

        with pytest.raises(ResultLocked):
            await match_service.submit_match_results(db, match.id, [{"team_id": alpha.id, "placement": 1, "kills": 0}])

        assert await _totals(db, tournament.id) == {}

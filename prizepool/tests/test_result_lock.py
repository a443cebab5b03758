"""
Result locking and SUPERADMIN override.
"""
import pytest
from sqlalchemy import select

from prizepool.exceptions import AlreadyLocked, MatchNotFound, NoLockFound, ReasonTooShort
from prizepool.orm import ComplianceAuditLog, ComplianceEvent, MatchParticipation, TournamentStatus
from prizepool.services import match_service, result_lock_service


async def _events(db, event):
    result = await db.execute(select(ComplianceAuditLog).where(ComplianceAuditLog.event == event.value))
    return list(result.scalars().all())


async def _participations(db, match_id):
    result = await db.execute(
        select(MatchParticipation)
        .where(MatchParticipation.match_id == match_id)
        .execution_options(populate_existing=True)
    )
    return [(p.team_id, p.placement, p.kills, p.score) for p in result.scalars().all()]


# =============================================================================
# Lock
# =============================================================================

class TestLock:
    @pytest.mark.asyncio
    async def test_lock_records_actor(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)

        lock = await result_lock_service.lock_result(db, match.id, "org-1")

        assert lock.locked_by == "org-1"
        assert lock.is_overridden is False
        assert await result_lock_service.is_locked(db, match.id)
        entries = await _events(db, ComplianceEvent.RESULT_LOCKED)
        assert len(entries) == 1
        assert entries[0].organizer_id == "org-1"
        assert entries[0].target_id == str(match.id)

    @pytest.mark.asyncio
    async def test_second_lock_rejected(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        await result_lock_service.lock_result(db, match.id, "org-1")

        with pytest.raises(AlreadyLocked) as exc:
            await result_lock_service.lock_result(db, match.id, "org-2")

        assert exc.value.code == "ALREADY_LOCKED"
        lock = await result_lock_service.get_lock(db, match.id)
        assert lock.locked_by == "org-1"

    @pytest.mark.asyncio
    async def test_unknown_match(self, db):
        with pytest.raises(MatchNotFound):
            await result_lock_service.lock_result(db, 999, "org-1")

    @pytest.mark.asyncio
    async def test_unlocked_match_has_no_audit(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        assert await result_lock_service.get_lock_audit(db, match.id) is None
        assert not await result_lock_service.is_locked(db, match.id)


# =============================================================================
# Override
# =============================================================================

class TestOverride:
    @pytest.mark.asyncio
    async def test_override_unlocks_and_keeps_original(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        await result_lock_service.lock_result(db, match.id, "org-1")

        lock = await result_lock_service.override_result(db, match.id, "super-1", "  Wrong placement entered  ")

        assert lock.is_overridden is True
        assert lock.override_by == "super-1"
        assert lock.override_reason == "Wrong placement entered"
        assert lock.locked_by == "org-1"
        assert not await result_lock_service.is_locked(db, match.id)

        entries = await _events(db, ComplianceEvent.RESULT_OVERRIDDEN)
        assert len(entries) == 1
        assert entries[0].performed_by == "super-1"
        assert entries[0].details["original_locked_by"] == "org-1"
        assert entries[0].details["reason"] == "Wrong placement entered"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", ["", "   ", "too short", "  123456789  "])
    async def test_short_reason_changes_nothing(self, factory, db, reason):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        team = await factory.team(tournament.id, ["p1"])
        await match_service.submit_match_results(db, match.id, [{"team_id": team.id, "placement": 1, "kills": 2}])
        before = await _participations(db, match.id)
        await result_lock_service.lock_result(db, match.id, "org-1")

        with pytest.raises(ReasonTooShort) as exc:
            await result_lock_service.override_result(db, match.id, "super-1", reason)

        assert exc.value.details == {"min_length": 10}
        assert await result_lock_service.is_locked(db, match.id)
        assert await _events(db, ComplianceEvent.RESULT_OVERRIDDEN) == []
        assert await _participations(db, match.id) == before == [(team.id, 1, 2, 12)]

    @pytest.mark.asyncio
    async def test_override_without_lock(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)

        with pytest.raises(NoLockFound):
            await result_lock_service.override_result(db, match.id, "super-1", "Nothing to override here")

    @pytest.mark.asyncio
    async def test_override_twice_rejected(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        await result_lock_service.lock_result(db, match.id, "org-1")
        await result_lock_service.override_result(db, match.id, "super-1", "Scores were swapped")

        with pytest.raises(NoLockFound):
            await result_lock_service.override_result(db, match.id, "super-2", "Second attempt at override")

    @pytest.mark.asyncio
    async def test_relock_after_override_resets_fields(self, factory, db):
        tournament = await factory.tournament(status=TournamentStatus.LIVE)
        match = await factory.match(tournament.id)
        await result_lock_service.lock_result(db, match.id, "org-1")
        await result_lock_service.override_result(db, match.id, "super-1", "Scores were swapped")

        lock = await result_lock_service.lock_result(db, match.id, "org-2")

        assert lock.locked_by == "org-2"
        assert lock.is_overridden is False
        assert lock.override_by is None
        assert lock.override_reason is None
        assert await result_lock_service.is_locked(db, match.id)
        assert len(await _events(db, ComplianceEvent.RESULT_LOCKED)) == 2

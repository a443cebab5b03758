"""
Player registration: entry fee debit, pool credit and capacity rules,
all in one transaction.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from prizepool.exceptions import (
    AlreadyRegistered,
    InsufficientFunds,
    PoolNotOpen,
    RegistrationClosed,
    TeamNotFound,
    TournamentFull,
    TournamentNotFound,
)
from prizepool.orm import ComplianceAuditLog, ComplianceEvent, TournamentParticipant, TournamentStatus
from prizepool.services import registration_service


async def _participants(db, tournament_id):
    return await db.scalar(
        select(func.count(TournamentParticipant.id)).where(TournamentParticipant.tournament_id == tournament_id)
    )


async def _open(factory, escrow, db, fee="100", **kwargs):
    tournament = await factory.tournament(status=TournamentStatus.OPEN, entry_fee=fee, **kwargs)
    await escrow.initialize_pool(db, tournament.id)
    return tournament


# =============================================================================
# Paid entry
# =============================================================================

class TestPaidEntry:
    @pytest.mark.asyncio
    async def test_fee_moves_from_wallet_to_pool(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db)
        await factory.fund("p1", "250")

        participant = await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

        assert participant.payment_status == "PAID"
        assert participant.amount_paid == Decimal("100")
        assert await factory.balance("p1") == Decimal("150")
        pool = await escrow.get_pool(db, tournament.id)
        assert pool.total_collected == Decimal("100")

        entry = (await db.execute(
            select(ComplianceAuditLog).where(ComplianceAuditLog.event == ComplianceEvent.PLAYER_REGISTERED.value)
        )).scalar_one()
        assert entry.details["entry_fee"] == "100.00"

    @pytest.mark.asyncio
    async def test_free_entry_needs_no_wallet(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db, fee="0")

        participant = await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

        assert participant.amount_paid == Decimal("0")
        pool = await escrow.get_pool(db, tournament.id)
        assert pool.total_collected == Decimal("0")

    @pytest.mark.asyncio
    async def test_insufficient_funds_changes_nothing(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db)
        await factory.fund("p1", "50")

        with pytest.raises(InsufficientFunds):
            await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

        assert await factory.balance("p1") == Decimal("50")
        assert await _participants(db, tournament.id) == 0
        pool = await escrow.get_pool(db, tournament.id)
        assert pool.total_collected == Decimal("0")

    @pytest.mark.asyncio
    async def test_locked_pool_rolls_back_debit(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db)
        await escrow.lock_pool(db, tournament.id)
        await factory.fund("late", "100")

        with pytest.raises(PoolNotOpen):
            await registration_service.register_participant(db, tournament.id, "late", escrow=escrow)

        assert await factory.balance("late") == Decimal("100")
        assert await _participants(db, tournament.id) == 0


# =============================================================================
# Eligibility
# =============================================================================

class TestEligibility:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [TournamentStatus.DRAFT, TournamentStatus.LIVE, TournamentStatus.CANCELLED])
    async def test_only_open_accepts(self, factory, db, escrow, status):
        tournament = await factory.tournament(status=status)

        with pytest.raises(RegistrationClosed):
            await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, db, escrow):
        with pytest.raises(TournamentNotFound):
            await registration_service.register_participant(db, 31337, "p1", escrow=escrow)

    @pytest.mark.asyncio
    async def test_charged_once(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db)
        await factory.fund("p1", "300")
        await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

        with pytest.raises(AlreadyRegistered):
            await registration_service.register_participant(db, tournament.id, "p1", escrow=escrow)

        assert await factory.balance("p1") == Decimal("200")
        assert await _participants(db, tournament.id) == 1

    @pytest.mark.asyncio
    async def test_team_must_belong_to_tournament(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db, fee="0")
        other = await factory.tournament(status=TournamentStatus.OPEN, title="Elsewhere")
        team = await factory.team(other.id, ["x"])

        with pytest.raises(TeamNotFound):
            await registration_service.register_participant(db, tournament.id, "p1", team_id=team.id, escrow=escrow)


# =============================================================================
# Capacity
# =============================================================================

class TestCapacity:
    @pytest.mark.asyncio
    async def test_full_tournament_rejects_new_units(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db, fee="0", max_teams=2)
        await registration_service.register_participant(db, tournament.id, "solo-1", escrow=escrow)
        await registration_service.register_participant(db, tournament.id, "solo-2", escrow=escrow)

        with pytest.raises(TournamentFull) as exc:
            await registration_service.register_participant(db, tournament.id, "solo-3", escrow=escrow)

        assert exc.value.details == {"max_teams": 2}

    @pytest.mark.asyncio
    async def test_teammates_share_a_slot(self, factory, escrow, db):
        tournament = await _open(factory, escrow, db, fee="0", max_teams=1)
        team = await factory.team(tournament.id, ["lead", "mate"])
        await registration_service.register_participant(db, tournament.id, "lead", team_id=team.id, escrow=escrow)

        await registration_service.register_participant(db, tournament.id, "mate", team_id=team.id, escrow=escrow)

        with pytest.raises(TournamentFull):
            await registration_service.register_participant(db, tournament.id, "solo", escrow=escrow)
        assert await _participants(db, tournament.id) == 2

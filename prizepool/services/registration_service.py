"""
Tournament registration.

Paid registration is one unit of work: wallet debit, participant row,
escrow credit and compliance entry commit together or not at all.
"""
import logging
from typing import Optional

from sqlalchemy import select, func, distinct
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.core.money import ZERO, round2
from prizepool.exceptions import (
    AlreadyRegistered,
    RegistrationClosed,
    TeamNotFound,
    TournamentFull,
    TournamentNotFound,
)
from prizepool.orm.compliance import ComplianceEvent
from prizepool.orm.tournament import (
    Team, Tournament, TournamentParticipant, TournamentStatus, ParticipantStatus, PaymentStatus
)
from prizepool.orm.wallet import TransactionType
from prizepool.services import compliance_service, wallet_service
from prizepool.services.escrow_service import EscrowService

logger = logging.getLogger(__name__)


async def _registered_slots(db: AsyncSession, tournament_id: int) -> int:
    """Registered units: distinct teams plus solo entrants."""
    active = (
        TournamentParticipant.tournament_id == tournament_id,
        TournamentParticipant.payment_status == PaymentStatus.PAID.value,
    )
    teams = await db.scalar(
        select(func.count(distinct(TournamentParticipant.team_id)))
        .where(*active, TournamentParticipant.team_id.isnot(None))
    )
    solos = await db.scalar(
        select(func.count(TournamentParticipant.id))
        .where(*active, TournamentParticipant.team_id.is_(None))
    )
    return (teams or 0) + (solos or 0)


async def _team_already_entered(db: AsyncSession, tournament_id: int, team_id: int) -> bool:
    result = await db.execute(
        select(TournamentParticipant.id).where(
            TournamentParticipant.tournament_id == tournament_id,
            TournamentParticipant.team_id == team_id,
            TournamentParticipant.payment_status == PaymentStatus.PAID.value,
        ).limit(1)
    )
    return result.first() is not None


async def register_participant(
    db: AsyncSession,
    tournament_id: int,
    user_id: str,
    team_id: Optional[int] = None,
    escrow: Optional[EscrowService] = None,
) -> TournamentParticipant:
    """
    Register a user, charging the entry fee from their wallet.

    Raises:
        TournamentNotFound / TeamNotFound
        RegistrationClosed: tournament not OPEN
        TournamentFull: max_teams reached
        AlreadyRegistered: user already in the tournament
        InsufficientFunds: wallet balance below the entry fee
    """
    escrow = escrow or EscrowService()

    try:
        tournament = await db.get(Tournament, tournament_id, populate_existing=True)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        if tournament.status != TournamentStatus.OPEN.value:
            raise RegistrationClosed(tournament.status)

        if team_id is not None:
            team = await db.get(Team, team_id)
            if team is None or team.tournament_id != tournament_id:
                raise TeamNotFound(team_id)

        existing = await db.execute(
            select(TournamentParticipant.id).where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.user_id == user_id,
            )
        )
        if existing.first() is not None:
            raise AlreadyRegistered(user_id)

        if tournament.max_teams:
            joins_existing_team = team_id is not None and await _team_already_entered(db, tournament_id, team_id)
            if not joins_existing_team and await _registered_slots(db, tournament_id) >= tournament.max_teams:
                raise TournamentFull(tournament.max_teams)

        fee = round2(tournament.entry_fee_per_person or 0)
        if fee > 0:
            await wallet_service.debit(
                db,
                user_id,
                fee,
                TransactionType.ENTRY_FEE,
                description=f"Entry fee for {tournament.title}",
                metadata={"tournament_id": tournament_id},
                commit=False,
            )
            await escrow.credit_entry_fee(db, tournament_id, fee, commit=False)

        participant = TournamentParticipant(
            tournament_id=tournament_id,
            user_id=user_id,
            team_id=team_id,
            status=ParticipantStatus.APPROVED.value,
            payment_status=PaymentStatus.PAID.value,
            amount_paid=fee if fee > 0 else ZERO,
        )
        db.add(participant)
        await db.flush()

        await compliance_service.record(
            db,
            ComplianceEvent.PLAYER_REGISTERED,
            performed_by=user_id,
            details={"user_id": user_id, "team_id": team_id, "entry_fee": fee},
            tournament_id=tournament_id,
            organizer_id=tournament.organizer_id,
            target_id=user_id,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyRegistered(user_id)
    except Exception:
        await db.rollback()
        raise

    logger.info(f"User {user_id} registered for tournament {tournament_id} (fee={fee})")
    return participant

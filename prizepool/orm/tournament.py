"""
Tournament, team and participant models.

Tournament status is only changed through the lifecycle service;
other fields through the administrative update path.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Boolean,
    UniqueConstraint, CheckConstraint, Index
)

from prizepool.core.db_types import UniversalJSON, Money
from prizepool.orm.base import Base, utcnow


class TournamentStatus(str, Enum):
    """Tournament lifecycle status state machine."""
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ParticipantStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class Tournament(Base):
    """
    A paid tournament.

    Attributes:
        organizer_id: External organizer id, NULL for platform-run events
        prize_distribution: Validated list of {rank, percent}
        scoring_rules: Placement-rank -> points map plus "kill" multiplier
        min_teams: Minimum registered teams to go LIVE (NULL = configured default)
    """
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    title = Column(String(200), nullable=False)
    organizer_id = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=TournamentStatus.DRAFT.value)

    entry_fee_per_person = Column(Money(), nullable=False, default=0)
    prize_pool = Column(Money(), nullable=False, default=0)
    prize_distribution = Column(UniversalJSON, nullable=True)
    scoring_rules = Column(UniversalJSON, nullable=True)

    min_teams = Column(Integer, nullable=True)
    max_teams = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'OPEN', 'LIVE', 'COMPLETED', 'CANCELLED')",
            name="ck_tournament_status_valid"
        ),
        CheckConstraint("entry_fee_per_person >= 0", name="ck_tournament_entry_fee_non_negative"),
        Index("idx_tournament_status_start", "status", "start_date"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "organizer_id": self.organizer_id,
            "status": self.status,
            "entry_fee_per_person": str(self.entry_fee_per_person),
            "prize_pool": str(self.prize_pool),
            "prize_distribution": self.prize_distribution,
            "scoring_rules": self.scoring_rules,
            "min_teams": self.min_teams,
            "max_teams": self.max_teams,
            "start_date": self.start_date.isoformat() if self.start_date else None,
        }


class Team(Base):
    """A squad registered into one tournament."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name = Column(String(120), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class TeamMember(Base):
    """
    Team membership. Payout order is leader first, then join order;
    the first member absorbs any rounding remainder.
    """
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(
        Integer,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(String(64), nullable=False, index=True)
    is_leader = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )


class TournamentParticipant(Base):
    """
    Links a user (and optionally a team) to a tournament.

    payment_status moves PAID -> REFUNDED at most once.
    """
    __tablename__ = "tournament_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(String(64), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default=ParticipantStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount_paid = Column(Money(), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_participant_tournament_user"),
        Index("idx_participant_payment", "tournament_id", "payment_status"),
    )

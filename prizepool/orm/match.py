"""
Matches, per-team match results and result locks.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Boolean, Text, UniqueConstraint
)

from prizepool.orm.base import Base, utcnow


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"


class Match(Base):
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    match_number = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=MatchStatus.SCHEDULED.value)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class MatchParticipation(Base):
    """One team's placement, kills and computed score in one match."""
    __tablename__ = "match_participations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    team_id = Column(
        Integer,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    placement = Column(Integer, nullable=False)
    kills = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("match_id", "team_id", name="uq_participation_match_team"),
    )


class ResultLock(Base):
    """
    Freezes a match's results.

    A lock is active while is_overridden is False. Re-locking an
    overridden match resets the override fields in place.
    """
    __tablename__ = "result_locks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )
    locked_by = Column(String(64), nullable=False)
    locked_at = Column(DateTime, default=utcnow, nullable=False)
    is_overridden = Column(Boolean, nullable=False, default=False)
    override_by = Column(String(64), nullable=True)
    override_at = Column(DateTime, nullable=True)
    override_reason = Column(Text, nullable=True)

    def to_dict(self):
        return {
            "match_id": self.match_id,
            "locked_by": self.locked_by,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "is_overridden": self.is_overridden,
            "override_by": self.override_by,
            "override_at": self.override_at.isoformat() if self.override_at else None,
            "override_reason": self.override_reason,
        }

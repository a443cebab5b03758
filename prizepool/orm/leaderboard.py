"""
Durable per-tournament team standings. The redis cache mirrors this table.
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index

from prizepool.orm.base import Base, utcnow


class TournamentLeaderboard(Base):
    __tablename__ = "tournament_leaderboard"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    team_id = Column(
        Integer,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False
    )
    total_points = Column(Integer, nullable=False, default=0)
    total_kills = Column(Integer, nullable=False, default=0)
    matches_played = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_id", name="uq_leaderboard_tournament_team"),
        Index("idx_leaderboard_ranking", "tournament_id", "total_points", "total_kills"),
    )

    def to_dict(self, rank=None):
        data = {
            "team_id": self.team_id,
            "total_points": self.total_points,
            "total_kills": self.total_kills,
            "matches_played": self.matches_played,
        }
        if rank is not None:
            data["rank"] = rank
        return data

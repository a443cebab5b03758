"""
ORM models package
"""
from prizepool.orm.base import Base
from prizepool.orm.tournament import (
    Tournament, Team, TeamMember, TournamentParticipant,
    TournamentStatus, ParticipantStatus, PaymentStatus
)
from prizepool.orm.escrow import EscrowPool, PoolStatus, SettlementKind
from prizepool.orm.wallet import Wallet, WalletTransaction, TransactionType, TransactionStatus
from prizepool.orm.match import Match, MatchParticipation, ResultLock, MatchStatus
from prizepool.orm.leaderboard import TournamentLeaderboard
from prizepool.orm.compliance import ComplianceAuditLog, ComplianceEvent

__all__ = [
    "Base",
    "Tournament",
    "Team",
    "TeamMember",
    "TournamentParticipant",
    "TournamentStatus",
    "ParticipantStatus",
    "PaymentStatus",
    "EscrowPool",
    "PoolStatus",
    "SettlementKind",
    "Wallet",
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
    "Match",
    "MatchParticipation",
    "ResultLock",
    "MatchStatus",
    "TournamentLeaderboard",
    "ComplianceAuditLog",
    "ComplianceEvent",
]

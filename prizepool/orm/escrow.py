"""
Escrow pool holding a tournament's collected entry fees.

Status only moves forward: OPEN -> LOCKED -> DISTRIBUTED, or
OPEN/LOCKED -> DISTRIBUTED when the pool is refunded.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint

from prizepool.core.db_types import Money
from prizepool.orm.base import Base, utcnow


class PoolStatus(str, Enum):
    OPEN = "OPEN"
    LOCKED = "LOCKED"
    DISTRIBUTED = "DISTRIBUTED"


class SettlementKind(str, Enum):
    """How a DISTRIBUTED pool was settled."""
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"


class EscrowPool(Base):
    """
    Attributes:
        total_collected: Sum of entry fees credited while OPEN
        platform_fee_raw: Fee taken at lock time
        net_prize_pool: tracks total_collected while OPEN; total_collected - platform_fee_raw from lock on
        settlement_kind: PAYOUT or REFUND once DISTRIBUTED
    """
    __tablename__ = "escrow_pools"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )
    total_collected = Column(Money(), nullable=False, default=0)
    platform_fee_raw = Column(Money(), nullable=False, default=0)
    net_prize_pool = Column(Money(), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=PoolStatus.OPEN.value)
    settlement_kind = Column(String(20), nullable=True)

    locked_at = Column(DateTime, nullable=True)
    distributed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'LOCKED', 'DISTRIBUTED')",
            name="ck_escrow_status_valid"
        ),
        CheckConstraint("total_collected >= 0", name="ck_escrow_total_non_negative"),
    )

    def to_dict(self):
        return {
            "tournament_id": self.tournament_id,
            "total_collected": str(self.total_collected),
            "platform_fee_raw": str(self.platform_fee_raw),
            "net_prize_pool": str(self.net_prize_pool),
            "status": self.status,
            "settlement_kind": self.settlement_kind,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "distributed_at": self.distributed_at.isoformat() if self.distributed_at else None,
        }

"""
Wallets and the wallet transaction ledger.

Balances only change through the wallet service's conditional
updates. Transactions are append-only apart from resolving a
PENDING row to COMPLETED or FAILED.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index
)

from prizepool.core.db_types import UniversalJSON, Money
from prizepool.orm.base import Base, utcnow


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    ENTRY_FEE = "ENTRY_FEE"
    WINNINGS = "WINNINGS"
    REFUND = "REFUND"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    balance = Column(Money(), nullable=False, default=0)
    frozen_balance = Column(Money(), nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "balance": str(self.balance),
            "frozen_balance": str(self.frozen_balance),
        }


class WalletTransaction(Base):
    """
    One money movement.

    Attributes:
        reference: External payment reference (UTR, gateway id), unique when present
        meta: Free-form JSON (gross/tds/net for winnings, tournament id...)
    """
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_id = Column(
        Integer,
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type = Column(String(20), nullable=False)
    amount = Column(Money(), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.COMPLETED.value)
    method = Column(String(30), nullable=True)
    reference = Column(String(120), nullable=True, unique=True)
    description = Column(String(255), nullable=True)
    meta = Column("metadata", UniversalJSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_tx_amount_positive"),
        CheckConstraint(
            "type IN ('DEPOSIT', 'WITHDRAWAL', 'ENTRY_FEE', 'WINNINGS', 'REFUND')",
            name="ck_wallet_tx_type_valid"
        ),
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED')",
            name="ck_wallet_tx_status_valid"
        ),
        Index("idx_wallet_tx_wallet_created", "wallet_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "amount": str(self.amount),
            "status": self.status,
            "method": self.method,
            "reference": self.reference,
            "description": self.description,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

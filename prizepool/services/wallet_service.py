"""
Wallet Ledger Service

Per-user balance with an append-only transaction log.

Rules:
- Balance never goes negative. Debits are a single conditional UPDATE
  (WHERE balance >= amount); zero affected rows means insufficient funds.
- Every completed balance change writes exactly one transaction row in
  the same unit of work.
- PENDING rows are the only rows ever modified (resolved to COMPLETED
  or FAILED by an admin).

Functions accept commit=False so settlement code can batch many
credits into one transaction.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.core.money import ZERO, Number, round2, to_decimal
from prizepool.core.upsert import dialect_insert
from prizepool.exceptions import (
    DuplicateReference,
    InsufficientFunds,
    InvalidAmount,
    TransactionNotFound,
    TransactionNotPending,
    UnsupportedApproval,
    ValidationError,
)
from prizepool.orm.base import utcnow
from prizepool.orm.wallet import Wallet, WalletTransaction, TransactionType, TransactionStatus

logger = logging.getLogger(__name__)

MIN_MANUAL_DEPOSIT = Decimal("10")
MIN_REFERENCE_LENGTH = 6


def _positive_amount(amount: Number) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise InvalidAmount(amount)
    return round2(value)


def _type_value(tx_type) -> str:
    return tx_type.value if isinstance(tx_type, TransactionType) else str(tx_type)


async def _ensure_wallet(db: AsyncSession, user_id: str) -> None:
    """Insert an empty wallet unless one exists. Safe under concurrent callers."""
    stmt = (
        dialect_insert(db, Wallet)
        .values(user_id=user_id, balance=ZERO, frozen_balance=ZERO)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)


async def _reference_taken(db: AsyncSession, reference: str) -> bool:
    result = await db.execute(
        select(WalletTransaction.id).where(WalletTransaction.reference == reference)
    )
    return result.first() is not None


async def _load_wallet(db: AsyncSession, user_id: str) -> Optional[Wallet]:
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# =============================================================================
# Core ledger operations
# =============================================================================

async def credit(
    db: AsyncSession,
    user_id: str,
    amount: Number,
    tx_type: TransactionType,
    reference: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    description: Optional[str] = None,
    method: Optional[str] = None,
    commit: bool = True,
) -> WalletTransaction:
    """
    Add funds to a user's wallet, creating the wallet on first use.

    Raises:
        InvalidAmount: amount <= 0
        DuplicateReference: reference already recorded
    """
    value = _positive_amount(amount)

    try:
        if reference and await _reference_taken(db, reference):
            raise DuplicateReference(reference)

        await _ensure_wallet(db, user_id)
        result = await db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance=Wallet.balance + value, updated_at=utcnow())
            .returning(Wallet.id)
            .execution_options(synchronize_session=False)
        )
        wallet_id = result.scalar_one()

        transaction = WalletTransaction(
            wallet_id=wallet_id,
            type=_type_value(tx_type),
            amount=value,
            status=TransactionStatus.COMPLETED.value,
            method=method,
            reference=reference,
            description=description,
            meta=metadata,
        )
        db.add(transaction)
        await db.flush()

        if commit:
            await db.commit()
    except IntegrityError:
        if commit:
            await db.rollback()
        if reference:
            raise DuplicateReference(reference)
        raise
    except Exception:
        if commit:
            await db.rollback()
        raise

    logger.info(f"Credited {value} to {user_id} ({_type_value(tx_type)})")
    return transaction


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: Number,
    tx_type: TransactionType,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    status: TransactionStatus = TransactionStatus.COMPLETED,
    method: Optional[str] = None,
    commit: bool = True,
) -> WalletTransaction:
    """
    Remove funds atomically.

    The balance check and the decrement are one conditional UPDATE, so
    concurrent debits can never overdraw the wallet.

    Raises:
        InvalidAmount: amount <= 0
        InsufficientFunds: no wallet, or balance < amount (no transaction row written)
    """
    value = _positive_amount(amount)

    try:
        result = await db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance >= value)
            .values(balance=Wallet.balance - value, updated_at=utcnow())
            .returning(Wallet.id)
            .execution_options(synchronize_session=False)
        )
        wallet_id = result.scalar_one_or_none()
        if wallet_id is None:
            raise InsufficientFunds(user_id, value)

        transaction = WalletTransaction(
            wallet_id=wallet_id,
            type=_type_value(tx_type),
            amount=value,
            status=status.value,
            method=method,
            description=description,
            meta=metadata,
        )
        db.add(transaction)
        await db.flush()

        if commit:
            await db.commit()
    except Exception:
        if commit:
            await db.rollback()
        raise

    logger.info(f"Debited {value} from {user_id} ({_type_value(tx_type)}, {status.value})")
    return transaction


async def get_balance(db: AsyncSession, user_id: str) -> Decimal:
    """Current balance, 0 for users without a wallet."""
    result = await db.execute(select(Wallet.balance).where(Wallet.user_id == user_id))
    balance = result.scalar_one_or_none()
    return round2(balance) if balance is not None else ZERO


async def get_wallet(db: AsyncSession, user_id: str) -> Wallet:
    """Get-or-create the user's wallet."""
    wallet = await _load_wallet(db, user_id)
    if wallet is not None:
        return wallet
    try:
        await _ensure_wallet(db, user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return await _load_wallet(db, user_id)


async def get_transactions(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """Newest-first transaction history for one user."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    wallet = await _load_wallet(db, user_id)
    if wallet is None:
        return {"items": [], "total": 0, "page": page, "limit": limit}

    total = await db.scalar(
        select(func.count(WalletTransaction.id)).where(WalletTransaction.wallet_id == wallet.id)
    )
    result = await db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.wallet_id == wallet.id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "items": [tx.to_dict() for tx in result.scalars().all()],
        "total": total or 0,
        "page": page,
        "limit": limit,
    }


# =============================================================================
# Manual deposit / withdrawal flow
# =============================================================================

async def withdraw(
    db: AsyncSession,
    user_id: str,
    amount: Number,
    method: str = "UPI",
) -> WalletTransaction:
    """
    Place a withdrawal hold.

    The balance is reduced immediately and a PENDING WITHDRAWAL row is
    written; an admin approves (hold becomes final) or rejects (hold
    returned).
    """
    value = _positive_amount(amount)
    return await debit(
        db,
        user_id,
        value,
        TransactionType.WITHDRAWAL,
        description=f"Withdrawal of ₹{value} via {method or 'Bank Transfer'}",
        status=TransactionStatus.PENDING,
        method=method,
    )


async def create_pending_deposit(
    db: AsyncSession,
    user_id: str,
    amount: Number,
    reference: str,
) -> WalletTransaction:
    """
    Record a UPI payment awaiting admin verification. No balance effect.

    Raises:
        ValidationError: below minimum deposit or reference too short
        DuplicateReference: reference already submitted
    """
    value = _positive_amount(amount)
    if value < MIN_MANUAL_DEPOSIT:
        raise ValidationError(f"Minimum deposit is ₹{MIN_MANUAL_DEPOSIT}", "DEPOSIT_TOO_SMALL",
                              {"minimum": str(MIN_MANUAL_DEPOSIT)})
    reference = (reference or "").strip()
    if len(reference) < MIN_REFERENCE_LENGTH:
        raise ValidationError(
            f"Please enter a valid UTR number (at least {MIN_REFERENCE_LENGTH} characters)",
            "INVALID_REFERENCE",
            {"min_length": MIN_REFERENCE_LENGTH}
        )

    try:
        if await _reference_taken(db, reference):
            raise DuplicateReference(reference)

        await _ensure_wallet(db, user_id)
        wallet = await _load_wallet(db, user_id)
        transaction = WalletTransaction(
            wallet_id=wallet.id,
            type=TransactionType.DEPOSIT.value,
            amount=value,
            status=TransactionStatus.PENDING.value,
            method="UPI_QR",
            reference=reference,
            description=f"QR deposit of ₹{value}, UTR: {reference}",
        )
        db.add(transaction)
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateReference(reference)
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Pending deposit {transaction.id} of {value} submitted by {user_id}")
    return transaction


async def get_pending_transactions(db: AsyncSession) -> List[WalletTransaction]:
    """PENDING deposits and withdrawals awaiting an admin, oldest first."""
    result = await db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.status == TransactionStatus.PENDING.value)
        .order_by(WalletTransaction.created_at.asc(), WalletTransaction.id.asc())
    )
    return list(result.scalars().all())


async def _claim_pending(db: AsyncSession, transaction_id: int, new_status: TransactionStatus) -> WalletTransaction:
    """Flip PENDING -> new_status; only one resolver can win."""
    transaction = await db.get(WalletTransaction, transaction_id, populate_existing=True)
    if transaction is None:
        raise TransactionNotFound(transaction_id)
    if transaction.status != TransactionStatus.PENDING.value:
        raise TransactionNotPending(transaction.status)

    result = await db.execute(
        update(WalletTransaction)
        .where(
            WalletTransaction.id == transaction_id,
            WalletTransaction.status == TransactionStatus.PENDING.value,
        )
        .values(status=new_status.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TransactionNotPending("RESOLVED")
    transaction.status = new_status.value
    return transaction


async def approve_transaction(db: AsyncSession, transaction_id: int) -> WalletTransaction:
    """
    Resolve a PENDING transaction as COMPLETED.

    DEPOSIT: balance credited now. WITHDRAWAL: the hold becomes final.
    """
    try:
        transaction = await db.get(WalletTransaction, transaction_id, populate_existing=True)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        if transaction.type not in (TransactionType.DEPOSIT.value, TransactionType.WITHDRAWAL.value):
            raise UnsupportedApproval(transaction.type)

        transaction = await _claim_pending(db, transaction_id, TransactionStatus.COMPLETED)
        if transaction.type == TransactionType.DEPOSIT.value:
            await db.execute(
                update(Wallet)
                .where(Wallet.id == transaction.wallet_id)
                .values(balance=Wallet.balance + transaction.amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Approved {transaction.type} transaction {transaction_id}")
    return transaction


async def reject_transaction(
    db: AsyncSession,
    transaction_id: int,
    reason: Optional[str] = None,
) -> WalletTransaction:
    """
    Resolve a PENDING transaction as FAILED.

    A rejected withdrawal returns its hold to the balance.
    """
    try:
        transaction = await _claim_pending(db, transaction_id, TransactionStatus.FAILED)
        if transaction.type == TransactionType.WITHDRAWAL.value:
            await db.execute(
                update(Wallet)
                .where(Wallet.id == transaction.wallet_id)
                .values(balance=Wallet.balance + transaction.amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        meta = dict(transaction.meta or {})
        meta["rejection_reason"] = reason or "Rejected by admin"
        await db.execute(
            update(WalletTransaction)
            .where(WalletTransaction.id == transaction_id)
            .values({WalletTransaction.meta: meta})
            .execution_options(synchronize_session=False)
        )
        transaction.meta = meta
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning(f"Rejected {transaction.type} transaction {transaction_id}: {reason}")
    return transaction

"""
Wallet endpoints: balance, history, manual deposits and withdrawals,
gateway credits and the admin approval queue.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.database import get_db
from prizepool.orm.wallet import TransactionType
from prizepool.rbac import ADMIN_ROLES, Actor, get_current_actor, require_role
from prizepool.routes.deps import limiter
from prizepool.schemas.settlement import (
    GatewayDepositRequest,
    ManualDepositRequest,
    RejectRequest,
    WithdrawRequest,
)
from prizepool.services import wallet_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


@router.get("/me")
async def get_my_wallet(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    wallet = await wallet_service.get_wallet(db, actor.id)
    return {"success": True, "wallet": wallet.to_dict()}


@router.get("/me/transactions")
async def get_my_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    history = await wallet_service.get_transactions(db, actor.id, page=page, limit=limit)
    return {"success": True, **history}


@router.post("/withdraw", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def withdraw(
    request: Request,
    payload: WithdrawRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Hold the amount and queue the withdrawal for admin approval."""
    transaction = await wallet_service.withdraw(db, actor.id, payload.amount, method=payload.method)
    return {"success": True, "transaction": transaction.to_dict()}


@router.post("/deposits", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def submit_deposit(
    request: Request,
    payload: ManualDepositRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Record a UPI payment for verification. The balance changes on approval."""
    transaction = await wallet_service.create_pending_deposit(db, actor.id, payload.amount, payload.reference)
    return {"success": True, "transaction": transaction.to_dict()}


@router.post("/deposits/gateway", status_code=status.HTTP_201_CREATED)
async def gateway_deposit(
    payload: GatewayDepositRequest,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Credit a payment already captured by the gateway adapter.

    The gateway reference is unique; a replayed callback gets 400
    DUPLICATE_REFERENCE and no second credit.
    """
    transaction = await wallet_service.credit(
        db,
        payload.user_id,
        payload.amount,
        TransactionType.DEPOSIT,
        reference=payload.reference,
        metadata={"source": "gateway", "forwarded_by": actor.id},
        description=f"Deposit via {payload.method}",
        method=payload.method,
    )
    return {"success": True, "transaction": transaction.to_dict()}


# ================= ADMIN QUEUE =================

@router.get("/transactions/pending")
async def list_pending(
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    pending = await wallet_service.get_pending_transactions(db)
    return {"success": True, "items": [tx.to_dict() for tx in pending], "total": len(pending)}


@router.post("/transactions/{transaction_id}/approve")
async def approve(
    transaction_id: int,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    transaction = await wallet_service.approve_transaction(db, transaction_id)
    logger.info(f"Transaction {transaction_id} approved by {actor.id}")
    return {"success": True, "transaction": transaction.to_dict()}


@router.post("/transactions/{transaction_id}/reject")
async def reject(
    transaction_id: int,
    payload: RejectRequest,
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    transaction = await wallet_service.reject_transaction(db, transaction_id, payload.reason)
    logger.info(f"Transaction {transaction_id} rejected by {actor.id}")
    return {"success": True, "transaction": transaction.to_dict()}

"""
Compliance Audit Service

Append-only record of settlement-relevant events.

Rules:
- record() only adds to the caller's unit of work; the caller commits
  together with the state change being documented
- Entries are never updated or deleted (enforced by ORM guards)
- Amounts are stored as fixed two-decimal strings
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.core.money import ZERO, round2, to_decimal
from prizepool.orm.compliance import ComplianceAuditLog, ComplianceEvent

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def to_jsonable(value: Any) -> Any:
    """Decimals to strings, datetimes to ISO, recursively."""
    if isinstance(value, Decimal):
        return str(round2(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


async def record(
    db: AsyncSession,
    event: ComplianceEvent,
    performed_by: Optional[str],
    details: Optional[Dict[str, Any]] = None,
    tournament_id: Optional[int] = None,
    organizer_id: Optional[str] = None,
    target_id: Optional[Any] = None,
    ip_address: Optional[str] = None,
) -> ComplianceAuditLog:
    """Add an audit entry to the current transaction (flushed, not committed)."""
    entry = ComplianceAuditLog(
        organizer_id=organizer_id,
        tournament_id=tournament_id,
        event=event.value if isinstance(event, ComplianceEvent) else str(event),
        target_id=str(target_id) if target_id is not None else None,
        details=to_jsonable(details or {}),
        performed_by=performed_by or SYSTEM_ACTOR,
        ip_address=ip_address,
    )
    db.add(entry)
    await db.flush()
    logger.debug(f"Compliance event {entry.event} recorded for tournament {tournament_id}")
    return entry


async def get_audit_trail(
    db: AsyncSession,
    organizer_id: Optional[str] = None,
    tournament_id: Optional[int] = None,
    event: Optional[ComplianceEvent] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    """Newest-first audit entries with optional filters."""
    page = max(page, 1)
    limit = min(max(limit, 1), 200)

    conditions = []
    if organizer_id is not None:
        conditions.append(ComplianceAuditLog.organizer_id == organizer_id)
    if tournament_id is not None:
        conditions.append(ComplianceAuditLog.tournament_id == tournament_id)
    if event is not None:
        conditions.append(ComplianceAuditLog.event == (event.value if isinstance(event, ComplianceEvent) else event))

    total = await db.scalar(select(func.count(ComplianceAuditLog.id)).where(*conditions))
    result = await db.execute(
        select(ComplianceAuditLog)
        .where(*conditions)
        .order_by(ComplianceAuditLog.created_at.desc(), ComplianceAuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "items": [entry.to_dict() for entry in result.scalars().all()],
        "total": total or 0,
        "page": page,
        "limit": limit,
    }


async def get_tds_summary(
    db: AsyncSession,
    from_date: datetime,
    to_date: datetime,
    organizer_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Tax deducted at source on prize payouts in a date range.

    Reads PRIZE_DISTRIBUTED entries and reports every member payout
    that had tax withheld.
    """
    conditions = [
        ComplianceAuditLog.event == ComplianceEvent.PRIZE_DISTRIBUTED.value,
        ComplianceAuditLog.created_at >= from_date,
        ComplianceAuditLog.created_at <= to_date,
    ]
    if organizer_id is not None:
        conditions.append(ComplianceAuditLog.organizer_id == organizer_id)

    result = await db.execute(
        select(ComplianceAuditLog)
        .where(*conditions)
        .order_by(ComplianceAuditLog.created_at.asc(), ComplianceAuditLog.id.asc())
    )

    records: List[Dict[str, Any]] = []
    total_gross = ZERO
    total_tds = ZERO
    total_net = ZERO
    for entry in result.scalars().all():
        for payout in (entry.details or {}).get("payouts", []):
            tds = to_decimal(payout.get("tds", "0"))
            if tds <= 0:
                continue
            gross = to_decimal(payout.get("gross", "0"))
            net = to_decimal(payout.get("net", "0"))
            total_gross += gross
            total_tds += tds
            total_net += net
            records.append({
                "tournament_id": entry.tournament_id,
                "user_id": payout.get("user_id"),
                "team_id": payout.get("team_id"),
                "rank": payout.get("rank"),
                "gross": str(round2(gross)),
                "tds": str(round2(tds)),
                "net": str(round2(net)),
                "date": entry.created_at.isoformat() if entry.created_at else None,
            })

    return {
        "from": from_date.isoformat(),
        "to": to_date.isoformat(),
        "organizer_id": organizer_id,
        "count": len(records),
        "total_gross": str(round2(total_gross)),
        "total_tds": str(round2(total_tds)),
        "total_net": str(round2(total_net)),
        "records": records,
    }

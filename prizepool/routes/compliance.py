"""
Compliance audit trail and TDS reporting.

Organizers only ever see their own entries; admins may filter by any
organizer or tournament.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.database import get_db
from prizepool.exceptions import ValidationError
from prizepool.orm.base import naive_utc, utcnow
from prizepool.orm.compliance import ComplianceEvent
from prizepool.rbac import OPERATOR_ROLES, Actor, Role, require_role
from prizepool.services import compliance_service

router = APIRouter(prefix="/api/compliance", tags=["Compliance"])

DEFAULT_REPORT_DAYS = 30


def _scope_organizer(actor: Actor, organizer_id: Optional[str]) -> Optional[str]:
    if actor.role == Role.ORGANIZER:
        return actor.id
    return organizer_id


@router.get("/audit-trail")
async def get_audit_trail(
    tournament_id: Optional[int] = Query(None, ge=1),
    organizer_id: Optional[str] = Query(None),
    event: Optional[ComplianceEvent] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    trail = await compliance_service.get_audit_trail(
        db,
        organizer_id=_scope_organizer(actor, organizer_id),
        tournament_id=tournament_id,
        event=event,
        page=page,
        limit=limit,
    )
    return {"success": True, **trail}


@router.get("/tds-report")
async def get_tds_report(
    from_date: Optional[datetime] = Query(None, alias="from"),
    to_date: Optional[datetime] = Query(None, alias="to"),
    organizer_id: Optional[str] = Query(None),
    actor: Actor = Depends(require_role(OPERATOR_ROLES)),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Tax withheld on prize payouts between two dates (default: last 30 days).
    """
    to_date = naive_utc(to_date) or utcnow()
    from_date = naive_utc(from_date) or to_date - timedelta(days=DEFAULT_REPORT_DAYS)
    if from_date > to_date:
        raise ValidationError(
            "'from' must not be after 'to'",
            "INVALID_DATE_RANGE",
            {"from": from_date.isoformat(), "to": to_date.isoformat()}
        )

    summary = await compliance_service.get_tds_summary(
        db, from_date, to_date, organizer_id=_scope_organizer(actor, organizer_id)
    )
    return {"success": True, "report": summary}

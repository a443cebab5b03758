"""
Compliance audit log.

Single append-only table recording every financially or competitively
significant state change: who did it, when and the details needed to
reconstruct it. Rows are written in the same transaction as the change
they document.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Index, event
from sqlalchemy.orm import Session

from prizepool.core.db_types import UniversalJSON
from prizepool.exceptions import AuditLogImmutable
from prizepool.orm.base import Base, utcnow


class ComplianceEvent(str, Enum):
    TOURNAMENT_CREATED = "TOURNAMENT_CREATED"
    TOURNAMENT_STATUS_CHANGED = "TOURNAMENT_STATUS_CHANGED"
    PLAYER_REGISTERED = "PLAYER_REGISTERED"
    POOL_LOCKED = "POOL_LOCKED"
    PRIZE_DISTRIBUTED = "PRIZE_DISTRIBUTED"
    REFUND_ISSUED = "REFUND_ISSUED"
    RESULT_LOCKED = "RESULT_LOCKED"
    RESULT_OVERRIDDEN = "RESULT_OVERRIDDEN"


class ComplianceAuditLog(Base):
    """
    Attributes:
        organizer_id: Organizer owning the tournament, NULL for platform events
        tournament_id: Plain reference (no FK) so the log outlives deleted tournaments
        target_id: Id of the affected entity (pool, match, user...)
        details: Event payload
        performed_by: Actor id or "system"
    """
    __tablename__ = "compliance_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organizer_id = Column(String(64), nullable=True, index=True)
    tournament_id = Column(Integer, nullable=True, index=True)
    event = Column(String(40), nullable=False)
    target_id = Column(String(64), nullable=True)
    details = Column(UniversalJSON, nullable=True)
    performed_by = Column(String(64), nullable=False)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_compliance_event_created", "event", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "organizer_id": self.organizer_id,
            "tournament_id": self.tournament_id,
            "event": self.event,
            "target_id": self.target_id,
            "details": self.details,
            "performed_by": self.performed_by,
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# =============================================================================
# Append-Only Guards
# =============================================================================

@event.listens_for(ComplianceAuditLog, 'before_update')
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit entries (append-only)."""
    raise AuditLogImmutable("update")


@event.listens_for(ComplianceAuditLog, 'before_delete')
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletions from the audit log (append-only)."""
    raise AuditLogImmutable("delete")


@event.listens_for(Session, 'do_orm_execute')
def prevent_bulk_audit_changes(orm_execute_state):
    """Bulk update()/delete() statements bypass the mapper hooks."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is ComplianceAuditLog:
        raise AuditLogImmutable("update" if orm_execute_state.is_update else "delete")

"""
Result Lock Service

Freezes match results after submission. Only a SUPERADMIN override with
a written reason unfreezes a locked match; both actions are audited.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.exceptions import AlreadyLocked, MatchNotFound, NoLockFound, ReasonTooShort
from prizepool.orm.base import utcnow
from prizepool.orm.compliance import ComplianceEvent
from prizepool.orm.match import Match, ResultLock
from prizepool.orm.tournament import Tournament
from prizepool.services import compliance_service

logger = logging.getLogger(__name__)

MIN_OVERRIDE_REASON_LENGTH = 10


async def get_lock(db: AsyncSession, match_id: int) -> Optional[ResultLock]:
    result = await db.execute(
        select(ResultLock)
        .where(ResultLock.match_id == match_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_match_for_update(db: AsyncSession, match_id: int) -> Match:
    """
    Row-lock the match for the rest of the transaction.

    Result submission and locking both take this lock first, so a result
    write can never interleave with a lock being placed.
    """
    result = await db.execute(
        select(Match)
        .where(Match.id == match_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFound(match_id)
    return match


async def get_match_context(db: AsyncSession, match_id: int) -> Tuple[Match, Optional[Tournament]]:
    match = await db.get(Match, match_id)
    if match is None:
        raise MatchNotFound(match_id)
    tournament = await db.get(Tournament, match.tournament_id)
    return match, tournament


async def lock_result(db: AsyncSession, match_id: int, actor_id: str) -> ResultLock:
    """
    Lock a match's results.

    Re-locking a previously overridden match resets the override fields.

    Raises:
        AlreadyLocked: an active lock exists
        MatchNotFound: unknown match
    """
    try:
        await load_match_for_update(db, match_id)
        existing = await get_lock(db, match_id)
        if existing is not None and not existing.is_overridden:
            raise AlreadyLocked(match_id, existing.locked_by)

        match, tournament = await get_match_context(db, match_id)
        now = utcnow()

        if existing is None:
            lock = ResultLock(match_id=match_id, locked_by=actor_id, locked_at=now, is_overridden=False)
            db.add(lock)
            await db.flush()
        else:
            result = await db.execute(
                update(ResultLock)
                .where(ResultLock.id == existing.id, ResultLock.is_overridden.is_(True))
                .values(
                    locked_by=actor_id,
                    locked_at=now,
                    is_overridden=False,
                    override_by=None,
                    override_at=None,
                    override_reason=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyLocked(match_id, existing.locked_by)
            lock = await get_lock(db, match_id)

        await compliance_service.record(
            db,
            ComplianceEvent.RESULT_LOCKED,
            performed_by=actor_id,
            details={"match_id": match_id, "match_number": match.match_number},
            tournament_id=match.tournament_id,
            organizer_id=tournament.organizer_id if tournament else None,
            target_id=match_id,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        current = await get_lock(db, match_id)
        raise AlreadyLocked(match_id, current.locked_by if current else "unknown")
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Match {match_id} result locked by {actor_id}")
    return lock


async def override_result(
    db: AsyncSession,
    match_id: int,
    super_actor_id: str,
    reason: str,
) -> ResultLock:
    """
    Lift an active lock.

    Only an active lock can be overridden: a lock that was already
    overridden counts as absent and raises NoLockFound, so each lock
    yields at most one RESULT_OVERRIDDEN entry. Re-lock the match to make
    it overridable again.

    The reason is validated before anything is read, so a rejected
    override leaves no trace.

    Raises:
        ReasonTooShort: reason shorter than 10 characters after trimming
        NoLockFound: no active lock for the match
    """
    reason = (reason or "").strip()
    if len(reason) < MIN_OVERRIDE_REASON_LENGTH:
        raise ReasonTooShort(MIN_OVERRIDE_REASON_LENGTH)

    try:
        lock = await get_lock(db, match_id)
        if lock is None or lock.is_overridden:
            raise NoLockFound(match_id)

        original_locked_by = lock.locked_by
        original_locked_at = lock.locked_at
        now = utcnow()

        result = await db.execute(
            update(ResultLock)
            .where(ResultLock.id == lock.id, ResultLock.is_overridden.is_(False))
            .values(
                is_overridden=True,
                override_by=super_actor_id,
                override_at=now,
                override_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NoLockFound(match_id)

        match, tournament = await get_match_context(db, match_id)
        await compliance_service.record(
            db,
            ComplianceEvent.RESULT_OVERRIDDEN,
            performed_by=super_actor_id,
            details={
                "match_id": match_id,
                "reason": reason,
                "original_locked_by": original_locked_by,
                "original_locked_at": original_locked_at,
            },
            tournament_id=match.tournament_id,
            organizer_id=tournament.organizer_id if tournament else None,
            target_id=match_id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning(f"Match {match_id} result lock overridden by {super_actor_id}: {reason}")
    return await get_lock(db, match_id)


async def is_locked(db: AsyncSession, match_id: int) -> bool:
    """True while an active (non-overridden) lock exists."""
    lock = await get_lock(db, match_id)
    return lock is not None and not lock.is_overridden


async def get_lock_audit(db: AsyncSession, match_id: int) -> Optional[Dict[str, Any]]:
    lock = await get_lock(db, match_id)
    return lock.to_dict() if lock else None

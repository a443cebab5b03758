"""
Escrow Pool Service

Holds collected entry fees per tournament and settles them exactly once,
either as prize payouts or as refunds.

State machine:
    OPEN --lock--> LOCKED --distribute--> DISTRIBUTED (PAYOUT)
    OPEN/LOCKED --refund--> DISTRIBUTED (REFUND)

Rules:
- Every status change is a compare-and-swap UPDATE checked by rowcount,
  so two concurrent settlements cannot both succeed
- Wallet credits, participant updates, the status flip and the
  compliance entry commit together or not at all
- Notifications and cache invalidation happen after commit and never
  fail the settlement
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config.settings import SettlementConfig
from prizepool.core.money import ZERO, Number, floor2, percent_of, round2
from prizepool.core.upsert import dialect_insert
from prizepool.exceptions import (
    AlreadyDistributed,
    InvalidAmount,
    NoLeaderboardEntries,
    PoolAlreadyLocked,
    PoolNotFound,
    PoolNotLocked,
    PoolNotOpen,
    TournamentNotFound,
)
from prizepool.orm.base import utcnow
from prizepool.orm.compliance import ComplianceEvent
from prizepool.orm.escrow import EscrowPool, PoolStatus, SettlementKind
from prizepool.orm.tournament import TeamMember, Tournament, TournamentParticipant, PaymentStatus
from prizepool.orm.wallet import TransactionType
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.schemas.prize_rules import parse_prize_rules
from prizepool.services import compliance_service, leaderboard_service, wallet_service
from prizepool.services.notification_service import NotificationService
from prizepool.services.payout_service import split_team_prize

logger = logging.getLogger(__name__)

LOCK_ATTEMPTS = 5


async def get_team_member_ids(db: AsyncSession, team_id: int) -> List[str]:
    """
    Payout order: leader first, then join order.

    Teams without membership rows fall back to their registered
    participants in registration order.
    """
    result = await db.execute(
        select(TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.is_leader.desc(), TeamMember.joined_at.asc(), TeamMember.id.asc())
    )
    member_ids = list(result.scalars().all())
    if member_ids:
        return member_ids

    result = await db.execute(
        select(TournamentParticipant.user_id)
        .where(TournamentParticipant.team_id == team_id)
        .order_by(TournamentParticipant.created_at.asc(), TournamentParticipant.id.asc())
    )
    return list(result.scalars().all())


class EscrowService:
    """
    Escrow settlement for tournaments.

    Fee and tax constants come from the injected SettlementConfig.
    """

    def __init__(
        self,
        config: Optional[SettlementConfig] = None,
        notifier: Optional[NotificationService] = None,
        cache: Optional[LeaderboardCache] = None,
    ):
        self.config = config or SettlementConfig()
        self.notifier = notifier or NotificationService()
        self.cache = cache

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    async def _find_pool(db: AsyncSession, tournament_id: int) -> Optional[EscrowPool]:
        result = await db.execute(
            select(EscrowPool)
            .where(EscrowPool.tournament_id == tournament_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_pool(self, db: AsyncSession, tournament_id: int) -> EscrowPool:
        pool = await self._find_pool(db, tournament_id)
        if pool is None:
            raise PoolNotFound(tournament_id)
        return pool

    @staticmethod
    async def _get_tournament(db: AsyncSession, tournament_id: int) -> Tournament:
        tournament = await db.get(Tournament, tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    # ==========================================================================
    # Collection
    # ==========================================================================

    async def initialize_pool(self, db: AsyncSession, tournament_id: int, commit: bool = True) -> EscrowPool:
        """Create an empty OPEN pool. Idempotent."""
        try:
            await db.execute(
                dialect_insert(db, EscrowPool)
                .values(
                    tournament_id=tournament_id,
                    total_collected=ZERO,
                    platform_fee_raw=ZERO,
                    net_prize_pool=ZERO,
                    status=PoolStatus.OPEN.value,
                )
                .on_conflict_do_nothing(index_elements=["tournament_id"])
            )
            pool = await self.get_pool(db, tournament_id)
            if commit:
                await db.commit()
        except Exception:
            if commit:
                await db.rollback()
            raise
        return pool

    async def credit_entry_fee(
        self,
        db: AsyncSession,
        tournament_id: int,
        amount: Number,
        commit: bool = True,
    ) -> None:
        """
        Add a collected fee to an OPEN pool.

        Raises:
            PoolNotFound: no pool for the tournament
            PoolNotOpen: pool already LOCKED or DISTRIBUTED
        """
        value = round2(amount)
        if value <= 0:
            raise InvalidAmount(amount)

        try:
            result = await db.execute(
                update(EscrowPool)
                .where(
                    EscrowPool.tournament_id == tournament_id,
                    EscrowPool.status == PoolStatus.OPEN.value,
                )
                .values(
                    total_collected=EscrowPool.total_collected + value,
                    net_prize_pool=EscrowPool.net_prize_pool + value,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                pool = await self._find_pool(db, tournament_id)
                if pool is None:
                    raise PoolNotFound(tournament_id)
                raise PoolNotOpen(pool.status)
            if commit:
                await db.commit()
        except Exception:
            if commit:
                await db.rollback()
            raise

    # ==========================================================================
    # Lock
    # ==========================================================================

    async def lock_pool(self, db: AsyncSession, tournament_id: int, actor_id: Optional[str] = None) -> EscrowPool:
        """
        Freeze the pool and compute the platform fee.

        fee = round2(total * fee% / 100), net = total - fee

        Raises:
            PoolNotFound
            PoolAlreadyLocked: pool is not OPEN (also for the loser of a race)
        """
        fee_percent = self.config.platform_fee_percent
        try:
            tournament = await self._get_tournament(db, tournament_id)
            for _ in range(LOCK_ATTEMPTS):
                pool = await self.get_pool(db, tournament_id)
                if pool.status != PoolStatus.OPEN.value:
                    raise PoolAlreadyLocked(pool.status)

                total = round2(pool.total_collected)
                fee = round2(percent_of(total, fee_percent))
                net = total - fee

                # total_collected in the predicate: a fee credited meanwhile forces a recompute
                result = await db.execute(
                    update(EscrowPool)
                    .where(
                        EscrowPool.id == pool.id,
                        EscrowPool.status == PoolStatus.OPEN.value,
                        EscrowPool.total_collected == pool.total_collected,
                    )
                    .values(
                        status=PoolStatus.LOCKED.value,
                        platform_fee_raw=fee,
                        net_prize_pool=net,
                        locked_at=utcnow(),
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    break
            else:
                pool = await self.get_pool(db, tournament_id)
                raise PoolAlreadyLocked(pool.status)

            await compliance_service.record(
                db,
                ComplianceEvent.POOL_LOCKED,
                performed_by=actor_id,
                details={
                    "total_collected": total,
                    "platform_fee_percent": fee_percent,
                    "platform_fee": fee,
                    "net_prize_pool": net,
                },
                tournament_id=tournament_id,
                organizer_id=tournament.organizer_id,
                target_id=pool.id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Escrow pool locked for tournament {tournament_id}: "
            f"total={total} fee={fee} net={net}"
        )
        return await self.get_pool(db, tournament_id)

    # ==========================================================================
    # Settlement
    # ==========================================================================

    async def _flip_to_distributed(self, db: AsyncSession, pool_id: int, from_statuses: List[str],
                                   kind: SettlementKind) -> bool:
        result = await db.execute(
            update(EscrowPool)
            .where(EscrowPool.id == pool_id, EscrowPool.status.in_(from_statuses))
            .values(
                status=PoolStatus.DISTRIBUTED.value,
                settlement_kind=kind.value,
                distributed_at=utcnow(),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def distribute_pool(
        self,
        db: AsyncSession,
        tournament_id: int,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Pay the net prize pool to the leaderboard's top ranks.

        Each prize rule pays floor2(net * percent / 100) to the team at
        that rank, split across its members; members are credited their
        after-tax share.

        Raises:
            PoolNotFound / TournamentNotFound
            PoolNotLocked: pool is OPEN or already DISTRIBUTED
            NoLeaderboardEntries: nobody to pay
            InvalidPrizeRules: stored rules unparseable
        """
        payouts: List[Dict[str, Any]] = []
        try:
            tournament = await self._get_tournament(db, tournament_id)
            pool = await self.get_pool(db, tournament_id)
            if pool.status != PoolStatus.LOCKED.value:
                raise PoolNotLocked(pool.status)

            rules = parse_prize_rules(tournament.prize_distribution)
            entries = await leaderboard_service.get_ranked_entries(db, tournament_id)
            if not entries:
                raise NoLeaderboardEntries(tournament_id)

            if not await self._flip_to_distributed(db, pool.id, [PoolStatus.LOCKED.value], SettlementKind.PAYOUT):
                current = await self.get_pool(db, tournament_id)
                raise PoolNotLocked(current.status)

            net_pool = round2(pool.net_prize_pool)
            total_tds = ZERO
            total_paid = ZERO
            allocated = ZERO

            for rule in rules:
                if rule.rank > len(entries):
                    logger.warning(f"Tournament {tournament_id}: no team at rank {rule.rank}, share retained")
                    continue
                entry = entries[rule.rank - 1]
                team_total = floor2(percent_of(net_pool, rule.percent))
                if team_total <= 0:
                    continue

                member_ids = await get_team_member_ids(db, entry.team_id)
                if not member_ids:
                    logger.warning(f"Tournament {tournament_id}: team {entry.team_id} has no members, share retained")
                    continue

                allocated += team_total
                for share in split_team_prize(team_total, member_ids, self.config):
                    payout = {
                        "user_id": share.user_id,
                        "team_id": entry.team_id,
                        "rank": rule.rank,
                        "gross": share.gross,
                        "tds": share.tds,
                        "net": share.net,
                    }
                    if share.net > 0:
                        await wallet_service.credit(
                            db,
                            share.user_id,
                            share.net,
                            TransactionType.WINNINGS,
                            metadata={
                                "tournament_id": tournament_id,
                                "team_id": entry.team_id,
                                "rank": rule.rank,
                                "gross": str(share.gross),
                                "tds": str(share.tds),
                                "net": str(share.net),
                            },
                            description=f"Prize for rank #{rule.rank} in {tournament.title}",
                            commit=False,
                        )
                    total_tds += share.tds
                    total_paid += share.net
                    payouts.append(payout)

            await compliance_service.record(
                db,
                ComplianceEvent.PRIZE_DISTRIBUTED,
                performed_by=actor_id,
                details={
                    "net_prize_pool": net_pool,
                    "allocated": allocated,
                    "retained": net_pool - allocated,
                    "total_paid": total_paid,
                    "total_tds": total_tds,
                    "payouts": payouts,
                },
                tournament_id=tournament_id,
                organizer_id=tournament.organizer_id,
                target_id=pool.id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Prizes distributed for tournament {tournament_id}: "
            f"{len(payouts)} payouts, paid={total_paid} tds={total_tds}"
        )

        for payout in payouts:
            if payout["net"] > 0:
                await self.notifier.notify_prize_credited(
                    payout["user_id"], payout["net"], tournament.title, payout["rank"]
                )
        if self.cache is not None:
            await self.cache.clear(tournament_id)

        return {
            "tournament_id": tournament_id,
            "status": PoolStatus.DISTRIBUTED.value,
            "settlement_kind": SettlementKind.PAYOUT.value,
            "net_prize_pool": str(net_pool),
            "total_paid": str(total_paid),
            "total_tds": str(total_tds),
            "payouts": compliance_service.to_jsonable(payouts),
        }

    async def refund_pool(
        self,
        db: AsyncSession,
        tournament_id: int,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Return each PAID participant's entry fee.

        A tournament without a pool has nothing to refund and yields an
        empty summary.

        Raises:
            TournamentNotFound
            AlreadyDistributed: the pool was already settled
        """
        refunds: List[Dict[str, Any]] = []
        total_refunded = ZERO
        try:
            tournament = await self._get_tournament(db, tournament_id)
            pool = await self._find_pool(db, tournament_id)
            if pool is None:
                logger.info(f"Tournament {tournament_id} has no escrow pool, nothing to refund")
                return {
                    "tournament_id": tournament_id,
                    "status": None,
                    "refunded_count": 0,
                    "total_refunded": str(ZERO),
                    "refunds": [],
                }
            if pool.status == PoolStatus.DISTRIBUTED.value:
                raise AlreadyDistributed()

            if not await self._flip_to_distributed(
                db, pool.id, [PoolStatus.OPEN.value, PoolStatus.LOCKED.value], SettlementKind.REFUND
            ):
                raise AlreadyDistributed()

            fee = round2(tournament.entry_fee_per_person or 0)
            result = await db.execute(
                select(TournamentParticipant)
                .where(
                    TournamentParticipant.tournament_id == tournament_id,
                    TournamentParticipant.payment_status == PaymentStatus.PAID.value,
                )
                .order_by(TournamentParticipant.id.asc())
            )
            for participant in result.scalars().all():
                flipped = await db.execute(
                    update(TournamentParticipant)
                    .where(
                        TournamentParticipant.id == participant.id,
                        TournamentParticipant.payment_status == PaymentStatus.PAID.value,
                    )
                    .values(payment_status=PaymentStatus.REFUNDED.value, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount != 1:
                    continue
                if fee > 0:
                    await wallet_service.credit(
                        db,
                        participant.user_id,
                        fee,
                        TransactionType.REFUND,
                        metadata={"tournament_id": tournament_id},
                        description=f"Refund for {tournament.title}",
                        commit=False,
                    )
                total_refunded += fee
                refunds.append({"user_id": participant.user_id, "amount": fee})

            await compliance_service.record(
                db,
                ComplianceEvent.REFUND_ISSUED,
                performed_by=actor_id,
                details={
                    "entry_fee_per_person": fee,
                    "refunded_count": len(refunds),
                    "total_refunded": total_refunded,
                    "refunds": refunds,
                },
                tournament_id=tournament_id,
                organizer_id=tournament.organizer_id,
                target_id=pool.id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Refunded tournament {tournament_id}: {len(refunds)} participants, total={total_refunded}"
        )

        for refund in refunds:
            if refund["amount"] > 0:
                await self.notifier.notify_refund_issued(refund["user_id"], refund["amount"], tournament.title)

        return {
            "tournament_id": tournament_id,
            "status": PoolStatus.DISTRIBUTED.value,
            "settlement_kind": SettlementKind.REFUND.value,
            "refunded_count": len(refunds),
            "total_refunded": str(total_refunded),
            "refunds": compliance_service.to_jsonable(refunds),
        }

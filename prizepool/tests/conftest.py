"""
Shared fixtures: a file-backed SQLite database per test, an in-memory
stand-in for the redis sorted-set commands, recording fakes for
notifications and job dispatch, and an HTTP client bound to the app.
"""
import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FEATURE_ASYNC_SETTLEMENT", "false")

from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from prizepool.config.settings import SettlementConfig
from prizepool.database import make_engine, make_sessionmaker
from prizepool.orm import (
    Base,
    Match,
    Team,
    TeamMember,
    Tournament,
    TournamentStatus,
)
from prizepool.orm.base import utcnow
from prizepool.realtime.leaderboard_cache import LeaderboardCache
from prizepool.services import wallet_service
from prizepool.services.escrow_service import EscrowService
from prizepool.services.lifecycle_service import LifecycleService
from prizepool.services.notification_service import NotificationService
from prizepool.orm.wallet import TransactionType
from prizepool.rbac import create_access_token


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite file per test; NullPool so every session gets its own connection."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Fakes
# =============================================================================

class FakeRedis:
    """Sorted-set subset of redis.asyncio.Redis used by LeaderboardCache."""

    def __init__(self):
        self.sets: Dict[str, Dict[str, float]] = {}
        self.ttls: Dict[str, int] = {}

    async def exists(self, key):
        return 1 if self.sets.get(key) else 0

    async def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update({m: float(s) for m, s in mapping.items()})
        return len(mapping)

    async def zincrby(self, key, amount, member):
        zset = self.sets.setdefault(key, {})
        zset[member] = zset.get(member, 0.0) + float(amount)
        return zset[member]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def _ordered(self, key):
        return sorted(self.sets.get(key, {}).items(), key=lambda item: (item[1], item[0]), reverse=True)

    async def zrevrange(self, key, start, end, withscores=False):
        rows = self._ordered(key)
        rows = rows[start:] if end == -1 else rows[start:end + 1]
        return rows if withscores else [member for member, _ in rows]

    async def zrevrank(self, key, member):
        for index, (name, _) in enumerate(self._ordered(key)):
            if name == member:
                return index
        return None

    async def zscore(self, key, member):
        return self.sets.get(key, {}).get(member)

    @staticmethod
    def _bound(value, default):
        if value in ("+inf", "-inf"):
            return default
        text = str(value)
        if text.startswith("("):
            return float(text[1:]), True
        return float(text), False

    async def zcount(self, key, low, high):
        return len(await self.zrangebyscore(key, low, high))

    async def zrangebyscore(self, key, low, high):
        low_value, low_open = self._bound(low, (float("-inf"), False))
        high_value, high_open = self._bound(high, (float("inf"), False))
        members = []
        for member, score in sorted(self.sets.get(key, {}).items(), key=lambda item: (item[1], item[0])):
            if score < low_value or (low_open and score == low_value):
                continue
            if score > high_value or (high_open and score == high_value):
                continue
            members.append(member)
        return members

    async def delete(self, key):
        self.ttls.pop(key, None)
        return 1 if self.sets.pop(key, None) is not None else 0

    async def aclose(self):
        pass


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("redis unavailable")
        return fail


class RecordingNotifier(NotificationService):
    def __init__(self):
        super().__init__(async_enabled=False)
        self.sent: List[Dict] = []

    async def _send(self, user_id, kind, payload):
        self.sent.append({"user_id": user_id, "kind": kind, "payload": payload})
        return True


class RecordingDispatcher:
    """Collects jobs instead of running them; optionally reports failure."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.jobs: List[tuple] = []

    async def dispatch(self, job, tournament_id, actor_id):
        self.jobs.append((job, tournament_id, actor_id))
        return self.succeed


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return LeaderboardCache(client=fake_redis, ttl=300)


@pytest.fixture
def broken_cache():
    return LeaderboardCache(client=BrokenRedis())


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return SettlementConfig()


@pytest.fixture
def escrow(config, notifier, cache):
    return EscrowService(config, notifier, cache)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def lifecycle(config, escrow, dispatcher):
    return LifecycleService(config, escrow, dispatcher)


# =============================================================================
# Data factory
# =============================================================================

class Factory:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def tournament(
        self,
        status: TournamentStatus = TournamentStatus.DRAFT,
        entry_fee: str = "0",
        prize_distribution: Optional[list] = None,
        scoring_rules: Optional[dict] = None,
        start_in: timedelta = timedelta(days=1),
        min_teams: Optional[int] = None,
        max_teams: Optional[int] = None,
        organizer_id: Optional[str] = "org-1",
        title: str = "Weekend Cup",
    ) -> Tournament:
        async with self.session_factory() as session:
            tournament = Tournament(
                title=title,
                organizer_id=organizer_id,
                status=status.value,
                entry_fee_per_person=Decimal(entry_fee),
                prize_pool=Decimal("0"),
                prize_distribution=prize_distribution,
                scoring_rules=scoring_rules,
                min_teams=min_teams,
                max_teams=max_teams,
                start_date=utcnow() + start_in,
            )
            session.add(tournament)
            await session.commit()
            return tournament

    async def team(self, tournament_id: int, members: List[str], name: Optional[str] = None) -> Team:
        async with self.session_factory() as session:
            team = Team(tournament_id=tournament_id, name=name or f"Team {'-'.join(members) or 'empty'}")
            session.add(team)
            await session.flush()
            for index, user_id in enumerate(members):
                session.add(TeamMember(team_id=team.id, user_id=user_id, is_leader=index == 0))
            await session.commit()
            return team

    async def match(self, tournament_id: int, number: int = 1) -> Match:
        async with self.session_factory() as session:
            match = Match(tournament_id=tournament_id, match_number=number)
            session.add(match)
            await session.commit()
            return match

    async def fund(self, user_id: str, amount: str) -> None:
        async with self.session_factory() as session:
            await wallet_service.credit(session, user_id, Decimal(amount), TransactionType.DEPOSIT)

    async def balance(self, user_id: str) -> Decimal:
        async with self.session_factory() as session:
            return await wallet_service.get_balance(session, user_id)


@pytest.fixture
def factory(session_factory):
    return Factory(session_factory)


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def token_for():
    def make(actor_id: str, role: str) -> Dict[str, str]:
        token = create_access_token({"sub": actor_id, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest_asyncio.fixture
async def client(session_factory, cache, config, notifier) -> AsyncGenerator[AsyncClient, None]:
    """App client on the test database; settlement jobs run inline."""
    from prizepool.database import get_db
    from prizepool.main import app
    from prizepool.routes.deps import get_escrow_service, get_leaderboard_cache, get_lifecycle_service
    from prizepool.tasks.dispatch import InlineDispatcher

    async def override_get_db():
        async with session_factory() as session:
            yield session

    escrow = EscrowService(config, notifier, cache)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_leaderboard_cache] = lambda: cache
    app.dependency_overrides[get_escrow_service] = lambda: escrow
    app.dependency_overrides[get_lifecycle_service] = lambda: LifecycleService(
        config, escrow, InlineDispatcher(session_factory, escrow)
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

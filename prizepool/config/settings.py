"""
Settlement configuration.

Fee and tax constants are read once from the environment and passed
into the escrow, payout and lifecycle services at construction time.
"""
import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class SettlementConfig:
    """Money and lifecycle constants for one deployment."""

    platform_fee_percent: Decimal = Decimal("10")
    tds_rate: Decimal = Decimal("0.30")
    tds_threshold: Decimal = Decimal("10000")
    default_min_teams: int = 2
    leaderboard_ttl_seconds: int = 300
    start_date_grace_minutes: int = 60

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        return cls(
            platform_fee_percent=Decimal(os.getenv("PLATFORM_FEE_PERCENT", "10")),
            tds_rate=Decimal(os.getenv("TDS_RATE", "0.30")),
            tds_threshold=Decimal(os.getenv("TDS_THRESHOLD", "10000")),
            default_min_teams=int(os.getenv("DEFAULT_MIN_TEAMS", "2")),
            leaderboard_ttl_seconds=int(os.getenv("LEADERBOARD_TTL_SECONDS", "300")),
            start_date_grace_minutes=int(os.getenv("START_DATE_GRACE_MINUTES", "60")),
        )


REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")

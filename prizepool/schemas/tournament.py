"""
prizepool/schemas/tournament.py
Request schemas for tournament administration
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from prizepool.orm.base import naive_utc
from prizepool.schemas.prize_rules import PrizeRule, ScoringRules, check_prize_distribution


class TournamentCreate(BaseModel):
    """
    Used by: POST /api/tournaments
    """
    title: str = Field(..., min_length=3, max_length=200)
    organizer_id: Optional[str] = Field(None, max_length=64, description="NULL for platform-run events")
    entry_fee_per_person: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    prize_pool: Decimal = Field(Decimal("0"), ge=0, decimal_places=2, description="Advertised prize pool")
    prize_distribution: Optional[List[PrizeRule]] = None
    scoring_rules: Optional[Dict[str, int]] = None
    min_teams: Optional[int] = Field(None, ge=1)
    max_teams: Optional[int] = Field(None, ge=1)
    start_date: datetime

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title cannot be empty")
        return v.strip()

    @field_validator("prize_distribution")
    @classmethod
    def validate_prize_distribution(cls, v: Optional[List[PrizeRule]]) -> Optional[List[PrizeRule]]:
        if v is None:
            return v
        return check_prize_distribution(v)

    @field_validator("scoring_rules")
    @classmethod
    def validate_scoring_rules(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        if v is None:
            return v
        return ScoringRules.model_validate(v).root

    @field_validator("start_date")
    @classmethod
    def normalize_start_date(cls, v: datetime) -> datetime:
        return naive_utc(v)

    @model_validator(mode="after")
    def check_team_bounds(self):
        if self.min_teams and self.max_teams and self.max_teams < self.min_teams:
            raise ValueError("max_teams must be greater than or equal to min_teams")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Weekend Squad Cup",
                "entry_fee_per_person": "100.00",
                "prize_distribution": [{"rank": 1, "percent": 60}, {"rank": 2, "percent": 40}],
                "scoring_rules": {"1": 15, "2": 12, "3": 10, "kill": 1},
                "min_teams": 2,
                "max_teams": 25,
                "start_date": "2026-11-01T18:00:00Z"
            }
        }


class TournamentUpdate(BaseModel):
    """
    Used by: PATCH /api/tournaments/{id}

    Status is not updatable here; use the lifecycle transition endpoint.
    """
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    entry_fee_per_person: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    prize_pool: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    prize_distribution: Optional[List[PrizeRule]] = None
    scoring_rules: Optional[Dict[str, int]] = None
    min_teams: Optional[int] = Field(None, ge=1)
    max_teams: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None

    @field_validator("prize_distribution")
    @classmethod
    def validate_prize_distribution(cls, v: Optional[List[PrizeRule]]) -> Optional[List[PrizeRule]]:
        if v is None:
            return v
        return check_prize_distribution(v)

    @field_validator("scoring_rules")
    @classmethod
    def validate_scoring_rules(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        if v is None:
            return v
        return ScoringRules.model_validate(v).root

    @field_validator("start_date")
    @classmethod
    def normalize_start_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(v)

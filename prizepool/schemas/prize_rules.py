"""
prizepool/schemas/prize_rules.py
Validated value objects for tournament prize and scoring configuration.

Prize distribution is stored as JSON on the tournament and parsed back
into PrizeRule objects at settlement time, so malformed rules are
rejected at creation instead of surfacing mid-distribution.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, RootModel, field_validator, ValidationError as PydanticValidationError

from prizepool.exceptions import InvalidPrizeRules

DEFAULT_PRIZE_DISTRIBUTION = [{"rank": 1, "percent": 100}]
DEFAULT_SCORING_RULES = {"1": 10, "kill": 1}


class PrizeRule(BaseModel):
    """Share of the net prize pool for one leaderboard rank."""
    rank: int = Field(..., ge=1, description="1-based leaderboard rank")
    percent: Decimal = Field(..., gt=0, le=100, description="Percent of the net pool")


def check_prize_distribution(rules: List[PrizeRule]) -> List[PrizeRule]:
    """Ranks unique, percentages summing to at most 100."""
    ranks = [rule.rank for rule in rules]
    if len(ranks) != len(set(ranks)):
        raise ValueError("ranks must be unique")
    total = sum((rule.percent for rule in rules), Decimal(0))
    if total > 100:
        raise ValueError(f"percentages sum to {total}, must not exceed 100")
    return sorted(rules, key=lambda rule: rule.rank)


def parse_prize_rules(raw: Optional[Any]) -> List[PrizeRule]:
    """
    Parse stored prize JSON into rules sorted by rank.

    None or an empty list yields the default single-winner rule.

    Raises:
        InvalidPrizeRules: malformed entries, duplicate ranks, sum > 100
    """
    if not raw:
        raw = DEFAULT_PRIZE_DISTRIBUTION
    if not isinstance(raw, list):
        raise InvalidPrizeRules("expected a list of {rank, percent} objects")
    try:
        rules = [PrizeRule.model_validate(item) for item in raw]
        return check_prize_distribution(rules)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidPrizeRules(f"{location}: {first.get('msg')}" if location else first.get("msg"))
    except ValueError as e:
        raise InvalidPrizeRules(str(e))


def prize_rules_to_json(rules: List[PrizeRule]) -> List[Dict[str, Any]]:
    return [{"rank": rule.rank, "percent": str(rule.percent)} for rule in rules]


class ScoringRules(RootModel[Dict[str, int]]):
    """
    Scoring configuration: placement rank (as a string key) -> points,
    plus an optional "kill" multiplier.

    Example: {"1": 15, "2": 12, "3": 10, "kill": 1}
    """

    @field_validator("root")
    @classmethod
    def validate_keys(cls, v: Dict[str, int]) -> Dict[str, int]:
        for key, points in v.items():
            if key != "kill" and not (key.isdigit() and int(key) >= 1):
                raise ValueError(f"invalid scoring key '{key}', expected a placement or 'kill'")
            if points < 0:
                raise ValueError(f"points for '{key}' must not be negative")
        return v

"""
Scoring Engine

Pure function converting a team's placement and kills into points.
"""
from typing import Dict, Optional

from prizepool.schemas.prize_rules import DEFAULT_SCORING_RULES


def score(placement: int, kills: int, rules: Optional[Dict[str, int]] = None) -> int:
    """
    points = rules[str(placement)] + rules["kill"] * kills

    Placements without an entry earn 0 placement points. When the rules
    omit "kill", each kill is worth 1 point. Only None falls back to the
    default rules; an empty mapping scores kills alone.
    """
    if rules is None:
        rules = DEFAULT_SCORING_RULES
    placement_points = rules.get(str(placement), 0)
    kill_multiplier = rules.get("kill", 1)
    return placement_points + kill_multiplier * kills

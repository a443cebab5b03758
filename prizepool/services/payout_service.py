"""
Payout splitting and tax withholding.

A team's prize is divided evenly between its members, floored to the
paisa, with the remainder going to the first member (the leader) so the
shares always sum to the team total exactly. TDS is withheld per member
share above the threshold.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from prizepool.config.settings import SettlementConfig
from prizepool.core.money import ZERO, Number, floor2, round2, to_decimal


@dataclass(frozen=True)
class MemberPayout:
    user_id: str
    gross: Decimal
    tds: Decimal
    net: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "gross": str(self.gross),
            "tds": str(self.tds),
            "net": str(self.net),
        }


def compute_tds(gross: Number, tax: SettlementConfig) -> Decimal:
    """round2(gross * rate) when gross exceeds the threshold, else 0."""
    gross = to_decimal(gross)
    if gross > tax.tds_threshold:
        return round2(gross * tax.tds_rate)
    return ZERO


def split_team_prize(
    team_total: Number,
    member_ids: Sequence[str],
    tax: SettlementConfig,
) -> List[MemberPayout]:
    """
    Split a team prize across members in the given order.

    Returns an empty list when the team has no members.
    """
    if not member_ids:
        return []

    total = round2(team_total)
    share = floor2(total / len(member_ids))
    remainder = total - share * len(member_ids)

    payouts = []
    for index, user_id in enumerate(member_ids):
        gross = share + remainder if index == 0 else share
        tds = compute_tds(gross, tax)
        payouts.append(MemberPayout(user_id=user_id, gross=gross, tds=tds, net=gross - tds))
    return payouts

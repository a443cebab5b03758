"""
prizepool/schemas/settlement.py
Request schemas for lifecycle, match results and wallet endpoints
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from prizepool.orm.tournament import TournamentStatus


# ================= LIFECYCLE =================

class TransitionRequest(BaseModel):
    status: TournamentStatus
    reason: Optional[str] = Field(None, max_length=500)


class RegisterRequest(BaseModel):
    team_id: Optional[int] = Field(None, gt=0)


# ================= MATCH RESULTS =================

class MatchResultItem(BaseModel):
    team_id: int = Field(..., gt=0)
    placement: int = Field(..., ge=1)
    kills: int = Field(0, ge=0)


class MatchResultsRequest(BaseModel):
    """
    Used by: POST /api/matches/{id}/results
    """
    results: List[MatchResultItem] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "results": [
                    {"team_id": 1, "placement": 1, "kills": 8},
                    {"team_id": 2, "placement": 2, "kills": 5}
                ]
            }
        }


class OverrideRequest(BaseModel):
    # Minimum length is enforced by the result lock service
    reason: str = Field("", max_length=1000)


# ================= WALLET =================

class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: str = Field("UPI", max_length=30)


class ManualDepositRequest(BaseModel):
    """
    Used by: POST /api/wallet/deposits
    Player paid by UPI and submits the UTR for admin approval.
    """
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reference: str = Field(..., max_length=120, description="UTR / bank reference")

    @field_validator("reference")
    @classmethod
    def strip_reference(cls, v: str) -> str:
        return v.strip()


class GatewayDepositRequest(BaseModel):
    """Confirmed payment forwarded by the payment gateway adapter."""
    user_id: str = Field(..., max_length=64)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reference: str = Field(..., min_length=1, max_length=120)
    method: str = Field("GATEWAY", max_length=30)


class RejectRequest(BaseModel):
    reason: str = Field("Rejected by admin", max_length=255)

"""Entitlement and charging models."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import ChargeKind, PassKind

SECONDS_PER_DAY = 86400


def seconds_to_days(seconds: int) -> int:
    """Whole days remaining, rounded up. Expired or missing keys count as zero."""
    if seconds <= 0:
        return 0
    return -(-seconds // SECONDS_PER_DAY)


class EntitlementSnapshot(BaseModel):
    """Point balance and pass state of an account at one instant."""

    account_id: str = Field(..., description="Account identifier (access code)")
    tier: int = Field(default=0, ge=0, le=3, description="0 guest .. 3 paid")
    points: int = Field(default=0, ge=0, description="Pay-per-use point balance")
    standard_days_remaining: int = Field(default=0, ge=0)
    plus_days_remaining: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls, account_id: str) -> "EntitlementSnapshot":
        return cls(account_id=account_id)


class ChargePlan(BaseModel):
    """What to debit for an accepted request."""

    account_id: str = Field(..., description="Account to charge")
    kind: ChargeKind = Field(..., description="Counter the charge is taken from")
    amount: int = Field(default=0, ge=0, description="Points to debit; zero for passes")

    model_config = ConfigDict(frozen=True)


class Allow(BaseModel):
    """Quota decision accepting a request."""

    allowed: Literal[True] = True
    plan: ChargePlan


class Deny(BaseModel):
    """Quota decision rejecting a request."""

    allowed: Literal[False] = False
    reason: str


QuotaDecision = Union[Allow, Deny]


class AccountCount(BaseModel):
    """Entitlement counters as reported to account holders."""

    usertype: int = 0
    points: int = 0
    days: int = 0
    daysplus: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: EntitlementSnapshot) -> "AccountCount":
        return cls(
            usertype=snapshot.tier,
            points=snapshot.points,
            days=snapshot.standard_days_remaining,
            daysplus=snapshot.plus_days_remaining,
        )


class AccountRequest(BaseModel):
    """Account endpoint request body."""

    action: str = Field(..., description="Requested action")
    accessCode: Optional[str] = Field(default=None)


class AccountResponse(BaseModel):
    """Account endpoint response body."""

    error: bool = False
    msg: Optional[str] = None
    accessCode: Optional[str] = None
    count: Optional[AccountCount] = None


class CreateAccountRequest(BaseModel):
    """Admin request creating an account with the initial point grant."""

    account_id: str = Field(..., min_length=1)
    initial_points: Optional[int] = Field(default=None, ge=0)
    tier: int = Field(default=1, ge=0, le=3)


class GrantPointsRequest(BaseModel):
    """Admin request adding points to an account, optionally moving it to a new tier."""

    account_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    tier: Optional[int] = Field(default=None, ge=0, le=3)


class ExtendPassRequest(BaseModel):
    """Admin request extending a day pass."""

    account_id: str = Field(..., min_length=1)
    kind: PassKind = Field(...)
    days: int = Field(..., gt=0)

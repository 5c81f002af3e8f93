"""Quota decisions.

``evaluate`` is a pure function of an entitlement snapshot and the tier of
the requested model. Rules are checked in a fixed order and the first match
wins:

1. a plus pass admits anything, at no point cost;
2. premium models are charged in points;
3. premium models are refused otherwise (a standard pass is not enough);
4. a standard pass admits standard models, at no point cost;
5. standard models are charged in points;
6. everything else is refused.
"""

from typing import Iterable

from models import (
    Allow,
    ChargeKind,
    ChargePlan,
    Deny,
    EntitlementSnapshot,
    ModelTier,
    QuotaDecision,
)

DEFAULT_PREMIUM_DECREMENT = 20
DEFAULT_STANDARD_DECREMENT = 1


def resolve_model_tier(model: str, premium_prefixes: Iterable[str]) -> ModelTier:
    """Premium models are recognised by identifier prefix (``gpt-4`` by default)."""
    model = (model or "").strip().lower()
    for prefix in premium_prefixes:
        if prefix and model.startswith(prefix.lower()):
            return ModelTier.PREMIUM
    return ModelTier.STANDARD


def evaluate(
    snapshot: EntitlementSnapshot,
    tier: ModelTier,
    *,
    premium_decrement: int = DEFAULT_PREMIUM_DECREMENT,
    standard_decrement: int = DEFAULT_STANDARD_DECREMENT,
) -> QuotaDecision:
    """Decide whether a request may proceed and what it costs."""
    account_id = snapshot.account_id
    points = max(snapshot.points, 0)
    standard_days = max(snapshot.standard_days_remaining, 0)
    plus_days = max(snapshot.plus_days_remaining, 0)

    if plus_days > 0:
        return Allow(plan=ChargePlan(account_id=account_id, kind=ChargeKind.PLUS_DAYS, amount=0))

    if tier == ModelTier.PREMIUM:
        if points > 0:
            return Allow(
                plan=ChargePlan(
                    account_id=account_id, kind=ChargeKind.POINTS, amount=premium_decrement
                )
            )
        return Deny(reason="insufficient premium entitlement")

    if standard_days > 0:
        return Allow(
            plan=ChargePlan(account_id=account_id, kind=ChargeKind.STANDARD_DAYS, amount=0)
        )

    if points > 0:
        return Allow(
            plan=ChargePlan(
                account_id=account_id, kind=ChargeKind.POINTS, amount=standard_decrement
            )
        )

    return Deny(reason="quota exhausted")

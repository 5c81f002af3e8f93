"""Admin router for entitlement top-ups.

Every route requires the ``X-API-Key`` header to match ``ADMIN_API_KEY``;
with no admin key configured the routes are disabled.
"""

import secrets
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from config import ApplicationConfig
from models import CreateAccountRequest, ExtendPassRequest, GrantPointsRequest, seconds_to_days
from services import EntitlementStore
from utils import create_contextual_logger

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = create_contextual_logger(__name__, service="admin_router")


def get_store(request: Request) -> EntitlementStore:
    """Dependency to get the entitlement store from application state."""
    return request.app.state.store  # type: ignore[no-any-return]


def require_admin_key(request: Request) -> None:
    config: ApplicationConfig = request.app.state.config
    presented = request.headers.get(config.api_key_header, "")
    if not config.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API disabled")
    if not secrets.compare_digest(presented, config.admin_api_key):
        logger.warning("Rejected admin request", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@router.post("/accounts", dependencies=[Depends(require_admin_key)])
async def create_account(
    body: CreateAccountRequest,
    request: Request,
    store: EntitlementStore = Depends(get_store),
) -> Dict[str, Any]:
    """Create an account with the initial point grant unless it already exists."""
    config: ApplicationConfig = request.app.state.config
    initial_points = body.initial_points if body.initial_points is not None else config.initial_points
    created = await store.create_account(body.account_id, initial_points, body.tier)
    snapshot = await store.read_snapshot(body.account_id)
    logger.info("Account create requested", account_id=body.account_id, created=created)
    return {"created": created, "account_id": body.account_id, "points": snapshot.points, "tier": snapshot.tier}


@router.post("/points", dependencies=[Depends(require_admin_key)])
async def grant_points(
    body: GrantPointsRequest,
    store: EntitlementStore = Depends(get_store),
) -> Dict[str, Any]:
    """Add points to an account. A purchase that comes with a tier also sets the tier."""
    points = await store.grant_points(body.account_id, body.amount)
    result: Dict[str, Any] = {"account_id": body.account_id, "points": points}
    if body.tier is not None:
        await store.set_tier(body.account_id, body.tier)
        result["tier"] = body.tier
    logger.info("Points granted", account_id=body.account_id, amount=body.amount, points=points, tier=body.tier)
    return result


@router.post("/passes", dependencies=[Depends(require_admin_key)])
async def extend_pass(
    body: ExtendPassRequest,
    store: EntitlementStore = Depends(get_store),
) -> Dict[str, Any]:
    """Extend a day pass from its remaining time."""
    remaining_seconds = await store.extend_pass(body.account_id, body.kind, body.days)
    logger.info("Pass extended", account_id=body.account_id, kind=body.kind, days=body.days)
    return {
        "account_id": body.account_id,
        "kind": body.kind,
        "remaining_seconds": remaining_seconds,
        "remaining_days": seconds_to_days(remaining_seconds),
    }

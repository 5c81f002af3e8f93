"""Account router: lets account holders query their entitlement counters."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from config import ApplicationConfig
from models import AccessType, AccountCount, AccountRequest, AccountResponse
from services import EntitlementStore
from utils import create_contextual_logger

router = APIRouter(prefix="/api", tags=["account"])
logger = create_contextual_logger(__name__, service="account_router")


def get_config(request: Request) -> ApplicationConfig:
    """Dependency to get the configuration from application state."""
    return request.app.state.config  # type: ignore[no-any-return]


def get_store(request: Request) -> EntitlementStore:
    """Dependency to get the entitlement store from application state."""
    return request.app.state.store  # type: ignore[no-any-return]


def _error(msg: str, status_code: int = 403) -> JSONResponse:
    return JSONResponse(
        AccountResponse(error=True, msg=msg).model_dump(exclude_none=True),
        status_code=status_code,
    )


async def _process(
    account_request: AccountRequest,
    config: ApplicationConfig,
    store: EntitlementStore,
) -> JSONResponse:
    if config.access_type != AccessType.ACCOUNT.value:
        return _error("access type not support")
    if account_request.action != "query":
        return _error("unknown action")
    if not account_request.accessCode:
        return _error("User is not logged in")

    snapshot = await store.read_snapshot(account_request.accessCode)
    logger.debug("Account queried", account_id=account_request.accessCode, points=snapshot.points)
    response = AccountResponse(
        error=False,
        accessCode=account_request.accessCode,
        count=AccountCount.from_snapshot(snapshot),
    )
    return JSONResponse(response.model_dump(exclude_none=True))


@router.post("/account")
async def account(
    account_request: AccountRequest,
    config: ApplicationConfig = Depends(get_config),
    store: EntitlementStore = Depends(get_store),
) -> JSONResponse:
    """Run an account action; only ``query`` is served."""
    return await _process(account_request, config, store)


@router.get("/account")
async def account_query(
    action: str,
    accessCode: Optional[str] = None,
    config: ApplicationConfig = Depends(get_config),
    store: EntitlementStore = Depends(get_store),
) -> JSONResponse:
    """Same as the POST form, with the fields given as query parameters."""
    return await _process(AccountRequest(action=action, accessCode=accessCode), config, store)

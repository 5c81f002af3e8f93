"""Caller authorization.

The deployment's access type decides what an ``access-code`` header means:

- ``account``: the code is an account id and the account must hold an
  entitlement for the requested model;
- ``code``: the code must be one of the shared codes configured in ``CODE``
  (stored as md5 digests) and requests are not metered;
- ``token``: only bring-your-own-key callers are served.

A ``token`` header carries the caller's own vendor key and bypasses quota.
Every other caller is served with the deployment's vendor key.
"""

from hashlib import md5, sha256
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from config import ApplicationConfig
from models import AccessType
from utils import AuthDenied, create_contextual_logger

from .entitlement_store import EntitlementStore
from .providers import ProviderRegistry
from .quota_evaluator import evaluate, resolve_model_tier

ACCESS_CODE_HEADER = "access-code"
TOKEN_HEADER = "token"

AUTH_REQUIRED = "Auth is required."
AUTH_FAILED = "Auth failed"
EMPTY_API_KEY = "Empty Api Key"


def caller_identity(headers: Mapping[str, str]) -> Optional[str]:
    """Digest of the credential a request presents, or None without one.

    Used to tie in-flight requests to the caller that started them; the
    credential itself is never kept.
    """
    access_code = (headers.get(ACCESS_CODE_HEADER) or "").strip()
    token = (headers.get(TOKEN_HEADER) or "").strip()
    if access_code:
        return sha256(f"{ACCESS_CODE_HEADER}:{access_code}".encode("utf-8")).hexdigest()
    if token:
        return sha256(f"{TOKEN_HEADER}:{token}".encode("utf-8")).hexdigest()
    return None


class AuthContext(BaseModel):
    """Who is calling and with which vendor credential."""

    access_type: AccessType = Field(..., description="How the caller was authenticated")
    account_id: Optional[str] = Field(default=None, description="Account to meter, if any")
    api_key: str = Field(..., description="Vendor credential to forward")
    metered: bool = Field(default=False, description="Whether requests are charged")


class AuthorizationGate:
    """Resolves request headers into an ``AuthContext`` or raises ``AuthDenied``."""

    def __init__(self, config: ApplicationConfig, store: EntitlementStore, providers: ProviderRegistry) -> None:
        self.config = config
        self.store = store
        self.providers = providers
        self.logger = create_contextual_logger(__name__, service="auth_gate")

    async def authorize(self, headers: Mapping[str, str], model: str) -> AuthContext:
        access_code = (headers.get(ACCESS_CODE_HEADER) or "").strip()
        token = (headers.get(TOKEN_HEADER) or "").strip()
        access_type = self.config.access_type

        if not access_code and not token:
            self.logger.info("Rejected request without credentials", access_type=access_type)
            raise AuthDenied(AUTH_REQUIRED)

        if access_code and access_type == AccessType.ACCOUNT.value:
            await self._admit_account(access_code, model)
            return AuthContext(
                access_type=AccessType.ACCOUNT,
                account_id=access_code,
                api_key=self._deployment_key(model),
                metered=True,
            )

        if access_code and access_type == AccessType.CODE.value:
            if not self._code_matches(access_code):
                self.logger.info("Rejected unknown access code")
                raise AuthDenied(AUTH_FAILED)
            return AuthContext(access_type=AccessType.CODE, api_key=self._deployment_key(model))

        if token and (access_type == AccessType.TOKEN.value or self.config.allow_user_token):
            return AuthContext(access_type=AccessType.TOKEN, api_key=token)

        self.logger.info("Rejected credentials not accepted by this deployment", access_type=access_type)
        raise AuthDenied(AUTH_FAILED)

    async def _admit_account(self, account_id: str, model: str) -> None:
        """Early admission check. The relay re-evaluates before dispatch and charges by that."""
        snapshot = await self.store.read_snapshot(account_id)
        tier = resolve_model_tier(model, self.config.premium_model_prefixes)
        decision = evaluate(
            snapshot,
            tier,
            premium_decrement=self.config.premium_decrement,
            standard_decrement=self.config.standard_decrement,
        )
        if not decision.allowed:
            # the reason stays in the log; callers only ever see the generic message
            self.logger.info("Admission denied", account_id=account_id, model=model, reason=decision.reason)
            raise AuthDenied(AUTH_FAILED)
        self.logger.debug("Admission granted", account_id=account_id, kind=decision.plan.kind)

    def _code_matches(self, access_code: str) -> bool:
        return md5(access_code.encode("utf-8")).hexdigest() in self.config.access_code_hashes

    def _deployment_key(self, model: str) -> str:
        api_key = self.providers.select(model).api_key
        if not api_key:
            self.logger.error("No vendor API key configured", model=model)
            raise AuthDenied(EMPTY_API_KEY)
        return api_key

"""Data models for the LLM relay.

This module contains all Pydantic models used throughout the application,
ensuring strict type safety and runtime validation."""

# Import all enums
from .enums import (
    AccessType,
    ChargeKind,
    ModelTier,
    PassKind,
    Role,
    StreamOutcome,
    Vendor,
)

# Import chat models
from .chat import (
    CanonicalRequest,
    ChatResponse,
    ContentPart,
    ImagePart,
    ImageUrl,
    Message,
    TextPart,
)

# Import stream event models
from .events import Done, StreamError, StreamEvent, TextDelta

# Import entitlement models
from .entitlement import (
    SECONDS_PER_DAY,
    AccountCount,
    AccountRequest,
    AccountResponse,
    Allow,
    ChargePlan,
    CreateAccountRequest,
    Deny,
    EntitlementSnapshot,
    ExtendPassRequest,
    GrantPointsRequest,
    QuotaDecision,
    seconds_to_days,
)

# Import upstream models
from .upstream import UpstreamRequest

__all__ = [
    # Enums
    "AccessType",
    "ChargeKind",
    "ModelTier",
    "PassKind",
    "Role",
    "StreamOutcome",
    "Vendor",
    # Chat models
    "CanonicalRequest",
    "ChatResponse",
    "ContentPart",
    "ImagePart",
    "ImageUrl",
    "Message",
    "TextPart",
    # Stream events
    "Done",
    "StreamError",
    "StreamEvent",
    "TextDelta",
    # Entitlement models
    "SECONDS_PER_DAY",
    "AccountCount",
    "AccountRequest",
    "AccountResponse",
    "Allow",
    "ChargePlan",
    "CreateAccountRequest",
    "Deny",
    "EntitlementSnapshot",
    "ExtendPassRequest",
    "GrantPointsRequest",
    "QuotaDecision",
    "seconds_to_days",
    # Upstream models
    "UpstreamRequest",
]

"""Enumeration types for the LLM relay models."""

from enum import Enum


class Role(str, Enum):
    """Canonical chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Vendor(str, Enum):
    """Upstream vendor families."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class ModelTier(str, Enum):
    """Pricing class of a requested model."""

    STANDARD = "standard"
    PREMIUM = "premium"


class ChargeKind(str, Enum):
    """Entitlement counter a charge is taken from."""

    POINTS = "points"
    STANDARD_DAYS = "standard_days"
    PLUS_DAYS = "plus_days"


class PassKind(str, Enum):
    """Time-boxed passes that can be purchased and extended."""

    STANDARD_DAYS = "standard_days"
    PLUS_DAYS = "plus_days"


class AccessType(str, Enum):
    """How callers of a deployment are authenticated."""

    ACCOUNT = "account"
    CODE = "code"
    TOKEN = "token"


class StreamOutcome(str, Enum):
    """How a relayed request ended, used for metrics labels."""

    COMPLETED = "completed"
    DENIED = "denied"
    UPSTREAM_ERROR = "upstream_error"
    TRANSPORT_ERROR = "transport_error"
    STREAM_ERROR = "stream_error"
    CANCELLED = "cancelled"

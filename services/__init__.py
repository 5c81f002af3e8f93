"""Service layer for the LLM relay."""

from .auth_gate import AuthContext, AuthorizationGate, caller_identity
from .entitlement_store import (
    EntitlementStore,
    InMemoryEntitlementStore,
    RedisEntitlementStore,
)
from .health_metrics import HealthMetricsService
from .providers import ProviderAdapter, ProviderRegistry
from .quota_evaluator import evaluate, resolve_model_tier
from .redis_client import RedisClient
from .relay import RelayOrchestrator, RelayStream
from .transcoder import StreamTranscoder, TranscoderState
from .upstream_client import UpstreamClient

__all__ = [
    "AuthContext",
    "AuthorizationGate",
    "caller_identity",
    "EntitlementStore",
    "InMemoryEntitlementStore",
    "RedisEntitlementStore",
    "HealthMetricsService",
    "ProviderAdapter",
    "ProviderRegistry",
    "evaluate",
    "resolve_model_tier",
    "RedisClient",
    "RelayOrchestrator",
    "RelayStream",
    "StreamTranscoder",
    "TranscoderState",
    "UpstreamClient",
]

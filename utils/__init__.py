"""Utility modules for the LLM relay."""

from .cancellation import (
    CancellationRegistry,
    CancellationToken,
    RequestCancelled,
    next_or_cancel,
    run_or_cancel,
)
from .errors import (
    AuthDenied,
    InvalidRequest,
    RelayError,
    StreamCorruption,
    UpstreamProtocolError,
    UpstreamTransportError,
)
from .logging import (
    configure_logging,
    create_contextual_logger,
    get_logger,
    log_exception,
    redact_secrets,
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
)

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "RequestCancelled",
    "next_or_cancel",
    "run_or_cancel",
    "AuthDenied",
    "InvalidRequest",
    "RelayError",
    "StreamCorruption",
    "UpstreamProtocolError",
    "UpstreamTransportError",
    "configure_logging",
    "create_contextual_logger",
    "get_logger",
    "log_exception",
    "redact_secrets",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
]

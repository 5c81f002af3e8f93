"""Error taxonomy of the relay."""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for errors the relay reports to callers."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        return {"error": True, "msg": self.message}


class AuthDenied(RelayError):
    """Missing or rejected credential, or no remaining entitlement."""

    status_code = 401


class InvalidRequest(RelayError):
    """The canonical request cannot be sent to the selected vendor."""

    status_code = 400


class UpstreamProtocolError(RelayError):
    """The vendor answered with an unexpected shape or a non-stream body."""

    status_code = 200

    def __init__(self, message: str, *, body: str = "", status: Optional[int] = None) -> None:
        super().__init__(message, detail=body)
        self.body = body
        self.upstream_status = status


class UpstreamTransportError(RelayError):
    """The vendor could not be reached."""

    status_code = 200
    retryable = True


class StreamCorruption(RelayError):
    """A streamed event could not be decoded or parsed."""

    retryable = False

"""Middleware for handling correlation IDs in FastAPI requests."""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from utils import get_logger, set_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation ID.

    The ID comes from the caller's ``X-Correlation-ID`` header or is
    generated, is bound to the logging context, exposed to handlers as
    ``request.state.correlation_id`` and echoed on the response. Streams can
    be stopped by this ID.
    """

    def __init__(self, app, correlation_header: str = CORRELATION_HEADER):
        super().__init__(app)
        self.correlation_header = correlation_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.correlation_header) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        logger.info(
            f"HTTP request received: {request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            model=request.headers.get("model"),
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)
        response.headers[self.correlation_header] = correlation_id

        # for streamed bodies this marks the start of the stream, not its end
        logger.info(
            f"HTTP response started: {request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            success=200 <= response.status_code < 400,
        )
        return response

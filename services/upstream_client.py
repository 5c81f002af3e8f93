"""HTTP client for vendor chat endpoints.

All vendors share one ``httpx.AsyncClient``; connect and read timeouts apply
independently, the read timeout to every read of a streamed body.
"""

import json
from typing import Any, Optional

import httpx

from config import ApplicationConfig
from models import UpstreamRequest
from utils import (
    UpstreamProtocolError,
    UpstreamTransportError,
    create_contextual_logger,
    get_correlation_id,
    redact_secrets,
)


class UpstreamClient:
    """Sends translated requests to vendors."""

    def __init__(self, config: ApplicationConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self.logger = create_contextual_logger(__name__, service="upstream_client")
        self._client = client
        self._owns_client = client is None

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.config.upstream_read_timeout,
            connect=self.config.upstream_connect_timeout,
            read=self.config.upstream_read_timeout,
        )

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout())
            self._owns_client = True
            self.logger.info(
                "Upstream client started",
                connect_timeout=self.config.upstream_connect_timeout,
                read_timeout=self.config.upstream_read_timeout,
            )

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self.logger.info("Upstream client stopped")

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Upstream client not started")
        return self._client

    async def send(self, upstream: UpstreamRequest, *, stream: bool) -> httpx.Response:
        """Issue one request; no retries.

        With ``stream=True`` the body is left unread and the caller owns the
        response and must close it.
        """
        client = self._ensure_client()
        headers = {"User-Agent": f"LLM-Relay/{self.config.app_version}", **upstream.headers}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        request = client.build_request(
            upstream.method,
            upstream.url,
            headers=headers,
            params=upstream.params or None,
            json=upstream.body,
        )
        self.logger.debug("Sending upstream request", url=upstream.url, stream=stream)
        try:
            response = await client.send(request, stream=stream)
        except httpx.HTTPError as e:
            message = redact_secrets(str(e) or type(e).__name__)
            self.logger.error("Upstream request failed", url=upstream.url, error=message)
            raise UpstreamTransportError(message) from e

        self.logger.debug(
            "Upstream responded",
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
        )
        return response

    async def read_error_body(self, response: httpx.Response) -> str:
        """Read a rejected response in full and scrub echoed credentials."""
        try:
            await response.aread()
        except httpx.HTTPError as e:
            raise UpstreamTransportError(redact_secrets(str(e) or type(e).__name__)) from e
        finally:
            await response.aclose()
        return redact_secrets(response.text)

    def parse_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UpstreamProtocolError(
                "Unexpected response body",
                body=redact_secrets(response.text),
                status=response.status_code,
            ) from e

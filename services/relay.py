"""Relay orchestration.

Sequences quota evaluation, request translation, the upstream call, the
charge and transcoding for one caller request. The charge is applied at most
once, when the upstream has started answering; it is never refunded.
"""

from typing import AsyncIterator, List, Optional, Tuple

import httpx

from config import ApplicationConfig
from models import (
    CanonicalRequest,
    ChargeKind,
    ChargePlan,
    ChatResponse,
    Done,
    StreamError,
    StreamEvent,
    StreamOutcome,
)
from utils import (
    AuthDenied,
    CancellationToken,
    RequestCancelled,
    UpstreamProtocolError,
    UpstreamTransportError,
    create_contextual_logger,
    next_or_cancel,
    redact_secrets,
    run_or_cancel,
)

from .auth_gate import AUTH_FAILED, AuthContext
from .entitlement_store import EntitlementStore
from .health_metrics import HealthMetricsService
from .providers import ProviderAdapter, ProviderRegistry
from .quota_evaluator import evaluate, resolve_model_tier
from .transcoder import StreamTranscoder, TranscoderState
from .upstream_client import UpstreamClient

STREAM_REJECTED = "Stream error!"


class RelayOrchestrator:
    """Runs relayed chat requests, buffered or streamed."""

    def __init__(
        self,
        config: ApplicationConfig,
        store: EntitlementStore,
        providers: ProviderRegistry,
        upstream: UpstreamClient,
        metrics: Optional[HealthMetricsService] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.providers = providers
        self.upstream = upstream
        self.metrics = metrics
        self.logger = create_contextual_logger(__name__, service="relay")

    def _record(self, adapter: ProviderAdapter, mode: str, outcome: StreamOutcome) -> None:
        if self.metrics is not None:
            self.metrics.record_request(adapter.vendor.value, mode, outcome.value)

    async def _plan(self, request: CanonicalRequest, auth: AuthContext) -> Optional[ChargePlan]:
        """Re-evaluate quota on a fresh snapshot; this decision is the one that counts."""
        if not auth.metered or auth.account_id is None:
            return None
        snapshot = await self.store.read_snapshot(auth.account_id)
        tier = resolve_model_tier(request.model, self.config.premium_model_prefixes)
        decision = evaluate(
            snapshot,
            tier,
            premium_decrement=self.config.premium_decrement,
            standard_decrement=self.config.standard_decrement,
        )
        if not decision.allowed:
            self.logger.info("Quota denied before dispatch", account_id=auth.account_id, reason=decision.reason)
            raise AuthDenied(AUTH_FAILED)
        return decision.plan

    async def _charge(self, plan: Optional[ChargePlan]) -> int:
        """Apply the plan. Losing the race for the last points denies the request."""
        if plan is None:
            return 0
        previous = await self.store.apply_charge(plan.account_id, plan)
        if plan.kind == ChargeKind.POINTS and previous <= 0:
            self.logger.info("Points spent by a concurrent request", account_id=plan.account_id)
            raise AuthDenied(AUTH_FAILED)
        if self.metrics is not None:
            self.metrics.record_charge(ChargeKind(plan.kind).value)
        self.logger.info(
            "Charge applied",
            account_id=plan.account_id,
            kind=plan.kind,
            amount=plan.amount,
            previous_points=previous,
        )
        return previous

    async def complete(
        self,
        request: CanonicalRequest,
        auth: AuthContext,
        cancel: Optional[CancellationToken] = None,
    ) -> ChatResponse:
        """Buffered request: one upstream call, one canonical answer."""
        adapter = self.providers.select(request.model)
        plan = await self._plan(request, auth)
        upstream_request = adapter.translate_request(request.model_copy(update={"stream": False}), auth.api_key)

        try:
            response = await run_or_cancel(self.upstream.send(upstream_request, stream=False), cancel)
        except UpstreamTransportError:
            self._record(adapter, "buffered", StreamOutcome.TRANSPORT_ERROR)
            raise
        except RequestCancelled:
            self._record(adapter, "buffered", StreamOutcome.CANCELLED)
            raise

        if response.is_error:
            self._record(adapter, "buffered", StreamOutcome.UPSTREAM_ERROR)
            raise UpstreamProtocolError(
                f"Upstream returned status {response.status_code}",
                body=redact_secrets(response.text),
                status=response.status_code,
            )

        try:
            answer = adapter.translate_response(self.upstream.parse_json(response))
        except UpstreamProtocolError:
            self._record(adapter, "buffered", StreamOutcome.UPSTREAM_ERROR)
            raise
        # only a parsed answer is paid for
        try:
            await self._charge(plan)
        except AuthDenied:
            self._record(adapter, "buffered", StreamOutcome.DENIED)
            raise
        self._record(adapter, "buffered", StreamOutcome.COMPLETED)
        return answer

    async def open_stream(
        self,
        request: CanonicalRequest,
        auth: AuthContext,
        cancel: Optional[CancellationToken] = None,
    ) -> "RelayStream":
        """Streamed request, up to the first body bytes.

        Denial, transport failures and a vendor refusing to stream are raised
        here, before the caller has received anything. The returned
        ``RelayStream`` yields the canonical events.
        """
        adapter = self.providers.select(request.model)
        plan = await self._plan(request, auth)
        upstream_request = adapter.translate_request(request.model_copy(update={"stream": True}), auth.api_key)

        try:
            response = await run_or_cancel(self.upstream.send(upstream_request, stream=True), cancel)
        except UpstreamTransportError:
            self._record(adapter, "stream", StreamOutcome.TRANSPORT_ERROR)
            raise
        except RequestCancelled:
            self._record(adapter, "stream", StreamOutcome.CANCELLED)
            raise

        if response.is_error or not adapter.is_streaming_content_type(response.headers):
            body = await self.upstream.read_error_body(response)
            self.logger.warning(
                "Upstream declined to stream",
                status_code=response.status_code,
                content_type=response.headers.get("content-type", ""),
            )
            self._record(adapter, "stream", StreamOutcome.UPSTREAM_ERROR)
            raise UpstreamProtocolError(STREAM_REJECTED, body=body, status=response.status_code)

        stream = RelayStream(self, adapter, response, cancel)
        try:
            await stream.start(plan)
        except BaseException:
            await stream.aclose()
            raise
        return stream


class RelayStream:
    """The caller-facing side of one streamed relay."""

    def __init__(
        self,
        relay: RelayOrchestrator,
        adapter: ProviderAdapter,
        response: httpx.Response,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        self.relay = relay
        self.adapter = adapter
        self.response = response
        self.cancel = cancel
        self.charged = False
        self.transcoder = StreamTranscoder(adapter)
        self.logger = relay.logger
        self._chunks: AsyncIterator[bytes] = adapter.open_stream(response)
        self._first: Optional[bytes] = None
        self._exhausted = False
        self._cancel_reason: Optional[str] = None
        self._closed = False

    async def start(self, plan: Optional[ChargePlan]) -> None:
        """Wait for the first body bytes, then charge."""
        try:
            more, chunk = await self._read()
        except RequestCancelled:
            self.relay._record(self.adapter, "stream", StreamOutcome.CANCELLED)
            raise
        except httpx.HTTPError as e:
            self.relay._record(self.adapter, "stream", StreamOutcome.TRANSPORT_ERROR)
            raise UpstreamTransportError(redact_secrets(str(e) or type(e).__name__)) from e

        if not more:
            # an empty body delivered nothing, so nothing is charged
            self._exhausted = True
            return
        self._first = chunk
        try:
            await self.relay._charge(plan)
        except AuthDenied:
            self.relay._record(self.adapter, "stream", StreamOutcome.DENIED)
            raise
        self.charged = plan is not None

    async def _read(self) -> Tuple[bool, Optional[bytes]]:
        return await next_or_cancel(self._chunks, self.cancel)

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Canonical events in arrival order, ending with exactly one Done or StreamError."""
        try:
            if self._first is not None:
                for event in self.transcoder.feed(self._first):
                    yield event
                self._first = None
            if self._exhausted:
                for event in self.transcoder.close():
                    yield event

            while not self.transcoder.finished:
                try:
                    more, chunk = await self._read()
                except RequestCancelled as e:
                    for event in self._cancelled(e.reason):
                        yield event
                    break
                except httpx.TimeoutException:
                    for event in self._cancelled("upstream read timeout"):
                        yield event
                    break
                except httpx.HTTPError as e:
                    message = redact_secrets(str(e) or type(e).__name__)
                    self.logger.warning("Upstream stream broke", error=message)
                    error = StreamError(message=message, retryable=not self.transcoder.emitted_text)
                    for event in self.transcoder.terminate(error):
                        yield event
                    break

                if not more:
                    for event in self.transcoder.close():
                        yield event
                    break
                for event in self.transcoder.feed(chunk):
                    yield event
        finally:
            self._record_termination()
            await self.aclose()

    def _cancelled(self, reason: str) -> List[StreamEvent]:
        self.logger.info("Stream cancelled", reason=reason, charged=self.charged)
        self._cancel_reason = reason
        if self.charged:
            # the charge stands; the caller is told the answer ended
            return self.transcoder.terminate(Done())
        return self.transcoder.terminate(StreamError(message=f"Request cancelled: {reason}", retryable=True))

    def _record_termination(self) -> None:
        metrics = self.relay.metrics
        if metrics is None:
            return
        vendor = self.adapter.vendor.value
        if self._cancel_reason is not None:
            outcome, reason = StreamOutcome.CANCELLED, "cancelled"
        elif self.transcoder.state == TranscoderState.DONE:
            outcome, reason = StreamOutcome.COMPLETED, "done"
        elif self.transcoder.state == TranscoderState.ERRORED:
            outcome, reason = StreamOutcome.STREAM_ERROR, "error"
        else:
            outcome, reason = StreamOutcome.CANCELLED, "abandoned"
        metrics.record_termination(vendor, reason)
        metrics.record_request(vendor, "stream", outcome.value)

    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()
        self.logger.debug("Upstream stream closed", charged=self.charged)

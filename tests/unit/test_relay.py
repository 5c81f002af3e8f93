"""Unit tests for relay orchestration."""

import asyncio
from typing import AsyncIterator, List

import httpx
import pytest

from conftest import openai_chunk, sse_body
from models import (
    AccessType,
    CanonicalRequest,
    ChargeKind,
    ChargePlan,
    Done,
    StreamError,
    StreamEvent,
    TextDelta,
)
from services import (
    AuthContext,
    HealthMetricsService,
    InMemoryEntitlementStore,
    ProviderRegistry,
    RelayOrchestrator,
    UpstreamClient,
)
from utils import AuthDenied, CancellationToken, UpstreamProtocolError, UpstreamTransportError

SSE_HEADERS = {"content-type": "text/event-stream"}


def relay_for(config, store, handler) -> RelayOrchestrator:
    upstream = UpstreamClient(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return RelayOrchestrator(
        config, store, ProviderRegistry.from_config(config), upstream, HealthMetricsService(config)
    )


def chat(model: str = "gpt-3.5-turbo") -> CanonicalRequest:
    return CanonicalRequest(model=model, messages=[{"role": "user", "content": "hi"}])


def account(account_id: str = "acct-1") -> AuthContext:
    return AuthContext(access_type=AccessType.ACCOUNT, account_id=account_id, api_key="sk-deploy", metered=True)


def byok() -> AuthContext:
    return AuthContext(access_type=AccessType.TOKEN, api_key="sk-caller")


async def collect(stream) -> List[StreamEvent]:
    return [event async for event in stream.events()]


class TestBufferedRelay:
    """Test cases for non-streaming requests."""

    @pytest.mark.asyncio
    async def test_premium_request_charges_once(self, mock_config, memory_store) -> None:
        """One point left and a premium model: the debit is floored at zero."""
        await memory_store.create_account("acct-1", 1)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "4"}}]})

        relay = relay_for(mock_config, memory_store, handler)
        answer = await relay.complete(chat("gpt-4"), account())

        assert answer.content == "4"
        snapshot = await memory_store.read_snapshot("acct-1")
        assert snapshot.points == 0

    @pytest.mark.asyncio
    async def test_denied_before_dispatch(self, mock_config, memory_store) -> None:
        """An exhausted account never reaches the vendor."""
        await memory_store.create_account("acct-1", 0)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(AuthDenied) as exc_info:
            await relay_for(mock_config, memory_store, handler).complete(chat(), account())

        assert exc_info.value.message == "Auth failed"
        assert calls == []

    @pytest.mark.asyncio
    async def test_upstream_error_is_not_charged(self, mock_config, memory_store) -> None:
        await memory_store.create_account("acct-1", 5)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": {"message": "overloaded"}})

        with pytest.raises(UpstreamProtocolError) as exc_info:
            await relay_for(mock_config, memory_store, handler).complete(chat(), account())

        assert exc_info.value.upstream_status == 500
        assert "overloaded" in exc_info.value.body
        assert (await memory_store.read_snapshot("acct-1")).points == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>gateway hiccup</html>"),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
    )
    async def test_unparseable_answer_is_not_charged(self, mock_config, memory_store, response) -> None:
        """A 2xx whose body is not a vendor answer costs nothing."""
        await memory_store.create_account("acct-1", 5)

        def handler(request: httpx.Request) -> httpx.Response:
            return response

        relay = relay_for(mock_config, memory_store, handler)
        with pytest.raises(UpstreamProtocolError):
            await relay.complete(chat(), account())

        assert (await memory_store.read_snapshot("acct-1")).points == 5
        metrics = await relay.metrics.get_metrics_data()
        assert metrics["entitlement_charges"] == {}

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_config, memory_store) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamTransportError):
            await relay_for(mock_config, memory_store, handler).complete(chat(), byok())

    @pytest.mark.asyncio
    async def test_caller_key_is_forwarded(self, mock_config, memory_store) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["authorization"])
            return httpx.Response(200, json={"choices": []})

        answer = await relay_for(mock_config, memory_store, handler).complete(chat(), byok())

        assert seen == ["Bearer sk-caller"]
        assert answer.content == ""


class TestStreamingRelay:
    """Test cases for streamed requests."""

    @pytest.mark.asyncio
    async def test_stream_text_and_charge(self, mock_config, memory_store) -> None:
        await memory_store.create_account("acct-1", 5)
        body = sse_body(openai_chunk("Hel"), openai_chunk("lo"), openai_chunk(finish_reason="stop"), done=True)

        def handler(request: httpx.Request) -> httpx.Response:
            assert b'"stream": true' in request.content or b'"stream":true' in request.content
            return httpx.Response(200, headers=SSE_HEADERS, content=body)

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), account())
        events = await collect(stream)

        assert events == [TextDelta(text="Hel"), TextDelta(text="lo"), Done()]
        assert stream.charged is True
        assert (await memory_store.read_snapshot("acct-1")).points == 4

    @pytest.mark.asyncio
    async def test_empty_body_is_not_charged(self, mock_config, memory_store) -> None:
        await memory_store.create_account("acct-1", 5)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=b"")

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), account())
        events = await collect(stream)

        assert events == [Done()]
        assert stream.charged is False
        assert (await memory_store.read_snapshot("acct-1")).points == 5

    @pytest.mark.asyncio
    async def test_refused_stream(self, mock_config, memory_store) -> None:
        """A JSON answer to a stream request is reported with its body."""
        await memory_store.create_account("acct-1", 5)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "context too long"}})

        with pytest.raises(UpstreamProtocolError) as exc_info:
            await relay_for(mock_config, memory_store, handler).open_stream(chat(), account())

        assert exc_info.value.message == "Stream error!"
        assert "context too long" in exc_info.value.body
        assert (await memory_store.read_snapshot("acct-1")).points == 5

    @pytest.mark.asyncio
    async def test_lost_race_for_last_points(self, mock_config, memory_store) -> None:
        """Another request spent the last points between evaluation and charge."""
        await memory_store.create_account("acct-1", 1)

        async def handler(request: httpx.Request) -> httpx.Response:
            await memory_store.apply_charge("acct-1", ChargePlan(account_id="acct-1", kind=ChargeKind.POINTS, amount=1))
            return httpx.Response(200, headers=SSE_HEADERS, content=sse_body(openai_chunk("x"), done=True))

        with pytest.raises(AuthDenied) as exc_info:
            await relay_for(mock_config, memory_store, handler).open_stream(chat(), account())

        assert exc_info.value.message == "Auth failed"

    @pytest.mark.asyncio
    async def test_cancel_after_charge_ends_with_done(self, mock_config, memory_store) -> None:
        await memory_store.create_account("acct-1", 5)
        token = CancellationToken()
        never = asyncio.Event()

        async def body() -> AsyncIterator[bytes]:
            yield sse_body(openai_chunk("partial"))
            await never.wait()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=body())

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), account(), token)
        events = []
        async for event in stream.events():
            events.append(event)
            if isinstance(event, TextDelta):
                token.cancel("caller went away")

        assert events == [TextDelta(text="partial"), Done()]
        assert (await memory_store.read_snapshot("acct-1")).points == 4

    @pytest.mark.asyncio
    async def test_cancel_unmetered_ends_with_retryable_error(self, mock_config, memory_store) -> None:
        token = CancellationToken()
        never = asyncio.Event()

        async def body() -> AsyncIterator[bytes]:
            yield sse_body(openai_chunk("partial"))
            await never.wait()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=body())

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), byok(), token)
        events = []
        async for event in stream.events():
            events.append(event)
            if isinstance(event, TextDelta):
                token.cancel("caller went away")

        assert isinstance(events[-1], StreamError)
        assert events[-1].retryable is True
        assert "caller went away" in events[-1].message

    @pytest.mark.asyncio
    async def test_stream_breaks_after_text(self, mock_config, memory_store) -> None:
        """A transport failure after text is a non-retryable error event."""

        async def body() -> AsyncIterator[bytes]:
            yield sse_body(openai_chunk("partial"))
            raise httpx.ReadError("connection reset")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=body())

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), byok())
        events = await collect(stream)

        assert events[0] == TextDelta(text="partial")
        assert isinstance(events[-1], StreamError)
        assert events[-1].retryable is False
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_events_after_terminal_are_dropped(self, mock_config, memory_store) -> None:
        body = sse_body(openai_chunk("a"), done=True) + sse_body(openai_chunk("late"))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=body)

        stream = await relay_for(mock_config, memory_store, handler).open_stream(chat(), byok())

        assert await collect(stream) == [TextDelta(text="a"), Done()]
        assert stream.response.is_closed

    @pytest.mark.asyncio
    async def test_terminations_are_counted(self, mock_config, memory_store) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SSE_HEADERS, content=sse_body(openai_chunk("a"), done=True))

        relay = relay_for(mock_config, memory_store, handler)
        await collect(await relay.open_stream(chat(), byok()))

        metrics = await relay.metrics.get_metrics_data()
        assert metrics["stream_terminations"]["openai:done"] == 1
        assert metrics["relay_requests"]["openai:stream:completed"] == 1

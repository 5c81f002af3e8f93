"""Chat relay router.

Streaming answers are plain UTF-8 text. Failures that happen before any
answer text exists are returned with status 200 as fenced blocks, which
callers render as markdown; failures after streaming started are appended to
the text as ``ERROR: <message>``.
"""

import json
from typing import Any, AsyncIterator, Dict, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from models import CanonicalRequest, ChatResponse, StreamError, TextDelta
from services import AuthContext, AuthorizationGate, RelayOrchestrator, RelayStream, caller_identity
from services.auth_gate import AUTH_REQUIRED
from utils import (
    AuthDenied,
    CancellationRegistry,
    CancellationToken,
    InvalidRequest,
    RequestCancelled,
    UpstreamProtocolError,
    UpstreamTransportError,
    create_contextual_logger,
)

router = APIRouter(prefix="/api", tags=["chat"])
logger = create_contextual_logger(__name__, service="chat_router")

MODEL_HEADER = "model"
STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


def get_gate(request: Request) -> AuthorizationGate:
    """Dependency to get the authorization gate from application state."""
    return request.app.state.gate  # type: ignore[no-any-return]


def get_relay(request: Request) -> RelayOrchestrator:
    """Dependency to get the relay orchestrator from application state."""
    return request.app.state.relay  # type: ignore[no-any-return]


def get_cancellations(request: Request) -> CancellationRegistry:
    """Dependency to get the cancellation registry from application state."""
    return request.app.state.cancellations  # type: ignore[no-any-return]


def fence_stream_error(body: str) -> str:
    return f"```json\nERROR: Stream error!\n{body}\n```"


def fence_json(payload: Dict[str, Any]) -> str:
    return f"```json\n{json.dumps(payload, indent=2, ensure_ascii=False)}\n```"


def render_stream_error(error: StreamError, emitted_text: bool) -> str:
    prefix = "\n\n" if emitted_text else ""
    return f"{prefix}ERROR: {error.message}"


def _resolve_model(request: Request, body: CanonicalRequest, stream: bool) -> CanonicalRequest:
    update: Dict[str, Any] = {"stream": stream}
    header_model = (request.headers.get(MODEL_HEADER) or "").strip()
    if header_model:
        update["model"] = header_model
    resolved = body.model_copy(update=update)
    if not resolved.model:
        raise InvalidRequest("Model is required")
    return resolved


async def _complete(
    request: Request,
    chat_request: CanonicalRequest,
    auth: AuthContext,
    relay: RelayOrchestrator,
    cancellations: CancellationRegistry,
) -> ChatResponse:
    request_id = request.state.correlation_id
    token = CancellationToken()
    cancellations.add(request_id, token, caller_identity(request.headers))
    try:
        return await relay.complete(chat_request, auth, token)
    except UpstreamTransportError as e:
        return ChatResponse(content=e.message, error=True, retryable=True)
    except UpstreamProtocolError as e:
        return ChatResponse(content=e.body or e.message, error=True, retryable=False)
    except RequestCancelled as e:
        return ChatResponse(content=f"Request cancelled: {e.reason}", error=True, retryable=True)
    finally:
        cancellations.discard(request_id, token)


async def _stream(
    request: Request,
    chat_request: CanonicalRequest,
    auth: AuthContext,
    relay: RelayOrchestrator,
    cancellations: CancellationRegistry,
) -> Union[StreamingResponse, PlainTextResponse]:
    request_id = request.state.correlation_id
    token = CancellationToken()
    cancellations.add(request_id, token, caller_identity(request.headers))
    try:
        stream = await relay.open_stream(chat_request, auth, token)
    except UpstreamProtocolError as e:
        cancellations.discard(request_id, token)
        return PlainTextResponse(fence_stream_error(e.body or e.message))
    except UpstreamTransportError as e:
        cancellations.discard(request_id, token)
        return PlainTextResponse(fence_json({"error": True, "msg": e.message, "retryable": True}))
    except RequestCancelled as e:
        cancellations.discard(request_id, token)
        return PlainTextResponse(fence_json({"error": True, "msg": f"Request cancelled: {e.reason}", "retryable": True}))
    except Exception:
        cancellations.discard(request_id, token)
        raise

    async def release() -> None:
        cancellations.discard(request_id, token)
        await stream.aclose()

    return StreamingResponse(
        _render(stream),
        media_type=STREAM_MEDIA_TYPE,
        background=BackgroundTask(release),
    )


async def _render(stream: RelayStream) -> AsyncIterator[str]:
    emitted_text = False
    async for event in stream.events():
        if isinstance(event, TextDelta):
            emitted_text = True
            yield event.text
        elif isinstance(event, StreamError):
            yield render_stream_error(event, emitted_text)


@router.post("/chat", response_model=None)
async def chat(
    body: CanonicalRequest,
    request: Request,
    gate: AuthorizationGate = Depends(get_gate),
    relay: RelayOrchestrator = Depends(get_relay),
    cancellations: CancellationRegistry = Depends(get_cancellations),
) -> Union[Dict[str, Any], StreamingResponse, PlainTextResponse]:
    """Relay a chat request; streams when the body asks for it."""
    chat_request = _resolve_model(request, body, body.stream)
    auth = await gate.authorize(request.headers, chat_request.model)
    if chat_request.stream:
        return await _stream(request, chat_request, auth, relay, cancellations)
    answer = await _complete(request, chat_request, auth, relay, cancellations)
    return answer.model_dump(exclude_none=True)


@router.post("/chat-stream", response_model=None)
async def chat_stream(
    body: CanonicalRequest,
    request: Request,
    gate: AuthorizationGate = Depends(get_gate),
    relay: RelayOrchestrator = Depends(get_relay),
    cancellations: CancellationRegistry = Depends(get_cancellations),
) -> Union[StreamingResponse, PlainTextResponse]:
    """Relay a chat request as a text stream."""
    chat_request = _resolve_model(request, body, True)
    auth = await gate.authorize(request.headers, chat_request.model)
    return await _stream(request, chat_request, auth, relay, cancellations)


@router.delete("/chat/{correlation_id}", response_model=None)
async def stop_chat(
    correlation_id: str,
    request: Request,
    cancellations: CancellationRegistry = Depends(get_cancellations),
) -> Union[Dict[str, Any], JSONResponse]:
    """Stop an in-flight request by the correlation ID it was started with.

    The caller must present the credential the request was started with;
    requests of other callers answer as unknown.
    """
    owner = caller_identity(request.headers)
    if owner is None:
        raise AuthDenied(AUTH_REQUIRED)
    if not cancellations.cancel(correlation_id, "stopped by caller", owner=owner):
        return JSONResponse({"error": True, "msg": "Unknown request"}, status_code=404)
    logger.info("Request stop requested", target_correlation_id=correlation_id)
    return {"error": False, "msg": "Stopping"}

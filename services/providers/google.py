"""Google Gemini generateContent adapter.

Gemini streams either as SSE (``alt=sse``) or as one chunked JSON array,
chosen per deployment with ``GEMINI_STREAM_FORMAT``. Neither form carries an
end sentinel: the stream is complete when the body ends.
"""

from typing import Any, AsyncIterator, Dict, List, Mapping

import httpx
from pydantic import ValidationError

from config import ApplicationConfig
from models import (
    CanonicalRequest,
    ChatResponse,
    Done,
    ImagePart,
    Message,
    Role,
    StreamError,
    StreamEvent,
    TextDelta,
    UpstreamRequest,
    Vendor,
)
from models.upstream import GeminiResponse
from utils import InvalidRequest, StreamCorruption, UpstreamProtocolError

from .helpers import compact, drop_leading, load_event_json, model_mentions, parse_data_url
from .parsers import EventParser, JSONArrayParser, RawEvent, SSEParser

CHAT_PATH = "v1beta/models"
CHAT_OP = "generateContent"
CHAT_STREAM_OP = "streamGenerateContent"
VISION_MARKERS = ("vision", "gemini-1.5")
RETRYABLE_CODES = {429, 500, 503}


def reverse_role(role: str) -> str:
    if role == "user":
        return "user"
    if role == "model":
        return "assistant"
    return ""


def _candidate_text(response: GeminiResponse) -> str:
    if not response.candidates:
        return ""
    return "".join(part.text or "" for part in response.candidates[0].content.parts)


class GoogleAdapter:
    """Adapter for the Gemini API."""

    vendor = Vendor.GOOGLE

    def __init__(self, config: ApplicationConfig) -> None:
        self.base_url = config.gemini_url
        self.api_key = config.gemini_api_key
        self.stream_format = config.gemini_stream_format

    @staticmethod
    def is_vision_model(model: str) -> bool:
        return model_mentions(model, VISION_MARKERS)

    def _parts(self, message: Message, vision: bool) -> List[Dict[str, Any]]:
        if isinstance(message.content, str) or not vision:
            return [{"text": message.text()}]
        parts: List[Dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, ImagePart):
                mime_type, data = parse_data_url(part.image_url.url)
                parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
            else:
                parts.append({"text": part.text})
        return parts

    def translate_request(self, request: CanonicalRequest, api_key: str) -> UpstreamRequest:
        vision = self.is_vision_model(request.model)
        contents = [
            {
                "role": "model" if m.role == Role.ASSISTANT else "user",
                "parts": self._parts(m, vision),
            }
            for m in request.messages
        ]
        contents = drop_leading(contents, lambda c: c["role"] == "user")
        if not contents:
            raise InvalidRequest("No user message to send")

        body: Dict[str, Any] = {"contents": contents}
        generation_config = compact({
            "temperature": request.temperature,
            "topP": request.top_p,
            "maxOutputTokens": request.max_tokens,
        })
        if generation_config:
            body["generationConfig"] = generation_config

        operation = CHAT_STREAM_OP if request.stream else CHAT_OP
        params = {"key": api_key}
        if request.stream and self.stream_format == "sse":
            params["alt"] = "sse"

        return UpstreamRequest(
            url=f"{self.base_url}/{CHAT_PATH}/{request.model}:{operation}",
            headers={"Content-Type": "application/json"},
            params=params,
            body=body,
        )

    def translate_response(self, payload: Any) -> ChatResponse:
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("Unexpected response envelope", body=str(payload))
        try:
            response = GeminiResponse.model_validate(payload)
        except ValidationError as e:
            raise UpstreamProtocolError("Unexpected response shape", body=str(e)) from e
        role = response.candidates[0].content.role if response.candidates else ""
        return ChatResponse(role=reverse_role(role or ""), content=_candidate_text(response))

    def is_streaming_content_type(self, headers: Mapping[str, str]) -> bool:
        content_type = headers.get("content-type", "")
        if self.stream_format == "sse":
            return "text/event-stream" in content_type
        return "application/json" in content_type

    def open_stream(self, response: httpx.Response) -> AsyncIterator[bytes]:
        return response.aiter_bytes()

    def new_event_parser(self) -> EventParser:
        if self.stream_format == "sse":
            return SSEParser()
        return JSONArrayParser()

    def interpret_event(self, event: RawEvent) -> List[StreamEvent]:
        payload = load_event_json(event.data)
        try:
            response = GeminiResponse.model_validate(payload)
        except ValidationError as e:
            raise StreamCorruption(f"Failed to parse stream data, {e}") from e

        if response.error is not None:
            code = response.error.code
            return [
                StreamError(
                    message=response.error.message or "upstream error",
                    retryable=isinstance(code, int) and code in RETRYABLE_CODES,
                )
            ]
        text = _candidate_text(response)
        return [TextDelta(text=text)] if text else []

    def end_of_stream(self) -> List[StreamEvent]:
        return [Done()]

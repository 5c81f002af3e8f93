"""Anthropic messages adapter."""

from typing import Any, AsyncIterator, Dict, List, Mapping, Union

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
from models.upstream import AnthropicMessage, AnthropicStreamEvent
from utils import InvalidRequest, StreamCorruption, UpstreamProtocolError, create_contextual_logger

from .helpers import compact, drop_leading, load_event_json, model_mentions, parse_data_url
from .parsers import EventParser, RawEvent, SSEParser

CHAT_PATH = "v1/messages"
STREAMING_BETA = "messages-2023-12-15"
VISION_MARKERS = ("claude-3",)
RETRYABLE_ERRORS = {"overloaded_error", "rate_limit_error", "api_error"}


class AnthropicAdapter:
    """Adapter for the Anthropic messages API."""

    vendor = Vendor.ANTHROPIC

    def __init__(self, config: ApplicationConfig) -> None:
        self.base_url = config.claude_url
        self.api_key = config.claude_api_key
        self.version = config.claude_version
        self.default_max_tokens = config.claude_default_max_tokens
        self.logger = create_contextual_logger(__name__, vendor=self.vendor.value)

    @staticmethod
    def is_vision_model(model: str) -> bool:
        return model_mentions(model, VISION_MARKERS)

    def _content(self, message: Message, vision: bool) -> Union[str, List[Dict[str, Any]]]:
        if isinstance(message.content, str) or not vision:
            return message.text()
        blocks: List[Dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, ImagePart):
                media_type, data = parse_data_url(part.image_url.url)
                blocks.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": media_type, "data": data},
                })
            else:
                blocks.append({"type": "text", "text": part.text})
        return blocks

    def translate_request(self, request: CanonicalRequest, api_key: str) -> UpstreamRequest:
        vision = self.is_vision_model(request.model)

        # leading system messages use the dedicated top-level slot
        system_prompts: List[str] = []
        remaining = list(request.messages)
        while remaining and remaining[0].role == Role.SYSTEM:
            system_prompts.append(remaining.pop(0).text())

        # the top-level system slot only holds the prefix; a system message
        # after the first non-system turn is sent in place as a user turn
        converted = [
            {
                "role": "assistant" if m.role == Role.ASSISTANT else "user",
                "content": self._content(m, vision),
            }
            for m in remaining
        ]
        converted = drop_leading(converted, lambda m: m["role"] == "user")
        if not converted:
            raise InvalidRequest("No user message to send")

        body: Dict[str, Any] = {
            "model": request.model,
            "stream": request.stream,
            "max_tokens": request.max_tokens or self.default_max_tokens,
            "messages": converted,
        }
        if system_prompts:
            body["system"] = "\n\n".join(system_prompts)
        body.update(compact({"temperature": request.temperature, "top_p": request.top_p}))

        headers = {
            "content-type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self.version,
        }
        if request.stream:
            headers["anthropic-beta"] = STREAMING_BETA

        return UpstreamRequest(url=f"{self.base_url}/{CHAT_PATH}", headers=headers, body=body)

    def translate_response(self, payload: Any) -> ChatResponse:
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("Unexpected response envelope", body=str(payload))
        try:
            message = AnthropicMessage.model_validate(payload)
        except ValidationError as e:
            raise UpstreamProtocolError("Unexpected response shape", body=str(e)) from e
        content = "".join(block.text or "" for block in message.content if block.type == "text")
        if not content:
            self.logger.warning("Empty answer in response", error=message.error.message if message.error else None)
        return ChatResponse(role="assistant", content=content)

    def is_streaming_content_type(self, headers: Mapping[str, str]) -> bool:
        return "stream" in headers.get("content-type", "")

    def open_stream(self, response: httpx.Response) -> AsyncIterator[bytes]:
        return response.aiter_bytes()

    def new_event_parser(self) -> EventParser:
        return SSEParser()

    def interpret_event(self, event: RawEvent) -> List[StreamEvent]:
        if event.data.strip() == "[DONE]":
            return [Done()]

        payload = load_event_json(event.data)
        try:
            message = AnthropicStreamEvent.model_validate(payload)
        except ValidationError as e:
            raise StreamCorruption(f"Failed to parse stream data, {e}") from e

        if message.type == "message_stop":
            return [Done()]
        if message.type == "error":
            return [
                StreamError(
                    message=message.error.message or "upstream error",
                    retryable=message.error.type in RETRYABLE_ERRORS,
                )
            ]
        if message.type == "content_block_start" and message.content_block.text:
            return [TextDelta(text=message.content_block.text)]
        if message.type == "content_block_delta" and message.delta.text:
            return [TextDelta(text=message.delta.text)]
        return []

    def end_of_stream(self) -> List[StreamEvent]:
        self.logger.warning("Stream closed without message_stop")
        return [Done()]

"""OpenAI-compatible chat completions adapter."""

from typing import Any, AsyncIterator, Dict, List, Mapping

import httpx
from pydantic import ValidationError

from config import ApplicationConfig
from models import (
    CanonicalRequest,
    ChatResponse,
    Done,
    Message,
    Role,
    StreamError,
    StreamEvent,
    TextDelta,
    UpstreamRequest,
    Vendor,
)
from models.upstream import OpenAIChatCompletion, OpenAIChoice
from utils import InvalidRequest, StreamCorruption, UpstreamProtocolError, create_contextual_logger

from .helpers import compact, drop_leading, load_event_json, model_mentions
from .parsers import EventParser, RawEvent, SSEParser

CHAT_PATH = "v1/chat/completions"
DONE_SENTINEL = "[DONE]"
VISION_MARKERS = ("vision", "gpt-4o")


def _is_stop(choice: OpenAIChoice) -> bool:
    if choice.finish_reason == "stop":
        return True
    details = choice.finish_details
    if isinstance(details, dict):
        return details.get("type") == "stop"
    return details == "stop"


class OpenAIAdapter:
    """Adapter for OpenAI and OpenAI-compatible deployments."""

    vendor = Vendor.OPENAI

    def __init__(self, config: ApplicationConfig) -> None:
        self.base_url = config.openai_url
        self.api_key = config.openai_api_key
        self.org_id = config.openai_org_id
        self.logger = create_contextual_logger(__name__, vendor=self.vendor.value)

    @staticmethod
    def is_vision_model(model: str) -> bool:
        return model_mentions(model, VISION_MARKERS)

    def _message(self, message: Message, vision: bool) -> Dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}
        if vision:
            return {
                "role": message.role,
                "content": [part.model_dump(exclude_none=True) for part in message.content],
            }
        return {"role": message.role, "content": message.text()}

    def translate_request(self, request: CanonicalRequest, api_key: str) -> UpstreamRequest:
        vision = self.is_vision_model(request.model)
        messages = drop_leading(request.messages, lambda m: m.role != Role.ASSISTANT)
        if not messages:
            raise InvalidRequest("No user message to send")

        body: Dict[str, Any] = {
            "model": request.model,
            "stream": request.stream,
            "messages": [self._message(m, vision) for m in messages],
        }
        body.update(compact({
            "temperature": request.temperature,
            "top_p": request.top_p,
            "max_tokens": request.max_tokens,
            "presence_penalty": request.presence_penalty,
            "frequency_penalty": request.frequency_penalty,
        }))

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        if self.org_id:
            headers["OpenAI-Organization"] = self.org_id

        return UpstreamRequest(url=f"{self.base_url}/{CHAT_PATH}", headers=headers, body=body)

    def translate_response(self, payload: Any) -> ChatResponse:
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("Unexpected response envelope", body=str(payload))
        try:
            completion = OpenAIChatCompletion.model_validate(payload)
        except ValidationError as e:
            raise UpstreamProtocolError("Unexpected response shape", body=str(e)) from e
        if not completion.choices:
            return ChatResponse(role="", content="")
        message = completion.choices[0].message
        return ChatResponse(role=message.role or "", content=message.content or "")

    def is_streaming_content_type(self, headers: Mapping[str, str]) -> bool:
        return "stream" in headers.get("content-type", "")

    def open_stream(self, response: httpx.Response) -> AsyncIterator[bytes]:
        return response.aiter_bytes()

    def new_event_parser(self) -> EventParser:
        return SSEParser()

    def interpret_event(self, event: RawEvent) -> List[StreamEvent]:
        if event.data.strip() == DONE_SENTINEL:
            return [Done()]

        payload = load_event_json(event.data)
        try:
            chunk = OpenAIChatCompletion.model_validate(payload)
        except ValidationError as e:
            raise StreamCorruption(f"Failed to parse stream data, {e}") from e

        if chunk.error is not None:
            return [StreamError(message=chunk.error.message or "upstream error", retryable=False)]
        if not chunk.choices:
            return []

        choice = chunk.choices[0]
        events: List[StreamEvent] = []
        if choice.delta.content:
            events.append(TextDelta(text=choice.delta.content))
        if _is_stop(choice):
            events.append(Done())
        return events

    def end_of_stream(self) -> List[StreamEvent]:
        self.logger.warning("Stream closed without a [DONE] sentinel")
        return [Done()]

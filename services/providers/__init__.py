"""Vendor adapters and model-based dispatch.

Every adapter translates a canonical request into its vendor's HTTP request
and translates the vendor's answer, buffered or streamed, back into canonical
form. Dispatch is by model-name prefix.
"""

from typing import Any, AsyncIterator, Dict, List, Mapping, Protocol

import httpx

from config import ApplicationConfig
from models import CanonicalRequest, ChatResponse, StreamEvent, UpstreamRequest, Vendor

from .anthropic import AnthropicAdapter
from .google import GoogleAdapter
from .helpers import parse_data_url
from .openai import OpenAIAdapter
from .parsers import EventParser, JSONArrayParser, RawEvent, SSEParser

ANTHROPIC_PREFIX = "claude"
GOOGLE_PREFIX = "gemini"


class ProviderAdapter(Protocol):
    """Capabilities every vendor adapter provides."""

    vendor: Vendor
    api_key: str

    def translate_request(self, request: CanonicalRequest, api_key: str) -> UpstreamRequest: ...

    def translate_response(self, payload: Any) -> ChatResponse: ...

    def is_streaming_content_type(self, headers: Mapping[str, str]) -> bool: ...

    def open_stream(self, response: httpx.Response) -> AsyncIterator[bytes]: ...

    def new_event_parser(self) -> EventParser: ...

    def interpret_event(self, event: RawEvent) -> List[StreamEvent]: ...

    def end_of_stream(self) -> List[StreamEvent]: ...


def vendor_for_model(model: str) -> Vendor:
    """Resolve the vendor family serving ``model``."""
    if model.startswith(ANTHROPIC_PREFIX):
        return Vendor.ANTHROPIC
    if model.startswith(GOOGLE_PREFIX):
        return Vendor.GOOGLE
    return Vendor.OPENAI


class ProviderRegistry:
    """Holds one adapter per vendor."""

    def __init__(self, adapters: Dict[Vendor, ProviderAdapter]) -> None:
        self._adapters = adapters

    @classmethod
    def from_config(cls, config: ApplicationConfig) -> "ProviderRegistry":
        return cls({
            Vendor.OPENAI: OpenAIAdapter(config),
            Vendor.ANTHROPIC: AnthropicAdapter(config),
            Vendor.GOOGLE: GoogleAdapter(config),
        })

    def select(self, model: str) -> ProviderAdapter:
        return self._adapters[vendor_for_model(model)]


__all__ = [
    "ProviderAdapter",
    "ProviderRegistry",
    "vendor_for_model",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "EventParser",
    "RawEvent",
    "SSEParser",
    "JSONArrayParser",
    "parse_data_url",
]

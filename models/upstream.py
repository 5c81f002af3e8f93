"""Upstream request envelope and vendor response schemas.

Vendor schemas default every optional field so that a response missing a
field degrades to an empty string instead of failing. Only the envelope
itself (a JSON object) is required.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UpstreamRequest(BaseModel):
    """A fully translated vendor HTTP request."""

    method: str = Field(default="POST")
    url: str = Field(..., description="Absolute vendor endpoint URL")
    headers: Dict[str, str] = Field(default_factory=dict)
    params: Dict[str, str] = Field(default_factory=dict)
    body: Dict[str, Any] = Field(default_factory=dict)


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class VendorError(_Lenient):
    type: str = ""
    message: str = ""
    code: Optional[Union[int, str]] = None
    status: Optional[str] = None


# OpenAI-compatible

class OpenAIMessage(_Lenient):
    role: Optional[str] = None
    content: Optional[str] = None


class OpenAIChoice(_Lenient):
    message: OpenAIMessage = Field(default_factory=OpenAIMessage)
    delta: OpenAIMessage = Field(default_factory=OpenAIMessage)
    finish_reason: Optional[str] = None
    # gpt-4-vision-preview reports {"type": "stop"}; some deployments a plain string
    finish_details: Optional[Union[str, Dict[str, Any]]] = None


class OpenAIChatCompletion(_Lenient):
    choices: List[OpenAIChoice] = Field(default_factory=list)
    error: Optional[VendorError] = None


# Anthropic

class AnthropicContentBlock(_Lenient):
    type: str = ""
    text: Optional[str] = None


class AnthropicMessage(_Lenient):
    role: Optional[str] = None
    content: List[AnthropicContentBlock] = Field(default_factory=list)
    error: Optional[VendorError] = None


class AnthropicDelta(_Lenient):
    type: str = ""
    text: Optional[str] = None


class AnthropicStreamEvent(_Lenient):
    type: str = ""
    content_block: AnthropicContentBlock = Field(default_factory=AnthropicContentBlock)
    delta: AnthropicDelta = Field(default_factory=AnthropicDelta)
    error: VendorError = Field(default_factory=VendorError)


# Google

class GeminiPart(_Lenient):
    text: Optional[str] = None


class GeminiContent(_Lenient):
    role: Optional[str] = None
    parts: List[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(_Lenient):
    content: GeminiContent = Field(default_factory=GeminiContent)
    finishReason: Optional[str] = None


class GeminiResponse(_Lenient):
    candidates: List[GeminiCandidate] = Field(default_factory=list)
    error: Optional[VendorError] = None

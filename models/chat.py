"""Canonical chat request and response models."""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .enums import Role


class ImageUrl(BaseModel):
    """Inline image reference, normally a ``data:<mime>;base64,<data>`` URL."""

    url: str = Field(default="", description="Image URL or data URL")
    detail: Optional[Literal["low", "high", "auto"]] = Field(
        default=None, description="Requested image fidelity"
    )


class TextPart(BaseModel):
    """Text content part."""

    type: Literal["text"] = "text"
    text: str = Field(default="", description="Text content")


class ImagePart(BaseModel):
    """Inline image content part."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl = Field(default_factory=ImageUrl, description="Image reference")


ContentPart = Union[TextPart, ImagePart]


class Message(BaseModel):
    """A single chat message."""

    role: Role = Field(..., description="Message author role")
    content: Union[str, List[ContentPart]] = Field(
        ..., description="Plain text or an ordered list of content parts"
    )

    model_config = ConfigDict(use_enum_values=True)

    def text(self) -> str:
        """Return the textual content, joining text parts."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))

    def parts(self) -> List[ContentPart]:
        """Return the content as a list of parts."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    def has_images(self) -> bool:
        return any(isinstance(part, ImagePart) for part in self.parts())


class CanonicalRequest(BaseModel):
    """Provider-agnostic chat completion request."""

    model: str = Field(default="", description="Canonical model identifier")
    messages: List[Message] = Field(..., min_length=1, description="Ordered conversation")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    stream: bool = Field(default=False, description="Whether to stream the answer")
    presence_penalty: Optional[float] = Field(default=None)
    frequency_penalty: Optional[float] = Field(default=None)

    model_config = ConfigDict(extra="ignore")


class ChatResponse(BaseModel):
    """Non-streaming answer returned to the caller."""

    role: str = Field(default="", description="Author role of the answer")
    content: str = Field(default="", description="Answer text")
    error: Optional[bool] = Field(default=None, description="Set when an error is surfaced inline")
    retryable: Optional[bool] = Field(default=None, description="Whether resubmitting may succeed")

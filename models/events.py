"""Canonical stream events emitted by the transcoder."""

from typing import Literal, Union

from pydantic import BaseModel, Field


class TextDelta(BaseModel):
    """Incremental answer text."""

    type: Literal["text_delta"] = "text_delta"
    text: str = Field(..., description="Text fragment in arrival order")


class Done(BaseModel):
    """Successful end of stream."""

    type: Literal["done"] = "done"


class StreamError(BaseModel):
    """Error end of stream."""

    type: Literal["error"] = "error"
    message: str = Field(..., description="Human readable error description")
    retryable: bool = Field(default=False, description="Whether resubmitting may succeed")


StreamEvent = Union[TextDelta, Done, StreamError]

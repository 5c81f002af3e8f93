"""Streaming transcoder.

Turns a vendor's streamed body into canonical events. One transcoder serves
exactly one stream and moves through ``OPEN -> DONE | ERRORED``; once a
terminal event has been produced every further input is ignored.
"""

import codecs
from enum import Enum
from typing import Iterable, List

from models import Done, StreamError, StreamEvent, TextDelta
from utils import StreamCorruption, create_contextual_logger

from .providers import ProviderAdapter


class TranscoderState(str, Enum):
    OPEN = "open"
    DONE = "done"
    ERRORED = "errored"


class StreamTranscoder:
    """Incremental bytes-to-events state machine for a single stream."""

    def __init__(self, adapter: ProviderAdapter) -> None:
        self.adapter = adapter
        self.state = TranscoderState.OPEN
        self.emitted_text = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self._parser = adapter.new_event_parser()
        self.logger = create_contextual_logger(__name__, vendor=adapter.vendor.value)

    @property
    def finished(self) -> bool:
        return self.state != TranscoderState.OPEN

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Consume one network read and return the events it completes."""
        if self.finished:
            return []
        try:
            text = self._decoder.decode(chunk)
            return self._interpret_all(self._parser.feed(text))
        except UnicodeDecodeError as e:
            return [self._corrupted(f"Invalid UTF-8 in stream, {e.reason}")]
        except StreamCorruption as e:
            return [self._corrupted(e.message)]

    def close(self) -> List[StreamEvent]:
        """The body ended: flush buffered input and terminate the stream."""
        if self.finished:
            return []
        try:
            text = self._decoder.decode(b"", final=True)
            events = self._interpret_all(self._parser.feed(text))
            if not self.finished:
                events.extend(self._interpret_all(self._parser.flush()))
        except UnicodeDecodeError as e:
            return [self._corrupted(f"Invalid UTF-8 in stream, {e.reason}")]
        except StreamCorruption as e:
            return [self._corrupted(e.message)]
        if not self.finished:
            events.extend(self._accept(self.adapter.end_of_stream()))
        return events

    def terminate(self, event: StreamEvent) -> List[StreamEvent]:
        """End the stream with an event produced outside the body, e.g. on cancellation."""
        if self.finished:
            return []
        return self._accept([event])

    def _interpret_all(self, raw_events: Iterable) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for raw in raw_events:
            events.extend(self._accept(self.adapter.interpret_event(raw)))
            if self.finished:
                break
        return events

    def _accept(self, events: Iterable[StreamEvent]) -> List[StreamEvent]:
        accepted: List[StreamEvent] = []
        for event in events:
            accepted.append(event)
            if isinstance(event, TextDelta):
                self.emitted_text = True
            elif isinstance(event, Done):
                self.state = TranscoderState.DONE
                break
            elif isinstance(event, StreamError):
                self.state = TranscoderState.ERRORED
                break
        return accepted

    def _corrupted(self, message: str) -> StreamError:
        self.logger.warning("Stream corrupted", error=message)
        self.state = TranscoderState.ERRORED
        return StreamError(message=message, retryable=False)

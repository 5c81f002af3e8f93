"""Event-boundary parsers for vendor streams.

Both parsers accept decoded text in arbitrary fragments and return only
complete events; anything incomplete stays buffered until the next ``feed``.
"""

import re
from typing import List, NamedTuple, Optional, Protocol

_LINE_END = re.compile(r"\r\n|\r|\n")


class RawEvent(NamedTuple):
    """One complete wire event before vendor interpretation."""

    event: str
    data: str


class EventParser(Protocol):
    def feed(self, text: str) -> List[RawEvent]: ...

    def flush(self) -> List[RawEvent]: ...


class SSEParser:
    """Incremental ``text/event-stream`` parser.

    Follows the event-stream rules: lines end in CRLF, LF or CR; ``:`` starts
    a comment; ``data`` lines of one event are joined with newlines and the
    event is dispatched on a blank line.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._data: List[str] = []
        self._event = ""

    def feed(self, text: str) -> List[RawEvent]:
        self._buffer += text
        events: List[RawEvent] = []
        position = 0
        for match in _LINE_END.finditer(self._buffer):
            # a trailing CR may be the first half of a CRLF split across reads
            if match.group() == "\r" and match.end() == len(self._buffer):
                break
            event = self._process_line(self._buffer[position:match.start()])
            if event is not None:
                events.append(event)
            position = match.end()
        self._buffer = self._buffer[position:]
        return events

    def flush(self) -> List[RawEvent]:
        """Dispatch whatever is left when the body ends."""
        events: List[RawEvent] = []
        remainder = self._buffer.rstrip("\r")
        self._buffer = ""
        if remainder:
            event = self._process_line(remainder)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[RawEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        return None

    def _dispatch(self) -> Optional[RawEvent]:
        if not self._data:
            self._event = ""
            return None
        event = RawEvent(event=self._event or "message", data="\n".join(self._data))
        self._data = []
        self._event = ""
        return event


class JSONArrayParser:
    """Incremental splitter for a body shaped ``[{...}, {...}, ...]``.

    Each top-level element is returned as its raw JSON text. A body that is a
    single object (an error envelope, typically) is returned as one element.
    """

    def __init__(self) -> None:
        self._depth = 0
        self._element_depth: Optional[int] = None
        self._in_string = False
        self._escaped = False
        self._current: List[str] = []

    def feed(self, text: str) -> List[RawEvent]:
        events: List[RawEvent] = []
        for ch in text:
            if self._element_depth is None:
                if ch.isspace() or ch == ",":
                    continue
                if ch == "[" and self._depth == 0:
                    self._depth = 1
                    continue
                if ch == "]" and self._depth == 1:
                    self._depth = 0
                    continue
                self._element_depth = self._depth
                if ch not in "{[":
                    # a scalar where an object belongs; hand it on so it fails to parse
                    events.append(RawEvent(event="message", data=ch))
                    self._element_depth = None
                    continue

            self._current.append(ch)
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                continue

            if ch == '"':
                self._in_string = True
            elif ch in "{[":
                self._depth += 1
            elif ch in "}]":
                self._depth -= 1
                if self._depth == self._element_depth:
                    events.append(RawEvent(event="message", data="".join(self._current)))
                    self._current = []
                    self._element_depth = None
        return events

    def flush(self) -> List[RawEvent]:
        """A partially received element is returned as is and will fail to parse."""
        if not self._current:
            return []
        data = "".join(self._current)
        self._current = []
        self._element_depth = None
        return [RawEvent(event="message", data=data)]

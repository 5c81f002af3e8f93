"""Unit tests for the streaming transcoder."""

import json
from typing import List

import pytest

from models import Done, StreamError, TextDelta
from services.providers import AnthropicAdapter, GoogleAdapter, OpenAIAdapter
from services.transcoder import StreamTranscoder, TranscoderState
from conftest import anthropic_delta, gemini_chunk, openai_chunk, sse_body


def feed_all(transcoder: StreamTranscoder, chunks: List[bytes], close: bool = True) -> list:
    events = []
    for chunk in chunks:
        events.extend(transcoder.feed(chunk))
    if close:
        events.extend(transcoder.close())
    return events


class TestOpenAIStream:
    """Test cases for OpenAI-compatible streams."""

    @pytest.fixture
    def transcoder(self, mock_config) -> StreamTranscoder:
        return StreamTranscoder(OpenAIAdapter(mock_config))

    def test_deltas_then_sentinel(self, transcoder) -> None:
        """N deltas followed by the sentinel give N TextDeltas and one Done."""
        body = sse_body(openai_chunk("a"), openai_chunk("b"), openai_chunk("c"), done=True)

        events = feed_all(transcoder, [body])

        assert events == [TextDelta(text="a"), TextDelta(text="b"), TextDelta(text="c"), Done()]
        assert transcoder.state == TranscoderState.DONE

    def test_nothing_after_terminal(self, transcoder) -> None:
        events = feed_all(transcoder, [sse_body(openai_chunk("a"), done=True), sse_body(openai_chunk("late"))])

        assert events == [TextDelta(text="a"), Done()]

    def test_split_mid_json_matches_whole(self, mock_config) -> None:
        body = sse_body(openai_chunk("hello"), openai_chunk(" world"), done=True)
        cut = body.index(b"hello") + 2

        whole = feed_all(StreamTranscoder(OpenAIAdapter(mock_config)), [body])
        split = feed_all(StreamTranscoder(OpenAIAdapter(mock_config)), [body[:cut], body[cut:]])

        assert split == whole

    def test_split_every_byte(self, mock_config) -> None:
        body = sse_body(openai_chunk("héllo ✓"), done=True)

        events = feed_all(StreamTranscoder(OpenAIAdapter(mock_config)), [body[i:i + 1] for i in range(len(body))])

        assert events == [TextDelta(text="héllo ✓"), Done()]

    def test_multibyte_sequence_across_chunks(self, transcoder) -> None:
        body = sse_body(openai_chunk("日本"), done=True)
        cut = body.index("日".encode("utf-8")) + 1

        events = feed_all(transcoder, [body[:cut], body[cut:]])

        assert events == [TextDelta(text="日本"), Done()]

    def test_malformed_event_terminates(self, transcoder) -> None:
        """A corrupt event after three deltas gives exactly one error."""
        good = sse_body(openai_chunk("1"), openai_chunk("2"), openai_chunk("3"))

        events = feed_all(transcoder, [good, b"data: {not json\n\n", sse_body(openai_chunk("4"), done=True)])

        assert events[:3] == [TextDelta(text="1"), TextDelta(text="2"), TextDelta(text="3")]
        assert len(events) == 4
        assert isinstance(events[3], StreamError)
        assert events[3].retryable is False
        assert transcoder.state == TranscoderState.ERRORED

    def test_invalid_utf8_terminates(self, transcoder) -> None:
        events = feed_all(transcoder, [b"data: \xff\xfe\n\n"])

        assert len(events) == 1
        assert isinstance(events[0], StreamError)
        assert events[0].retryable is False

    @pytest.mark.parametrize(
        "finish",
        [{"finish_reason": "stop"}, {"finish_details": "stop"}, {"finish_details": {"type": "stop"}}],
    )
    def test_finish_fields_terminate(self, transcoder, finish) -> None:
        chunk = {"choices": [{"delta": {"content": "end"}, **finish}]}

        events = feed_all(transcoder, [sse_body(chunk, openai_chunk("ignored"))], close=False)

        assert events == [TextDelta(text="end"), Done()]

    def test_end_of_body_without_terminator(self, transcoder) -> None:
        events = feed_all(transcoder, [sse_body(openai_chunk("a"))])

        assert events == [TextDelta(text="a"), Done()]

    def test_vendor_error_chunk(self, transcoder) -> None:
        events = feed_all(transcoder, [sse_body({"error": {"message": "model overloaded"}})])

        assert events == [StreamError(message="model overloaded", retryable=False)]

    def test_terminate_after_done_is_ignored(self, transcoder) -> None:
        feed_all(transcoder, [sse_body(done=True)])

        assert transcoder.terminate(StreamError(message="late")) == []


class TestAnthropicStream:
    """Test cases for Anthropic message streams."""

    @pytest.fixture
    def transcoder(self, mock_config) -> StreamTranscoder:
        return StreamTranscoder(AnthropicAdapter(mock_config))

    def test_typed_events(self, transcoder) -> None:
        body = (
            b"event: message_start\ndata: " + json.dumps({"type": "message_start", "message": {}}).encode() + b"\n\n"
            + b"event: content_block_start\ndata: "
            + json.dumps({"type": "content_block_start", "content_block": {"type": "text", "text": ""}}).encode()
            + b"\n\n"
            + sse_body(anthropic_delta("Hi"), anthropic_delta(" there"))
            + b"event: ping\ndata: {\"type\": \"ping\"}\n\n"
            + b"event: message_stop\ndata: {\"type\": \"message_stop\"}\n\n"
        )

        events = feed_all(transcoder, [body])

        assert events == [TextDelta(text="Hi"), TextDelta(text=" there"), Done()]

    @pytest.mark.parametrize(
        "error_type,retryable",
        [("overloaded_error", True), ("rate_limit_error", True), ("invalid_request_error", False)],
    )
    def test_error_event(self, transcoder, error_type, retryable) -> None:
        error = {"type": "error", "error": {"type": error_type, "message": "Overloaded"}}

        events = feed_all(transcoder, [sse_body(anthropic_delta("x"), error)])

        assert events == [TextDelta(text="x"), StreamError(message="Overloaded", retryable=retryable)]


class TestGoogleStream:
    """Test cases for Gemini streams in both formats."""

    def test_json_array_format(self, make_config) -> None:
        adapter = GoogleAdapter(make_config(GEMINI_STREAM_FORMAT="json_array"))
        body = ("[" + json.dumps(gemini_chunk("Hel")) + ",\r\n" + json.dumps(gemini_chunk("lo")) + "]").encode()
        cut = len(body) // 2

        events = feed_all(StreamTranscoder(adapter), [body[:cut], body[cut:]])

        assert events == [TextDelta(text="Hel"), TextDelta(text="lo"), Done()]

    def test_sse_format(self, make_config) -> None:
        adapter = GoogleAdapter(make_config(GEMINI_STREAM_FORMAT="sse"))

        events = feed_all(StreamTranscoder(adapter), [sse_body(gemini_chunk("a"), gemini_chunk("b"))])

        assert events == [TextDelta(text="a"), TextDelta(text="b"), Done()]

    def test_error_object_in_array(self, make_config) -> None:
        adapter = GoogleAdapter(make_config(GEMINI_STREAM_FORMAT="json_array"))
        body = json.dumps([{"error": {"code": 503, "message": "unavailable", "status": "UNAVAILABLE"}}]).encode()

        events = feed_all(StreamTranscoder(adapter), [body])

        assert events == [StreamError(message="unavailable", retryable=True)]

    def test_truncated_array_is_corruption(self, make_config) -> None:
        adapter = GoogleAdapter(make_config(GEMINI_STREAM_FORMAT="json_array"))
        body = ("[" + json.dumps(gemini_chunk("ok")) + ', {"candidates": [').encode()

        events = feed_all(StreamTranscoder(adapter), [body])

        assert events[0] == TextDelta(text="ok")
        assert isinstance(events[1], StreamError)
        assert events[1].retryable is False

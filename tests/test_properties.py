"""
streamfold - End-to-end Stream Properties

Raw provider bytes -> frames -> increments -> events / buffered result,
for every protocol and arbitrary network fragmentation:
- stream() and buffer() agree on text and tool calls
- Exactly one Start and one End per call
- First-seen call order regardless of interleaving
- Single consumption
- Malformed arguments fail instead of truncating
- Flat-delta and content-block traces of one response are equivalent
"""

import pytest

from streamfold.core.errors import SerializationError, StreamingError
from streamfold.core.models import FinishReason, FunctionCall
from streamfold.response import Response
from streamfold.streaming.pipeline import delta_stream
from streamfold.streaming.projector import (
    ErrorEvent,
    FinishedEvent,
    FunctionCallEndEvent,
    FunctionCallStartEvent,
    TextEvent,
)


SPLIT_SIZES = [1, 3, 17, 4096]

ARGUMENTS = "{\"location\": \"SF\"}"


def response_for(provider: str, chunks, byte_stream) -> Response:
    return Response(
        delta_stream(byte_stream(chunks), provider, "req_prop"),
        provider=provider,
        request_id="req_prop",
    )


async def collect(response: Response):
    return [event async for event in response.stream()]


def openai_weather_trace(sse) -> bytes:
    return sse.openai(
        sse.chunk(content="Checking. "),
        sse.chunk(tool_calls=[{
            "index": 0, "id": "call_1", "type": "function",
            "function": {"name": "get_weather", "arguments": ""},
        }]),
        sse.chunk(tool_calls=[{"index": 0, "function": {"arguments": "{\"locat"}}]),
        sse.chunk(tool_calls=[{"index": 0, "function": {"arguments": "ion\": \"SF\"}"}}]),
        sse.chunk(finish_reason="tool_calls"),
        sse.chunk(usage={"prompt_tokens": 20, "completion_tokens": 7}),
    )


def anthropic_weather_trace(sse) -> bytes:
    return sse.anthropic(
        {"type": "message_start", "message": {"id": "msg_1", "usage": {"input_tokens": 20, "output_tokens": 1}}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "ping"},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Checking. "}},
        {"type": "content_block_stop", "index": 0},
        {"type": "content_block_start", "index": 1,
         "content_block": {"type": "tool_use", "id": "call_1", "name": "get_weather", "input": {}}},
        {"type": "content_block_delta", "index": 1,
         "delta": {"type": "input_json_delta", "partial_json": "{\"locat"}},
        {"type": "content_block_delta", "index": 1,
         "delta": {"type": "input_json_delta", "partial_json": "ion\": \"SF\"}"}},
        {"type": "content_block_stop", "index": 1},
        {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 7}},
        {"type": "message_stop"},
    )


def gemini_weather_trace(sse) -> bytes:
    return sse.gemini(
        {"candidates": [{"content": {"role": "model", "parts": [{"text": "Checking. "}]}}]},
        {
            "candidates": [{
                "content": {"role": "model", "parts": [
                    {"functionCall": {"id": "call_1", "name": "get_weather", "args": {"location": "SF"}}},
                ]},
                "finishReason": "STOP",
            }],
            "usageMetadata": {"promptTokenCount": 20, "candidatesTokenCount": 7},
        },
    )


TRACES = {
    "openai": openai_weather_trace,
    "anthropic_vertex": anthropic_weather_trace,
    "gemini": gemini_weather_trace,
}

EXPECTED_EVENTS = [
    TextEvent("Checking. "),
    FunctionCallStartEvent("call_1", "get_weather"),
    FunctionCallEndEvent("call_1", "get_weather", ARGUMENTS),
    FinishedEvent(FinishReason.TOOL_CALLS),
]


# ============================================================
# Text concatenation
# ============================================================

class TestTextConcatenation:
    """Live text and buffered content agree."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", SPLIT_SIZES)
    async def test_stream_and_buffer_agree(self, sse, byte_stream, size):
        """Text events concatenate to the buffered content."""
        body = sse.openai(
            sse.chunk(content="Hel"),
            sse.chunk(content="lo, "),
            sse.chunk(content="world"),
            sse.chunk(finish_reason="stop"),
        )

        events = await collect(response_for("openai", sse.split(body, size), byte_stream))
        buffered = await response_for("openai", sse.split(body, size), byte_stream).buffer()

        streamed = "".join(e.text for e in events if isinstance(e, TextEvent))
        assert streamed == buffered.content == "Hello, world"
        assert [e.text for e in events if isinstance(e, TextEvent)] == ["Hel", "lo, ", "world"]

    @pytest.mark.asyncio
    async def test_multibyte_text_split_mid_character(self, sse, byte_stream):
        """UTF-8 sequences split across reads are reassembled."""
        body = sse.openai(sse.chunk(content="héllo 🌍"), sse.chunk(finish_reason="stop"))

        result = await response_for("openai", sse.split(body, 1), byte_stream).buffer()

        assert result.content == "héllo 🌍"


# ============================================================
# Tool call accumulation
# ============================================================

class TestToolCallAccumulation:
    """Exactly one Start and End; complete arguments."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", sorted(TRACES))
    @pytest.mark.parametrize("size", SPLIT_SIZES)
    async def test_exactly_once(self, sse, byte_stream, provider, size):
        """Fragmentation never duplicates or drops Start/End."""
        chunks = sse.split(TRACES[provider](sse), size)

        events = await collect(response_for(provider, chunks, byte_stream))

        assert events == EXPECTED_EVENTS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", sorted(TRACES))
    async def test_buffered_function_calls(self, sse, byte_stream, provider):
        """buffer() yields the assembled call, finish reason and usage."""
        result = await response_for(provider, [TRACES[provider](sse)], byte_stream).buffer()

        assert result.content == "Checking. "
        assert result.function_calls == [FunctionCall("call_1", "get_weather", ARGUMENTS)]
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert result.usage.input_tokens == 20
        assert result.usage.output_tokens == 7

    @pytest.mark.asyncio
    async def test_split_name_single_start(self, sse, byte_stream):
        """A name in two fragments yields one Start with the full name."""
        body = sse.openai(
            sse.chunk(tool_calls=[{"index": 0, "id": "call_1", "function": {"name": "get_"}}]),
            sse.chunk(tool_calls=[{"index": 0, "function": {"name": "weather"}}]),
            sse.chunk(tool_calls=[{"index": 0, "function": {"arguments": "{}"}}]),
            sse.chunk(finish_reason="tool_calls"),
        )

        events = await collect(response_for("openai", sse.split(body, 5), byte_stream))

        starts = [e for e in events if isinstance(e, FunctionCallStartEvent)]
        assert starts == [FunctionCallStartEvent("call_1", "get_weather")]


# ============================================================
# Ordering independence
# ============================================================

class TestOrderingIndependence:
    """First-seen order, whatever the interleaving."""

    @pytest.mark.asyncio
    async def test_interleaved_fragments(self, sse, byte_stream):
        """Calls keep the order their keys were first seen."""
        body = sse.openai(
            sse.chunk(tool_calls=[
                {"index": 0, "id": "call_a", "function": {"name": "first", "arguments": ""}},
                {"index": 1, "id": "call_b", "function": {"name": "second", "arguments": ""}},
            ]),
            sse.chunk(tool_calls=[{"index": 1, "function": {"arguments": "{\"b\":"}}]),
            sse.chunk(tool_calls=[{"index": 0, "function": {"arguments": "{\"a\":"}}]),
            sse.chunk(tool_calls=[{"index": 1, "function": {"arguments": "2}"}}]),
            sse.chunk(tool_calls=[{"index": 0, "function": {"arguments": "1}"}}]),
            sse.chunk(finish_reason="tool_calls"),
        )

        events = await collect(response_for("openai", [body], byte_stream))
        result = await response_for("openai", [body], byte_stream).buffer()

        ends = [e for e in events if isinstance(e, FunctionCallEndEvent)]
        assert [e.id for e in ends] == ["call_a", "call_b"]
        assert [c.id for c in result.function_calls] == ["call_a", "call_b"]
        assert [c.parse_arguments() for c in result.function_calls] == [{"a": 1}, {"b": 2}]

    @pytest.mark.asyncio
    async def test_parallel_gemini_calls(self, sse, byte_stream):
        """Whole Gemini calls get sequential keys in arrival order."""
        body = sse.gemini({
            "candidates": [{
                "content": {"parts": [
                    {"functionCall": {"name": "lookup", "args": {"q": "a"}}},
                    {"functionCall": {"name": "lookup", "args": {"q": "b"}}},
                ]},
                "finishReason": "STOP",
            }],
        })

        result = await response_for("gemini", [body], byte_stream).buffer()

        assert [c.parse_arguments() for c in result.function_calls] == [{"q": "a"}, {"q": "b"}]
        assert len({c.id for c in result.function_calls}) == 2
        assert result.finish_reason == FinishReason.TOOL_CALLS


# ============================================================
# Single consumption
# ============================================================

class TestSingleConsumption:
    """A response is consumed at most once."""

    @pytest.mark.asyncio
    async def test_second_buffer_fails(self, sse, byte_stream):
        """buffer() twice raises instead of replaying."""
        response = response_for("openai", [sse.openai(sse.chunk(content="x"))], byte_stream)
        await response.buffer()

        with pytest.raises(StreamingError) as exc_info:
            await response.buffer()

        assert exc_info.value.error.code == "response_consumed"


# ============================================================
# Malformed arguments
# ============================================================

class TestMalformedArguments:
    """Invalid JSON is an error in both modes."""

    def _trace(self, sse) -> bytes:
        return sse.anthropic(
            {"type": "message_start", "message": {"usage": {"input_tokens": 3}}},
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "tool_use", "id": "toolu_1", "name": "f", "input": {}}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "input_json_delta", "partial_json": "{\"a\": "}},
            {"type": "content_block_stop", "index": 0},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}},
            {"type": "message_stop"},
        )

    @pytest.mark.asyncio
    async def test_buffer_raises(self, sse, byte_stream):
        """buffer() fails with a Serialization error."""
        response = response_for("anthropic_vertex", [self._trace(sse)], byte_stream)

        with pytest.raises(SerializationError):
            await response.buffer()

    @pytest.mark.asyncio
    async def test_stream_ends_with_error_and_no_end(self, sse, byte_stream):
        """stream() never emits an End carrying truncated arguments."""
        events = await collect(response_for("anthropic_vertex", [self._trace(sse)], byte_stream))

        assert not any(isinstance(e, FunctionCallEndEvent) for e in events)
        assert isinstance(events[-1], ErrorEvent)
        assert isinstance(events[-1].error.cause, SerializationError)


class TestUnexpectedEventShape:
    """Well-formed JSON of the wrong shape ends the response cleanly."""

    def _trace(self, provider: str, sse) -> bytes:
        if provider == "openai":
            return sse.openai(
                sse.chunk(content="hi"),
                {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": "get_weather"}]}}]},
            )
        if provider == "gemini":
            return sse.gemini(
                {"candidates": [{"content": {"role": "model", "parts": [{"text": "hi"}]}}]},
                {"candidates": [{"content": {"role": "model", "parts": ["oops"]}}]},
            )
        return sse.anthropic(
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "hi"}},
            {"type": "content_block_delta", "index": 0, "delta": "x"},
            {"type": "message_stop"},
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", ["openai", "gemini", "anthropic_vertex"])
    async def test_stream_ends_with_invalid_frame_error(self, sse, byte_stream, provider):
        """stream() yields the text so far, then one ErrorEvent."""
        events = await collect(response_for(provider, [self._trace(provider, sse)], byte_stream))

        assert len(events) == 2
        assert events[0] == TextEvent("hi")
        assert isinstance(events[1], ErrorEvent)
        assert events[1].error.code == "invalid_frame"
        assert events[1].error.partial_content == "hi"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", ["openai", "gemini", "anthropic_vertex"])
    async def test_buffer_raises_streaming_error(self, sse, byte_stream, provider):
        """buffer() raises a Streaming error and releases the source."""
        source = byte_stream([self._trace(provider, sse)])
        response = Response(delta_stream(source, provider, "req_prop"), provider=provider)

        with pytest.raises(StreamingError) as exc_info:
            await response.buffer()

        assert exc_info.value.error.code == "invalid_frame"
        assert source.closed


# ============================================================
# Cross-protocol equivalence
# ============================================================

class TestCrossProtocolEquivalence:
    """One logical response, three wire protocols, one event sequence."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", SPLIT_SIZES)
    async def test_event_sequences_equal(self, sse, byte_stream, size):
        """Types, order and payloads match across protocols."""
        sequences = {}
        for provider, trace in TRACES.items():
            chunks = sse.split(trace(sse), size)
            sequences[provider] = await collect(response_for(provider, chunks, byte_stream))

        assert sequences["openai"] == sequences["anthropic_vertex"] == sequences["gemini"]

    @pytest.mark.asyncio
    async def test_usage_equal(self, sse, byte_stream):
        """Finished carries the same merged usage for every protocol."""
        usages = []
        for provider, trace in TRACES.items():
            events = await collect(response_for(provider, [trace(sse)], byte_stream))
            usages.append(events[-1].usage)

        assert usages[0] == usages[1] == usages[2]

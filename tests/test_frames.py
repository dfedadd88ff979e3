"""
streamfold - Frame Reader Tests

Verifies:
- Framing across arbitrary chunk boundaries and line endings
- Field handling (multi-line data, comments, event/id/retry)
- Sentinel consumption and source release
- Truncated frames and invalid UTF-8 as StreamingError
"""

import pytest

from streamfold.core.errors import StreamingError
from streamfold.streaming.frames import (
    FrameReader,
    SseEvent,
    done_sentinel,
    message_stop_sentinel,
)


async def read_all(reader: FrameReader):
    return [event async for event in reader]


# ============================================================
# Framing
# ============================================================

class TestFraming:
    """Splitting bytes into events."""

    @pytest.mark.asyncio
    async def test_single_event(self, byte_stream):
        """A data line followed by a blank line is one event."""
        events = await read_all(FrameReader(byte_stream([b"data: hello\n\n"])))

        assert events == [SseEvent(data="hello")]

    @pytest.mark.asyncio
    async def test_event_split_across_chunks(self, byte_stream, sse):
        """Chunk boundaries never change the decoded events."""
        body = b"data: first\n\ndata: second\n\n"

        for size in (1, 2, 3, 7):
            events = await read_all(FrameReader(byte_stream(sse.split(body, size))))
            assert [e.data for e in events] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_crlf_and_cr_line_endings(self, byte_stream):
        """CRLF and bare CR terminate lines like LF."""
        body = b"data: a\r\n\r\ndata: b\r\rdata: c\n\n"

        events = await read_all(FrameReader(byte_stream([body])))

        assert [e.data for e in events] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_crlf_split_between_chunks(self, byte_stream):
        """A CR at the end of one read and LF at the start of the next is one line break."""
        chunks = [b"data: a\r", b"\n\r", b"\ndata: b\r\n\r\n"]

        events = await read_all(FrameReader(byte_stream(chunks)))

        assert [e.data for e in events] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_chunks(self, byte_stream):
        """UTF-8 sequences split between reads decode correctly."""
        body = "data: héllo ✓\n\n".encode("utf-8")
        split_at = body.index("✓".encode("utf-8")) + 1

        events = await read_all(FrameReader(byte_stream([body[:split_at], body[split_at:]])))

        assert events[0].data == "héllo ✓"

    @pytest.mark.asyncio
    async def test_leading_bom_stripped(self, byte_stream):
        """A byte order mark before the first line is ignored."""
        events = await read_all(FrameReader(byte_stream([b"\xef\xbb\xbfdata: x\n\n"])))

        assert events[0].data == "x"


# ============================================================
# Fields
# ============================================================

class TestFields:
    """Event-stream field handling."""

    @pytest.mark.asyncio
    async def test_multiline_data_joined_with_newline(self, byte_stream):
        """Consecutive data lines form one payload."""
        events = await read_all(FrameReader(byte_stream([b"data: {\"a\":\ndata: 1}\n\n"])))

        assert events[0].data == "{\"a\":\n1}"

    @pytest.mark.asyncio
    async def test_comments_and_blank_keepalives_ignored(self, byte_stream):
        """Comment lines and empty dispatches produce nothing."""
        body = b": keep-alive\n\n\n: another\ndata: x\n\n"

        events = await read_all(FrameReader(byte_stream([body])))

        assert [e.data for e in events] == ["x"]

    @pytest.mark.asyncio
    async def test_event_id_and_retry_fields(self, byte_stream):
        """event, id and retry are attached to the dispatched record."""
        body = b"event: content_block_delta\nid: 7\nretry: 1500\ndata: {}\n\n"

        events = await read_all(FrameReader(byte_stream([body])))

        assert events[0] == SseEvent(data="{}", event="content_block_delta", id="7", retry=1500)

    @pytest.mark.asyncio
    async def test_field_without_space_after_colon(self, byte_stream):
        """Only one optional space after the colon is stripped."""
        events = await read_all(FrameReader(byte_stream([b"data:x\ndata:  y\n\n"])))

        assert events[0].data == "x\n y"

    @pytest.mark.asyncio
    async def test_event_type_resets_between_events(self, byte_stream):
        """An event name applies to one record only."""
        body = b"event: ping\ndata: 1\n\ndata: 2\n\n"

        events = await read_all(FrameReader(byte_stream([body])))

        assert [e.event for e in events] == ["ping", "message"]


# ============================================================
# Sentinels and Termination
# ============================================================

class TestTermination:
    """Sentinels, truncation and resource release."""

    @pytest.mark.asyncio
    async def test_done_sentinel_consumed(self, byte_stream):
        """[DONE] ends the stream and is not emitted."""
        source = byte_stream([b"data: a\n\ndata: [DONE]\n\ndata: ignored\n\n"])
        reader = FrameReader(source, done_sentinel)

        events = await read_all(reader)

        assert [e.data for e in events] == ["a"]
        assert reader.terminated_by_sentinel
        assert source.closed

    @pytest.mark.asyncio
    async def test_message_stop_sentinel(self, byte_stream, sse):
        """Anthropic message_stop ends the stream."""
        body = sse.frame({"type": "ping"}, event="ping") + sse.frame(
            {"type": "message_stop"}, event="message_stop"
        )

        events = await read_all(FrameReader(byte_stream([body]), message_stop_sentinel))

        assert [e.event for e in events] == ["ping"]

    def test_message_stop_sentinel_matches_payload_type(self):
        """A message_stop payload without an event name is still a sentinel."""
        assert message_stop_sentinel(SseEvent(data='{"type": "message_stop"}'))
        assert not message_stop_sentinel(SseEvent(data='{"type": "message_delta"}'))
        assert not message_stop_sentinel(SseEvent(data="message_stop is not json"))

    @pytest.mark.asyncio
    async def test_eof_without_sentinel_is_clean_end(self, byte_stream):
        """A stream closing after a complete event ends normally."""
        reader = FrameReader(byte_stream([b"data: a\n\n"]), done_sentinel)

        events = await read_all(reader)

        assert len(events) == 1
        assert not reader.terminated_by_sentinel

    @pytest.mark.asyncio
    async def test_truncated_frame_raises(self, byte_stream):
        """EOF in the middle of an event is a StreamingError."""
        reader = FrameReader(byte_stream([b"data: a\n\ndata: {\"partial"]))

        with pytest.raises(StreamingError) as exc_info:
            await read_all(reader)

        assert exc_info.value.error.code == "truncated_frame"

    @pytest.mark.asyncio
    async def test_unterminated_data_lines_raise(self, byte_stream):
        """Data lines without the final blank line are truncated."""
        with pytest.raises(StreamingError) as exc_info:
            await read_all(FrameReader(byte_stream([b"data: a\n"])))

        assert exc_info.value.error.code == "truncated_frame"

    @pytest.mark.asyncio
    async def test_invalid_utf8_raises(self, byte_stream):
        """Bytes that are not UTF-8 are a StreamingError."""
        with pytest.raises(StreamingError) as exc_info:
            await read_all(FrameReader(byte_stream([b"data: \xff\xfe\n\n"])))

        assert exc_info.value.error.code == "invalid_utf8"

    @pytest.mark.asyncio
    async def test_second_iteration_rejected(self, byte_stream):
        """A reader is single-pass."""
        reader = FrameReader(byte_stream([b"data: a\n\n"]))
        await read_all(reader)

        with pytest.raises(StreamingError) as exc_info:
            reader.__aiter__()

        assert exc_info.value.error.code == "reader_consumed"

    @pytest.mark.asyncio
    async def test_aclose_releases_source_mid_stream(self, byte_stream):
        """Closing early closes the source without reading the rest."""
        source = byte_stream([b"data: a\n\n", b"data: b\n\n", b"data: c\n\n"])
        reader = FrameReader(source)

        iterator = reader.__aiter__()
        first = await iterator.__anext__()
        await reader.aclose()

        assert first.data == "a"
        assert source.closed
        assert source.chunks_read == 1

    @pytest.mark.asyncio
    async def test_aclose_before_iteration(self, byte_stream):
        """Closing an unstarted reader still releases the source."""
        source = byte_stream([b"data: a\n\n"])

        await FrameReader(source).aclose()

        assert source.closed

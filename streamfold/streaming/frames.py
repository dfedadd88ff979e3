"""
streamfold - Event Stream Frame Reader

Splits a raw byte stream into server-sent event records.

Handles:
- LF, CRLF and bare CR line endings, including a CRLF split across reads
- UTF-8 code points split across reads (bytes are decoded per line)
- Multi-line data fields, comments, event/id/retry fields
- Provider termination sentinels (consumed, never emitted)
- Truncated final frames, reported as StreamingError
"""

import json
import re
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional

from ..core.errors import StreamingError


_LINE_END = re.compile(rb"\r\n|\r|\n")


@dataclass
class SseEvent:
    """One dispatched event-stream record."""
    data: str
    event: str = "message"
    id: Optional[str] = None
    retry: Optional[int] = None


Sentinel = Callable[[SseEvent], bool]


# ============================================================
# Sentinels
# ============================================================

def done_sentinel(event: SseEvent) -> bool:
    """OpenAI-style ``data: [DONE]`` terminator."""
    return event.data.strip() == "[DONE]"


def message_stop_sentinel(event: SseEvent) -> bool:
    """Anthropic ``message_stop`` terminator (event name or payload type)."""
    if event.event == "message_stop":
        return True
    if "message_stop" not in event.data:
        return False
    try:
        payload = json.loads(event.data)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("type") == "message_stop"


# ============================================================
# Reader
# ============================================================

class FrameReader:
    """
    Async iterator of SseEvent over an async byte iterator.

    Single pass: iterating a reader a second time raises StreamingError;
    build a new reader over a new source instead. The source is closed
    when iteration ends for any reason, including the sentinel.

    Example:
        async for event in FrameReader(transport.send(request), done_sentinel):
            handle(event.data)
    """

    def __init__(
        self,
        source: AsyncIterator[bytes],
        sentinel: Optional[Sentinel] = None,
    ):
        self._source = source
        self._sentinel = sentinel
        self._iterator = None

        self._buffer = b""
        self._pending_cr = False
        self._first_line = True

        self._data_lines: List[str] = []
        self._event_type = ""
        self._last_event_id: Optional[str] = None
        self._retry: Optional[int] = None

        self.terminated_by_sentinel = False

    def __aiter__(self) -> AsyncIterator[SseEvent]:
        if self._iterator is not None:
            raise StreamingError("Frame reader has already been consumed", code="reader_consumed")
        self._iterator = self._read()
        return self._iterator

    async def aclose(self):
        """Stop reading and release the underlying source."""
        if self._iterator is not None:
            await self._iterator.aclose()
        # an iterator that never started has no finally block to run
        await _close_source(self._source)

    async def _read(self) -> AsyncIterator[SseEvent]:
        try:
            async for chunk in self._source:
                if not chunk:
                    continue
                for raw_line in self._split_lines(chunk):
                    event = self._process_line(self._decode(raw_line))
                    if event is None:
                        continue
                    if self._sentinel is not None and self._sentinel(event):
                        self.terminated_by_sentinel = True
                        return
                    yield event

            self._check_eof()
        finally:
            await _close_source(self._source)

    # ------------------------------------------------------------
    # Line splitting
    # ------------------------------------------------------------

    def _split_lines(self, chunk: bytes) -> List[bytes]:
        if self._pending_cr:
            # CR ended the previous read; a leading LF completes that CRLF
            self._pending_cr = False
            if chunk.startswith(b"\n"):
                chunk = chunk[1:]

        data = self._buffer + chunk
        lines = []
        pos = 0
        last_match = None
        for match in _LINE_END.finditer(data):
            lines.append(data[pos:match.start()])
            pos = match.end()
            last_match = match

        if last_match is not None and last_match.group() == b"\r" and last_match.end() == len(data):
            self._pending_cr = True

        self._buffer = data[pos:]
        return lines

    def _decode(self, raw_line: bytes) -> str:
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StreamingError(
                f"Event stream contains invalid UTF-8: {e}",
                code="invalid_utf8",
            ) from e
        if self._first_line:
            self._first_line = False
            if line.startswith("\ufeff"):
                line = line[1:]
        return line

    # ------------------------------------------------------------
    # Field handling
    # ------------------------------------------------------------

    def _process_line(self, line: str) -> Optional[SseEvent]:
        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            return None

        if ":" in line:
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
        else:
            name, value = line, ""

        if name == "data":
            self._data_lines.append(value)
        elif name == "event":
            self._event_type = value
        elif name == "id":
            if "\0" not in value:
                self._last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)

        return None

    def _dispatch(self) -> Optional[SseEvent]:
        if not self._data_lines:
            self._event_type = ""
            return None

        event = SseEvent(
            data="\n".join(self._data_lines),
            event=self._event_type or "message",
            id=self._last_event_id,
            retry=self._retry,
        )
        self._data_lines = []
        self._event_type = ""
        self._retry = None
        return event

    def _check_eof(self):
        if self._buffer or self._data_lines:
            raise StreamingError(
                "Stream ended in the middle of an event (truncated frame)",
                code="truncated_frame",
                details={"buffered_bytes": len(self._buffer), "pending_data_lines": len(self._data_lines)},
            )


async def _close_source(source) -> None:
    close = getattr(source, "aclose", None)
    if close is not None:
        await close()

"""
streamfold - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Event-stream byte builders for provider traces
- Fake in-memory transport recording requests and closure
- Isolated Prometheus registry per test
"""

import json
import os
import pytest
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from prometheus_client import CollectorRegistry

from streamfold.core.http_client import TransportRequest
from streamfold.observability.metrics import setup_metrics
from streamfold.observability.tracing import reset_tracing


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Event-stream Builders
# ============================================================

def sse_frame(payload: Union[str, Dict[str, Any]], event: Optional[str] = None) -> bytes:
    """One event-stream frame carrying ``payload`` as its data line."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {data}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def openai_trace(*chunks: Dict[str, Any], done: bool = True) -> bytes:
    """OpenAI chunks followed by the [DONE] sentinel."""
    body = b"".join(sse_frame(chunk) for chunk in chunks)
    if done:
        body += sse_frame("[DONE]")
    return body


def gemini_trace(*chunks: Dict[str, Any]) -> bytes:
    """Gemini streamGenerateContent chunks (the stream ends at EOF)."""
    return b"".join(sse_frame(chunk) for chunk in chunks)


def anthropic_trace(*events: Dict[str, Any]) -> bytes:
    """Anthropic events, each framed with its event name."""
    return b"".join(sse_frame(event, event=event["type"]) for event in events)


def split_every(body: bytes, size: int) -> List[bytes]:
    """Split a body into fixed-size chunks to exercise reassembly."""
    return [body[i:i + size] for i in range(0, len(body), size)]


def openai_chunk(
    content: Optional[str] = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    finish_reason: Optional[str] = None,
    usage: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """A chat.completion.chunk with a single choice."""
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    chunk: Dict[str, Any] = {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        chunk["choices"] = []
        chunk["usage"] = usage
    return chunk


@pytest.fixture
def sse():
    """Builders for provider event-stream bodies."""
    class Builders:
        frame = staticmethod(sse_frame)
        openai = staticmethod(openai_trace)
        gemini = staticmethod(gemini_trace)
        anthropic = staticmethod(anthropic_trace)
        split = staticmethod(split_every)
        chunk = staticmethod(openai_chunk)

    return Builders


# ============================================================
# Fake Transport
# ============================================================

class FakeByteStream:
    """Async byte iterator that records whether it was closed."""

    def __init__(self, chunks: List[bytes], error: Optional[BaseException] = None):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False
        self.chunks_read = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        if self._chunks:
            self.chunks_read += 1
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True


class FakeTransport:
    """
    In-memory Transport.

    Usage:
        transport = FakeTransport()
        transport.respond(body)
        adapter = get_adapter(config, transport=transport)
    """

    def __init__(self):
        self.requests: List[TransportRequest] = []
        self.streams: List[FakeByteStream] = []
        self._queued: List[FakeByteStream] = []

    def respond(
        self,
        body: Union[bytes, List[bytes]],
        error: Optional[BaseException] = None,
    ) -> FakeByteStream:
        """Queue the body for the next request."""
        chunks = [body] if isinstance(body, bytes) else list(body)
        stream = FakeByteStream(chunks, error)
        self._queued.append(stream)
        return stream

    def send(self, request: TransportRequest) -> FakeByteStream:
        self.requests.append(request)
        stream = self._queued.pop(0) if self._queued else FakeByteStream([])
        self.streams.append(stream)
        return stream

    @property
    def last_request(self) -> TransportRequest:
        return self.requests[-1]


@pytest.fixture
def fake_transport():
    """Fake transport recording requests and closure."""
    return FakeTransport()


@pytest.fixture
def byte_stream():
    """Factory for standalone fake byte streams."""
    return FakeByteStream


# ============================================================
# Observability Isolation
# ============================================================

@pytest.fixture(autouse=True)
def metrics_registry():
    """Fresh Prometheus registry installed as the shared collector."""
    registry = CollectorRegistry()
    setup_metrics(registry)
    yield registry


@pytest.fixture(autouse=True)
def isolated_tracing():
    """Drop any tracing manager a test configured."""
    yield
    reset_tracing()

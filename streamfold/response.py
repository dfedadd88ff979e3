"""
streamfold - Response Facade

One provider response, consumable exactly once:
- ``stream()``: the live StreamEvent sequence
- ``buffer()``: the finalized CompleteResponse

The underlying increment sequence is single-traversal, so a second
consumption raises instead of replaying.
"""

import time
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional

from .core.errors import StreamfoldError, StreamingError
from .core.models import CompleteResponse, Prompt, Usage
from .observability.logging import get_logger
from .observability.metrics import MetricsCollector, get_metrics
from .streaming.accumulator import ResponseAccumulator
from .streaming.deltas import DecodedFrame
from .streaming.projector import ErrorEvent, EventProjector, FinishedEvent, StreamEvent

if TYPE_CHECKING:
    from .tools.registry import ToolRegistry


logger = get_logger("streamfold.response")


class Response:
    """
    Facade over a provider's decoded frame sequence.

    Usage:
        response = await adapter.generate(request)
        async for event in response.stream():
            ...

        # or
        complete = await response.buffer()

    Closing (``aclose``, ``async with``, or abandoning a ``stream()``
    iterator) releases the transport connection. Nothing is synthesized
    from a response that was closed before its end.
    """

    def __init__(
        self,
        frames: AsyncIterator[DecodedFrame],
        provider: str = "",
        model: str = "",
        request_id: str = "",
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.provider = str(getattr(provider, "value", provider))
        self.model = model
        self.request_id = request_id

        self._frames = frames
        self._on_close = on_close
        self._metrics = metrics
        self._consumed = False
        self._closed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def closed(self) -> bool:
        return self._closed

    # ============================================================
    # Consumption
    # ============================================================

    def stream(self) -> AsyncIterator[StreamEvent]:
        """
        Live event sequence.

        The response is claimed immediately, even before the first
        iteration.
        """
        self._claim("stream")
        return self._stream_events()

    async def buffer(self) -> CompleteResponse:
        """
        Drive the response to its end and return the CompleteResponse.

        Raises:
            StreamfoldError: any transport, decode or finalize failure.
                No partial response is returned.
        """
        self._claim("buffer")

        started_at = time.perf_counter()
        outcome = "cancelled"
        self._record_started()

        try:
            accumulator = ResponseAccumulator(self.provider, self.request_id)
            async for frame in self._frames:
                accumulator.merge_frame(frame)
            complete = accumulator.finalize()
            outcome = complete.finish_reason.value

        except StreamfoldError as e:
            outcome = "error"
            self._record_error(e)
            raise

        finally:
            await self.aclose()
            self._record_finished("buffer", outcome, started_at)

        self._record_usage(complete.usage)
        logger.debug(
            "Response buffered",
            provider=self.provider,
            model=self.model,
            request_id=self.request_id,
            finish_reason=outcome,
            function_calls=len(complete.function_calls),
        )
        return complete

    async def text(self) -> str:
        """Buffered text content."""
        complete = await self.buffer()
        return complete.content

    async def _stream_events(self) -> AsyncIterator[StreamEvent]:
        projector = EventProjector(self.provider, self.request_id)
        started_at = time.perf_counter()
        first_event_seen = False
        outcome = "cancelled"
        self._record_started()

        try:
            events = []
            try:
                async for frame in self._frames:
                    for event in projector.project_frame(frame):
                        if not first_event_seen:
                            first_event_seen = True
                            self._record_first_event(started_at)
                        yield event
                if self._closed:
                    # Closed from outside between events
                    return
                events = projector.finish()
            except StreamfoldError as e:
                self._record_error(e)
                events = projector.fail(e)

            for event in events:
                if isinstance(event, FinishedEvent):
                    outcome = event.reason.value
                    self._record_usage(event.usage)
                elif isinstance(event, ErrorEvent):
                    outcome = "error"
                    logger.warning(
                        "Response stream failed",
                        provider=self.provider,
                        model=self.model,
                        request_id=self.request_id,
                        error_code=event.error.code,
                        content_started=event.error.content_started,
                    )
                if not first_event_seen:
                    first_event_seen = True
                    self._record_first_event(started_at)
                yield event

        finally:
            await self.aclose()
            self._record_finished("stream", outcome, started_at)

    def _claim(self, mode: str):
        if self._consumed:
            raise StreamingError(
                f"Response already consumed; {mode}() cannot replay it",
                code="response_consumed",
                provider=self.provider or None,
                request_id=self.request_id,
            )
        self._consumed = True

    # ============================================================
    # Conversation helpers
    # ============================================================

    async def respond_into(self, prompt: Prompt) -> CompleteResponse:
        """Buffer, then append the assistant turn to ``prompt``."""
        complete = await self.buffer()
        prompt.add_response(complete)
        return complete

    async def run_tools(self, prompt: Prompt, registry: "ToolRegistry") -> CompleteResponse:
        """
        Buffer, append the assistant turn, then run every requested
        function call through ``registry`` and append its result.

        Tool results follow the assistant turn, in call order.
        """
        complete = await self.respond_into(prompt)
        for call in complete.function_calls:
            output = await registry.execute(call)
            prompt.add_tool_result(call.id, output, call.name)
        return complete

    # ============================================================
    # Resource management
    # ============================================================

    async def aclose(self):
        """Release the transport. Safe to call more than once."""
        self._consumed = True
        if self._closed:
            return
        self._closed = True

        close = getattr(self._frames, "aclose", None)
        try:
            if close is not None:
                await close()
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> "Response":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    # ============================================================
    # Metrics
    # ============================================================

    @property
    def metrics(self) -> MetricsCollector:
        if self._metrics is None:
            self._metrics = get_metrics()
        return self._metrics

    def _record_started(self):
        self.metrics.record_stream_started(self.provider)

    def _record_first_event(self, started_at: float):
        self.metrics.record_time_to_first_event(
            self.provider, self.model, time.perf_counter() - started_at
        )

    def _record_error(self, error: StreamfoldError):
        self.metrics.record_stream_error(self.provider, error.kind.value)

    def _record_usage(self, usage: Usage):
        self.metrics.record_tokens(
            self.provider, self.model, usage.input_tokens, usage.output_tokens
        )

    def _record_finished(self, mode: str, outcome: str, started_at: float):
        self.metrics.record_stream_finished(
            provider=self.provider,
            model=self.model,
            mode=mode,
            outcome=outcome,
            duration_seconds=time.perf_counter() - started_at,
        )

    def __repr__(self) -> str:
        return (
            f"Response(provider={self.provider!r}, model={self.model!r}, "
            f"request_id={self.request_id!r}, consumed={self._consumed})"
        )

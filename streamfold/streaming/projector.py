"""
streamfold - Event Projector

Turns the canonical increment sequence into the externally observable
event sequence.

Guarantees:
- One TextEvent per text fragment, boundaries preserved
- FunctionCallStart exactly once per tool call, once its name is complete
- FunctionCallEnd exactly once per tool call, at the terminal point,
  in first-seen order, with the full argument string
- FinishedEvent exactly once, last
- On failure a single ErrorEvent, and nothing after it
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, List, Optional, Set, Union

from .accumulator import TEXT_SLOT, CallTable, PartialFunctionCall, merge_usage
from .deltas import Delta, DecodedFrame
from .errors import StreamError, StreamErrorBuilder
from ..core.errors import StreamingError
from ..core.models import FinishReason, Usage


class StreamEventType(str, Enum):
    """Types of stream events."""
    TEXT = "text"
    FUNCTION_CALL_START = "function_call_start"
    FUNCTION_CALL_END = "function_call_end"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class TextEvent:
    text: str

    @property
    def type(self) -> StreamEventType:
        return StreamEventType.TEXT


@dataclass(frozen=True)
class FunctionCallStartEvent:
    id: str
    name: str

    @property
    def type(self) -> StreamEventType:
        return StreamEventType.FUNCTION_CALL_START


@dataclass(frozen=True)
class FunctionCallEndEvent:
    id: str
    name: str
    arguments: str

    @property
    def type(self) -> StreamEventType:
        return StreamEventType.FUNCTION_CALL_END


@dataclass(frozen=True)
class FinishedEvent:
    reason: FinishReason
    usage: Usage = field(default_factory=Usage, compare=False)

    @property
    def type(self) -> StreamEventType:
        return StreamEventType.FINISHED


@dataclass(frozen=True)
class ErrorEvent:
    error: StreamError

    @property
    def type(self) -> StreamEventType:
        return StreamEventType.ERROR


StreamEvent = Union[TextEvent, FunctionCallStartEvent, FunctionCallEndEvent, FinishedEvent, ErrorEvent]


class EventProjector:
    """
    Projects increments into StreamEvents for one response.

    FunctionCallStart is emitted once the call's name is sealed, not when
    the call first appears. On Anthropic a Start can therefore trail its
    ``content_block_start`` until the first argument fragment, the
    block's stop marker or the first increment for another item. Its id
    is the one known at that point and never changes afterwards.

    After ``finish`` or ``fail`` the projector is terminated and any
    further input raises StreamingError.
    """

    def __init__(self, provider: str = "", request_id: str = ""):
        self.provider = provider
        self.request_id = request_id

        self._calls = CallTable()
        self._started: Set[Hashable] = set()
        self._finish_reason: Optional[FinishReason] = None
        self._usage: Optional[Usage] = None
        self._terminated = False

        self._partial_content: List[str] = []
        self.events_delivered = 0

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def content_started(self) -> bool:
        return self.events_delivered > 0

    def project_frame(self, frame: DecodedFrame) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for delta in frame:
            events.extend(self.project(delta))
        return events

    def project(self, delta: Delta) -> List[StreamEvent]:
        """Events triggered by one increment (possibly none)."""
        self._ensure_open()
        events: List[StreamEvent] = []

        if delta.text:
            self._start_if_ready(self._calls.switch_to(TEXT_SLOT), events)
            events.append(TextEvent(delta.text))
            self._partial_content.append(delta.text)

        if delta.key is not None:
            self._start_if_ready(self._calls.switch_to(delta.key.slot), events)
            violations_before = len(self._calls.violations)
            partial = self._calls.apply(delta)
            if len(self._calls.violations) > violations_before:
                raise StreamingError(
                    self._calls.violations[-1],
                    code="protocol_violation",
                    provider=self.provider or None,
                    request_id=self.request_id,
                )
            self._start_if_ready(partial, events)

        if delta.finish_reason is not None and self._finish_reason is None:
            self._finish_reason = delta.finish_reason

        if delta.usage is not None:
            self._usage = merge_usage(self._usage, delta.usage)

        self.events_delivered += len(events)
        return events

    def finish(self, reason: Optional[FinishReason] = None) -> List[StreamEvent]:
        """
        Terminal events: pending starts, every FunctionCallEnd, then Finished.

        Raises StreamingError / SerializationError (without terminating)
        if a tool call cannot be completed; the caller then uses ``fail``.
        """
        self._ensure_open()
        events: List[StreamEvent] = []

        for partial in self._calls.seal_all():
            self._start_if_ready(partial, events)

        self._calls.check(self.provider, self.request_id)

        # Validate everything before emitting any End
        ends = [
            FunctionCallEndEvent(partial.id, partial.name, partial.finalized_arguments())
            for partial in self._calls
        ]
        events.extend(ends)

        final_reason = self._finish_reason or reason or FinishReason.STOP
        events.append(FinishedEvent(final_reason, self._usage or Usage()))

        self._terminated = True
        self.events_delivered += len(events)
        return events

    def fail(self, exc: BaseException) -> List[StreamEvent]:
        """Single terminal ErrorEvent for ``exc``."""
        self._ensure_open()
        self._terminated = True

        builder = StreamErrorBuilder(self.provider, self.request_id)
        builder.set_content_state(
            content_started=self.content_started,
            partial_content="".join(self._partial_content),
            events_delivered=self.events_delivered,
        )
        self.events_delivered += 1
        return [ErrorEvent(builder.from_exception(exc))]

    def _start_if_ready(self, partial: Optional[PartialFunctionCall], events: List[StreamEvent]):
        if partial is None or not partial.sealed or not partial.name:
            return
        if partial.key.slot in self._started:
            return
        self._started.add(partial.key.slot)
        events.append(FunctionCallStartEvent(partial.id, partial.name))

    def _ensure_open(self):
        if self._terminated:
            raise StreamingError(
                "Event stream already terminated",
                code="stream_terminated",
                provider=self.provider or None,
                request_id=self.request_id,
            )

"""
streamfold - Response Accumulator

Folds the canonical increment sequence into response state and
finalizes it into a CompleteResponse.

Merge rules:
- Text fragments are appended in arrival order
- Tool calls are kept per addressing key, in first-seen order
- A tool call's name is written once; a conflicting name is a protocol violation
- Argument fragments are concatenated and only parsed at finalize
- The first finish reason wins
- Usage is last-non-empty-wins per field
"""

import json
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Tuple

from .deltas import Delta, DecodedFrame, DeltaKey
from ..core.errors import SerializationError, StreamingError
from ..core.models import CompleteResponse, FinishReason, FunctionCall, Usage


TEXT_SLOT = ("text",)


@dataclass
class PartialFunctionCall:
    """
    In-flight tool call.

    The name stays open while it is still being delivered (some
    providers split it across fragments) and is sealed by the first
    argument fragment, the block's stop marker, or any increment for a
    different item. After sealing the name can no longer change.
    """
    key: DeltaKey
    id: str
    name: str = ""
    sealed: bool = False
    _fragments: List[str] = field(default_factory=list)

    def add_name(self, fragment: str) -> bool:
        """Apply a name fragment. Returns False on a conflicting rename."""
        if fragment == self.name:
            return True
        if self.sealed:
            return False
        self.name += fragment
        return True

    def seal(self):
        self.sealed = True

    def append_arguments(self, fragment: str):
        self.sealed = True
        self._fragments.append(fragment)

    @property
    def arguments(self) -> str:
        return "".join(self._fragments)

    def finalized_arguments(self) -> str:
        """
        The argument buffer, checked to be one JSON value.

        An empty buffer means a zero-argument call and becomes ``{}``.
        """
        arguments = self.arguments
        if not arguments.strip():
            return "{}"
        try:
            json.loads(arguments)
        except ValueError as e:
            raise SerializationError(
                f"Arguments for tool call '{self.name or self.id}' are not valid JSON: {e}",
                details={"tool_call_id": self.id, "arguments": arguments[:500]},
            ) from e
        return arguments

    def finalize(self) -> FunctionCall:
        return FunctionCall(id=self.id, name=self.name, arguments=self.finalized_arguments())


class CallTable:
    """
    Insertion-ordered map of addressing key to PartialFunctionCall.

    Shared bookkeeping for the accumulator and the event projector:
    both fold the same increments with the same sealing rules.
    """

    def __init__(self):
        self._calls: Dict[Hashable, PartialFunctionCall] = {}
        self._current: Optional[Hashable] = None
        self.violations: List[str] = []

    def __iter__(self):
        return iter(self._calls.values())

    def __len__(self) -> int:
        return len(self._calls)

    def switch_to(self, slot: Hashable) -> Optional[PartialFunctionCall]:
        """
        Note that ``slot`` is now the item being updated.

        Returns the previously current call if this switch sealed it.
        """
        if slot == self._current:
            return None
        previous = self._calls.get(self._current)
        self._current = slot
        if previous is not None and not previous.sealed:
            previous.seal()
            return previous
        return None

    def apply(self, delta: Delta) -> Optional[PartialFunctionCall]:
        """Merge a keyed increment; returns the call it touched, if tracked."""
        key = delta.key
        partial = self._calls.get(key.slot)

        if partial is None:
            if not (delta.name or delta.arguments or key.id):
                # Stop marker for an untracked item, e.g. a text block
                return None
            partial = PartialFunctionCall(key=key, id=key.synthesize_id())
            self._calls[key.slot] = partial
        elif key.id and partial.key.id is None and not partial.sealed:
            # Real id delivered before the name was sealed
            partial.id = key.id
            partial.key = key

        if delta.name and not partial.add_name(delta.name):
            self.violations.append(
                f"Tool call {partial.id} renamed from '{partial.name}' to '{delta.name}'"
            )

        if delta.arguments:
            partial.append_arguments(delta.arguments)
        elif delta.boundary:
            partial.seal()

        return partial

    def seal_all(self) -> List[PartialFunctionCall]:
        """Seal every open call; returns the ones sealed now."""
        newly_sealed = []
        for partial in self._calls.values():
            if not partial.sealed:
                partial.seal()
                newly_sealed.append(partial)
        return newly_sealed

    def check(self, provider: str = "", request_id: str = ""):
        """Raise StreamingError for recorded violations or nameless calls."""
        violations = list(self.violations)
        for partial in self._calls.values():
            if not partial.name:
                violations.append(f"Tool call {partial.id} never received a name")
        if violations:
            raise StreamingError(
                violations[0],
                code="protocol_violation",
                provider=provider or None,
                request_id=request_id,
                details={"violations": violations},
            )


def merge_usage(current: Optional[Usage], update: Usage) -> Usage:
    """Last non-empty value wins, field by field."""
    merged = Usage() if current is None else Usage(
        current.input_tokens, current.output_tokens, current.cached_tokens
    )
    if update.input_tokens:
        merged.input_tokens = update.input_tokens
    if update.output_tokens:
        merged.output_tokens = update.output_tokens
    if update.cached_tokens:
        merged.cached_tokens = update.cached_tokens
    return merged


class ResponseAccumulator:
    """
    Stateful merge engine for one response.

    Strictly sequential: increments must be merged in arrival order
    from a single task.
    """

    def __init__(self, provider: str = "", request_id: str = ""):
        self.provider = provider
        self.request_id = request_id

        self._text: List[str] = []
        self._calls = CallTable()
        self._finish_reason: Optional[FinishReason] = None
        self._usage: Optional[Usage] = None

    def merge_frame(self, frame: DecodedFrame):
        for delta in frame:
            self.merge(delta)

    def merge(self, delta: Delta):
        """Merge one increment."""
        if delta.text:
            self._calls.switch_to(TEXT_SLOT)
            self._text.append(delta.text)

        if delta.key is not None:
            self._calls.switch_to(delta.key.slot)
            self._calls.apply(delta)

        if delta.finish_reason is not None and self._finish_reason is None:
            self._finish_reason = delta.finish_reason

        if delta.usage is not None:
            self._usage = merge_usage(self._usage, delta.usage)

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def finish_reason(self) -> Optional[FinishReason]:
        return self._finish_reason

    @property
    def usage(self) -> Usage:
        return merge_usage(None, self._usage) if self._usage is not None else Usage()

    @property
    def calls(self) -> Tuple[PartialFunctionCall, ...]:
        return tuple(self._calls)

    def finalize(self) -> CompleteResponse:
        """
        Build the CompleteResponse.

        Raises:
            StreamingError: a protocol violation was recorded during merge
            SerializationError: a tool call's arguments are not valid JSON
        """
        self._calls.seal_all()
        self._calls.check(self.provider, self.request_id)

        function_calls = []
        for partial in self._calls:
            try:
                function_calls.append(partial.finalize())
            except SerializationError as e:
                e.error.provider = self.provider or None
                e.error.request_id = self.request_id
                raise

        return CompleteResponse(
            content=self.text,
            function_calls=function_calls,
            finish_reason=self._finish_reason or FinishReason.STOP,
            usage=self.usage,
        )

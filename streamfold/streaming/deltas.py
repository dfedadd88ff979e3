"""
streamfold - Canonical Increments

The unit every decoder produces and both the accumulator and the event
projector consume.
"""

from dataclasses import dataclass, field
from typing import Hashable, Iterator, List, Optional

from ..core.models import FinishReason, Usage


@dataclass(frozen=True)
class DeltaKey:
    """
    Addresses one in-flight tool call.

    Flat protocols address by list position, block protocols by block
    index; ``id`` is carried when the provider sends it. Identity is the
    index when present, otherwise the id.
    """
    index: Optional[int] = None
    id: Optional[str] = None

    def __post_init__(self):
        if self.index is None and not self.id:
            raise ValueError("DeltaKey needs an index or an id")

    @property
    def slot(self) -> Hashable:
        if self.index is not None:
            return ("index", self.index)
        return ("id", self.id)

    def synthesize_id(self) -> str:
        """Stable id for calls whose provider never sent one."""
        if self.id:
            return self.id
        return f"call_{self.index}"


@dataclass
class Delta:
    """
    One canonical increment.

    Either a text fragment for the response text stream, or an update to
    the tool call at ``key`` (name and/or argument fragment), or a
    response-scoped finish reason / usage snapshot. A delta never touches
    more than one addressed item.
    """
    key: Optional[DeltaKey] = None
    text: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    finish_reason: Optional[FinishReason] = None
    usage: Optional[Usage] = None
    boundary: bool = False

    def __post_init__(self):
        if (self.name is not None or self.arguments is not None) and self.key is None:
            raise ValueError("Tool call fragments require an addressing key")
        if self.text is not None and self.key is not None:
            raise ValueError("A delta updates at most one item: text or a keyed tool call")

    @classmethod
    def text_fragment(cls, text: str) -> "Delta":
        return cls(text=text)

    @classmethod
    def tool_call(
        cls,
        index: Optional[int] = None,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> "Delta":
        return cls(key=DeltaKey(index=index, id=id or None), name=name, arguments=arguments)

    @classmethod
    def block_stop(cls, index: int) -> "Delta":
        """Block stop marker; carries no payload."""
        return cls(key=DeltaKey(index=index), boundary=True)

    @classmethod
    def finish(cls, reason: FinishReason) -> "Delta":
        return cls(finish_reason=reason)

    @classmethod
    def usage_snapshot(cls, usage: Usage) -> "Delta":
        return cls(usage=usage)


@dataclass
class DecodedFrame:
    """Increments decoded from one native envelope plus an optional finish reason."""
    deltas: List[Delta] = field(default_factory=list)
    finish_reason: Optional[FinishReason] = None

    def __iter__(self) -> Iterator[Delta]:
        """Increments in merge order; the finish reason comes last."""
        yield from self.deltas
        if self.finish_reason is not None:
            yield Delta.finish(self.finish_reason)

    def __bool__(self) -> bool:
        return bool(self.deltas) or self.finish_reason is not None

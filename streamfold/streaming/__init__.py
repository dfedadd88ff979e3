"""
streamfold - Streaming Module

Streaming normalization engine:
- Event-stream frame reading with provider sentinels
- Per-provider delta decoders (flat and block protocols)
- Accumulation into a CompleteResponse
- Projection into an exactly-once event sequence
"""

from .frames import (
    FrameReader,
    SseEvent,
    done_sentinel,
    message_stop_sentinel,
)
from .deltas import (
    Delta,
    DeltaKey,
    DecodedFrame,
)
from .normalizer import (
    DeltaDecoder,
    OpenAIDecoder,
    GeminiDecoder,
    AnthropicDecoder,
    get_decoder,
    sentinel_for,
)
from .accumulator import (
    PartialFunctionCall,
    ResponseAccumulator,
)
from .projector import (
    EventProjector,
    StreamEvent,
    StreamEventType,
    TextEvent,
    FunctionCallStartEvent,
    FunctionCallEndEvent,
    FinishedEvent,
    ErrorEvent,
)
from .errors import (
    StreamError,
    StreamErrorBuilder,
)
from .pipeline import DeltaStream, delta_stream

__all__ = [
    # Frames
    "FrameReader",
    "SseEvent",
    "done_sentinel",
    "message_stop_sentinel",
    # Deltas
    "Delta",
    "DeltaKey",
    "DecodedFrame",
    # Decoders
    "DeltaDecoder",
    "OpenAIDecoder",
    "GeminiDecoder",
    "AnthropicDecoder",
    "get_decoder",
    "sentinel_for",
    # Accumulator
    "PartialFunctionCall",
    "ResponseAccumulator",
    # Projector
    "EventProjector",
    "StreamEvent",
    "StreamEventType",
    "TextEvent",
    "FunctionCallStartEvent",
    "FunctionCallEndEvent",
    "FinishedEvent",
    "ErrorEvent",
    # Errors
    "StreamError",
    "StreamErrorBuilder",
    # Pipeline
    "DeltaStream",
    "delta_stream",
]

"""
streamfold - Native Delta Decoders

Turns one provider-native event payload into canonical increments.

Two protocol shapes are folded into the same vocabulary:
- Flat deltas (OpenAI, Gemini): tool calls addressed by list position
- Content blocks (Anthropic): start / delta / stop framing per block index

Every decoder raises StreamingError for payloads that are not valid
JSON objects and ProviderError for in-stream vendor error records. It
never guesses at or skips corrupt frames.
"""

import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .deltas import Delta, DecodedFrame
from .frames import Sentinel, done_sentinel, message_stop_sentinel
from ..core.errors import StreamingError, provider_error_from_payload
from ..core.models import FinishReason, Provider, Usage


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class DeltaDecoder(ABC):
    """
    Base class for per-provider decoders.

    One instance decodes one response body; decoders may keep state
    (e.g. Gemini assigns sequential keys to whole function calls).
    """

    provider: Provider
    FINISH_REASON_MAP: Dict[str, FinishReason] = {}

    def __init__(self, request_id: str = ""):
        self.request_id = request_id

    def decode(self, payload: str) -> DecodedFrame:
        """
        Decode one event payload.

        Valid JSON with an unexpected shape (a string where an object
        belongs, a null choice) is an invalid frame, not a crash.
        """
        data = self._parse(payload)
        try:
            return self._decode(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StreamingError(
                f"Unexpected {self.provider.value} event shape: {e}",
                code="invalid_frame",
                provider=self.provider.value,
                request_id=self.request_id,
                details={"payload": payload[:200]},
            ) from e

    def map_finish_reason(self, reason: str) -> FinishReason:
        """Map the provider's finish vocabulary; unknown values mean a normal stop."""
        return self.FINISH_REASON_MAP.get(reason, FinishReason.STOP)

    @abstractmethod
    def _decode(self, data: Dict[str, Any]) -> DecodedFrame:
        pass

    def _parse(self, payload: str) -> Dict[str, Any]:
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise StreamingError(
                f"Malformed {self.provider.value} event payload: {e}",
                code="invalid_frame",
                provider=self.provider.value,
                request_id=self.request_id,
                details={"payload": payload[:200]},
            ) from e

        if not isinstance(data, dict):
            raise StreamingError(
                f"Expected a JSON object from {self.provider.value}, got {type(data).__name__}",
                code="invalid_frame",
                provider=self.provider.value,
                request_id=self.request_id,
                details={"payload": payload[:200]},
            )
        return data

    def _raise_provider_error(self, data: Dict[str, Any]):
        raise provider_error_from_payload(self.provider.value, data, self.request_id)


# ============================================================
# OpenAI (flat deltas)
# ============================================================

class OpenAIDecoder(DeltaDecoder):
    """
    Decoder for OpenAI chat completion chunks.

    Chunk format:
    {"choices": [{"index": 0,
                  "delta": {"content": "...",
                            "tool_calls": [{"index": 0, "id": "call_1",
                                            "function": {"name": "...", "arguments": "..."}}]},
                  "finish_reason": null}],
     "usage": {...}}
    """

    provider = Provider.OPENAI
    FINISH_REASON_MAP = {
        "stop": FinishReason.STOP,
        "length": FinishReason.LENGTH,
        "tool_calls": FinishReason.TOOL_CALLS,
        "function_call": FinishReason.TOOL_CALLS,
        "content_filter": FinishReason.CONTENT_FILTER,
    }

    def _decode(self, data: Dict[str, Any]) -> DecodedFrame:
        if data.get("error"):
            self._raise_provider_error(data)

        frame = DecodedFrame()

        choices = data.get("choices") or []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}

            content = delta.get("content")
            if content:
                frame.deltas.append(Delta.text_fragment(content))

            for position, tool_call in enumerate(delta.get("tool_calls") or []):
                function = tool_call.get("function") or {}
                frame.deltas.append(Delta.tool_call(
                    index=tool_call.get("index", position),
                    id=tool_call.get("id"),
                    name=function.get("name") or None,
                    arguments=function.get("arguments") or None,
                ))

            # Legacy single function_call delta
            function_call = delta.get("function_call")
            if function_call:
                frame.deltas.append(Delta.tool_call(
                    index=0,
                    name=function_call.get("name") or None,
                    arguments=function_call.get("arguments") or None,
                ))

            finish_reason = choice.get("finish_reason")
            if finish_reason:
                frame.finish_reason = self.map_finish_reason(finish_reason)

        usage = data.get("usage")
        if usage:
            details = usage.get("prompt_tokens_details") or {}
            cached = details.get("cached_tokens")
            frame.deltas.append(Delta.usage_snapshot(Usage(
                input_tokens=_as_int(usage.get("prompt_tokens")),
                output_tokens=_as_int(usage.get("completion_tokens")),
                cached_tokens=_as_int(cached) if cached is not None else None,
            )))

        return frame


# ============================================================
# Vertex Gemini (flat, whole parts)
# ============================================================

class GeminiDecoder(DeltaDecoder):
    """
    Decoder for Vertex Gemini ``streamGenerateContent`` chunks.

    Function calls arrive whole (name and args in one part), so each
    one is assigned the next sequential key and its args are
    re-serialized as a single argument fragment.
    """

    provider = Provider.GEMINI
    FINISH_REASON_MAP = {
        "STOP": FinishReason.STOP,
        "MAX_TOKENS": FinishReason.LENGTH,
        "SAFETY": FinishReason.CONTENT_FILTER,
        "RECITATION": FinishReason.CONTENT_FILTER,
        "BLOCKLIST": FinishReason.CONTENT_FILTER,
        "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
        "SPII": FinishReason.CONTENT_FILTER,
        "IMAGE_SAFETY": FinishReason.CONTENT_FILTER,
    }

    def __init__(self, request_id: str = ""):
        super().__init__(request_id)
        self._next_index = 0

    def _decode(self, data: Dict[str, Any]) -> DecodedFrame:
        if data.get("error"):
            self._raise_provider_error(data)

        frame = DecodedFrame()

        candidates = data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []

            for part in parts:
                if part.get("thought"):
                    continue

                text = part.get("text")
                if text:
                    frame.deltas.append(Delta.text_fragment(text))

                function_call = part.get("functionCall")
                if function_call:
                    index = self._next_index
                    self._next_index += 1
                    frame.deltas.append(Delta.tool_call(
                        index=index,
                        id=function_call.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                        name=function_call.get("name") or None,
                        arguments=json.dumps(function_call.get("args") or {}),
                    ))

            finish_reason = candidate.get("finishReason")
            if finish_reason and finish_reason != "FINISH_REASON_UNSPECIFIED":
                reason = self.map_finish_reason(finish_reason)
                # Gemini reports STOP even when the turn ends in function calls
                if reason == FinishReason.STOP and self._next_index:
                    reason = FinishReason.TOOL_CALLS
                frame.finish_reason = reason

        elif (data.get("promptFeedback") or {}).get("blockReason"):
            frame.finish_reason = FinishReason.CONTENT_FILTER

        usage = data.get("usageMetadata")
        if usage:
            cached = usage.get("cachedContentTokenCount")
            frame.deltas.append(Delta.usage_snapshot(Usage(
                input_tokens=_as_int(usage.get("promptTokenCount")),
                output_tokens=_as_int(usage.get("candidatesTokenCount")),
                cached_tokens=_as_int(cached) if cached is not None else None,
            )))

        return frame


# ============================================================
# Vertex Anthropic (content blocks)
# ============================================================

class AnthropicDecoder(DeltaDecoder):
    """
    Decoder for Anthropic Messages streaming events (via Vertex).

    Event sequence:
        message_start
        content_block_start  (index, text | tool_use{id, name})
        content_block_delta* (text_delta | input_json_delta)
        content_block_stop
        ...
        message_delta        (stop_reason, usage)
        message_stop         (consumed by the frame reader)
    """

    provider = Provider.ANTHROPIC_VERTEX
    FINISH_REASON_MAP = {
        "end_turn": FinishReason.STOP,
        "max_tokens": FinishReason.LENGTH,
        "tool_use": FinishReason.TOOL_CALLS,
        "stop_sequence": FinishReason.STOP,
        "refusal": FinishReason.CONTENT_FILTER,
    }

    def _decode(self, data: Dict[str, Any]) -> DecodedFrame:
        event_type = data.get("type")
        frame = DecodedFrame()

        if event_type == "error":
            self._raise_provider_error(data)

        elif event_type == "message_start":
            usage = (data.get("message") or {}).get("usage")
            if usage:
                frame.deltas.append(Delta.usage_snapshot(self._usage(usage)))

        elif event_type == "content_block_start":
            index = self._block_index(data)
            block = data.get("content_block") or {}
            block_type = block.get("type")

            if block_type == "tool_use":
                initial_input = block.get("input")
                frame.deltas.append(Delta.tool_call(
                    index=index,
                    id=block.get("id"),
                    name=block.get("name") or None,
                    # Non-streamed input (rare) is seeded as the first fragment
                    arguments=json.dumps(initial_input) if initial_input else None,
                ))
            elif block_type == "text" and block.get("text"):
                frame.deltas.append(Delta.text_fragment(block["text"]))

        elif event_type == "content_block_delta":
            index = self._block_index(data)
            delta = data.get("delta") or {}
            delta_type = delta.get("type")

            if delta_type == "text_delta":
                text = delta.get("text")
                if text:
                    frame.deltas.append(Delta.text_fragment(text))
            elif delta_type == "input_json_delta":
                partial_json = delta.get("partial_json")
                if partial_json:
                    frame.deltas.append(Delta.tool_call(index=index, arguments=partial_json))

        elif event_type == "content_block_stop":
            frame.deltas.append(Delta.block_stop(self._block_index(data)))

        elif event_type == "message_delta":
            stop_reason = (data.get("delta") or {}).get("stop_reason")
            if stop_reason:
                frame.finish_reason = self.map_finish_reason(stop_reason)
            usage = data.get("usage")
            if usage:
                frame.deltas.append(Delta.usage_snapshot(self._usage(usage)))

        # ping, message_stop and unknown event types carry nothing
        return frame

    def _block_index(self, data: Dict[str, Any]) -> int:
        index = data.get("index")
        if not isinstance(index, int):
            raise StreamingError(
                f"{data.get('type')} event without a block index",
                code="protocol_violation",
                provider=self.provider.value,
                request_id=self.request_id,
            )
        return index

    @staticmethod
    def _usage(usage: Dict[str, Any]) -> Usage:
        cached = usage.get("cache_read_input_tokens")
        return Usage(
            input_tokens=_as_int(usage.get("input_tokens")),
            output_tokens=_as_int(usage.get("output_tokens")),
            cached_tokens=_as_int(cached) if cached is not None else None,
        )


# ============================================================
# Factory
# ============================================================

_DECODERS = {
    Provider.OPENAI: OpenAIDecoder,
    Provider.GEMINI: GeminiDecoder,
    Provider.ANTHROPIC_VERTEX: AnthropicDecoder,
}

_SENTINELS = {
    Provider.OPENAI: done_sentinel,
    # Gemini simply closes the stream; [DONE] is tolerated if a proxy adds it
    Provider.GEMINI: done_sentinel,
    Provider.ANTHROPIC_VERTEX: message_stop_sentinel,
}


def get_decoder(provider: Provider, request_id: str = "") -> DeltaDecoder:
    """Fresh decoder for one response body."""
    return _DECODERS[Provider(provider)](request_id)


def sentinel_for(provider: Provider) -> Optional[Sentinel]:
    return _SENTINELS.get(Provider(provider))

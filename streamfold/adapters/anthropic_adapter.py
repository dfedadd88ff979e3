"""
streamfold - Anthropic on Vertex AI Adapter

Adapter for Claude models served by Vertex AI (``streamRawPredict``).
The body is the Anthropic Messages format with the Vertex
``anthropic_version`` instead of a model field.
"""

from typing import Any, Dict, List

from .base import VertexAdapter, system_text
from ..core.errors import SerializationError
from ..core.models import (
    ChatCompletionRequest,
    FunctionCall,
    ImageContent,
    Message,
    Provider,
    Role,
    TextContent,
)


ANTHROPIC_VERTEX_VERSION = "vertex-2023-10-16"


class AnthropicVertexAdapter(VertexAdapter):
    """
    Adapter for Anthropic Claude on Vertex AI.

    Supports:
    - Text and vision messages (base64 data URLs)
    - Tool use with tool_result turns
    - Top-level system prompt
    - Streaming
    """

    provider = Provider.ANTHROPIC_VERTEX
    publisher = "anthropic"
    method = "streamRawPredict"

    def _build_payload(self, request: ChatCompletionRequest, model: str) -> Dict[str, Any]:
        """Build Anthropic-specific chat payload."""
        payload: Dict[str, Any] = {
            "anthropic_version": ANTHROPIC_VERTEX_VERSION,
            "messages": self._convert_messages(request.messages),
            # Anthropic requires max_tokens
            "max_tokens": request.max_tokens or self.config.default_max_tokens,
            "stream": True,
        }

        system = system_text(request.messages)
        if system:
            payload["system"] = system

        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.stop:
            payload["stop_sequences"] = request.stop

        if request.tools:
            payload["tools"] = [
                {
                    "name": tool.function.name,
                    "description": tool.function.description,
                    "input_schema": tool.function.parameters,
                }
                for tool in request.tools
            ]

        return payload

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert unified messages to Anthropic format."""
        result: List[Dict[str, Any]] = []

        for msg in messages:
            # System prompt is a separate parameter
            if msg.role == Role.SYSTEM:
                continue

            tool_results = msg.tool_results()
            if tool_results:
                blocks = [
                    {
                        "type": "tool_result",
                        "tool_use_id": tool_result.tool_call_id,
                        "content": tool_result.content,
                    }
                    for tool_result in tool_results
                ]
                # Consecutive results share one user turn
                if result and result[-1]["role"] == "user" and self._is_tool_result_turn(result[-1]):
                    result[-1]["content"].extend(blocks)
                else:
                    result.append({"role": "user", "content": blocks})
                continue

            role = "assistant" if msg.role == Role.ASSISTANT else "user"

            if not msg.tool_calls and isinstance(msg.content, str):
                result.append({"role": role, "content": msg.content})
                continue

            blocks = self._content_blocks(msg)
            for call in msg.tool_calls or []:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": self._call_input(call),
                })
            if blocks:
                result.append({"role": role, "content": blocks})

        return result

    @staticmethod
    def _is_tool_result_turn(turn: Dict[str, Any]) -> bool:
        content = turn["content"]
        return isinstance(content, list) and all(
            block.get("type") == "tool_result" for block in content
        )

    def _content_blocks(self, msg: Message) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        if msg.content is None:
            return blocks
        if isinstance(msg.content, str):
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            return blocks

        for part in msg.content:
            if isinstance(part, TextContent):
                blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ImageContent):
                url = part.image_url.url
                if url.startswith("data:"):
                    source = self._image_source(url)
                    blocks.append({
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": source["media_type"],
                            "data": source["data"]
                        }
                    })
                else:
                    blocks.append({
                        "type": "image",
                        "source": {
                            "type": "url",
                            "url": url
                        }
                    })
        return blocks

    @staticmethod
    def _call_input(call: FunctionCall) -> Any:
        try:
            return call.parse_arguments()
        except ValueError as e:
            raise SerializationError(
                f"Arguments of tool call '{call.name}' are not valid JSON: {e}",
                provider=Provider.ANTHROPIC_VERTEX.value,
                details={"tool_call_id": call.id},
            ) from e

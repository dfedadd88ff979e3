"""
streamfold - OpenAI Provider Adapter

Adapter for OpenAI's Chat Completions API (and compatible servers)
in streaming mode.
"""

from typing import Any, Dict, List

from .base import BaseAdapter
from ..core.config import DEFAULT_OPENAI_BASE_URL
from ..core.models import (
    ChatCompletionRequest,
    ImageContent,
    Message,
    Provider,
    Role,
    TextContent,
)


class OpenAIAdapter(BaseAdapter):
    """
    Adapter for the OpenAI Chat Completions API.

    Supports:
    - Text and vision messages
    - Tool/Function calling (multi-turn, with tool result messages)
    - Streaming with a final usage chunk (``stream_options.include_usage``)
    """

    provider = Provider.OPENAI

    @property
    def base_url(self) -> str:
        return (self.config.base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")

    def _endpoint(self, model: str) -> str:
        return f"{self.base_url}/chat/completions"

    async def _auth_headers(self, request_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _build_payload(self, request: ChatCompletionRequest, model: str) -> Dict[str, Any]:
        """Build OpenAI-specific chat payload."""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": self._convert_messages(request.messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        payload.update(self._sampling_params(request))

        if request.tools:
            payload["tools"] = [
                {
                    "type": tool.type,
                    "function": {
                        "name": tool.function.name,
                        "description": tool.function.description,
                        "parameters": tool.function.parameters,
                    },
                }
                for tool in request.tools
            ]

        return payload

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert unified messages to OpenAI format."""
        result = []

        for msg in messages:
            # Tool results carried as content parts become one tool message each
            parts_results = msg.tool_results() if msg.role != Role.TOOL else []
            if parts_results:
                for tool_result in parts_results:
                    result.append({
                        "role": "tool",
                        "tool_call_id": tool_result.tool_call_id,
                        "content": tool_result.content,
                    })
                continue

            openai_msg: Dict[str, Any] = {"role": msg.role.value}

            # Handle content
            if msg.content is not None:
                if isinstance(msg.content, str):
                    openai_msg["content"] = msg.content
                else:
                    # Multimodal content
                    openai_msg["content"] = []
                    for part in msg.content:
                        if isinstance(part, TextContent):
                            openai_msg["content"].append({
                                "type": "text",
                                "text": part.text
                            })
                        elif isinstance(part, ImageContent):
                            openai_msg["content"].append({
                                "type": "image_url",
                                "image_url": {
                                    "url": part.image_url.url,
                                    "detail": part.image_url.detail
                                }
                            })
            elif msg.role == Role.ASSISTANT:
                openai_msg["content"] = None

            # Handle tool-related fields
            if msg.name and msg.role != Role.TOOL:
                openai_msg["name"] = msg.name
            if msg.tool_call_id:
                openai_msg["tool_call_id"] = msg.tool_call_id
            if msg.tool_calls:
                openai_msg["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": call.arguments
                        }
                    }
                    for call in msg.tool_calls
                ]

            result.append(openai_msg)

        return result

"""
streamfold - Gemini on Vertex AI Adapter

Adapter for Google's Gemini models served by Vertex AI
(``streamGenerateContent`` with ``alt=sse``).
"""

from typing import Any, Dict, List, Optional

from .base import VertexAdapter, system_text
from ..core.errors import ConfigError, SerializationError
from ..core.models import (
    ChatCompletionRequest,
    FunctionCall,
    ImageContent,
    Message,
    Prompt,
    Provider,
    Role,
    TextContent,
    ToolResultContent,
)


class GeminiAdapter(VertexAdapter):
    """
    Adapter for Gemini on Vertex AI.

    Supports:
    - Text and vision messages (inline data URLs and file URIs)
    - Tool/Function calling with functionResponse turns
    - System instructions
    - Streaming
    """

    provider = Provider.GEMINI
    publisher = "google"
    method = "streamGenerateContent?alt=sse"

    def _build_payload(self, request: ChatCompletionRequest, model: str) -> Dict[str, Any]:
        """Build Gemini-specific generateContent payload."""
        payload: Dict[str, Any] = {
            "contents": self._convert_messages(request.prompt),
        }

        system = system_text(request.messages)
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        generation_config = self._generation_config(request)
        if generation_config:
            payload["generationConfig"] = generation_config

        if request.tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": tool.function.name,
                        "description": tool.function.description,
                        "parameters": tool.function.parameters,
                    }
                    for tool in request.tools
                ]
            }]

        return payload

    def _generation_config(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        names = {
            "temperature": "temperature",
            "max_tokens": "maxOutputTokens",
            "top_p": "topP",
            "stop": "stopSequences",
            "presence_penalty": "presencePenalty",
            "frequency_penalty": "frequencyPenalty",
        }
        return {names[key]: value for key, value in self._sampling_params(request).items()}

    def _convert_messages(self, prompt: Prompt) -> List[Dict[str, Any]]:
        """Convert unified messages to Gemini contents."""
        result: List[Dict[str, Any]] = []

        for msg in prompt:
            # System messages go to systemInstruction
            if msg.role == Role.SYSTEM:
                continue

            tool_results = msg.tool_results()
            if tool_results:
                parts = [self._function_response(prompt, tool_result) for tool_result in tool_results]
                # Responses to parallel calls share one user turn
                if result and result[-1]["role"] == "user" and all(
                    "functionResponse" in part for part in result[-1]["parts"]
                ):
                    result[-1]["parts"].extend(parts)
                else:
                    result.append({"role": "user", "parts": parts})
                continue

            role = "model" if msg.role == Role.ASSISTANT else "user"
            parts = self._content_parts(msg)

            for call in msg.tool_calls or []:
                parts.append({
                    "functionCall": {
                        "name": call.name,
                        "args": self._call_args(call),
                    }
                })

            if parts:
                result.append({"role": role, "parts": parts})

        return result

    def _content_parts(self, msg: Message) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []
        if msg.content is None:
            return parts
        if isinstance(msg.content, str):
            if msg.content:
                parts.append({"text": msg.content})
            return parts

        for part in msg.content:
            if isinstance(part, TextContent):
                parts.append({"text": part.text})
            elif isinstance(part, ImageContent):
                url = part.image_url.url
                if url.startswith("data:"):
                    source = self._image_source(url)
                    parts.append({
                        "inlineData": {
                            "mimeType": source["media_type"],
                            "data": source["data"]
                        }
                    })
                else:
                    parts.append({
                        "fileData": {
                            "fileUri": url,
                            "mimeType": "image/jpeg"
                        }
                    })
        return parts

    @staticmethod
    def _call_args(call: FunctionCall) -> Dict[str, Any]:
        try:
            args = call.parse_arguments()
        except ValueError as e:
            raise SerializationError(
                f"Arguments of function call '{call.name}' are not valid JSON: {e}",
                provider=Provider.GEMINI.value,
                details={"tool_call_id": call.id},
            ) from e
        return args if isinstance(args, dict) else {"value": args}

    @staticmethod
    def _function_response(prompt: Prompt, tool_result: ToolResultContent) -> Dict[str, Any]:
        # Gemini addresses results by function name, not call id
        name: Optional[str] = tool_result.name
        if not name:
            call = prompt.find_call(tool_result.tool_call_id)
            name = call.name if call is not None else None
        if not name:
            raise ConfigError(
                f"Cannot resolve the function name for tool result {tool_result.tool_call_id}",
                param="name",
            )
        return {
            "functionResponse": {
                "name": name,
                "response": {"result": tool_result.content},
            }
        }

"""
streamfold - Core Data Models

Provider-neutral data model: messages, tools, function calls, prompts,
requests and the buffered response.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional, Sequence, Tuple, Union


# ============================================================
# Enums
# ============================================================

class Provider(str, Enum):
    """Supported provider families."""
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC_VERTEX = "anthropic_vertex"


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Canonical finish reasons."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


# ============================================================
# Content Parts
# ============================================================

@dataclass
class ImageUrl:
    """Image reference for vision models."""
    url: str
    detail: Literal["low", "high", "auto"] = "auto"


@dataclass
class TextContent:
    """Text content part."""
    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ImageContent:
    """Image content part."""
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl = field(default_factory=lambda: ImageUrl(""))


@dataclass
class ToolResultContent:
    """Output of a tool call, carried inside a multipart message."""
    tool_call_id: str
    content: str
    name: Optional[str] = None
    type: Literal["tool_result"] = "tool_result"


ContentPart = Union[TextContent, ImageContent, ToolResultContent]


# ============================================================
# Tool Calling
# ============================================================

@dataclass
class FunctionDefinition:
    """Function definition for tool calling."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class Tool:
    """Tool definition."""
    function: FunctionDefinition
    type: Literal["function"] = "function"

    @classmethod
    def define(
        cls,
        name: str,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None
    ) -> Tool:
        if parameters is None:
            return cls(FunctionDefinition(name, description))
        return cls(FunctionDefinition(name, description, parameters))

    @property
    def name(self) -> str:
        return self.function.name


@dataclass(frozen=True)
class FunctionCall:
    """
    A completed function call requested by the model.

    Only produced by the accumulator once the stream has ended;
    ``arguments`` is the full JSON-encoded argument string.
    """
    id: str
    name: str
    arguments: str

    def parse_arguments(self) -> Any:
        """Decode the JSON argument string."""
        return json.loads(self.arguments) if self.arguments else {}


# ============================================================
# Messages
# ============================================================

@dataclass
class Message:
    """
    Unified message format.

    Supports:
    - Simple text messages
    - Multimodal messages (text, images, tool results)
    - Assistant turns carrying text and tool calls together
    - Tool result messages
    """
    role: Role
    content: Union[str, List[ContentPart], None] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[FunctionCall]] = None

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: Union[str, List[ContentPart]]) -> Message:
        """Create a user message."""
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str] = None,
        tool_calls: Optional[List[FunctionCall]] = None
    ) -> Message:
        """Create an assistant message."""
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_result(
        cls,
        tool_call_id: str,
        content: str,
        name: Optional[str] = None
    ) -> Message:
        """Create a tool result message."""
        return cls(role=Role.TOOL, content=content, name=name, tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        """Concatenated text content of the message."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(
            part.text for part in self.content if isinstance(part, TextContent)
        )

    def tool_results(self) -> List[ToolResultContent]:
        """Tool results carried by this message, in order."""
        if self.role == Role.TOOL and self.tool_call_id:
            return [ToolResultContent(self.tool_call_id, self.text, self.name)]
        if isinstance(self.content, list):
            return [part for part in self.content if isinstance(part, ToolResultContent)]
        return []


# ============================================================
# Usage / Response
# ============================================================

@dataclass
class Usage:
    """Token usage information."""
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class CompleteResponse:
    """Materialized result of a fully consumed response."""
    content: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: Usage = field(default_factory=Usage)

    @property
    def has_function_calls(self) -> bool:
        return bool(self.function_calls)

    def to_message(self) -> Message:
        """The assistant turn represented by this response."""
        return Message.assistant(
            content=self.content or None,
            tool_calls=list(self.function_calls),
        )


# ============================================================
# Prompt (conversation transcript)
# ============================================================

class Prompt:
    """
    Ordered conversation transcript.

    Messages are append-only; ``replace`` is the only way to change an
    entry that has already been added.

    Example:
        prompt = Prompt.system("You are helpful.").add_user("Hi!")
    """

    def __init__(self, messages: Optional[Iterable[Message]] = None):
        self._messages: List[Message] = list(messages or [])

    @classmethod
    def system(cls, content: str) -> Prompt:
        return cls([Message.system(content)])

    @classmethod
    def user(cls, content: Union[str, List[ContentPart]]) -> Prompt:
        return cls([Message.user(content)])

    @classmethod
    def coerce(cls, value: Union[str, Message, Sequence[Message], Prompt]) -> Prompt:
        """Accept a string, a message, a message list or a Prompt."""
        if isinstance(value, Prompt):
            return value
        if isinstance(value, str):
            return cls.user(value)
        if isinstance(value, Message):
            return cls([value])
        return cls(value)

    def add_message(self, message: Message) -> Prompt:
        self._messages.append(message)
        return self

    def add_system(self, content: str) -> Prompt:
        return self.add_message(Message.system(content))

    def add_user(self, content: Union[str, List[ContentPart]]) -> Prompt:
        return self.add_message(Message.user(content))

    def add_assistant(self, content: str) -> Prompt:
        return self.add_message(Message.assistant(content))

    def add_tool_result(self, tool_call_id: str, output: str, name: Optional[str] = None) -> Prompt:
        return self.add_message(Message.tool_result(tool_call_id, output, name))

    def add_response(self, response: CompleteResponse) -> Prompt:
        """Append the assistant turn of a completed response."""
        return self.add_message(response.to_message())

    def extend(self, messages: Iterable[Message]) -> Prompt:
        self._messages.extend(messages)
        return self

    def replace(self, index: int, message: Message) -> Prompt:
        self._messages[index] = message
        return self

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def find_call(self, tool_call_id: str) -> Optional[FunctionCall]:
        """Look up a previously issued function call by id."""
        for message in reversed(self._messages):
            for call in message.tool_calls or []:
                if call.id == tool_call_id:
                    return call
        return None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __repr__(self) -> str:
        return f"Prompt({self._messages!r})"


# ============================================================
# Request Models
# ============================================================

@dataclass
class ChatCompletionRequest:
    """
    Provider-neutral chat completion request.

    Example:
        request = ChatCompletionRequest(
            model="gpt-4o-mini",
            prompt=Prompt.system("You are helpful.").add_user("Hello!"),
            temperature=0.7
        )
    """
    model: str
    prompt: Union[str, Message, List[Message], Prompt]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    stop: Optional[List[str]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    tools: Optional[List[Tool]] = None

    def __post_init__(self):
        self.prompt = Prompt.coerce(self.prompt)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.prompt.messages

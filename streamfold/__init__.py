"""
streamfold - Streaming Normalization Engine

One event vocabulary for three streaming chat protocols (OpenAI flat
deltas, Gemini on Vertex, Anthropic on Vertex): text fragments, tool
calls assembled from partial fragments, and a terminal finish, consumed
either live or buffered.
"""

__version__ = "0.1.0"

from .core.models import (
    ChatCompletionRequest,
    CompleteResponse,
    FinishReason,
    FunctionCall,
    Message,
    Prompt,
    Provider,
    Role,
    Tool,
    Usage,
)
from .core.errors import (
    AuthError,
    ConfigError,
    ErrorKind,
    HttpError,
    ModelNotAvailableError,
    ProviderError,
    RateLimitError,
    SerializationError,
    StreamfoldError,
    StreamingError,
)
from .core.config import ProviderConfig
from .response import Response
from .streaming.projector import (
    ErrorEvent,
    FinishedEvent,
    FunctionCallEndEvent,
    FunctionCallStartEvent,
    StreamEvent,
    StreamEventType,
    TextEvent,
)
from .tools.registry import ToolRegistry
from .adapters import get_adapter

__all__ = [
    "__version__",
    # Models
    "ChatCompletionRequest",
    "CompleteResponse",
    "FinishReason",
    "FunctionCall",
    "Message",
    "Prompt",
    "Provider",
    "Role",
    "Tool",
    "Usage",
    # Errors
    "AuthError",
    "ConfigError",
    "ErrorKind",
    "HttpError",
    "ModelNotAvailableError",
    "ProviderError",
    "RateLimitError",
    "SerializationError",
    "StreamfoldError",
    "StreamingError",
    # Config
    "ProviderConfig",
    # Response
    "Response",
    "ErrorEvent",
    "FinishedEvent",
    "FunctionCallEndEvent",
    "FunctionCallStartEvent",
    "StreamEvent",
    "StreamEventType",
    "TextEvent",
    # Tools
    "ToolRegistry",
    # Factory
    "get_adapter",
]

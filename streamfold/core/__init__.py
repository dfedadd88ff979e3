"""
streamfold Core Module

Data model, error taxonomy, configuration and HTTP transport.
"""

from .models import (
    Provider,
    Role,
    FinishReason,
    ImageUrl,
    TextContent,
    ImageContent,
    ToolResultContent,
    FunctionDefinition,
    Tool,
    FunctionCall,
    Message,
    Usage,
    CompleteResponse,
    Prompt,
    ChatCompletionRequest,
)
from .errors import (
    ErrorKind,
    ErrorDetails,
    StreamfoldError,
    HttpError,
    AuthError,
    SerializationError,
    StreamingError,
    ProviderError,
    RateLimitError,
    ModelNotAvailableError,
    ConfigError,
    handle_provider_error,
    provider_error_from_payload,
)
from .config import ProviderConfig, parse_provider
from .http_client import HttpxTransport, Transport, TransportRequest

__all__ = [
    # Models
    "Provider",
    "Role",
    "FinishReason",
    "ImageUrl",
    "TextContent",
    "ImageContent",
    "ToolResultContent",
    "FunctionDefinition",
    "Tool",
    "FunctionCall",
    "Message",
    "Usage",
    "CompleteResponse",
    "Prompt",
    "ChatCompletionRequest",
    # Errors
    "ErrorKind",
    "ErrorDetails",
    "StreamfoldError",
    "HttpError",
    "AuthError",
    "SerializationError",
    "StreamingError",
    "ProviderError",
    "RateLimitError",
    "ModelNotAvailableError",
    "ConfigError",
    "handle_provider_error",
    "provider_error_from_payload",
    # Config
    "ProviderConfig",
    "parse_provider",
    # Transport
    "HttpxTransport",
    "Transport",
    "TransportRequest",
]

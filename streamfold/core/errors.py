"""
streamfold - Error Definitions

Error taxonomy shared by the transport, decoders, accumulator and
response facade. Every failure surfaced to callers is a StreamfoldError
subclass carrying an ErrorDetails payload.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorKind(str, Enum):
    """Error classification."""
    HTTP = "http"
    AUTH = "auth"
    SERIALIZATION = "serialization"
    STREAMING = "streaming"
    PROVIDER = "provider"
    RATE_LIMIT = "rate_limit"
    MODEL_NOT_AVAILABLE = "model_not_available"
    CONFIG = "config"


@dataclass
class ErrorDetails:
    """Full error information."""
    # Core fields (always present)
    code: str
    message: str
    kind: ErrorKind

    # Context fields
    provider: Optional[str] = None

    # Trace fields
    request_id: str = ""
    provider_request_id: Optional[str] = None

    # Hints for the caller; nothing in this package retries
    retryable: bool = False
    retry_after: Optional[int] = None
    partial_content: Optional[str] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "kind": self.kind.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.provider_request_id:
            result["provider_request_id"] = self.provider_request_id
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.partial_content:
            result["partial_content"] = self.partial_content
        if self.details:
            result["details"] = self.details

        return {"error": result}


class StreamfoldError(Exception):
    """Base exception for all streamfold errors."""

    def __init__(self, error: ErrorDetails, status_code: Optional[int] = None):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


# ============================================================
# Taxonomy
# ============================================================

class HttpError(StreamfoldError):
    """Transport failure (connect, timeout, broken connection)."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        request_id: str = "",
        code: str = "http_error",
        retryable: bool = True,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message,
                kind=ErrorKind.HTTP,
                provider=provider,
                request_id=request_id,
                retryable=retryable,
            ),
            status_code=status_code
        )


class AuthError(StreamfoldError):
    """Credential acquisition failed or the provider rejected the credential."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        request_id: str = "",
        status_code: Optional[int] = None,
        provider_request_id: Optional[str] = None,
    ):
        super().__init__(
            ErrorDetails(
                code="auth_error",
                message=message,
                kind=ErrorKind.AUTH,
                provider=provider,
                request_id=request_id,
                provider_request_id=provider_request_id,
                retryable=False,
            ),
            status_code=status_code
        )


class SerializationError(StreamfoldError):
    """Malformed JSON payload, or tool arguments that are not valid JSON."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        request_id: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorDetails(
                code="serialization_error",
                message=message,
                kind=ErrorKind.SERIALIZATION,
                provider=provider,
                request_id=request_id,
                details=details or {},
            )
        )


class StreamingError(StreamfoldError):
    """Frame decode failure, truncated frame, or protocol violation."""

    def __init__(
        self,
        message: str,
        code: str = "streaming_error",
        provider: Optional[str] = None,
        request_id: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message,
                kind=ErrorKind.STREAMING,
                provider=provider,
                request_id=request_id,
                details=details or {},
            )
        )


class ProviderError(StreamfoldError):
    """Structured error returned by the vendor."""

    def __init__(
        self,
        provider: str,
        message: str,
        code: str = "provider_error",
        request_id: str = "",
        status_code: Optional[int] = None,
        provider_request_id: Optional[str] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message,
                kind=ErrorKind.PROVIDER,
                provider=provider,
                request_id=request_id,
                provider_request_id=provider_request_id,
                retryable=retryable,
                details=details or {},
            ),
            status_code=status_code
        )


class RateLimitError(StreamfoldError):
    """Rate limit exceeded."""

    def __init__(
        self,
        provider: str,
        retry_after: int = 60,
        message: str = "",
        request_id: str = "",
        provider_request_id: Optional[str] = None,
    ):
        super().__init__(
            ErrorDetails(
                code="rate_limited",
                message=message or f"{provider} rate limit exceeded. Retry after {retry_after} seconds.",
                kind=ErrorKind.RATE_LIMIT,
                provider=provider,
                request_id=request_id,
                provider_request_id=provider_request_id,
                retryable=True,
                retry_after=retry_after,
            ),
            status_code=429
        )


class ModelNotAvailableError(StreamfoldError):
    """Requested model does not exist or is not enabled for the caller."""

    def __init__(
        self,
        provider: str,
        model: str = "",
        message: str = "",
        request_id: str = "",
    ):
        super().__init__(
            ErrorDetails(
                code="model_not_available",
                message=message or f"Model '{model}' is not available on {provider}",
                kind=ErrorKind.MODEL_NOT_AVAILABLE,
                provider=provider,
                request_id=request_id,
                details={"model": model} if model else {},
            ),
            status_code=404
        )


class ConfigError(StreamfoldError):
    """Invalid or incomplete configuration."""

    def __init__(self, message: str, param: Optional[str] = None):
        super().__init__(
            ErrorDetails(
                code="config_error",
                message=message,
                kind=ErrorKind.CONFIG,
                details={"param": param} if param else {},
            )
        )


# ============================================================
# Provider error mapping
# ============================================================

def _parse_retry_after(headers: Any, default: int = 60) -> int:
    value = headers.get("retry-after") if headers is not None else None
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _map_http_error(
    provider: str,
    error: Exception,
    request_id: str,
    extract,
    request_id_header: str,
) -> StreamfoldError:
    """
    Shared httpx -> taxonomy mapping.

    ``extract`` pulls ``(message, vendor_code)`` out of a decoded error body.
    """

    if isinstance(error, StreamfoldError):
        return error

    if isinstance(error, httpx.TimeoutException):
        code = "connect_timeout" if isinstance(error, httpx.ConnectTimeout) else "read_timeout"
        return HttpError(
            f"{provider} did not respond within timeout",
            provider=provider,
            request_id=request_id,
            code=code,
            status_code=504,
        )

    if isinstance(error, httpx.ConnectError):
        return HttpError(
            f"Failed to connect to {provider}: {error}",
            provider=provider,
            request_id=request_id,
            code="connect_error",
            status_code=502,
        )

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status_code = response.status_code
        provider_req_id = response.headers.get(request_id_header) or None

        try:
            message, vendor_code = extract(response.json())
        except (ValueError, AttributeError, TypeError):
            message, vendor_code = "", ""
        message = message or response.text or f"{provider} returned HTTP {status_code}"

        if status_code in (401, 403):
            return AuthError(
                f"{provider} authentication failed: {message}",
                provider=provider,
                request_id=request_id,
                status_code=status_code,
                provider_request_id=provider_req_id,
            )

        if status_code == 429:
            return RateLimitError(
                provider,
                retry_after=_parse_retry_after(response.headers),
                message=message,
                request_id=request_id,
                provider_request_id=provider_req_id,
            )

        if status_code == 404 or "model_not_found" in vendor_code:
            return ModelNotAvailableError(provider, message=message, request_id=request_id)

        return ProviderError(
            provider,
            message,
            code=vendor_code or ("upstream_error" if status_code >= 500 else "provider_error"),
            request_id=request_id,
            status_code=status_code,
            provider_request_id=provider_req_id,
            retryable=status_code >= 500,
        )

    if isinstance(error, httpx.HTTPError):
        return HttpError(
            f"{provider} transport error: {error}",
            provider=provider,
            request_id=request_id,
        )

    return StreamingError(
        f"Unexpected error talking to {provider}: {error}",
        code="unknown_error",
        provider=provider,
        request_id=request_id,
    )


def handle_openai_error(
    error: Exception,
    request_id: str = ""
) -> StreamfoldError:
    """
    Convert an OpenAI HTTP error to a streamfold exception.

    OpenAI error format:
    {
        "error": {
            "message": "...",
            "type": "invalid_request_error|authentication_error|...",
            "code": "invalid_api_key|model_not_found|...",
        }
    }
    """
    def extract(data: Dict[str, Any]):
        info = data.get("error") or {}
        return info.get("message", ""), str(info.get("code") or info.get("type") or "")

    return _map_http_error("openai", error, request_id, extract, "x-request-id")


def handle_anthropic_error(
    error: Exception,
    request_id: str = ""
) -> StreamfoldError:
    """
    Convert an Anthropic-on-Vertex HTTP error to a streamfold exception.

    Anthropic error format:
    {"type": "error", "error": {"type": "overloaded_error", "message": "..."}}

    Vertex itself may answer with the Google format instead, so both
    are accepted.
    """
    def extract(data: Any):
        if isinstance(data, list):
            data = data[0] if data else {}
        info = data.get("error") or {}
        return info.get("message", ""), str(info.get("type") or info.get("status") or "")

    return _map_http_error("anthropic_vertex", error, request_id, extract, "request-id")


def handle_google_error(
    error: Exception,
    request_id: str = ""
) -> StreamfoldError:
    """
    Convert a Vertex Gemini HTTP error to a streamfold exception.

    Google error format (sometimes wrapped in a one-element list):
    {"error": {"code": 404, "message": "...", "status": "NOT_FOUND"}}
    """
    def extract(data: Any):
        if isinstance(data, list):
            data = data[0] if data else {}
        info = data.get("error") or {}
        return info.get("message", ""), str(info.get("status") or "").lower()

    return _map_http_error("gemini", error, request_id, extract, "x-goog-request-id")


_HANDLERS = {
    "openai": handle_openai_error,
    "anthropic_vertex": handle_anthropic_error,
    "gemini": handle_google_error,
}


def handle_provider_error(
    provider: str,
    error: Exception,
    request_id: str = ""
) -> StreamfoldError:
    """Dispatch to the provider-specific error mapper."""
    handler = _HANDLERS.get(str(provider))
    if handler is None:
        return _map_http_error(str(provider), error, request_id, lambda d: ("", ""), "x-request-id")
    return handler(error, request_id)


_RATE_LIMIT_TYPES = {"rate_limit_error", "overloaded_error", "rate_limit_exceeded", "resource_exhausted"}


def provider_error_from_payload(
    provider: str,
    payload: Dict[str, Any],
    request_id: str = ""
) -> StreamfoldError:
    """
    Convert an error record delivered inside the event stream.

    Vendors report mid-stream failures as ordinary data records, e.g.
    ``{"type": "error", "error": {"type": "overloaded_error", ...}}``.
    """
    info = payload.get("error")
    if not isinstance(info, dict):
        info = {"message": json.dumps(info) if info is not None else "unknown error"}

    message = info.get("message") or "Provider reported an error"
    vendor_code = str(info.get("type") or info.get("status") or info.get("code") or "provider_error")

    if vendor_code.lower() in _RATE_LIMIT_TYPES:
        return RateLimitError(provider, message=message, request_id=request_id)

    return ProviderError(
        provider,
        message,
        code=vendor_code,
        request_id=request_id,
        details={"payload": payload},
    )

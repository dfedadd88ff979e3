"""
streamfold - Streaming Error Handling

Describes a failure that terminated a live event stream.

Key principle:
- BEFORE content: the caller may safely retry the request
- AFTER content started: events already delivered stay valid, but a
  retry would produce a different response, so the error is marked
  non-retryable and carries the partial content instead
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..core.errors import ErrorKind, StreamfoldError, StreamingError


@dataclass
class StreamError:
    """
    Error payload of a terminal ErrorEvent.

    ``cause`` is the taxonomy exception that ended the stream.
    """
    kind: ErrorKind
    code: str
    message: str
    provider: str
    request_id: str
    cause: StreamfoldError

    occurred_at: float = field(default_factory=time.time)

    # Content state at error time
    content_started: bool = False
    partial_content: Optional[str] = None
    events_delivered: int = 0

    @property
    def is_retryable(self) -> bool:
        """NOT retryable once content has been delivered."""
        if self.content_started:
            return False
        return self.cause.error.retryable

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error": {
                "kind": self.kind.value,
                "code": self.code,
                "message": self.message,
                "provider": self.provider,
                "request_id": self.request_id,
                "retryable": self.is_retryable,
            }
        }

        if self.partial_content:
            result["partial_content"] = self.partial_content
            result["events_delivered"] = self.events_delivered

        retry_after = self.cause.error.retry_after
        if retry_after:
            result["error"]["retry_after"] = retry_after

        return result


class StreamErrorBuilder:
    """Builds StreamError values with the stream's context."""

    def __init__(self, provider: str, request_id: str):
        self.provider = provider
        self.request_id = request_id
        self._content_started = False
        self._partial_content = ""
        self._events_delivered = 0

    def set_content_state(
        self,
        content_started: bool,
        partial_content: str = "",
        events_delivered: int = 0
    ):
        """Set the content state at error time."""
        self._content_started = content_started
        self._partial_content = partial_content
        self._events_delivered = events_delivered

    def from_exception(self, exc: BaseException) -> StreamError:
        """
        Wrap an exception raised while producing the stream.

        Taxonomy errors are kept as they are; anything else is reported
        as a StreamingError.
        """
        if isinstance(exc, StreamfoldError):
            cause = exc
        else:
            cause = StreamingError(
                f"Unexpected error while streaming: {exc}",
                code="unexpected_error",
                provider=self.provider,
                request_id=self.request_id,
                details={"exception_type": type(exc).__name__},
            )

        if not cause.error.provider:
            cause.error.provider = self.provider
        if not cause.error.request_id:
            cause.error.request_id = self.request_id
        if self._partial_content:
            cause.error.partial_content = self._partial_content

        return StreamError(
            kind=cause.error.kind,
            code=cause.error.code,
            message=cause.error.message,
            provider=self.provider,
            request_id=self.request_id,
            cause=cause,
            content_started=self._content_started,
            partial_content=self._partial_content or None,
            events_delivered=self._events_delivered,
        )

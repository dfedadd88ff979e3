"""
streamfold - HTTP Transport

Streaming HTTP transport over httpx:
- Request correlation (request_id logging)
- Provider-specific error mapping for failed responses
- Raw byte streaming with prompt connection release on early close

Retries are deliberately absent; callers own retry policy.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Protocol, runtime_checkable

import httpx

from .errors import StreamfoldError, handle_provider_error
from ..observability.logging import get_logger


logger = get_logger("streamfold.http")


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


@dataclass
class TransportRequest:
    """A fully built provider request."""
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    provider: str = ""
    model: str = ""
    request_id: str = field(default_factory=new_request_id)

    def to_log_extra(self) -> Dict[str, str]:
        return {
            "request_id": self.request_id,
            "provider": self.provider,
            "model": self.model,
        }


@runtime_checkable
class Transport(Protocol):
    """
    Anything that can turn a request into a raw byte stream.

    ``send`` returns an async iterator of body chunks. Failures surface
    as StreamfoldError (Http, Auth, Provider, RateLimit, ...).
    """

    def send(self, request: TransportRequest) -> AsyncIterator[bytes]:
        ...


def summarize_payload(payload: Dict[str, Any]) -> str:
    """Create safe payload summary (no secrets, no message bodies)."""
    summary = {}
    for key, value in payload.items():
        if key in ("api_key", "key", "token", "secret", "password", "authorization"):
            summary[key] = "***REDACTED***"
        elif key in ("messages", "contents", "tools") and isinstance(value, list):
            summary[key] = f"[{len(value)} {key}]"
        elif isinstance(value, str) and len(value) > 100:
            summary[key] = f"{value[:50]}...({len(value)} chars)"
        else:
            summary[key] = value
    return str(summary)


class HttpxTransport:
    """
    Transport backed by ``httpx.AsyncClient``.

    Pass an existing client to share its connection pool; otherwise the
    transport creates one and closes it in ``aclose``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0)
        )

    async def send(self, request: TransportRequest) -> AsyncIterator[bytes]:
        start_time = time.perf_counter()
        bytes_received = 0
        completed = False

        logger.debug(
            "Sending provider request",
            url=request.url,
            payload=summarize_payload(request.body),
            **request.to_log_extra(),
        )

        try:
            async with self.client.stream(
                "POST",
                request.url,
                json=request.body,
                headers=request.headers,
            ) as response:
                logger.debug(
                    "Provider responded",
                    status_code=response.status_code,
                    **request.to_log_extra(),
                )

                if response.status_code >= 400:
                    await response.aread()
                    response.raise_for_status()

                async for chunk in response.aiter_bytes():
                    bytes_received += len(chunk)
                    yield chunk

            completed = True

        except StreamfoldError:
            raise

        except httpx.HTTPError as e:
            error = handle_provider_error(request.provider, e, request.request_id)
            logger.warning(
                "Provider request failed",
                error_code=error.error.code,
                status_code=error.status_code,
                **request.to_log_extra(),
            )
            raise error from e

        finally:
            logger.debug(
                "Provider stream closed",
                bytes_received=bytes_received,
                completed=completed,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                **request.to_log_extra(),
            )

    async def aclose(self):
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()

"""
streamfold - Provider Adapter Base

Abstract base class for provider adapters.
Each provider family (OpenAI, Gemini on Vertex, Anthropic on Vertex)
implements this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from ..auth.tokens import Authenticator
from ..core.config import ProviderConfig
from ..core.errors import AuthError, ConfigError
from ..core.http_client import HttpxTransport, Transport, TransportRequest, new_request_id
from ..core.models import ChatCompletionRequest, Message, Provider, Role
from ..observability.logging import LogContext, get_logger
from ..observability.tracing import trace_provider_call
from ..response import Response
from ..streaming.pipeline import delta_stream


logger = get_logger("streamfold.adapters")


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Each provider adapter must implement:
    - _build_payload: unified request -> provider request body
    - _endpoint: streaming endpoint URL for a model
    - _auth_headers: credential headers

    The adapter is responsible for:
    1. Converting the unified request to the provider format
    2. Acquiring credentials before sending
    3. Handing the raw byte stream to the decode pipeline
    """

    provider: Provider

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[Transport] = None,
        authenticator: Optional[Authenticator] = None,
    ):
        if config.provider != self.provider:
            raise ConfigError(
                f"{type(self).__name__} cannot serve provider {config.provider.value}",
                param="provider",
            )
        self.config = config
        self.authenticator = authenticator
        self._owns_transport = transport is None
        self.transport: Transport = transport or HttpxTransport(timeout=config.timeout)

    async def generate(self, request: ChatCompletionRequest) -> Response:
        """
        Send ``request`` and return its Response.

        The body is not read until the Response is consumed; transport
        and provider errors surface from ``stream()`` / ``buffer()``.

        Raises:
            AuthError: credentials could not be acquired
        """
        model = request.model or self.config.model
        request_id = new_request_id()
        token = LogContext.set_current(
            LogContext(request_id=request_id, provider=self.provider.value, model=model)
        )

        try:
            with trace_provider_call(self.provider.value, model) as span:
                span.set_attribute("ai.request_id", request_id)

                headers = {"Content-Type": "application/json"}
                headers.update(await self._auth_headers(request_id))

                transport_request = TransportRequest(
                    url=self._endpoint(model),
                    body=self._build_payload(request, model),
                    headers=headers,
                    provider=self.provider.value,
                    model=model,
                    request_id=request_id,
                )

            logger.debug(
                "Prepared provider request",
                tools=len(request.tools or []),
                turns=len(request.prompt),
                **transport_request.to_log_extra(),
            )
        finally:
            LogContext.reset(token)

        frames = delta_stream(self.transport.send(transport_request), self.provider, request_id)
        return Response(
            frames,
            provider=self.provider.value,
            model=model,
            request_id=request_id,
        )

    async def close(self):
        """Close the transport if this adapter created it."""
        if self._owns_transport:
            close = getattr(self.transport, "aclose", None)
            if close is not None:
                await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================================
    # Provider hooks
    # ============================================================

    @abstractmethod
    def _build_payload(self, request: ChatCompletionRequest, model: str) -> Dict[str, Any]:
        """Convert the unified request to the provider's streaming body."""

    @abstractmethod
    def _endpoint(self, model: str) -> str:
        """Streaming endpoint for ``model``."""

    @abstractmethod
    async def _auth_headers(self, request_id: str) -> Dict[str, str]:
        """Credential headers for one request."""

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    @staticmethod
    def _sampling_params(request: ChatCompletionRequest) -> Dict[str, Any]:
        """Set sampling parameters, under their unified names."""
        params = {
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "top_p": request.top_p,
            "stop": request.stop,
            "presence_penalty": request.presence_penalty,
            "frequency_penalty": request.frequency_penalty,
        }
        return {key: value for key, value in params.items() if value is not None}

    @staticmethod
    def _image_source(url: str) -> Dict[str, str]:
        """Split a data URL into media type and base64 data."""
        media_type = url.split(";")[0].split(":")[1]
        data = url.split(",")[1]
        return {"media_type": media_type, "data": data}


class VertexAdapter(BaseAdapter):
    """
    Shared plumbing for models served through Vertex AI.

    Bearer tokens come from the injected Authenticator and are fetched
    once per request.
    """

    publisher: str
    method: str

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[Transport] = None,
        authenticator: Optional[Authenticator] = None,
    ):
        super().__init__(config, transport, authenticator)
        if self.authenticator is None:
            raise ConfigError(
                f"{type(self).__name__} requires an authenticator",
                param="authenticator",
            )

    def _endpoint(self, model: str) -> str:
        location = self.config.location
        if self.config.base_url:
            base = self.config.base_url.rstrip("/")
        else:
            base = f"https://{location}-aiplatform.googleapis.com"
        return (
            f"{base}/v1/projects/{self.config.project_id}/locations/{location}"
            f"/publishers/{self.publisher}/models/{model}:{self.method}"
        )

    async def _auth_headers(self, request_id: str) -> Dict[str, str]:
        try:
            token = await self.authenticator.get_token()
        except AuthError as e:
            e.error.provider = e.error.provider or self.provider.value
            e.error.request_id = e.error.request_id or request_id
            raise
        except Exception as e:
            raise AuthError(
                f"Failed to acquire access token: {e}",
                provider=self.provider.value,
                request_id=request_id,
            ) from e

        if not token:
            raise AuthError(
                "Authenticator returned an empty token",
                provider=self.provider.value,
                request_id=request_id,
            )
        return {"Authorization": f"Bearer {token}"}


def system_text(messages: Iterable[Message]) -> Optional[str]:
    """Join all system message texts, or None when there are none."""
    texts = [msg.text for msg in messages if msg.role == Role.SYSTEM and msg.text]
    return "\n\n".join(texts) if texts else None

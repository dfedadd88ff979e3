"""
streamfold Adapters Module

Provider-specific adapters that translate the unified request into each
provider's native streaming API and hand the response body to the
decode pipeline.
"""

import os
from typing import Optional

from .base import BaseAdapter, VertexAdapter
from .openai_adapter import OpenAIAdapter
from .google_adapter import GeminiAdapter
from .anthropic_adapter import AnthropicVertexAdapter
from ..auth.tokens import (
    AdcAuthenticator,
    Authenticator,
    EnvTokenAuthenticator,
    StaticTokenAuthenticator,
)
from ..core.config import ProviderConfig
from ..core.errors import ConfigError
from ..core.http_client import Transport
from ..core.models import Provider

__all__ = [
    "BaseAdapter",
    "VertexAdapter",
    "OpenAIAdapter",
    "GeminiAdapter",
    "AnthropicVertexAdapter",
    "get_adapter",
]


def get_adapter(
    config: ProviderConfig,
    transport: Optional[Transport] = None,
    authenticator: Optional[Authenticator] = None,
) -> BaseAdapter:
    """
    Factory function to get the appropriate adapter for a provider.

    Args:
        config: Provider configuration (validated here)
        transport: Optional transport; defaults to an owned HttpxTransport
        authenticator: Token source for Vertex providers; defaults to the
            config's static access token, else $VERTEX_ACCESS_TOKEN when it
            is set, else Google Application Default Credentials

    Returns:
        Configured adapter instance

    Raises:
        ConfigError: If the provider is not supported or config is incomplete
    """
    adapters = {
        Provider.OPENAI: OpenAIAdapter,
        Provider.GEMINI: GeminiAdapter,
        Provider.ANTHROPIC_VERTEX: AnthropicVertexAdapter,
    }

    adapter_class = adapters.get(config.provider)
    if not adapter_class:
        raise ConfigError(f"Unsupported provider: {config.provider}", param="provider")

    config.validate()

    if config.is_vertex and authenticator is None:
        if config.access_token:
            authenticator = StaticTokenAuthenticator(config.access_token)
        elif os.getenv("VERTEX_ACCESS_TOKEN"):
            authenticator = EnvTokenAuthenticator()
        else:
            authenticator = AdcAuthenticator()

    return adapter_class(config, transport=transport, authenticator=authenticator)

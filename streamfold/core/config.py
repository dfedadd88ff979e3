"""
streamfold - Provider Configuration

Explicit configuration value for a provider instance, with an
environment-driven constructor.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError
from .models import Provider


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_VERTEX_LOCATION = "europe-west1"
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"
DEFAULT_ANTHROPIC_VERTEX_MODEL = "claude-3-5-sonnet-v2@20241022"
DEFAULT_TIMEOUT = 60.0
DEFAULT_ANTHROPIC_MAX_TOKENS = 1024


def parse_provider(value: str) -> Provider:
    """
    Parse a provider name.

    Accepts the canonical names plus a few common aliases
    ("google", "vertex", "anthropic").
    """
    normalized = value.lower().strip()
    aliases = {
        "openai": Provider.OPENAI,
        "gemini": Provider.GEMINI,
        "google": Provider.GEMINI,
        "vertex": Provider.GEMINI,
        "anthropic_vertex": Provider.ANTHROPIC_VERTEX,
        "anthropic": Provider.ANTHROPIC_VERTEX,
        "claude": Provider.ANTHROPIC_VERTEX,
    }
    try:
        return aliases[normalized]
    except KeyError:
        raise ConfigError(
            f"Unsupported provider: {value}. Use one of: openai, gemini, anthropic_vertex",
            param="provider",
        ) from None


@dataclass
class ProviderConfig:
    """
    Configuration for one provider instance.

    OpenAI needs ``api_key``; the Vertex-hosted providers need
    ``project_id`` and get their bearer token from an Authenticator
    (``access_token`` is a convenience for a static one).
    """
    provider: Provider
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    project_id: Optional[str] = None
    location: str = DEFAULT_VERTEX_LOCATION
    access_token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    default_max_tokens: int = DEFAULT_ANTHROPIC_MAX_TOKENS

    def __post_init__(self):
        if not isinstance(self.provider, Provider):
            self.provider = parse_provider(str(self.provider))

    @property
    def is_vertex(self) -> bool:
        return self.provider in (Provider.GEMINI, Provider.ANTHROPIC_VERTEX)

    def validate(self) -> "ProviderConfig":
        """Raise ConfigError if required fields are missing."""
        if not self.model:
            raise ConfigError("model is required", param="model")

        if self.provider == Provider.OPENAI and not self.api_key:
            raise ConfigError("OpenAI requires an API key (OPENAI_API_KEY)", param="api_key")

        if self.is_vertex:
            if not self.project_id:
                raise ConfigError(
                    "Vertex providers require a project id (GOOGLE_CLOUD_PROJECT)",
                    param="project_id",
                )
            if not self.location:
                raise ConfigError("Vertex providers require a location", param="location")

        if self.timeout <= 0:
            raise ConfigError("timeout must be positive", param="timeout")

        return self

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        """
        Build configuration from environment variables.

        PROVIDER_TYPE selects the provider. When it is unset the provider
        is inferred from whichever credential is present: OPENAI_API_KEY,
        then VERTEX_ACCESS_TOKEN (Gemini), then
        ANTHROPIC_VERTEX_ACCESS_TOKEN; openai otherwise.
        """
        provider = parse_provider(os.getenv("PROVIDER_TYPE") or _infer_provider())

        timeout_raw = os.getenv("STREAMFOLD_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError:
            raise ConfigError(f"Invalid STREAMFOLD_TIMEOUT: {timeout_raw}", param="timeout") from None

        if provider == Provider.OPENAI:
            config = cls(
                provider=provider,
                model=os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
                api_key=os.getenv("OPENAI_API_KEY"),
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                timeout=timeout,
            )
        else:
            access_token = os.getenv("VERTEX_ACCESS_TOKEN")
            if provider == Provider.GEMINI:
                model = os.getenv("GOOGLE_MODEL", DEFAULT_GEMINI_MODEL)
            else:
                access_token = access_token or os.getenv("ANTHROPIC_VERTEX_ACCESS_TOKEN")
                model = (
                    os.getenv("ANTHROPIC_VERTEX_MODEL")
                    or os.getenv("ANTHROPIC_MODEL")
                    or DEFAULT_ANTHROPIC_VERTEX_MODEL
                )
            config = cls(
                provider=provider,
                model=model,
                project_id=os.getenv("GOOGLE_CLOUD_PROJECT"),
                location=os.getenv("GOOGLE_CLOUD_REGION", DEFAULT_VERTEX_LOCATION),
                access_token=access_token or None,
                timeout=timeout,
            )

        return config.validate()


def _infer_provider() -> str:
    if os.getenv("OPENAI_API_KEY"):
        return "openai"
    if os.getenv("VERTEX_ACCESS_TOKEN"):
        return "gemini"
    if os.getenv("ANTHROPIC_VERTEX_ACCESS_TOKEN"):
        return "anthropic_vertex"
    return "openai"

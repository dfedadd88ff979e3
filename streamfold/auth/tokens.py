"""
streamfold - Token Authenticators

Bearer token sources for the Vertex-hosted providers. Token caching and
refresh belong to the authenticator; adapters ask for a token once per
request and never store it.
"""

import asyncio
import os
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import google.auth
from google.auth.exceptions import DefaultCredentialsError, RefreshError
from google.auth.transport.requests import Request

from ..core.errors import AuthError


CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


@runtime_checkable
class Authenticator(Protocol):
    """Supplies a bearer token; fails with AuthError."""

    async def get_token(self) -> str:
        ...


class StaticTokenAuthenticator:
    """Always returns the token it was constructed with."""

    def __init__(self, token: str):
        self._token = token

    async def get_token(self) -> str:
        if not self._token:
            raise AuthError("Static access token is empty")
        return self._token

    def __repr__(self) -> str:
        return "StaticTokenAuthenticator(token=***)"


class EnvTokenAuthenticator:
    """
    Reads the token from an environment variable on every call.

    Lets an external refresher (e.g. a sidecar running
    ``gcloud auth print-access-token``) rotate the value in place.
    """

    def __init__(self, variable: str = "VERTEX_ACCESS_TOKEN"):
        self.variable = variable

    async def get_token(self) -> str:
        token = os.getenv(self.variable, "").strip()
        if not token:
            raise AuthError(f"No access token found in ${self.variable}")
        return token


class AdcAuthenticator:
    """
    Google Application Default Credentials.

    Credentials are discovered on first use ($GOOGLE_APPLICATION_CREDENTIALS,
    gcloud user credentials or the metadata server) and refreshed once
    they expire. Discovery and refresh do blocking I/O, so both run in
    the loop's default executor.
    """

    def __init__(self, scopes: Sequence[str] = (CLOUD_PLATFORM_SCOPE,)):
        self.scopes = list(scopes)
        self._credentials: Optional[Any] = None
        self._lock: Optional[asyncio.Lock] = None

    async def get_token(self) -> str:
        if self._lock is None:
            self._lock = asyncio.Lock()

        loop = asyncio.get_running_loop()
        async with self._lock:
            try:
                if self._credentials is None:
                    self._credentials = await loop.run_in_executor(None, self._discover)
                if not self._credentials.valid:
                    await loop.run_in_executor(None, self._refresh)
            except DefaultCredentialsError as e:
                raise AuthError(f"Application Default Credentials not found: {e}") from e
            except RefreshError as e:
                raise AuthError(f"Failed to refresh Google credentials: {e}") from e

            token = self._credentials.token
        if not token:
            raise AuthError("Google credentials returned no access token")
        return token

    def _discover(self):
        credentials, _project = google.auth.default(scopes=self.scopes)
        return credentials

    def _refresh(self):
        self._credentials.refresh(Request())

    def __repr__(self) -> str:
        return f"AdcAuthenticator(scopes={self.scopes!r})"

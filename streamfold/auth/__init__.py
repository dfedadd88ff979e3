"""
streamfold - Auth Module

Authenticator protocol and built-in token sources (static, environment
variable and Google Application Default Credentials).
"""

from .tokens import (
    AdcAuthenticator,
    Authenticator,
    EnvTokenAuthenticator,
    StaticTokenAuthenticator,
)

__all__ = [
    "AdcAuthenticator",
    "Authenticator",
    "EnvTokenAuthenticator",
    "StaticTokenAuthenticator",
]

"""Expose constructed client wrappers."""

from .oauth import (
    AuthExchangeError,
    OAuthClient,
    OAuthError,
    OAuthStateEncoder,
    TokenRefreshError,
)
from .upstream import DispatchError, DispatchTimeoutError, UpstreamClient

__all__ = [
    "AuthExchangeError",
    "DispatchError",
    "DispatchTimeoutError",
    "OAuthClient",
    "OAuthError",
    "OAuthStateEncoder",
    "TokenRefreshError",
    "UpstreamClient",
]

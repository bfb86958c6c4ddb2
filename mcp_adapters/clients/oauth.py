"""
OAuth utilities for upstream providers.

These helpers build consent URLs, exchange authorization codes and refresh
access tokens against a provider's token endpoint.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, status
from pydantic import ValidationError

from mcp_adapters.core.config import ZohoSettings
from mcp_adapters.models.oauth import TokenGrant

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthError(Exception):
    """Base class for token endpoint failures.

    ``status_code`` is the upstream HTTP status, or ``None`` when the request
    never produced a response (DNS, connect, timeout).
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code

    @property
    def rejected_by_provider(self) -> bool:
        return self.status_code is not None


class AuthExchangeError(OAuthError):
    """Raised when an authorization code cannot be exchanged for tokens."""


class TokenRefreshError(OAuthError):
    """Raised when a refresh token cannot be exchanged for a new access token."""


class OAuthClient:
    """Talk to a provider's OAuth endpoints using form-encoded requests."""

    def __init__(
        self,
        settings: ZohoSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def token_url(self) -> str:
        return self._settings.token_url

    def build_authorization_url(self, client_id: str, state: str | None = None) -> str:
        """Construct the provider's consent URL for ``client_id``."""
        params = {
            "scope": self._settings.scope,
            "client_id": client_id,
            "response_type": "code",
            "access_type": "offline",
            "redirect_uri": self._settings.redirect_uri,
        }
        if state:
            params["state"] = state
        return f"{self._settings.auth_url}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, client_id: str, client_secret: str, code: str
    ) -> TokenGrant:
        """Exchange a single-use authorization code for an initial token pair."""
        payload = {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.redirect_uri,
        }
        return await self._request_grant(
            payload, error_cls=AuthExchangeError, operation="Token exchange"
        )

    async def refresh_token(
        self, client_id: str, client_secret: str, refresh_token: str
    ) -> TokenGrant:
        """Mint a new access token from a stored refresh token."""
        payload = {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._request_grant(
            payload, error_cls=TokenRefreshError, operation="Token refresh"
        )

    async def _request_grant(
        self,
        payload: Dict[str, str],
        *,
        error_cls: type[OAuthError],
        operation: str,
    ) -> TokenGrant:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise error_cls(f"{operation} failed: {exc!r}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        # Zoho reports a bad code with HTTP 200 and an ``error`` field.
        if response.status_code != status.HTTP_200_OK or (
            isinstance(body, dict) and "error" in body
        ):
            error_code, detail = _describe_error(body, response.text)
            raise error_cls(
                f"{operation} failed: {detail}",
                error_code=error_code,
                status_code=response.status_code,
            )

        if not isinstance(body, dict):
            raise error_cls(
                f"{operation} failed: token endpoint returned a non-JSON body",
                status_code=response.status_code,
            )

        try:
            return TokenGrant.model_validate(body)
        except ValidationError as exc:
            raise error_cls(
                f"{operation} failed: incomplete token payload returned by provider",
                status_code=response.status_code,
            ) from exc


def _describe_error(body: Any, text: str) -> tuple[Optional[str], str]:
    """Pull the provider's error code and description out of an error body."""
    if not isinstance(body, dict):
        return None, text[:200] or "empty response"
    error_code = body.get("error")
    description = body.get("error_description")
    if description and error_code:
        return error_code, f"{description} ({error_code})"
    return error_code, str(description or error_code or body)


__all__ = [
    "AuthExchangeError",
    "OAuthClient",
    "OAuthError",
    "OAuthStateEncoder",
    "TokenRefreshError",
]

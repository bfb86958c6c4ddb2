"""
Run tool calls against an upstream API and wrap the outcome in an envelope.

Every failure is converted to ``{"success": False, "error": "<tool> failed: ..."}``
so a single bad call never takes the server down.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from mcp_adapters.clients.oauth import AuthExchangeError, OAuthError, TokenRefreshError
from mcp_adapters.clients.upstream import DispatchError
from mcp_adapters.models.oauth import CredentialRecord, TokenRecord
from mcp_adapters.services.credentials import (
    NoCredentialsError,
    extract_bearer_token,
    extract_credentials,
    strip_credentials,
)
from mcp_adapters.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

SET_CREDENTIALS_TOOL = "set_credentials"
AUTHENTICATE_TOOL = "authenticate"

ToolHandler = Callable[[str, Dict[str, Any]], Awaitable[Any]]
"""Receives the access token and the credential-free tool arguments."""


class AuthenticationRequiredError(Exception):
    """The client has no usable token; the caller must visit the consent URL."""

    def __init__(self, authorization_url: str, reason: str = "Authentication required") -> None:
        super().__init__(f"{reason}. Please visit: {authorization_url}")
        self.authorization_url = authorization_url


class UnknownToolError(Exception):
    """The requested tool is not served by this executor."""


def _token_summary(record: TokenRecord) -> Dict[str, Any]:
    return {
        "client_id": record.client_id,
        "expires_at": record.expires_at.isoformat(),
        "scope": record.scope,
        "api_domain": record.api_domain,
    }


class ToolExecutor:
    """Handler table plus the success/failure envelope shared by all servers."""

    def __init__(self, handlers: Mapping[str, ToolHandler]) -> None:
        self._handlers: Dict[str, ToolHandler] = dict(handlers)

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._handlers)

    def _handler(self, name: str) -> ToolHandler:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(f"Unknown function: {name}")
        return handler

    async def execute(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Run ``name`` and always return an envelope, never raise."""
        try:
            result = await self._run(name, dict(arguments or {}))
        except AuthenticationRequiredError as exc:
            logger.warning("Tool %s needs authentication", name)
            return {
                "success": False,
                "error": f"{name} failed: {exc}",
                "authorization_url": exc.authorization_url,
            }
        except (
            NoCredentialsError,
            OAuthError,
            DispatchError,
            UnknownToolError,
            ValueError,
        ) as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return {"success": False, "error": f"{name} failed: {exc}"}
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error while executing tool %s", name)
            return {"success": False, "error": f"{name} failed: {exc!r}"}

        if isinstance(result, dict) and "success" in result:
            return result
        return {"success": True, "data": result}

    async def _run(self, name: str, arguments: Dict[str, Any]) -> Any:
        raise NotImplementedError


class OAuthToolExecutor(ToolExecutor):
    """Executor for servers authenticated with per-client OAuth tokens."""

    def __init__(
        self,
        token_manager: TokenManager,
        handlers: Mapping[str, ToolHandler],
        *,
        server_name: str,
    ) -> None:
        super().__init__(handlers)
        self._tokens = token_manager
        self._server_name = server_name
        self._redeemed_codes: Dict[str, str] = {}

    @property
    def tool_names(self) -> list[str]:
        return sorted([*self._handlers, SET_CREDENTIALS_TOOL, AUTHENTICATE_TOOL])

    async def _run(self, name: str, arguments: Dict[str, Any]) -> Any:
        credentials = extract_credentials(arguments, self._server_name)
        self._tokens.register_credentials(credentials)

        if name == SET_CREDENTIALS_TOOL:
            return await self._set_credentials(credentials)
        if name == AUTHENTICATE_TOOL:
            if not credentials.authorization_code:
                raise ValueError("authenticate requires an authorization code")
            record = await self._redeem(credentials)
            return {
                "success": True,
                "message": "Authorization successful - tokens obtained and stored",
                **_token_summary(record),
            }

        handler = self._handler(name)
        if credentials.authorization_code and self._is_new_code(credentials):
            await self._redeem_or_keep_stored(credentials)

        access_token = await self._valid_token(credentials)
        logger.info("Executing %s for client %s", name, credentials.client_id)
        try:
            return await handler(access_token, strip_credentials(arguments))
        except DispatchError as exc:
            if exc.status == 401:
                self._tokens.evict(credentials.client_id)
                raise AuthenticationRequiredError(
                    self._tokens.build_authorization_url(credentials.client_id),
                    reason=f"Upstream rejected the access token ({exc})",
                ) from exc
            raise

    async def _set_credentials(self, credentials: CredentialRecord) -> Dict[str, Any]:
        if credentials.authorization_code and self._is_new_code(credentials):
            record = await self._redeem_or_keep_stored(credentials)
            return {
                "success": True,
                "message": "Credentials set and authorization successful - tokens obtained and stored",
                **_token_summary(record),
            }
        return {"success": True, "message": "Credentials set successfully"}

    def _is_new_code(self, credentials: CredentialRecord) -> bool:
        return self._redeemed_codes.get(credentials.client_id) != credentials.authorization_code

    async def _redeem(self, credentials: CredentialRecord) -> TokenRecord:
        record = await self._tokens.exchange_authorization_code(
            credentials.client_id,
            credentials.client_secret,
            credentials.authorization_code or "",
        )
        self._redeemed_codes[credentials.client_id] = credentials.authorization_code or ""
        return record

    async def _redeem_or_keep_stored(self, credentials: CredentialRecord) -> TokenRecord:
        """Redeem a code seen for the first time by this executor.

        The code may already have been spent elsewhere (the OAuth callback
        route, or a previous process sharing a persistent store). When the
        provider refuses it and a token is stored, that token is used.
        """
        try:
            return await self._redeem(credentials)
        except AuthExchangeError as exc:
            stored = self._tokens.get_token(credentials.client_id)
            if stored is None or not exc.rejected_by_provider:
                raise
            logger.warning(
                "Authorization code for client %s was refused (%s); using the stored token",
                credentials.client_id,
                exc.error_code or exc.status_code,
            )
            self._redeemed_codes[credentials.client_id] = credentials.authorization_code or ""
            return stored

    async def _valid_token(self, credentials: CredentialRecord) -> str:
        try:
            access_token = await self._tokens.get_valid_access_token(
                credentials.client_id, credentials.client_secret
            )
        except TokenRefreshError as exc:
            if not exc.rejected_by_provider and self._tokens.get_token(credentials.client_id):
                raise
            raise AuthenticationRequiredError(
                self._tokens.build_authorization_url(credentials.client_id),
                reason=str(exc),
            ) from exc
        if access_token is None:
            raise AuthenticationRequiredError(
                self._tokens.build_authorization_url(credentials.client_id)
            )
        return access_token


class StaticTokenToolExecutor(ToolExecutor):
    """Executor for servers that authenticate with a long-lived API token."""

    def __init__(
        self,
        handlers: Mapping[str, ToolHandler],
        *,
        server_name: str,
        token_key: str = "token",
        fallback_token: Optional[str] = None,
    ) -> None:
        super().__init__(handlers)
        self._server_name = server_name
        self._token_key = token_key
        self._fallback_token = fallback_token

    async def _run(self, name: str, arguments: Dict[str, Any]) -> Any:
        handler = self._handler(name)
        token = extract_bearer_token(
            arguments,
            self._server_name,
            token_key=self._token_key,
            fallback=self._fallback_token,
        )
        return await handler(token, strip_credentials(arguments))


__all__ = [
    "AUTHENTICATE_TOOL",
    "AuthenticationRequiredError",
    "OAuthToolExecutor",
    "SET_CREDENTIALS_TOOL",
    "StaticTokenToolExecutor",
    "ToolExecutor",
    "UnknownToolError",
]

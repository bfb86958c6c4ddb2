"""
Per-client OAuth credential and token lifecycle.

State per client id::

    unauthenticated --code exchange--> valid --expires_at reached--> expired
    expired --refresh ok--> valid
    expired --refresh rejected--> unauthenticated

``get_valid_access_token`` returns ``None`` for "never authenticated" and
raises ``TokenRefreshError`` for "was authenticated, refresh broke".
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Dict, Optional

import anyio

from mcp_adapters.clients.oauth import OAuthClient, TokenRefreshError
from mcp_adapters.models.oauth import CredentialRecord, TokenRecord
from mcp_adapters.services.token_store import InMemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Owns credential records and the token store for one upstream provider."""

    def __init__(
        self,
        oauth_client: OAuthClient,
        store: TokenStore | None = None,
        *,
        default_expires_in: int = 3600,
        refresh_skew: timedelta = timedelta(0),
    ) -> None:
        self._oauth = oauth_client
        self._store: TokenStore = store if store is not None else InMemoryTokenStore()
        self._default_expires_in = default_expires_in
        self._refresh_skew = refresh_skew
        self._credentials: Dict[str, CredentialRecord] = {}
        self._refresh_locks: Dict[str, asyncio.Lock] = {}

    async def _store_call(self, method: Callable[..., Any], *args: Any) -> Any:
        """Run a store method, off the event loop when the store does disk I/O."""
        if getattr(self._store, "blocking", False):
            return await anyio.to_thread.run_sync(partial(method, *args))
        return method(*args)

    def register_credentials(self, record: CredentialRecord) -> None:
        """Store or overwrite the credential record for ``record.client_id``."""
        if not record.client_id or not record.client_secret:
            raise ValueError("client_id and client_secret are required")
        self._credentials[record.client_id] = record
        logger.info("Credentials set for client %s", record.client_id)

    def get_credentials(self, client_id: str) -> Optional[CredentialRecord]:
        return self._credentials.get(client_id)

    def get_token(self, client_id: str) -> Optional[TokenRecord]:
        return self._store.get(client_id)

    def evict(self, client_id: str) -> bool:
        """Forget the token for ``client_id``; credentials stay registered."""
        removed = self._store.delete(client_id)
        if removed:
            logger.info("Token removed for client %s", client_id)
        return removed

    def build_authorization_url(self, client_id: str, state: str | None = None) -> str:
        return self._oauth.build_authorization_url(client_id, state=state)

    async def exchange_authorization_code(
        self, client_id: str, client_secret: str, code: str
    ) -> TokenRecord:
        """Redeem ``code`` and store the resulting token, replacing any previous one."""
        logger.info("Exchanging authorization code for client %s", client_id)
        issued_at = _now()
        grant = await self._oauth.exchange_authorization_code(client_id, client_secret, code)
        previous = await self._store_call(self._store.get, client_id)
        record = TokenRecord.from_grant(
            client_id,
            grant,
            issued_at=issued_at,
            default_expires_in=self._default_expires_in,
            previous_refresh_token=previous.refresh_token if previous else None,
        )
        await self._store_call(self._store.set, record)
        logger.info(
            "Authorization code exchanged for client %s; token expires at %s",
            client_id,
            record.expires_at.isoformat(),
        )
        return record

    async def get_valid_access_token(
        self, client_id: str, client_secret: str
    ) -> Optional[str]:
        """Return a usable access token, ``None`` when the client never authenticated."""
        record = await self._store_call(self._store.get, client_id)
        if record is None:
            return None
        if not record.is_expired(skew=self._refresh_skew):
            return record.access_token

        lock = self._refresh_locks.setdefault(client_id, asyncio.Lock())
        async with lock:
            # Another caller may have refreshed (or evicted) while we waited.
            current = await self._store_call(self._store.get, client_id)
            if current is None:
                return None
            if not current.is_expired(skew=self._refresh_skew):
                return current.access_token

            logger.info("Token expired for client %s, refreshing", client_id)
            if not current.refresh_token:
                await self._store_call(self._store.delete, client_id)
                raise TokenRefreshError(
                    f"Token refresh failed: no refresh token stored for client "
                    f"{client_id}; re-authentication required"
                )
            refreshed = await self.refresh_access_token(
                client_id, client_secret, current.refresh_token
            )
            return refreshed.access_token

    async def refresh_access_token(
        self, client_id: str, client_secret: str, refresh_token: str
    ) -> TokenRecord:
        """Exchange ``refresh_token`` and replace the stored record.

        A provider rejection evicts the stored token so the client falls back
        to unauthenticated; transport failures leave it in place for a retry.
        """
        issued_at = _now()
        try:
            grant = await self._oauth.refresh_token(client_id, client_secret, refresh_token)
        except TokenRefreshError as exc:
            if exc.rejected_by_provider:
                await self._store_call(self._store.delete, client_id)
                logger.error(
                    "Token refresh rejected for client %s (%s); re-authentication required",
                    client_id,
                    exc.error_code or exc.status_code,
                )
            else:
                logger.warning("Token refresh for client %s did not complete: %s", client_id, exc)
            raise

        record = TokenRecord.from_grant(
            client_id,
            grant,
            issued_at=issued_at,
            default_expires_in=self._default_expires_in,
            previous_refresh_token=refresh_token,
        )
        await self._store_call(self._store.set, record)
        logger.info("Token refreshed for client %s", client_id)
        return record


__all__ = ["TokenManager"]

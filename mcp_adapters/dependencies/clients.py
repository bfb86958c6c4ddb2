"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

import logging
import secrets
from datetime import timedelta
from functools import lru_cache

from mcp_adapters.clients import OAuthClient, OAuthStateEncoder, UpstreamClient
from mcp_adapters.core.config import get_settings
from mcp_adapters.services import (
    InfluxDBService,
    InMemoryTokenStore,
    OAuthToolExecutor,
    SQLiteTokenStore,
    StaticTokenToolExecutor,
    TokenCipherService,
    TokenManager,
    TokenStore,
    ZohoCRMService,
)
from mcp_adapters.utils.http import RetryConfig

logger = logging.getLogger(__name__)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


def _retry_config() -> RetryConfig:
    dispatch = _settings().dispatch
    return RetryConfig(
        attempts=dispatch.retry_attempts, backoff_seconds=dispatch.retry_backoff_seconds
    )


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder; an ephemeral key is generated when unset."""
    secret = _settings().security.oauth_state_secret
    if not secret:
        logger.warning("OAUTH_STATE_SECRET not set; state values won't survive a restart")
        secret = secrets.token_urlsafe(32)
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_oauth_client() -> OAuthClient:
    """Create a singleton Zoho OAuth client."""
    settings = _settings()
    return OAuthClient(settings.zoho, timeout=settings.dispatch.timeout_seconds)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    security = _settings().security
    if not security.token_encryption_secret:
        raise RuntimeError("TOKEN_ENCRYPTION_SECRET is not configured.")
    return TokenCipherService(
        secret=security.token_encryption_secret,
        previous_secrets=security.previous_secrets,
    )


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the configured token store backend."""
    store_settings = _settings().token_store
    if store_settings.backend == "sqlite":
        return SQLiteTokenStore(store_settings.sqlite_path, get_token_cipher_service())
    return InMemoryTokenStore()


@lru_cache()
def get_token_manager() -> TokenManager:
    """Provide the process-wide credential and token manager."""
    zoho = _settings().zoho
    return TokenManager(
        get_oauth_client(),
        get_token_store(),
        default_expires_in=zoho.default_expires_in,
        refresh_skew=timedelta(seconds=zoho.refresh_skew_seconds),
    )


@lru_cache()
def get_zoho_upstream() -> UpstreamClient:
    settings = _settings()
    return UpstreamClient(
        settings.zoho.api_base_url,
        auth_scheme="Zoho-oauthtoken",
        timeout_seconds=settings.dispatch.timeout_seconds,
    )


@lru_cache()
def get_zoho_executor() -> OAuthToolExecutor:
    """Provide the tool executor for the Zoho CRM server."""
    service = ZohoCRMService(get_zoho_upstream(), retry_config=_retry_config())
    return OAuthToolExecutor(
        get_token_manager(),
        service.handlers(),
        server_name=_settings().server_name,
    )


@lru_cache()
def get_influxdb_executor() -> StaticTokenToolExecutor:
    """Provide the tool executor for the InfluxDB server."""
    settings = _settings()
    upstream = UpstreamClient(
        settings.influxdb.url,
        auth_scheme="Token",
        timeout_seconds=settings.dispatch.timeout_seconds,
    )
    service = InfluxDBService(
        upstream, default_org=settings.influxdb.org, retry_config=_retry_config()
    )
    return StaticTokenToolExecutor(
        service.handlers(),
        server_name="INFLUXDB",
        token_key="influxdb_token",
        fallback_token=settings.influxdb.token,
    )


__all__ = [
    "get_influxdb_executor",
    "get_oauth_client",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_manager",
    "get_token_store",
    "get_zoho_executor",
    "get_zoho_upstream",
]

"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_influxdb_executor,
    get_oauth_client,
    get_oauth_state_encoder,
    get_token_cipher_service,
    get_token_manager,
    get_token_store,
    get_zoho_executor,
    get_zoho_upstream,
)
from .config import get_app_settings, get_security_settings

__all__ = [
    "get_app_settings",
    "get_influxdb_executor",
    "get_oauth_client",
    "get_oauth_state_encoder",
    "get_security_settings",
    "get_token_cipher_service",
    "get_token_manager",
    "get_token_store",
    "get_zoho_executor",
    "get_zoho_upstream",
]

"""
Application configuration models and helpers.

Centralizes settings management so the tool executor, the OAuth token manager
and the HTTP boundary share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class ZohoSettings(BaseSettings):
    """Endpoints and OAuth parameters for the Zoho CRM adapter."""

    model_config = SettingsConfigDict(env_prefix="ZOHO_")

    accounts_url: str = Field(
        "https://accounts.zoho.in",
        description="Accounts server hosting the consent screen and token endpoint.",
    )
    api_base_url: str = "https://www.zohoapis.in/crm/v2"
    redirect_uri: str = "http://localhost:3000/oauth/callback"
    scope: str = "ZohoCRM.modules.ALL"
    default_expires_in: int = Field(
        3600,
        description="Token lifetime assumed when the provider omits expires_in.",
    )
    refresh_skew_seconds: int = Field(
        0,
        ge=0,
        description="Refresh this many seconds before expires_at is reached.",
    )

    @property
    def token_url(self) -> str:
        return f"{self.accounts_url.rstrip('/')}/oauth/v2/token"

    @property
    def auth_url(self) -> str:
        return f"{self.accounts_url.rstrip('/')}/oauth/v2/auth"


class DispatchSettings(BaseSettings):
    """Timeouts and caller-side retry policy for upstream API calls."""

    model_config = SettingsConfigDict(env_prefix="DISPATCH_")

    timeout_seconds: float = Field(10.0, gt=0)
    retry_attempts: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(0.5, ge=0)


class TokenStoreSettings(BaseSettings):
    """Where token records live between calls."""

    model_config = SettingsConfigDict(env_prefix="TOKEN_STORE_")

    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "data/tokens.db"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    previous_token_encryption_secrets: str = Field(
        "",
        description="Comma-separated retired secrets still accepted for decryption.",
    )
    oauth_state_secret: Optional[str] = Field(
        None,
        description="HMAC key for OAuth state values; a random key is used when unset.",
    )
    oauth_state_ttl_seconds: int = 900

    @property
    def previous_secrets(self) -> tuple[str, ...]:
        return tuple(
            item.strip()
            for item in self.previous_token_encryption_secrets.split(",")
            if item.strip()
        )


class InfluxDBSettings(BaseSettings):
    """Fallback connection details for the InfluxDB adapter."""

    model_config = SettingsConfigDict(env_prefix="INFLUXDB_")

    url: str = "http://localhost:8086"
    token: Optional[str] = None
    org: Optional[str] = None


class AppSettings(BaseSettings):
    """Root settings object for the adapter service."""

    model_config = SettingsConfigDict(
        env_prefix="APP_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = "development"
    log_level: str = "INFO"
    server_name: str = Field(
        "ZOHOMCP",
        description="Key looked up under selected_server_credentials in tool calls.",
    )
    zoho: ZohoSettings = Field(default_factory=ZohoSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    token_store: TokenStoreSettings = Field(default_factory=TokenStoreSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    influxdb: InfluxDBSettings = Field(default_factory=InfluxDBSettings)

    @model_validator(mode="after")
    def _require_secret_for_persistent_store(self) -> "AppSettings":
        if self.token_store.backend == "sqlite" and not self.security.token_encryption_secret:
            raise ValueError(
                "TOKEN_ENCRYPTION_SECRET is required when TOKEN_STORE_BACKEND=sqlite."
            )
        return self


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "DispatchSettings",
    "InfluxDBSettings",
    "SecuritySettings",
    "TokenStoreSettings",
    "ZohoSettings",
    "get_settings",
]

"""
Domain models for OAuth credentials and token state.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CredentialRecord(BaseModel):
    """One OAuth client's identity and secret material."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str = Field(..., repr=False)
    authorization_code: Optional[str] = Field(None, repr=False)

    @field_validator("client_id", "client_secret")
    @classmethod
    def _require_value(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("authorization_code")
    @classmethod
    def _blank_code_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TokenGrant(BaseModel):
    """Decoded body of a successful token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    api_domain: Optional[str] = None
    token_type: Optional[str] = None

    @field_validator("access_token")
    @classmethod
    def _require_token(cls, value: str) -> str:
        if not value:
            raise ValueError("access_token missing from token response")
        return value


class TokenRecord(BaseModel):
    """Current token state for one client; replaced wholesale on every grant."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    expires_at: datetime
    scope: Optional[str] = None
    api_domain: Optional[str] = None
    token_type: Optional[str] = None
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("expires_at", "issued_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_grant(
        cls,
        client_id: str,
        grant: TokenGrant,
        *,
        issued_at: datetime,
        default_expires_in: int = 3600,
        previous_refresh_token: Optional[str] = None,
    ) -> "TokenRecord":
        """Build a record from a grant, keeping the old refresh token unless rotated."""
        expires_in = grant.expires_in if grant.expires_in is not None else default_expires_in
        return cls(
            client_id=client_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or previous_refresh_token,
            expires_at=issued_at + timedelta(seconds=expires_in),
            scope=grant.scope,
            api_domain=grant.api_domain,
            token_type=grant.token_type,
            issued_at=issued_at,
        )

    def is_expired(
        self, now: Optional[datetime] = None, *, skew: timedelta = timedelta(0)
    ) -> bool:
        """True once ``now`` reaches ``expires_at`` (minus an optional skew)."""
        current = now or datetime.now(timezone.utc)
        return current >= self.expires_at - skew


__all__ = ["CredentialRecord", "TokenGrant", "TokenRecord"]

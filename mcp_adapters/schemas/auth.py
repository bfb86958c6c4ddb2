"""Schemas related to OAuth flows."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by the provider.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthorizationStart(BaseModel):
    """Consent URL handed back to a client that still has to authorize."""

    authorization_url: str
    state: str


class ConnectionStatus(BaseModel):
    """Result of a completed authorization code exchange."""

    status: str = "connected"
    client_id: str
    expires_at: str
    redirect_to: str | None = None


__all__ = ["AuthorizationStart", "ConnectionStatus", "OAuthCallbackPayload"]

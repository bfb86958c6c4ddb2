"""Request and response schemas."""

from .auth import AuthorizationStart, ConnectionStatus, OAuthCallbackPayload
from .tools import ToolCallRequest, ToolCallResult

__all__ = [
    "AuthorizationStart",
    "ConnectionStatus",
    "OAuthCallbackPayload",
    "ToolCallRequest",
    "ToolCallResult",
]

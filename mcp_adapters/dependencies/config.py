"""
Settings dependencies for the HTTP layer.
"""

from typing import Annotated

from fastapi import Depends

from mcp_adapters.core.config import AppSettings, SecuritySettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning the process-wide settings."""
    return get_settings()


def get_security_settings(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> SecuritySettings:
    """Only the security section; overriding ``get_app_settings`` flows through."""
    return settings.security


__all__ = ["get_app_settings", "get_security_settings"]

"""
FastAPI application entrypoint for the MCP adapter service.
"""

from __future__ import annotations

from fastapi import FastAPI

from mcp_adapters.api.routes import router as api_router
from mcp_adapters.core.config import get_settings
from mcp_adapters.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="MCP Adapters",
        version="0.1.0",
        description="Tool-call gateway for OAuth and token authenticated upstream APIs.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]

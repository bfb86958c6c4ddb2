"""Schemas for inbound tool invocations."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolCallRequest(BaseModel):
    """Body of ``POST /tools/{name}``.

    Credentials travel inside ``arguments`` using any supported shape; top-level
    ``selected_server_credentials``/``__credentials__`` are merged in as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    arguments: Dict[str, Any] = Field(default_factory=dict)
    selected_server_credentials: Optional[Dict[str, Any]] = None
    legacy_credentials: Optional[Dict[str, Any]] = Field(None, alias="__credentials__")

    def merged_arguments(self) -> Dict[str, Any]:
        merged = dict(self.arguments)
        if self.selected_server_credentials is not None:
            merged.setdefault("selected_server_credentials", self.selected_server_credentials)
        if self.legacy_credentials is not None:
            merged.setdefault("__credentials__", self.legacy_credentials)
        return merged


class ToolCallResult(BaseModel):
    """Envelope returned for every tool call."""

    model_config = ConfigDict(extra="allow")

    success: bool
    error: Optional[str] = None


__all__ = ["ToolCallRequest", "ToolCallResult"]

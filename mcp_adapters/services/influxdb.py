"""InfluxDB v2 operations for token-authenticated (non-OAuth) tool calls."""

from __future__ import annotations

from typing import Any, Dict

from mcp_adapters.clients.upstream import UpstreamClient
from mcp_adapters.services.tool_executor import ToolHandler
from mcp_adapters.utils.http import RetryConfig, request_with_retry

LINE_PROTOCOL_CONTENT_TYPE = "text/plain; charset=utf-8"
PRECISIONS = frozenset({"ns", "us", "ms", "s"})


class InfluxDBService:
    """Write line protocol and inspect buckets through ``UpstreamClient``."""

    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        default_org: str | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._upstream = upstream
        self._default_org = default_org
        self._retry = retry_config or RetryConfig()

    async def write_line_protocol(self, token: str, args: Dict[str, Any]) -> Dict[str, Any]:
        org = args.get("org") or self._default_org
        bucket = args.get("bucket")
        data = args.get("data")
        if not org or not bucket or not data:
            raise ValueError("org, bucket and data are required to write points")
        params: Dict[str, Any] = {"org": org, "bucket": bucket}
        precision = args.get("precision")
        if precision:
            if precision not in PRECISIONS:
                raise ValueError(f"precision must be one of {sorted(PRECISIONS)}")
            params["precision"] = precision

        await self._upstream.request(
            token,
            "/api/v2/write",
            "POST",
            data,
            params=params,
            content_type=LINE_PROTOCOL_CONTENT_TYPE,
        )
        return {
            "success": True,
            "message": "Data written successfully",
            "lines": len(data.splitlines()),
        }

    async def list_buckets(self, token: str, args: Dict[str, Any]) -> Any:
        org = args.get("org") or self._default_org
        params = {"org": org} if org else None
        return await request_with_retry(
            self._upstream.request,
            token,
            "/api/v2/buckets",
            params=params,
            retry_config=self._retry,
            method="GET",
        )

    def handlers(self) -> Dict[str, ToolHandler]:
        return {
            "write_data": self.write_line_protocol,
            "list_buckets": self.list_buckets,
        }


__all__ = ["InfluxDBService", "LINE_PROTOCOL_CONTENT_TYPE"]

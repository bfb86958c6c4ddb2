"""Authenticated single-shot requests against a vendor REST API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)

TRANSPORT_ERROR_STATUS = 0
"""Synthetic status used when no upstream response was received."""

DEFAULT_CONTENT_TYPE = "application/json"


class DispatchError(Exception):
    """An upstream call failed.

    ``kind`` is ``"http"`` for upstream-returned statuses, ``"transport"`` for
    DNS/connect/read failures and ``"timeout"`` when the call was cancelled.
    """

    kind = "http"

    def __init__(
        self,
        message: str,
        *,
        status: int,
        url: str,
        method: str,
        body: Any = None,
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url
        self.method = method
        self.body = body
        if kind is not None:
            self.kind = kind

    @property
    def is_transport_failure(self) -> bool:
        return self.status == TRANSPORT_ERROR_STATUS


class DispatchTimeoutError(DispatchError):
    """The upstream did not answer within the configured timeout."""

    kind = "timeout"


class UpstreamClient:
    """Issue one authenticated HTTP call and classify the outcome.

    The client never retries; retry policy belongs to the caller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_scheme: str = "Bearer",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth_scheme = auth_scheme
        self._timeout = timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def request(
        self,
        access_token: str,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> Any:
        """Perform the call and return the decoded payload."""
        method = method.upper()
        url = f"{self._base_url}{endpoint}"
        headers = {
            "Authorization": f"{self._auth_scheme} {access_token}",
            "Content-Type": content_type,
        }
        content: Optional[bytes | str] = None
        if body is not None:
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)

        logger.info("Upstream request %s %s", method, url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await asyncio.wait_for(
                    client.request(
                        method, url, headers=headers, content=content, params=params
                    ),
                    timeout=self._timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("Upstream %s %s timed out after %ss", method, url, self._timeout)
            raise DispatchTimeoutError(
                f"{method} {url} timed out after {self._timeout}s",
                status=TRANSPORT_ERROR_STATUS,
                url=url,
                method=method,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Upstream %s %s transport failure: %r", method, url, exc)
            raise DispatchError(
                f"{method} {url} failed before a response was received: {exc!r}",
                status=TRANSPORT_ERROR_STATUS,
                url=url,
                method=method,
                kind="transport",
            ) from exc

        payload = _decode(response)
        if not response.is_success:
            logger.error(
                "Upstream API error: status=%s url=%s body=%s",
                response.status_code,
                url,
                payload,
            )
            raise DispatchError(
                f"{method} {url} returned {response.status_code}: {_summarize(payload)}",
                status=response.status_code,
                url=url,
                method=method,
                body=payload,
            )
        return payload


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _summarize(payload: Any) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error_description", "error", "code"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        return json.dumps(payload)[:200]
    if payload is None:
        return "empty response"
    return str(payload)[:200]


__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "DispatchError",
    "DispatchTimeoutError",
    "TRANSPORT_ERROR_STATUS",
    "UpstreamClient",
]

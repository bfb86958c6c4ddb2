from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from mcp_adapters.clients.upstream import (
    TRANSPORT_ERROR_STATUS,
    DispatchError,
    DispatchTimeoutError,
    UpstreamClient,
)
from mcp_adapters.utils.http import RetryConfig, is_retryable, request_with_retry

BASE_URL = "https://api.example.com/crm/v2"


def _client(handler, **kwargs) -> UpstreamClient:
    return UpstreamClient(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_get_sends_authorization_and_returns_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": "1"}]})

    client = _client(handler, auth_scheme="Zoho-oauthtoken")
    payload = await client.request("AT1", "/Leads", params={"page": 1})

    assert payload == {"data": [{"id": "1"}]}
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/crm/v2/Leads"
    assert request.url.params["page"] == "1"
    assert request.headers["Authorization"] == "Zoho-oauthtoken AT1"
    assert request.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_json_body_is_serialized() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"data": [{"code": "SUCCESS"}]})

    body = {"data": [{"Last_Name": "Doe"}]}
    await _client(handler).request("AT1", "/Leads", "post", body)

    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == body
    assert seen[0].headers["Authorization"] == "Bearer AT1"


@pytest.mark.asyncio
async def test_string_body_and_content_type_override_are_sent_verbatim() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    result = await _client(handler, auth_scheme="Token").request(
        "secret",
        "/api/v2/write",
        "POST",
        "cpu,host=a value=1",
        content_type="text/plain; charset=utf-8",
    )

    assert result is None
    assert seen[0].content == b"cpu,host=a value=1"
    assert seen[0].headers["Content-Type"] == "text/plain; charset=utf-8"
    assert seen[0].headers["Authorization"] == "Token secret"


@pytest.mark.asyncio
async def test_non_json_success_body_is_returned_as_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="ok")

    assert await _client(handler).request("AT1", "/ping") == "ok"


@pytest.mark.asyncio
async def test_http_error_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"code": "INVALID_TOKEN", "message": "invalid oauth token"})

    with pytest.raises(DispatchError) as exc_info:
        await _client(handler).request("stale", "/Leads")

    error = exc_info.value
    assert error.status == 401
    assert error.kind == "http"
    assert error.body == {"code": "INVALID_TOKEN", "message": "invalid oauth token"}
    assert "invalid oauth token" in str(error)
    assert not error.is_transport_failure


@pytest.mark.asyncio
async def test_transport_failure_uses_synthetic_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    with pytest.raises(DispatchError) as exc_info:
        await _client(handler).request("AT1", "/Leads")

    error = exc_info.value
    assert error.status == TRANSPORT_ERROR_STATUS
    assert error.kind == "transport"
    assert error.is_transport_failure
    assert "name resolution failed" in str(error)


@pytest.mark.asyncio
async def test_slow_upstream_raises_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    with pytest.raises(DispatchTimeoutError) as exc_info:
        await _client(handler, timeout_seconds=0.05).request("AT1", "/Leads")

    assert exc_info.value.kind == "timeout"
    assert exc_info.value.status == TRANSPORT_ERROR_STATUS


def _error(status: int, kind: str | None = None) -> DispatchError:
    return DispatchError("boom", status=status, url=BASE_URL, method="GET", kind=kind)


def test_retryable_classification() -> None:
    assert is_retryable(_error(503))
    assert is_retryable(_error(429))
    assert is_retryable(_error(0, kind="transport"))
    assert is_retryable(DispatchTimeoutError("slow", status=0, url=BASE_URL, method="GET"))
    assert not is_retryable(_error(400))
    assert not is_retryable(_error(401))


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_get_failure() -> None:
    calls: list[str] = []

    async def flaky(path: str, method: str = "GET"):
        calls.append(method)
        if len(calls) < 3:
            raise _error(503)
        return {"ok": path}

    result = await request_with_retry(
        flaky, "/Leads", retry_config=RetryConfig(attempts=3, backoff_seconds=0)
    )

    assert result == {"ok": "/Leads"}
    assert calls == ["GET", "GET", "GET"]


@pytest.mark.asyncio
async def test_retry_gives_up_after_configured_attempts() -> None:
    calls = 0

    async def down(method: str = "GET"):
        nonlocal calls
        calls += 1
        raise _error(502)

    with pytest.raises(DispatchError):
        await request_with_retry(down, retry_config=RetryConfig(attempts=2, backoff_seconds=0))

    assert calls == 2


@pytest.mark.asyncio
async def test_non_idempotent_and_client_errors_are_not_retried() -> None:
    calls = 0

    async def failing(method: str = "GET"):
        nonlocal calls
        calls += 1
        raise _error(503 if method == "POST" else 404)

    config = RetryConfig(attempts=5, backoff_seconds=0)
    with pytest.raises(DispatchError):
        await request_with_retry(failing, retry_config=config, method="POST")
    with pytest.raises(DispatchError):
        await request_with_retry(failing, retry_config=config)

    assert calls == 2

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import HTTPException

from mcp_adapters.clients.oauth import (
    AuthExchangeError,
    OAuthClient,
    OAuthStateEncoder,
    TokenRefreshError,
)
from mcp_adapters.core.config import ZohoSettings


def _settings() -> ZohoSettings:
    return ZohoSettings(
        accounts_url="https://accounts.example.com",
        redirect_uri="http://localhost:3000/oauth/callback",
        scope="ZohoCRM.modules.ALL",
    )


def _client(handler) -> OAuthClient:
    return OAuthClient(_settings(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_exchange_posts_form_encoded_authorization_code() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "access_token": "AT1",
                "refresh_token": "RT1",
                "expires_in": 3600,
                "api_domain": "https://www.zohoapis.in",
            },
        )

    grant = await _client(handler).exchange_authorization_code("abc", "xyz", "code123")

    assert grant.access_token == "AT1"
    assert grant.refresh_token == "RT1"
    assert grant.api_domain == "https://www.zohoapis.in"

    request = seen[0]
    assert str(request.url) == "https://accounts.example.com/oauth/v2/token"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form == {
        "client_id": ["abc"],
        "client_secret": ["xyz"],
        "grant_type": ["authorization_code"],
        "code": ["code123"],
        "redirect_uri": ["http://localhost:3000/oauth/callback"],
    }


@pytest.mark.asyncio
async def test_exchange_surfaces_error_reported_with_http_200() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "invalid_code"})

    with pytest.raises(AuthExchangeError) as exc_info:
        await _client(handler).exchange_authorization_code("abc", "xyz", "used-code")

    assert "invalid_code" in str(exc_info.value)
    assert exc_info.value.error_code == "invalid_code"
    assert exc_info.value.rejected_by_provider


@pytest.mark.asyncio
async def test_exchange_includes_provider_description() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_client", "error_description": "Client secret mismatch"},
        )

    with pytest.raises(AuthExchangeError) as exc_info:
        await _client(handler).exchange_authorization_code("abc", "bad", "code")

    message = str(exc_info.value)
    assert "Client secret mismatch" in message
    assert "invalid_client" in message
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_exchange_network_failure_is_auth_exchange_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AuthExchangeError) as exc_info:
        await _client(handler).exchange_authorization_code("abc", "xyz", "code")

    assert "connection refused" in str(exc_info.value)
    assert not exc_info.value.rejected_by_provider


@pytest.mark.asyncio
async def test_exchange_rejects_payload_without_access_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"refresh_token": "RT1"})

    with pytest.raises(AuthExchangeError, match="incomplete token payload"):
        await _client(handler).exchange_authorization_code("abc", "xyz", "code")


@pytest.mark.asyncio
async def test_refresh_invalid_grant_is_token_refresh_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["RT1"]
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(TokenRefreshError) as exc_info:
        await _client(handler).refresh_token("abc", "xyz", "RT1")

    assert "invalid_grant" in str(exc_info.value)
    assert exc_info.value.error_code == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_without_rotation_leaves_refresh_token_unset() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "AT2", "expires_in": 3600})

    grant = await _client(handler).refresh_token("abc", "xyz", "RT1")

    assert grant.access_token == "AT2"
    assert grant.refresh_token is None


def test_authorization_url_carries_offline_access_and_state() -> None:
    client = OAuthClient(_settings())

    url = client.build_authorization_url("abc", state="opaque")

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
        "https://accounts.example.com/oauth/v2/auth"
    )
    query = parse_qs(parsed.query)
    assert query["client_id"] == ["abc"]
    assert query["access_type"] == ["offline"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["ZohoCRM.modules.ALL"]
    assert query["state"] == ["opaque"]


def test_state_encoder_round_trip_and_tamper_detection() -> None:
    encoder = OAuthStateEncoder("state-secret")
    token = encoder.encode({"client_id": "abc", "nonce": "n"})

    assert encoder.decode(token) == {"client_id": "abc", "nonce": "n"}

    with pytest.raises(HTTPException) as exc_info:
        OAuthStateEncoder("other-secret").decode(token)
    assert exc_info.value.status_code == 400

    with pytest.raises(HTTPException):
        encoder.decode("%%%not-base64%%%")

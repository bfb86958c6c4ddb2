"""
FastAPI routes exposing tool execution and the OAuth consent round-trip.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from mcp_adapters.clients.oauth import AuthExchangeError
from mcp_adapters.dependencies import (
    get_influxdb_executor,
    get_oauth_state_encoder,
    get_security_settings,
    get_token_manager,
    get_zoho_executor,
)
from mcp_adapters.schemas import (
    AuthorizationStart,
    ConnectionStatus,
    OAuthCallbackPayload,
    ToolCallRequest,
    ToolCallResult,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/tools", status_code=HTTPStatus.OK)
async def list_tools(
    zoho: Annotated[Any, Depends(get_zoho_executor)],
    influxdb: Annotated[Any, Depends(get_influxdb_executor)],
) -> dict:
    """Names of the tools served by each adapter."""
    return {"zoho": zoho.tool_names, "influxdb": influxdb.tool_names}


@router.post("/tools/zoho/{tool_name}", response_model=ToolCallResult)
async def call_zoho_tool(
    tool_name: str,
    payload: ToolCallRequest,
    executor: Annotated[Any, Depends(get_zoho_executor)],
) -> dict:
    """Run a Zoho CRM tool; failures come back as ``success: false``."""
    return await executor.execute(tool_name, payload.merged_arguments())


@router.post("/tools/influxdb/{tool_name}", response_model=ToolCallResult)
async def call_influxdb_tool(
    tool_name: str,
    payload: ToolCallRequest,
    executor: Annotated[Any, Depends(get_influxdb_executor)],
) -> dict:
    """Run an InfluxDB tool; failures come back as ``success: false``."""
    return await executor.execute(tool_name, payload.merged_arguments())


@router.get("/oauth/zoho/authorize", status_code=HTTPStatus.OK)
async def start_zoho_oauth_flow(
    request: Request,
    token_manager: Annotated[Any, Depends(get_token_manager)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    client_id: str = Query(..., description="OAuth client initiating authorization."),
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful authorization.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state = state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "client_id": client_id,
            "redirect_to": redirect_to,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    authorization_url = token_manager.build_authorization_url(client_id, state=state)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return AuthorizationStart(authorization_url=authorization_url, state=state).model_dump()


@router.post("/oauth/zoho/callback", status_code=HTTPStatus.OK)
async def handle_zoho_oauth_callback(
    payload: OAuthCallbackPayload,
    token_manager: Annotated[Any, Depends(get_token_manager)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    security: Annotated[Any, Depends(get_security_settings)],
) -> dict:
    """Verify the state, redeem the code and store the resulting token."""
    state_data = state_encoder.decode(payload.state)

    try:
        issued_at = datetime.fromisoformat(state_data["issued_at"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing or invalid issued_at in state token.",
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=security.oauth_state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    client_id = state_data.get("client_id")
    if not client_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing client identifier in state token.",
        )

    credentials = token_manager.get_credentials(client_id)
    if credentials is None:
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail=f"No credentials registered for client {client_id}; call set_credentials first.",
        )

    try:
        record = await token_manager.exchange_authorization_code(
            credentials.client_id, credentials.client_secret, payload.code
        )
    except AuthExchangeError as exc:
        logger.warning("OAuth callback exchange failed for client %s: %s", client_id, exc)
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    return ConnectionStatus(
        client_id=client_id,
        expires_at=record.expires_at.isoformat(),
        redirect_to=state_data.get("redirect_to"),
    ).model_dump()


@router.get("/oauth/zoho/callback", status_code=HTTPStatus.OK)
async def handle_zoho_oauth_callback_get(
    request: Request,
    token_manager: Annotated[Any, Depends(get_token_manager)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    security: Annotated[Any, Depends(get_security_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by the provider."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await handle_zoho_oauth_callback(
        payload=OAuthCallbackPayload(state=state, code=code),
        token_manager=token_manager,
        state_encoder=state_encoder,
        security=security,
    )

    redirect_target = result.get("redirect_to")
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result)


@router.delete("/oauth/zoho/tokens/{client_id}", status_code=HTTPStatus.OK)
async def revoke_zoho_token(
    client_id: str,
    token_manager: Annotated[Any, Depends(get_token_manager)],
) -> dict:
    """Forget the stored token so the client must authorize again."""
    if not token_manager.evict(client_id):
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail=f"No token stored for client {client_id}."
        )
    return {"status": "disconnected", "client_id": client_id}

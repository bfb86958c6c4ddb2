"""
Extract client credentials from inbound tool-call bodies.

Supported shapes, tried in this order (first match wins):

1. ``{"selected_server_credentials": {"<SERVER>": {...}}}``
2. ``{"__credentials__": {...}}`` (legacy)
3. ``{"client_id": ..., "client_secret": ...}`` at the top level (legacy)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from pydantic import ValidationError

from mcp_adapters.models.oauth import CredentialRecord

logger = logging.getLogger(__name__)

CREDENTIAL_KEYS = frozenset(
    {
        "selected_server_credentials",
        "__credentials__",
        "client_id",
        "client_secret",
        "authorization_code",
        "code",
    }
)

CredentialExtractor = Callable[[Mapping[str, Any], str], Optional[CredentialRecord]]


class NoCredentialsError(Exception):
    """No recognizable credential shape was found in the request body."""


def _build_record(shape: Mapping[str, Any], source: str) -> CredentialRecord:
    code = shape.get("authorization_code") or shape.get("code")
    try:
        return CredentialRecord(
            client_id=str(shape.get("client_id") or ""),
            client_secret=str(shape.get("client_secret") or ""),
            authorization_code=str(code) if code else None,
        )
    except ValidationError as exc:
        raise NoCredentialsError(
            f"Credentials under {source} must include client_id and client_secret."
        ) from exc


def from_selected_server_credentials(
    body: Mapping[str, Any], server: str
) -> Optional[CredentialRecord]:
    selected = body.get("selected_server_credentials")
    if not isinstance(selected, Mapping):
        return None
    shape = selected.get(server)
    if not isinstance(shape, Mapping):
        return None
    logger.debug("Found credentials in selected_server_credentials.%s", server)
    return _build_record(shape, f"selected_server_credentials.{server}")


def from_legacy_credentials(
    body: Mapping[str, Any], server: str
) -> Optional[CredentialRecord]:
    shape = body.get("__credentials__")
    if not isinstance(shape, Mapping):
        return None
    logger.warning("Found credentials in legacy __credentials__ format")
    return _build_record(shape, "__credentials__")


def from_flat_fields(body: Mapping[str, Any], server: str) -> Optional[CredentialRecord]:
    if not body.get("client_id") or not body.get("client_secret"):
        return None
    logger.warning("Found credentials in direct top-level format (legacy)")
    return _build_record(body, "the request body")


EXTRACTORS: Sequence[CredentialExtractor] = (
    from_selected_server_credentials,
    from_legacy_credentials,
    from_flat_fields,
)


def extract_credentials(
    body: Mapping[str, Any],
    server: str,
    extractors: Sequence[CredentialExtractor] = EXTRACTORS,
) -> CredentialRecord:
    """Run ``extractors`` in order and return the first match.

    A shape that is present but lacks ``client_id``/``client_secret`` fails
    immediately rather than falling through to a lower-precedence shape.
    """
    for extractor in extractors:
        record = extractor(body, server)
        if record is not None:
            return record
    raise NoCredentialsError(
        "No credentials found. Provide client_id and client_secret under "
        f"selected_server_credentials.{server}."
    )


def extract_bearer_token(
    body: Mapping[str, Any],
    server: str,
    *,
    token_key: str = "token",
    fallback: Optional[str] = None,
) -> str:
    """Find a static API token for servers that skip the OAuth dance."""
    selected = body.get("selected_server_credentials")
    candidates = []
    if isinstance(selected, Mapping) and isinstance(selected.get(server), Mapping):
        candidates.append(selected[server])
    if isinstance(body.get("__credentials__"), Mapping):
        candidates.append(body["__credentials__"])
    for shape in candidates:
        token = shape.get(token_key)
        if token:
            return str(token)
    if fallback:
        return fallback
    raise NoCredentialsError(
        f"Missing {server} {token_key}; provide it via credentials or the environment."
    )


def strip_credentials(arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of ``arguments`` without any credential material."""
    return {key: value for key, value in arguments.items() if key not in CREDENTIAL_KEYS}


__all__ = [
    "CREDENTIAL_KEYS",
    "EXTRACTORS",
    "NoCredentialsError",
    "extract_bearer_token",
    "extract_credentials",
    "from_flat_fields",
    "from_legacy_credentials",
    "from_selected_server_credentials",
    "strip_credentials",
]

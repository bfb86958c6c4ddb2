"""Caller-side retry/backoff for idempotent upstream calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from mcp_adapters.clients.upstream import DispatchError

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


def is_retryable(exc: DispatchError) -> bool:
    """Timeouts, transport failures and throttling/5xx answers may be retried."""
    if exc.kind in ("timeout", "transport"):
        return True
    return exc.status in RETRYABLE_STATUSES


async def request_with_retry(
    func: Callable[..., Awaitable[Any]],
    *args,
    retry_config: RetryConfig | None = None,
    method: str = "GET",
    **kwargs,
) -> Any:
    """Call ``func`` and retry retryable failures of idempotent methods.

    ``method`` is forwarded to ``func``; non-idempotent methods get one attempt.
    """
    config = retry_config or RetryConfig()
    attempts = config.attempts if method.upper() in IDEMPOTENT_METHODS else 1
    attempt = 0

    while True:
        try:
            return await func(*args, method=method, **kwargs)
        except DispatchError as exc:
            attempt += 1
            if attempt >= attempts or not is_retryable(exc):
                raise
            delay = config.backoff_seconds * attempt
            logger.info(
                "Retrying %s %s after %s (attempt %s/%s, sleeping %.2fs)",
                exc.method,
                exc.url,
                exc.kind if exc.kind != "http" else exc.status,
                attempt + 1,
                attempts,
                delay,
            )
            await asyncio.sleep(delay)


__all__ = ["IDEMPOTENT_METHODS", "RetryConfig", "is_retryable", "request_with_retry"]

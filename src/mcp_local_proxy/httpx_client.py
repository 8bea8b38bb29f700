"""Outbound HTTP client for relay sessions.

One client is shared by every session of an application. It never follows
redirects and never imposes a read deadline, so long-lived event streams are
bounded only by the upstream and the caller.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie", "proxy-authorization"})


def normalize_verify_ssl(value: bool | str | None) -> bool | str | None:
    """Map CLI/config style values onto what httpx accepts for `verify`."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return value


def mask_headers(headers: httpx.Headers) -> dict[str, str]:
    return {
        key: "***MASKED***" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def create_upstream_client(
    connect_timeout: float | None = 30.0,
    verify_ssl: bool | str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the httpx AsyncClient used for the outbound leg.

    Args:
        connect_timeout: Seconds allowed to establish a connection. Reads,
            writes and pool acquisition have no deadline.
        verify_ssl: Control TLS verification. Use False to disable
            or a path to a certificate bundle.
        transport: Optional transport override, used by tests.

    Returns:
        Configured httpx.AsyncClient instance with logging hooks.
    """
    kwargs: dict[str, Any] = {
        "follow_redirects": False,
        "timeout": httpx.Timeout(None, connect=connect_timeout),
    }

    if transport is not None:
        kwargs["transport"] = transport

    normalized_verify = normalize_verify_ssl(verify_ssl)
    if normalized_verify is not None:
        kwargs["verify"] = normalized_verify

        if isinstance(normalized_verify, bool):
            logger.debug(
                "Configured httpx.AsyncClient verify=%s (SSL verification %s).",
                normalized_verify,
                "enabled" if normalized_verify else "disabled",
            )
        else:
            logger.debug(
                "Configured httpx.AsyncClient using certificate bundle at %s.",
                normalized_verify,
            )

    async def log_request(request: httpx.Request) -> None:
        """Log HTTP request details."""
        logger.info("HTTP Request: %s %s", request.method, request.url)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Request Headers: %s", mask_headers(request.headers))

    async def log_response(response: httpx.Response) -> None:
        """Log HTTP response details."""
        logger.info(
            "HTTP Response: %s %s - %d %s",
            response.request.method,
            response.request.url,
            response.status_code,
            response.reason_phrase,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Response Headers: %s", dict(response.headers))

    kwargs["event_hooks"] = {
        "request": [log_request],
        "response": [log_response],
    }

    return httpx.AsyncClient(**kwargs)

"""Resolve the caller-supplied `url` query parameter into a connectable target."""

from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PORTS: t.Final[dict[str, int]] = {"http": 80, "https": 443}


class TargetError(ValueError):
    """Base class for target resolution failures. Maps to a 400 response."""

    error: str = "invalid url param"


class MissingTargetError(TargetError):
    """The `url` parameter is absent or empty."""

    error = "missing url param"


class InvalidTargetError(TargetError):
    """The `url` parameter is not an absolute URL."""


@dataclass(frozen=True)
class TargetDescriptor:
    """Where a relay session connects to."""

    scheme: t.Literal["http", "https"]
    host: str
    port: int
    path: str = "/"
    query: str = ""

    @property
    def secure(self) -> bool:
        return self.scheme == "https"

    @property
    def target(self) -> str:
        """The request target: path plus query string."""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def url(self) -> httpx.URL:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return httpx.URL(f"{self.scheme}://{host}:{self.port}{self.target}")


def resolve_target(raw: str | None) -> TargetDescriptor:
    """Validate `raw` and pick the transport for it.

    `https` selects the encrypted transport; any other scheme is treated as
    plain `http`. The default port follows the selected transport unless the
    URL names one explicitly.

    Raises:
        MissingTargetError: `raw` is None or empty.
        InvalidTargetError: `raw` has no scheme or host, or cannot be parsed.
    """
    if raw is None or not raw.strip():
        raise MissingTargetError("missing url param")

    raw = raw.strip()
    try:
        parts = urlsplit(raw)
        explicit_port = parts.port
    except ValueError as exc:
        raise InvalidTargetError(f"Invalid target URL {raw!r}: {exc}") from exc

    if not parts.scheme or not parts.hostname:
        raise InvalidTargetError(f"Target URL must be absolute: {raw!r}")

    scheme: t.Literal["http", "https"] = "https" if parts.scheme.lower() == "https" else "http"
    descriptor = TargetDescriptor(
        scheme=scheme,
        host=parts.hostname,
        port=explicit_port if explicit_port is not None else DEFAULT_PORTS[scheme],
        path=parts.path or "/",
        query=parts.query,
    )

    try:
        descriptor.url  # noqa: B018
    except httpx.InvalidURL as exc:
        raise InvalidTargetError(f"Invalid target URL {raw!r}: {exc}") from exc

    logger.debug("Resolved target %s -> %s", raw, descriptor.url)
    return descriptor

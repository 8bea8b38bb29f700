"""Declarative header policies shared by the CORS annotator and the stream relay.

Every header the proxy writes, on either leg, comes from one of the rule tables
below. A rule either pins a fixed value or inherits the value of the same
header from a source mapping, falling back to its default.
"""

from __future__ import annotations

import typing as t
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

DEFAULT_USER_AGENT: t.Final[str] = "mcp-inspector-local-proxy"
EVENT_STREAM: t.Final[str] = "text/event-stream"

CORS_ALLOWED_METHODS: t.Final[tuple[str, ...]] = ("GET", "POST", "OPTIONS", "HEAD")
CORS_ALLOWED_HEADERS: t.Final[tuple[str, ...]] = (
    "Content-Type",
    "Authorization",
    "Accept",
    "Cache-Control",
)


@dataclass(frozen=True)
class HeaderRule:
    """A single header and how its value is derived."""

    name: str
    default: str
    inherit: bool = False

    def resolve(self, source: Mapping[str, str] | None = None) -> str:
        """Return the value for this header given the (case-insensitive) source headers."""
        if self.inherit and source is not None:
            value = source.get(self.name.lower()) or source.get(self.name)
            if value:
                return value
        return self.default


CORS_HEADERS: t.Final[tuple[HeaderRule, ...]] = (
    HeaderRule("Access-Control-Allow-Origin", "*"),
    HeaderRule("Access-Control-Allow-Methods", ",".join(CORS_ALLOWED_METHODS)),
    HeaderRule("Access-Control-Allow-Headers", ", ".join(CORS_ALLOWED_HEADERS)),
)

# Response heads written by the relay. Content-Type is the only header that
# differs between event streams and everything else.
_RELAY_COMMON: t.Final[tuple[HeaderRule, ...]] = (
    HeaderRule("Cache-Control", "no-cache"),
    HeaderRule("Connection", "keep-alive"),
    HeaderRule("Access-Control-Allow-Origin", "*"),
)
STREAM_RESPONSE_HEADERS: t.Final[tuple[HeaderRule, ...]] = (
    HeaderRule("Content-Type", EVENT_STREAM),
    *_RELAY_COMMON,
)
PASSTHROUGH_RESPONSE_HEADERS: t.Final[tuple[HeaderRule, ...]] = (
    HeaderRule("Content-Type", "application/json", inherit=True),
    *_RELAY_COMMON,
)

# Headers httpx manages itself for framing and addressing; everything else on
# an outbound request must come from the outbound rules.
TRANSPORT_MANAGED_HEADERS: t.Final[frozenset[str]] = frozenset(
    {"host", "content-length", "transfer-encoding"},
)


def outbound_header_rules(user_agent: str = DEFAULT_USER_AGENT) -> tuple[HeaderRule, ...]:
    """Return the allow-list of headers sent upstream."""
    return (
        HeaderRule("Accept", EVENT_STREAM, inherit=True),
        HeaderRule("Content-Type", "application/json", inherit=True),
        HeaderRule("Cache-Control", "no-cache"),
        HeaderRule("Connection", "keep-alive"),
        HeaderRule("User-Agent", user_agent),
    )


def apply_rules(
    rules: Iterable[HeaderRule],
    source: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Resolve a rule table into a header dict, in table order."""
    return {rule.name: rule.resolve(source) for rule in rules}


def is_event_stream(content_type: str | None) -> bool:
    return EVENT_STREAM in (content_type or "").lower()


def response_header_rules(upstream_content_type: str | None) -> tuple[HeaderRule, ...]:
    """Pick the response head table for an upstream content type."""
    if is_event_stream(upstream_content_type):
        return STREAM_RESPONSE_HEADERS
    return PASSTHROUGH_RESPONSE_HEADERS


def encode_headers(headers: Mapping[str, str]) -> list[tuple[bytes, bytes]]:
    """Encode a header dict as an ASGI raw header list."""
    return [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in headers.items()
    ]

"""Tests for the declarative header tables."""

import httpx
import pytest

from mcp_local_proxy.header_policy import (
    CORS_HEADERS,
    PASSTHROUGH_RESPONSE_HEADERS,
    STREAM_RESPONSE_HEADERS,
    HeaderRule,
    apply_rules,
    encode_headers,
    is_event_stream,
    outbound_header_rules,
    response_header_rules,
)


def test_cors_policy_values() -> None:
    assert apply_rules(CORS_HEADERS) == {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS,HEAD",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, Accept, Cache-Control",
    }


def test_fixed_rule_ignores_source() -> None:
    rule = HeaderRule("Cache-Control", "no-cache")
    assert rule.resolve({"cache-control": "max-age=60"}) == "no-cache"


def test_inherited_rule_uses_source_case_insensitively() -> None:
    rule = HeaderRule("Accept", "text/event-stream", inherit=True)
    assert rule.resolve(httpx.Headers({"ACCEPT": "application/json"})) == "application/json"
    assert rule.resolve({"accept": "text/plain"}) == "text/plain"


@pytest.mark.parametrize("source", [None, {}, {"accept": ""}])
def test_inherited_rule_falls_back_to_default(source: dict[str, str] | None) -> None:
    rule = HeaderRule("Accept", "text/event-stream", inherit=True)
    assert rule.resolve(source) == "text/event-stream"


def test_outbound_rules_defaults() -> None:
    headers = apply_rules(outbound_header_rules())
    assert headers == {
        "Accept": "text/event-stream",
        "Content-Type": "application/json",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "User-Agent": "mcp-inspector-local-proxy",
    }


def test_outbound_rules_custom_user_agent_and_inbound_values() -> None:
    inbound = {"accept": "application/json", "content-type": "text/plain", "connection": "close"}
    headers = apply_rules(outbound_header_rules("probe/1.0"), inbound)
    assert headers["Accept"] == "application/json"
    assert headers["Content-Type"] == "text/plain"
    assert headers["Connection"] == "keep-alive"
    assert headers["User-Agent"] == "probe/1.0"


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("text/event-stream", True),
        ("text/event-stream; charset=utf-8", True),
        ("TEXT/EVENT-STREAM", True),
        ("application/json", False),
        ("", False),
        (None, False),
    ],
)
def test_is_event_stream(content_type: str | None, expected: bool) -> None:
    assert is_event_stream(content_type) is expected


def test_response_rules_for_event_stream() -> None:
    rules = response_header_rules("text/event-stream; charset=utf-8")
    assert rules is STREAM_RESPONSE_HEADERS
    headers = apply_rules(rules, {"content-type": "text/event-stream; charset=utf-8"})
    assert headers == {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Access-Control-Allow-Origin": "*",
    }


def test_response_rules_for_other_content() -> None:
    rules = response_header_rules("text/html")
    assert rules is PASSTHROUGH_RESPONSE_HEADERS
    assert apply_rules(rules, {"content-type": "text/html"})["Content-Type"] == "text/html"
    assert apply_rules(rules, {})["Content-Type"] == "application/json"


def test_encode_headers_lowercases_names() -> None:
    assert encode_headers({"Content-Type": "text/event-stream"}) == [
        (b"content-type", b"text/event-stream"),
    ]

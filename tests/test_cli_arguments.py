"""Tests for CLI argument handling."""

from __future__ import annotations

import json
import typing as t
from unittest.mock import Mock, patch

import pytest

from mcp_local_proxy.__main__ import _build_settings, _setup_argument_parser
from mcp_local_proxy.httpx_client import create_upstream_client, normalize_verify_ssl
from mcp_local_proxy.proxy_server import DEFAULT_PORT

if t.TYPE_CHECKING:
    from argparse import ArgumentParser
    from pathlib import Path


@pytest.fixture
def parser() -> ArgumentParser:
    """Return a fresh argument parser for each test."""
    return _setup_argument_parser()


def test_defaults(parser: ArgumentParser) -> None:
    settings = _build_settings(parser.parse_args([]), {})
    assert settings.port == DEFAULT_PORT == 6277
    assert settings.bind_host == "127.0.0.1"
    assert settings.keep_alive_timeout == 75
    assert settings.log_level == "INFO"
    assert settings.verify_ssl is True


def test_port_from_environment(parser: ArgumentParser) -> None:
    settings = _build_settings(parser.parse_args([]), {"PORT": "9100"})
    assert settings.port == 9100


def test_port_flag_beats_environment(parser: ArgumentParser) -> None:
    settings = _build_settings(parser.parse_args(["--port", "8080"]), {"PORT": "9100"})
    assert settings.port == 8080


def test_invalid_port_environment(parser: ArgumentParser) -> None:
    with pytest.raises(ValueError, match="PORT must be an integer"):
        _build_settings(parser.parse_args([]), {"PORT": "eighty"})


def test_debug_sets_log_level(parser: ArgumentParser) -> None:
    settings = _build_settings(parser.parse_args(["--debug"]), {})
    assert settings.log_level == "DEBUG"


def test_upstream_options(parser: ArgumentParser) -> None:
    args = parser.parse_args(
        ["--host", "0.0.0.0", "--connect-timeout", "2.5", "--user-agent", "probe/1.0"],  # noqa: S104
    )
    settings = _build_settings(args, {})
    assert settings.bind_host == "0.0.0.0"  # noqa: S104
    assert settings.connect_timeout == 2.5
    assert settings.user_agent == "probe/1.0"


def test_config_file_then_flags(parser: ArgumentParser, tmp_path: Path) -> None:
    config = tmp_path / "proxy.json"
    config.write_text(json.dumps({"port": 7000, "keep_alive_timeout": 120, "user_agent": "from-file"}))

    args = parser.parse_args(["--config", str(config), "--user-agent", "from-flag"])
    settings = _build_settings(args, {})

    assert settings.port == 7000
    assert settings.keep_alive_timeout == 120
    assert settings.user_agent == "from-flag"


def test_verify_ssl_cli_false(parser: ArgumentParser) -> None:
    """Calling --verify-ssl false disables verification."""
    args = parser.parse_args(["--verify-ssl", "false"])
    assert normalize_verify_ssl(args.verify_ssl) is False
    assert _build_settings(args, {}).verify_ssl is False


def test_verify_ssl_cli_true(parser: ArgumentParser) -> None:
    """Passing --verify-ssl true enforces verification."""
    args = parser.parse_args(["--verify-ssl", "true"])
    assert normalize_verify_ssl(args.verify_ssl) is True


def test_verify_ssl_cli_cert_path(parser: ArgumentParser) -> None:
    """Passing a certificate path keeps the string value."""
    args = parser.parse_args(["--verify-ssl", "certs.pem"])
    assert normalize_verify_ssl(args.verify_ssl) == "certs.pem"


def test_verify_ssl_cli_no_verify_alias(parser: ArgumentParser) -> None:
    """The --no-verify-ssl alias sets the value to False."""
    args = parser.parse_args(["--no-verify-ssl"])
    assert args.verify_ssl is False
    assert _build_settings(args, {}).verify_ssl is False


@patch("mcp_local_proxy.httpx_client.httpx.AsyncClient")
def test_upstream_client_disable_ssl(mock_async_client: Mock) -> None:
    """create_upstream_client passes verify=False to httpx when disabled."""
    create_upstream_client(verify_ssl=False)
    kwargs = mock_async_client.call_args.kwargs
    assert kwargs["verify"] is False


@patch("mcp_local_proxy.httpx_client.httpx.AsyncClient")
def test_upstream_client_cert_path(mock_async_client: Mock) -> None:
    """create_upstream_client forwards certificate bundle paths."""
    create_upstream_client(verify_ssl="/tmp/cert.pem")  # noqa: S108
    kwargs = mock_async_client.call_args.kwargs
    assert kwargs["verify"] == "/tmp/cert.pem"  # noqa: S108

"""The entry point for the mcp-local-proxy application. It sets up the logging and runs the main function.

Two ways to run the application:
1. Run the application as a module `uv run -m mcp_local_proxy`
2. Run the application as a package `uv run mcp-local-proxy`

"""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
import typing as t
from collections.abc import Mapping

from .config_loader import load_settings_from_file
from .httpx_client import normalize_verify_ssl
from .proxy_server import DEFAULT_PORT, ProxySettings, run_proxy_server

logger = logging.getLogger(__name__)


def _setup_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Start a local HTTP/SSE reverse proxy. "
            "Requests to /sse?url=<TARGET> are relayed to TARGET and streamed back."
        ),
        epilog=(
            "Examples:\n"
            "  mcp-local-proxy\n"
            "  mcp-local-proxy --port 8080 --debug\n"
            "  PORT=9000 mcp-local-proxy --no-verify-ssl\n"
            "  mcp-local-proxy --config proxy.json\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    server_group = parser.add_argument_group("server options")
    server_group.add_argument(
        "--host",
        default=None,
        help="Host to listen on. Default is 127.0.0.1",
    )
    server_group.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Port to listen on. Defaults to $PORT, then {DEFAULT_PORT}",
    )
    server_group.add_argument(
        "--keep-alive-timeout",
        type=int,
        default=None,
        help="Seconds an idle keep-alive connection stays open. Default is 75",
    )
    server_group.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="FILE_PATH",
        help="Path to a JSON file with proxy settings. Command line options take precedence.",
    )
    server_group.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        help="Enable debug mode with detailed logging output.",
        default=False,
    )

    upstream_group = parser.add_argument_group("upstream options")
    upstream_group.add_argument(
        "--connect-timeout",
        type=float,
        default=None,
        help="Seconds allowed to connect to a target. Default is 30",
    )
    upstream_group.add_argument(
        "--user-agent",
        default=None,
        help="User-Agent sent to targets.",
    )
    upstream_group.add_argument(
        "--verify-ssl",
        default=None,
        metavar="VALUE",
        help="Verify TLS certificates of targets: true/false or a CA bundle path.",
    )
    upstream_group.add_argument(
        "--no-verify-ssl",
        dest="verify_ssl",
        action="store_const",
        const=False,
        help="Disable TLS certificate verification (same as --verify-ssl false).",
    )
    return parser


def _port_from_env(environ: Mapping[str, str]) -> int | None:
    raw = environ.get("PORT")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got {raw!r}") from None


def _build_settings(
    args: argparse.Namespace,
    environ: Mapping[str, str],
) -> ProxySettings:
    """Combine settings: defaults, then --config, then $PORT, then flags."""
    settings = ProxySettings()
    if args.config:
        settings = load_settings_from_file(args.config, settings)

    overrides: dict[str, t.Any] = {}
    env_port = _port_from_env(environ)
    if env_port is not None:
        overrides["port"] = env_port
    if args.port is not None:
        overrides["port"] = args.port
    if args.host is not None:
        overrides["bind_host"] = args.host
    if args.keep_alive_timeout is not None:
        overrides["keep_alive_timeout"] = args.keep_alive_timeout
    if args.connect_timeout is not None:
        overrides["connect_timeout"] = args.connect_timeout
    if args.user_agent is not None:
        overrides["user_agent"] = args.user_agent
    if args.verify_ssl is not None:
        overrides["verify_ssl"] = normalize_verify_ssl(args.verify_ssl)
    if args.debug:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(settings, **overrides)


def main() -> None:
    """Start the proxy using asyncio."""
    parser = _setup_argument_parser()
    args_parsed = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args_parsed.debug else logging.INFO,
        format="[%(levelname)1.1s %(asctime)s.%(msecs).03d %(name)s] %(message)s",
    )

    try:
        settings = _build_settings(args_parsed, os.environ)
    except (FileNotFoundError, json.JSONDecodeError, ValueError) as e:
        # Loader errors are already logged; this covers $PORT as well.
        logger.error(f"Failed to load proxy settings: {e}. Exiting.")
        sys.exit(1)

    asyncio.run(run_proxy_server(settings))


if __name__ == "__main__":
    main()

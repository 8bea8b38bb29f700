"""Create the local proxy application and serve it with uvicorn."""

import contextlib
import logging
import typing as t
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .cors import CORSAnnotatorMiddleware
from .header_policy import DEFAULT_USER_AGENT
from .httpx_client import create_upstream_client
from .relay import RelayEndpoint

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6277


@dataclass
class ProxySettings:
    """Settings for the proxy server."""

    bind_host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    keep_alive_timeout: int = 75
    connect_timeout: float | None = 30.0
    shutdown_timeout: int | None = 5
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool | str = True
    log_level: t.Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


async def _handle_health(_: Request) -> Response:
    """Liveness endpoint."""
    return JSONResponse({"ok": True, "time": datetime.now(timezone.utc).isoformat()})


async def _handle_config(_: Request) -> Response:
    return JSONResponse({"ok": True})


class AnyMethodEndpoint:
    """ASGI endpoint that serves a request handler for every HTTP method.

    Starlette restricts plain function endpoints to the methods listed on the
    route; prefix endpoints here answer whatever method arrives.
    """

    def __init__(self, handler: t.Callable[[Request], t.Awaitable[Response]]) -> None:
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await self.handler(Request(scope, receive))
        await response(scope, receive, send)


async def _handle_not_found(_: Request, __: HTTPException) -> Response:
    return JSONResponse({"error": "not found"}, status_code=404)


def create_starlette_app(
    settings: ProxySettings,
    *,
    upstream_client: httpx.AsyncClient | None = None,
) -> Starlette:
    """Create the proxy application.

    When `upstream_client` is given the caller owns it; otherwise a client is
    opened for the application's lifespan and closed at shutdown.
    """
    relay = RelayEndpoint(upstream_client, user_agent=settings.user_agent)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        if relay.client is not None:
            yield
            return
        async with create_upstream_client(
            connect_timeout=settings.connect_timeout,
            verify_ssl=settings.verify_ssl,
        ) as client:
            relay.client = client
            logger.debug("Upstream client ready")
            try:
                yield
            finally:
                relay.client = None
                logger.debug("Upstream client closed")

    # `{rest:path}` keeps the prefix semantics: /healthz and /sse/x still match.
    app = Starlette(
        routes=[
            Route("/health{rest:path}", endpoint=AnyMethodEndpoint(_handle_health)),
            Route("/sse{rest:path}", endpoint=relay),
            Route("/config{rest:path}", endpoint=AnyMethodEndpoint(_handle_config)),
        ],
        middleware=[Middleware(CORSAnnotatorMiddleware)],
        exception_handlers={404: _handle_not_found},
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False
    return app


async def run_proxy_server(settings: ProxySettings) -> None:
    """Serve the proxy until interrupted.

    Args:
        settings: The settings for the listener and the outbound client.
    """
    starlette_app = create_starlette_app(settings)

    # Event streams idle between messages; keep-alive must outlast that gap.
    config = uvicorn.Config(
        starlette_app,
        host=settings.bind_host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=settings.keep_alive_timeout,
        timeout_graceful_shutdown=settings.shutdown_timeout,
    )
    http_server = uvicorn.Server(config)

    base_url = f"http://{settings.bind_host}:{settings.port}"
    logger.info("MCP Inspector Local Proxy listening on %s", base_url)
    logger.info("  - GET  %s/health", base_url)
    logger.info("  - GET/POST %s/sse?url=<ENCODED_TARGET_URL>", base_url)
    logger.info("  - GET  %s/config", base_url)
    await http_server.serve()

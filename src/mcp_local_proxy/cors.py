"""Cross-origin annotation for every response the proxy writes."""

import logging

from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .header_policy import CORS_HEADERS, apply_rules, encode_headers

logger = logging.getLogger(__name__)

SHORT_CIRCUIT_METHODS = frozenset({"OPTIONS", "HEAD"})


class CORSAnnotatorMiddleware:
    """Apply the fixed CORS policy to every response.

    Unlike starlette's CORSMiddleware, the policy does not depend on the
    request's Origin header. OPTIONS and HEAD requests are answered here with
    an empty 200 and never reach the router.
    """

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
        """
        self.app = app
        self.cors_headers = encode_headers(apply_rules(CORS_HEADERS))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process the request.

        Args:
            scope: The ASGI connection scope.
            receive: The ASGI receive function.
            send: The ASGI send function.
        """
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = self.annotate(message.get("headers", []))
            await send(message)

        if scope["method"] in SHORT_CIRCUIT_METHODS:
            logger.debug("Answering %s %s without routing", scope["method"], scope["path"])
            await Response(status_code=200)(scope, receive, send_with_cors)
            return

        await self.app(scope, receive, send_with_cors)

    def annotate(self, headers: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
        """Put the policy headers first, keeping any value the response set itself."""
        present = {name.lower() for name, _ in headers}
        policy = [(name, value) for name, value in self.cors_headers if name not in present]
        return policy + list(headers)

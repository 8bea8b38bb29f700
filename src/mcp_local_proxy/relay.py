"""Relay one inbound request to its target and stream the answer back.

A RelaySession pairs the caller's ASGI connection with at most one outbound
httpx response. The exchange (connect, forward the body, relay the response)
runs as one task and races a watcher for the caller's disconnect; whichever
finishes first decides the outcome, and the outbound leg is closed exactly
once afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import typing as t
from collections.abc import AsyncIterator

import httpx
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from .header_policy import (
    DEFAULT_USER_AGENT,
    TRANSPORT_MANAGED_HEADERS,
    apply_rules,
    encode_headers,
    outbound_header_rules,
    response_header_rules,
)
from .target import InvalidTargetError, TargetDescriptor, TargetError, resolve_target

logger = logging.getLogger(__name__)


async def _cancel_task(task: asyncio.Task[t.Any]) -> None:
    if task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        return


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class RelaySession:
    """One proxied exchange between a caller and an upstream target."""

    def __init__(
        self,
        client: httpx.AsyncClient | None,
        request: Request,
        target: TargetDescriptor,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.client = client
        self.request = request
        self.target = target
        self.header_rules = outbound_header_rules(user_agent)
        self.headers_sent = False
        self.upstream: httpx.Response | None = None
        self._closed = False
        self._body_done = asyncio.Event()
        if request.method != "POST":
            self._body_done.set()

    async def _inbound_body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.request.stream():
                if chunk:
                    logger.debug("Forwarding %d request bytes to %s", len(chunk), self.target.url)
                    yield chunk
        finally:
            self._body_done.set()

    def build_outbound_request(self) -> httpx.Request:
        """Build the upstream request from the allow-listed headers only."""
        if self.client is None:
            raise RuntimeError("Upstream client is not running")

        outbound = self.client.build_request(
            self.request.method,
            self.target.url,
            headers=apply_rules(self.header_rules, self.request.headers),
            content=self._inbound_body() if self.request.method == "POST" else None,
        )
        allowed = {rule.name.lower() for rule in self.header_rules} | TRANSPORT_MANAGED_HEADERS
        for name in list(outbound.headers.keys()):
            if name.lower() not in allowed:
                del outbound.headers[name]
        return outbound

    async def open(self) -> httpx.Response:
        """Send the outbound request and wait for the upstream response head."""
        outbound = self.build_outbound_request()
        self.upstream = await self.client.send(outbound, stream=True)  # type: ignore[union-attr]
        return self.upstream

    async def aclose(self) -> None:
        """Release the outbound leg. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self.upstream is not None:
            await self.upstream.aclose()
            logger.debug("Closed upstream connection to %s", self.target.url)

    async def run(self, send: Send) -> None:
        """Execute the exchange until it completes, fails or the caller leaves."""
        exchange = asyncio.create_task(self._exchange(send))
        watcher = asyncio.create_task(self._watch_disconnect())
        try:
            done, _ = await asyncio.wait({exchange, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if exchange in done:
                self._report(exchange)
            else:
                logger.info("Caller disconnected; closing upstream %s", self.target.url)
        finally:
            await _cancel_task(exchange)
            await _cancel_task(watcher)
            await self.aclose()

    async def _exchange(self, send: Send) -> None:
        try:
            upstream = await self.open()
            start = self._response_start(upstream)
        except ClientDisconnect:
            logger.info("Caller disconnected while sending its body to %s", self.target.url)
            return
        except httpx.TransportError as exc:
            logger.warning("Upstream %s unreachable: %s", self.target.url, _describe(exc))
            await self._fail(send, 502, "bad gateway", exc)
            return
        except Exception as exc:
            logger.exception("Proxy error while contacting %s", self.target.url)
            await self._fail(send, 500, "proxy error", exc)
            return

        await self._relay_response(send, upstream, start)

    def _response_start(self, upstream: httpx.Response) -> Message:
        rules = response_header_rules(upstream.headers.get("content-type"))
        headers = apply_rules(rules, upstream.headers)
        return {
            "type": "http.response.start",
            "status": upstream.status_code or 200,
            "headers": encode_headers(headers),
        }

    async def _relay_response(self, send: Send, upstream: httpx.Response, start: Message) -> None:
        self.headers_sent = True
        await send(start)

        async for chunk in self._upstream_chunks(upstream):
            if chunk:
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
        await send({"type": "http.response.body", "body": b"", "more_body": False})
        logger.debug("Upstream %s finished", self.target.url)

    @staticmethod
    async def _upstream_chunks(upstream: httpx.Response) -> AsyncIterator[bytes]:
        # Raw bytes are safe to forward as-is: Accept-Encoding is never sent
        # upstream, so the body arrives without a Content-Encoding to declare.
        if upstream.is_stream_consumed:
            # Transports may return a response whose body was already read.
            yield upstream.content
            return
        async for chunk in upstream.aiter_raw():
            yield chunk

    async def _watch_disconnect(self) -> None:
        # The inbound body owns `receive` until it has been forwarded.
        await self._body_done.wait()
        while True:
            message = await self.request.receive()
            if message["type"] == "http.disconnect":
                return

    async def _fail(self, send: Send, status: int, error: str, exc: BaseException) -> None:
        if self.headers_sent:
            return
        self.headers_sent = True
        response = JSONResponse({"error": error, "message": _describe(exc)}, status_code=status)
        await response(self.request.scope, self.request.receive, send)

    def _report(self, exchange: asyncio.Task[None]) -> None:
        # Anything raised here happened after the response head was committed;
        # the caller's stream simply ends.
        exc = exchange.exception()
        if exc is None:
            return
        if isinstance(exc, httpx.TransportError):
            logger.info("Upstream %s failed mid-stream: %s", self.target.url, _describe(exc))
        elif isinstance(exc, OSError):
            logger.info("Caller went away while streaming from %s: %s", self.target.url, _describe(exc))
        else:
            logger.error("Relay from %s aborted", self.target.url, exc_info=exc)


class RelayEndpoint:
    """ASGI endpoint for `/sse`: resolve the target, then run a RelaySession."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.client = client
        self.user_agent = user_agent

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        try:
            target = resolve_target(request.query_params.get("url"))
        except TargetError as exc:
            logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
            body = {"error": exc.error}
            if isinstance(exc, InvalidTargetError):
                body["message"] = str(exc)
            await JSONResponse(body, status_code=400)(scope, receive, send)
            return

        session = RelaySession(self.client, request, target, user_agent=self.user_agent)
        await session.run(send)

"""ASGI middleware applied in front of every route."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from mcp_http.server.context import client_ip
from mcp_http.server.settings import CorsSettings
from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)

AuthCallback = Callable[[Request], bool | Awaitable[bool]]


class CORSMiddleware:
    """Answers every preflight with 204 and stamps the CORS header set on every response.

    The header set is fixed at construction; nothing is reflected from the
    request.
    """

    def __init__(self, app: ASGIApp, cors: CorsSettings):
        self.app = app
        self.headers = cors.headers()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=self.headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in self.headers.items():
                    headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


class RequestGuardMiddleware:
    """Logs each request, applies the optional auth hook and turns stray errors into JSON 500s.

    Sits inside :class:`CORSMiddleware`, so its 401 and 500 bodies still get
    the CORS headers.
    """

    def __init__(self, app: ASGIApp, auth_callback: AuthCallback | None = None):
        self.app = app
        self.auth_callback = auth_callback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        logger.info(
            f"[REQ] ip={client_ip(request)} ua={request.headers.get('user-agent', '')} "
            f"{request.method} {request.url.path}"
        )

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            if self.auth_callback is not None and not await self._authorized(request):
                logger.warning(f"Unauthorized request {request.method} {request.url.path}")
                response = JSONResponse(
                    {"error": "unauthorized", "message": "Request rejected by auth callback"}, status_code=401
                )
                await response(scope, receive, send)
                return

            await self.app(scope, receive, tracking_send)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            if response_started:
                raise
            response = JSONResponse({"error": "internal_error", "message": "Internal server error"}, status_code=500)
            await response(scope, receive, send)

    async def _authorized(self, request: Request) -> bool:
        assert self.auth_callback is not None
        result = self.auth_callback(request)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

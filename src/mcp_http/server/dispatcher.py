"""Protocol dispatcher: the single ingress point of the HTTP server.

Routing is one ordered table of ``(method, path) -> handler`` rules built in
:meth:`Dispatcher.routes`; the first match wins and anything left over ends
in a JSON 404 (or 405 when only the method is wrong). CORS and request
logging wrap the whole table.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import anyio
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from mcp_http.server.context import EndpointResolver
from mcp_http.server.exceptions import SessionStoreError, TransportError
from mcp_http.server.methods import MethodRegistry
from mcp_http.server.middleware import AuthCallback, CORSMiddleware, RequestGuardMiddleware
from mcp_http.server.ndjson import NdjsonServerTransport
from mcp_http.server.resources import ResourceManager
from mcp_http.server.session_store import SessionStore
from mcp_http.server.settings import Settings
from mcp_http.server.sse import SseServerTransport
from mcp_http.server.streamable_http import StreamableHTTPServerTransport
from mcp_http.server.streams import StreamRegistry
from mcp_http.server.tools import ToolManager
from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)


def error_body(error: str, message: str) -> dict[str, str]:
    return {"error": error, "message": message}


async def handle_http_exception(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, HTTPException)
    if exc.status_code == 404:
        body = error_body("not_found", f"No route for {request.method} {request.url.path}")
    elif exc.status_code == 405:
        body = error_body("method_not_allowed", f"{request.method} is not allowed on {request.url.path}")
    else:
        body = error_body("http_error", exc.detail)
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


async def handle_transport_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, TransportError)
    return JSONResponse(error_body(exc.error, exc.message), status_code=exc.status_code)


async def handle_session_store_error(request: Request, exc: Exception) -> Response:
    logger.error(f"Session store unavailable: {exc}")
    return JSONResponse(error_body("session_store_unavailable", str(exc)), status_code=503)


class Dispatcher:
    """Owns the routing table and the per-application transport state."""

    def __init__(
        self,
        settings: Settings,
        tool_manager: ToolManager,
        resource_manager: ResourceManager,
        session_store: SessionStore,
        auth_callback: AuthCallback | None = None,
    ) -> None:
        self.settings = settings
        self.tool_manager = tool_manager
        self.resource_manager = resource_manager
        self.session_store = session_store
        self.auth_callback = auth_callback

        self.endpoints = EndpointResolver(settings)
        self.registry = MethodRegistry(settings, tool_manager, resource_manager, session_store)
        self.sse_streams = StreamRegistry()
        self.sse = SseServerTransport(settings, self.registry, session_store, self.sse_streams, self.endpoints)
        self.http = StreamableHTTPServerTransport(settings, self.registry, session_store, self.endpoints)
        self.ndjson = NdjsonServerTransport(settings, self.registry, session_store, self.endpoints)

    def routes(self) -> list[Route]:
        base = self.endpoints.base
        routes = [
            Route(base or "/", self.manifest, methods=["GET"]),
            Route(f"{base}/api", self.api, methods=["GET"]),
            Route(f"{base}/http", self.http.handle_post, methods=["POST"]),
            Route(f"{base}/http", self.http.handle_get, methods=["GET"]),
            Route(f"{base}/http", self.http.handle_delete, methods=["DELETE"]),
            Route(f"{base}/sse", self.sse.handle_sse, methods=["GET"]),
            Route(f"{base}/sse/message", self.sse.handle_post_message, methods=["POST"]),
            Route(f"{base}/requests", self.ndjson.handle_post, methods=["POST"]),
            Route(f"{base}/requests", self.ndjson.handle_get, methods=["GET"]),
            Route(f"{base}/sessions", self.session_stats, methods=["GET"]),
            Route(f"{base}/sessions/{{session_id}}", self.session_detail, methods=["GET"]),
        ]
        if base:
            # clients that dropped the base path from the endpoint event
            routes.append(Route("/sse/message", self.sse.handle_post_message, methods=["POST"]))
        return routes

    def build_app(self) -> Starlette:
        return Starlette(
            debug=self.settings.debug,
            routes=self.routes(),
            middleware=[
                Middleware(CORSMiddleware, cors=self.settings.cors),
                Middleware(RequestGuardMiddleware, auth_callback=self.auth_callback),
            ],
            exception_handlers={
                HTTPException: handle_http_exception,
                TransportError: handle_transport_error,
                SessionStoreError: handle_session_store_error,
            },
            lifespan=self.lifespan,
        )

    @asynccontextmanager
    async def lifespan(self, app: Starlette) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            if self.settings.session_sweep_interval > 0:
                tg.start_soon(self._sweep_sessions)
            logger.info(f"mcp-http ready on {self.endpoints.base or '/'} (storage={self.session_store.backend_name})")
            try:
                yield
            finally:
                self.sse_streams.close_all()
                self.http.streams.close_all()
                tg.cancel_scope.cancel()
        await self.session_store.aclose()

    async def _sweep_sessions(self) -> None:
        while True:
            await anyio.sleep(self.settings.session_sweep_interval)
            try:
                await self.session_store.cleanup_expired()
            except SessionStoreError:
                logger.exception("Session sweep failed")

    # Static endpoints

    async def manifest(self, request: Request) -> Response:
        tools = [tool.descriptor() for tool in self.tool_manager.list_tools()]
        manifest: dict[str, Any] = {
            "protocolVersion": self.settings.protocol_version,
            "serverInfo": {"name": self.settings.server_name, "version": self.settings.server_version},
            "capabilities": {
                "tools": bool(tools),
                "prompts": False,
                "resources": bool(self.resource_manager.list_resources()),
            },
            "endpoints": self.endpoints.for_request(request),
            "tools": tools,
        }
        return JSONResponse(manifest)

    async def api(self, request: Request) -> Response:
        query: dict[str, Any] = {}
        for key in request.query_params.keys():
            values = request.query_params.getlist(key)
            query[key] = values[0] if len(values) == 1 else values
        logger.debug(f"[API] GET params={query}")
        return JSONResponse({"ok": True, "query": query})

    async def session_stats(self, request: Request) -> Response:
        stats = await self.session_store.stats()
        return JSONResponse(stats.model_dump())

    async def session_detail(self, request: Request) -> Response:
        session_id = request.path_params["session_id"]
        record = await self.session_store.get_session(session_id)
        if record is None:
            raise TransportError(404, "session_not_found", f"Unknown session: {session_id}")
        return JSONResponse(record.model_dump(mode="json"))

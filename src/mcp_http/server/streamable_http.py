"""
Streamable HTTP Transport Module

``POST {base}/http`` takes one JSON-RPC envelope or a batch and answers
either with JSON or with one SSE ``event: message`` frame per response,
depending on the request's ``Accept`` header. ``GET`` opens a keep-alive
push stream for an existing session and ``DELETE`` terminates a session.
Sessions are bound with the ``Mcp-Session-Id`` header.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from sse_starlette.sse import EventSourceResponse, ServerSentEvent
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from mcp_http.server.context import MCP_SESSION_ID_HEADER, EndpointResolver, request_context
from mcp_http.server.exceptions import TransportError
from mcp_http.server.http_body import read_json_body
from mcp_http.server.methods import MethodRegistry
from mcp_http.server.session_store import SessionStore
from mcp_http.server.settings import Settings
from mcp_http.server.sse import SSE_SEPARATOR, message_event, ping_event
from mcp_http.server.streams import StreamRegistry
from mcp_http.server.utilities.logging import get_logger
from mcp_http.types import MessageKind, classify_message, encode_message

logger = get_logger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_SSE = "text/event-stream"


class StreamableHTTPServerTransport:
    """Serves ``{base}/http`` for one application."""

    def __init__(
        self,
        settings: Settings,
        registry: MethodRegistry,
        session_store: SessionStore,
        endpoints: EndpointResolver,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.session_store = session_store
        self.endpoints = endpoints
        # GET push streams, so that DELETE can end them
        self.streams = StreamRegistry()

    def _require_session_header(self, request: Request) -> str:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if not session_id:
            raise TransportError(400, "missing_session_id", "Mcp-Session-Id header is required")
        return session_id

    async def handle_post(self, request: Request) -> Response:
        accept = request.headers.get("accept", "")
        wants_sse = CONTENT_TYPE_SSE in accept
        if not wants_sse and CONTENT_TYPE_JSON not in accept:
            raise TransportError(
                400,
                "missing_accept_header",
                "Accept header must include application/json or text/event-stream",
            )

        payload = await read_json_body(request, max_body_bytes=self.settings.max_body_bytes)
        messages = payload if isinstance(payload, list) else [payload]

        session_id = request.headers.get(MCP_SESSION_ID_HEADER) or None
        context = request_context(request, "http", self.endpoints, session_id=session_id)

        has_requests = any(classify_message(m) in (MessageKind.REQUEST, MessageKind.INVALID) for m in messages)
        if not has_requests:
            await self.registry.dispatch_batch(messages, context)
            return Response(status_code=202)

        if session_id is not None and await self.session_store.update_session(session_id) is None:
            raise TransportError(404, "session_not_found", f"Unknown session: {session_id}")

        responses = await self.registry.dispatch_batch(messages, context)

        headers: dict[str, str] = {}
        if context.session_id:
            headers[MCP_SESSION_ID_HEADER] = context.session_id

        if wants_sse:
            frames = [encode_message(response) for response in responses]

            async def event_generator() -> AsyncIterator[ServerSentEvent]:
                for frame in frames:
                    yield message_event(frame)

            return EventSourceResponse(event_generator(), headers=headers, ping=0, sep=SSE_SEPARATOR)

        body = encode_message(responses[0] if len(responses) == 1 else responses)
        return Response(body, media_type=CONTENT_TYPE_JSON, headers=headers)

    async def handle_get(self, request: Request) -> Response:
        if CONTENT_TYPE_SSE not in request.headers.get("accept", ""):
            raise TransportError(405, "method_not_allowed", "GET requires Accept: text/event-stream")

        session_id = self._require_session_header(request)
        if await self.session_store.update_session(session_id) is None:
            raise TransportError(404, "session_not_found", f"Unknown session: {session_id}")

        stream = self.streams.open(session_id)
        logger.info(f"HTTP push stream opened session={session_id}")

        async def event_generator() -> AsyncIterator[ServerSentEvent]:
            try:
                async for frame in stream.frames():
                    if frame is not None:
                        yield message_event(frame)
            finally:
                stream.close()
                logger.info(f"HTTP push stream closed session={session_id}")

        return EventSourceResponse(
            event_generator(),
            headers={MCP_SESSION_ID_HEADER: session_id},
            ping=self.settings.sse_keepalive_interval,
            ping_message_factory=ping_event,
            sep=SSE_SEPARATOR,
            background=BackgroundTask(stream.close),
        )

    async def handle_delete(self, request: Request) -> Response:
        session_id = self._require_session_header(request)
        if not await self.session_store.delete_session(session_id):
            raise TransportError(404, "session_not_found", f"Unknown session: {session_id}")

        stream = self.streams.get(session_id)
        if stream is not None:
            stream.close()
        return JSONResponse({"ok": True})

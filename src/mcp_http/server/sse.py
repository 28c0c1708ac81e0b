"""
SSE Handshake Transport Module

The legacy two-connection transport:

1. ``GET {base}/sse`` opens a ``text/event-stream`` response. A session is
   created and its stream registered; the first event tells the client where
   to post messages::

       event: endpoint
       data: /mcp/sse/message?sessionId=<id>

2. ``POST {base}/sse/message?sessionId=<id>`` carries one JSON-RPC envelope.
   Its response is pushed into the open stream as an ``event: message``
   frame and the POST is answered with 202. When the stream is gone, the
   POST body itself is a one-frame event stream carrying the same frame.

Keep-alive comments (``: ping``) are sent by the response while it is open
and stop with it.
"""

from __future__ import annotations

import secrets
from collections.abc import AsyncIterator

from sse_starlette.sse import EventSourceResponse, ServerSentEvent
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response

from mcp_http.server.context import MCP_SESSION_ID_HEADER, EndpointResolver, request_context
from mcp_http.server.exceptions import TransportError
from mcp_http.server.http_body import read_json_body
from mcp_http.server.methods import SSE_SESSION_ID_BYTES, MethodRegistry
from mcp_http.server.session_store import SessionStore
from mcp_http.server.settings import Settings
from mcp_http.server.streams import EventStream, StreamRegistry
from mcp_http.server.utilities.logging import get_logger
from mcp_http.types import encode_message

logger = get_logger(__name__)

SSE_SEPARATOR = "\n"


def message_event(data: str) -> ServerSentEvent:
    return ServerSentEvent(data=data, event="message", sep=SSE_SEPARATOR)


def ping_event() -> ServerSentEvent:
    return ServerSentEvent(comment="ping", sep=SSE_SEPARATOR)


class SseServerTransport:
    """Serves the SSE handshake endpoints for one application."""

    def __init__(
        self,
        settings: Settings,
        registry: MethodRegistry,
        session_store: SessionStore,
        streams: StreamRegistry,
        endpoints: EndpointResolver,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.session_store = session_store
        self.streams = streams
        self.endpoints = endpoints

    async def handle_sse(self, request: Request) -> Response:
        session_id = secrets.token_hex(SSE_SESSION_ID_BYTES)
        context = request_context(request, "sse", self.endpoints, session_id=session_id)
        await self.session_store.create_session(session_id, context.session_attributes())

        stream = self.streams.open(session_id)
        stream.on_close(_log_closed)
        logger.info(f"SSE stream opened ip={context.client_ip} ua={context.user_agent} session={session_id}")

        endpoint = self.endpoints.sse_message_path(session_id)

        async def event_generator() -> AsyncIterator[ServerSentEvent]:
            try:
                yield ServerSentEvent(data=endpoint, event="endpoint", sep=SSE_SEPARATOR)
                async for frame in stream.frames():
                    if frame is not None:
                        yield message_event(frame)
            finally:
                stream.close()

        return EventSourceResponse(
            event_generator(),
            headers={MCP_SESSION_ID_HEADER: session_id},
            ping=self.settings.sse_keepalive_interval,
            ping_message_factory=ping_event,
            sep=SSE_SEPARATOR,
            # covers a client that goes away before the first event is pulled
            background=BackgroundTask(stream.close),
        )

    async def handle_post_message(self, request: Request) -> Response:
        session_id = request.query_params.get("sessionId")
        if not session_id:
            raise TransportError(400, "missing_session_id", "sessionId query parameter is required")

        record = await self.session_store.get_session(session_id)
        if record is None:
            raise TransportError(404, "session_not_found", f"Unknown session: {session_id}")

        message = await read_json_body(request, max_body_bytes=self.settings.max_body_bytes)
        await self.session_store.update_session(
            session_id,
            {"last_message": message, "message_count": int(record.data.get("message_count", 0)) + 1},
        )

        context = request_context(request, "sse", self.endpoints, session_id=session_id)
        response = await self.registry.dispatch(message, context)
        if response is None:
            return Response("Accepted", status_code=202)

        frame = encode_message(response)
        stream = self.streams.get(session_id)
        if stream is not None and stream.push(frame):
            logger.debug(f"Pushed response into SSE stream {session_id}")
            return Response("Accepted", status_code=202)

        logger.debug(f"SSE stream {session_id} unavailable, answering on the POST")

        async def single_frame() -> AsyncIterator[ServerSentEvent]:
            yield message_event(frame)

        return EventSourceResponse(single_frame(), status_code=202, ping=0, sep=SSE_SEPARATOR)


def _log_closed(stream: EventStream) -> None:
    logger.info(f"SSE stream closed session={stream.session_id}")

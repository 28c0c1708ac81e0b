"""
NDJSON Transport Module

The earliest client edition talks to ``{base}/requests``:

- ``POST`` carries exactly one JSON-RPC envelope and is answered with
  exactly one newline-terminated JSON object.
- ``GET`` opens an ``application/x-ndjson`` push stream that starts with an
  ``{"type":"open"}`` line and then sends a ``{"type":"ping"}`` line
  whenever the stream has been idle for the keep-alive interval.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import AsyncIterator
from typing import Any

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from mcp_http.server.context import MCP_SESSION_ID_HEADER, EndpointResolver, request_context
from mcp_http.server.exceptions import TransportError
from mcp_http.server.http_body import read_json_body
from mcp_http.server.methods import MethodRegistry
from mcp_http.server.session_store import SessionStore
from mcp_http.server.settings import Settings
from mcp_http.server.streams import EventStream
from mcp_http.server.utilities.logging import get_logger
from mcp_http.types import (
    INVALID_REQUEST,
    PARSE_ERROR,
    JSONRPCResponse,
    JSONRPCResultResponse,
    encode_message,
    error_response,
)

logger = get_logger(__name__)

CONTENT_TYPE_NDJSON = "application/x-ndjson"


def ndjson_line(payload: Any) -> str:
    return encode_message(payload) + "\n"


class NdjsonServerTransport:
    """Serves ``{base}/requests`` for one application."""

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

    async def handle_post(self, request: Request) -> Response:
        try:
            message = await read_json_body(request, max_body_bytes=self.settings.max_body_bytes)
        except TransportError as e:
            if e.error != "invalid_json":
                raise
            return self._line_response(error_response(None, PARSE_ERROR, f"Parse error: {e.message}"))

        if not isinstance(message, dict):
            return self._line_response(
                error_response(None, INVALID_REQUEST, "Invalid Request: expected a single JSON object")
            )

        session_id = request.headers.get(MCP_SESSION_ID_HEADER) or None
        if session_id is not None and await self.session_store.update_session(session_id) is None:
            session_id = None

        context = request_context(request, "ndjson", self.endpoints, session_id=session_id)
        response = await self.registry.dispatch(message, context)
        if response is None:
            # notifications are acknowledged with an empty result
            response = JSONRPCResultResponse(id=message.get("id"), result={})

        headers = {MCP_SESSION_ID_HEADER: context.session_id} if context.session_id else None
        return self._line_response(response, headers=headers)

    def _line_response(self, response: JSONRPCResponse, headers: dict[str, str] | None = None) -> Response:
        return Response(ndjson_line(response), media_type=CONTENT_TYPE_NDJSON, headers=headers)

    async def handle_get(self, request: Request) -> Response:
        stream = EventStream(secrets.token_hex(16))
        interval = self.settings.ndjson_keepalive_interval
        logger.info(f"NDJSON stream opened stream={stream.session_id}")

        async def lines() -> AsyncIterator[str]:
            try:
                yield ndjson_line({"type": "open", "stream": stream.session_id, "ts": int(time.time())})
                async for frame in stream.frames(keepalive=interval):
                    if frame is None:
                        yield ndjson_line({"type": "ping", "ts": int(time.time())})
                    else:
                        yield frame + "\n"
            finally:
                stream.close()
                logger.info(f"NDJSON stream closed stream={stream.session_id}")

        return StreamingResponse(
            lines(),
            media_type=CONTENT_TYPE_NDJSON,
            headers={"Cache-Control": "no-store", "X-Accel-Buffering": "no"},
            background=BackgroundTask(stream.close),
        )


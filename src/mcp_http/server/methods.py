"""JSON-RPC method registry shared by every transport.

Each transport decodes envelopes its own way and hands them to
:meth:`MethodRegistry.dispatch`, so identical input produces identical
``result``/``error`` content whichever framing carried it.
"""

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pydantic_core

from mcp_http.server.exceptions import ResourceError, SessionStoreError, ToolError
from mcp_http.server.resources import ResourceManager
from mcp_http.server.session_store import SessionStore
from mcp_http.server.settings import Settings
from mcp_http.server.tools import ToolManager
from mcp_http.server.utilities.logging import get_logger
from mcp_http.shared.exceptions import McpError
from mcp_http.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    TOOL_EXECUTION_ERROR,
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCResponse,
    JSONRPCResultResponse,
    MessageKind,
    classify_message,
    error_response,
)

logger = get_logger(__name__)

SSE_SESSION_ID_BYTES = 16
INITIALIZE_SESSION_ID_BYTES = 32


@dataclass
class RequestContext:
    """What a method handler may know about the HTTP request that carried it."""

    transport: str
    session_id: str | None = None
    client_ip: str | None = None
    user_agent: str | None = None
    endpoints: dict[str, str] = field(default_factory=dict)
    minted_session_id: str | None = None

    def session_attributes(self) -> dict[str, Any]:
        return {
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "transport": self.transport,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }


MethodHandler = Callable[[dict[str, Any], RequestContext], Awaitable[dict[str, Any]]]


class MethodRegistry:
    """Dispatch table from JSON-RPC method name to handler.

    Matching is exact and case-sensitive. Handler failures become error
    envelopes; only :class:`SessionStoreError` escapes, so that the HTTP
    layer can answer 503.
    """

    def __init__(
        self,
        settings: Settings,
        tool_manager: ToolManager,
        resource_manager: ResourceManager,
        session_store: SessionStore,
    ) -> None:
        self.settings = settings
        self.tool_manager = tool_manager
        self.resource_manager = resource_manager
        self.session_store = session_store
        self._handlers: dict[str, MethodHandler] = {
            "initialize": self.initialize,
            "ping": self.ping,
            "tools/list": self.list_tools,
            "tools/call": self.call_tool,
            "resources/list": self.list_resources,
            "resources/read": self.read_resource,
            "notifications/initialized": self.initialized,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._handlers)

    def add_method(self, name: str, handler: MethodHandler) -> None:
        self._handlers[name] = handler

    async def dispatch(self, message: Any, context: RequestContext) -> JSONRPCResponse | None:
        """Process one decoded envelope.

        Returns the response envelope for requests and invalid elements, and
        None for notifications and client responses.
        """
        kind = classify_message(message)
        if kind is MessageKind.INVALID:
            return error_response(None, INVALID_REQUEST, "Invalid Request: message must be a JSON object")
        if kind is MessageKind.RESPONSE:
            return None
        if kind is MessageKind.NOTIFICATION:
            await self._notify(message, context)
            return None
        return await self._handle_request(message, context)

    async def dispatch_batch(self, messages: list[Any], context: RequestContext) -> list[JSONRPCResponse]:
        """Process envelopes strictly in order, collecting the responses."""
        responses: list[JSONRPCResponse] = []
        for message in messages:
            response = await self.dispatch(message, context)
            if response is not None:
                responses.append(response)
        return responses

    async def _notify(self, message: dict[str, Any], context: RequestContext) -> None:
        method = message.get("method")
        handler = self._handlers.get(method) if isinstance(method, str) else None
        if handler is None:
            logger.debug(f"Ignoring notification {method!r}")
            return
        params = message.get("params")
        try:
            await handler(params if isinstance(params, dict) else {}, context)
        except SessionStoreError:
            raise
        except Exception:
            logger.exception(f"Error handling notification {method}")

    async def _handle_request(self, message: dict[str, Any], context: RequestContext) -> JSONRPCResponse:
        request_id = message.get("id")
        method = message.get("method")
        if not isinstance(method, str):
            return error_response(request_id, INVALID_REQUEST, "Invalid Request: method must be a string")

        params = message.get("params")
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            return error_response(request_id, INVALID_PARAMS, "Invalid params: params must be an object")

        handler = self._handlers.get(method)
        if handler is None:
            return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            result = await handler(params, context)
        except McpError as e:
            return JSONRPCErrorResponse(id=request_id, error=e.error)
        except ResourceError as e:
            return JSONRPCErrorResponse(id=request_id, error=e.error)
        except ToolError as e:
            return error_response(request_id, TOOL_EXECUTION_ERROR, str(e))
        except SessionStoreError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error handling {method}")
            return error_response(request_id, INTERNAL_ERROR, f"Internal error: {e}")

        return JSONRPCResultResponse(id=request_id, result=result)

    # Method handlers

    async def initialize(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        protocol_version = params.get("protocolVersion") or self.settings.protocol_version
        client_info = params.get("clientInfo") if isinstance(params.get("clientInfo"), dict) else {}
        logger.info(
            f"initialize transport={context.transport} protocol={protocol_version} "
            f"client={client_info.get('name', 'n/a')} v={client_info.get('version', 'n/a')}"
        )

        attributes = {"protocol_version": protocol_version, "client_info": client_info}
        if context.session_id is not None:
            attributes["parent_session_id"] = context.session_id
        session_id = secrets.token_hex(INITIALIZE_SESSION_ID_BYTES)
        await self.session_store.create_session(session_id, {**context.session_attributes(), **attributes})
        context.session_id = session_id
        context.minted_session_id = session_id

        return {
            "protocolVersion": protocol_version,
            "serverInfo": {"name": self.settings.server_name, "version": self.settings.server_version},
            "capabilities": {"tools": {}, "prompts": {}, "resources": {}},
            "session": {"id": session_id},
            "endpoints": dict(context.endpoints),
        }

    async def ping(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {}

    async def initialized(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {}

    async def list_tools(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        tools = [tool.descriptor() for tool in self.tool_manager.list_tools()]
        logger.info(f"tools/list count={len(tools)}")
        return {"tools": tools}

    async def call_tool(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        name = params.get("name") or params.get("tool")
        if not isinstance(name, str) or not name:
            raise McpError(ErrorData(code=INVALID_PARAMS, message="Param name is required"))

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        elif not isinstance(arguments, dict):
            raise McpError(ErrorData(code=INVALID_PARAMS, message="Param arguments must be an object"))

        try:
            value = await self.tool_manager.call_tool(name, arguments)
        except ToolError:
            logger.exception(f"Tool {name} failed")
            raise

        return {"content": [{"type": "text", "text": _to_text(value)}], "isError": False}

    async def list_resources(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {"resources": [resource.descriptor() for resource in self.resource_manager.list_resources()]}

    async def read_resource(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        uri = params.get("uri")
        if not uri or not isinstance(uri, str):
            raise McpError(ErrorData(code=INVALID_PARAMS, message="Param uri is required"))

        resource = self.resource_manager.get_resource(uri)
        if resource is None:
            raise ResourceError(f"Resource not found: {uri}", code=RESOURCE_NOT_FOUND)

        return {"contents": [{"uri": resource.uri, "mimeType": resource.mime_type, "text": resource.read()}]}


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return pydantic_core.to_json(value, fallback=str, indent=2).decode()

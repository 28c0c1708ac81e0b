"""Minimum amount of models to represent the JSON-RPC envelopes served by mcp-http."""

import json
from enum import Enum
from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict

JSONRPC_VERSION: Final[str] = "2.0"
DEFAULT_PROTOCOL_VERSION: Final[str] = "2024-11-05"

# Standard JSON-RPC error codes
PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# Server-defined error codes
TOOL_EXECUTION_ERROR: Final[int] = -32000
RESOURCE_NOT_FOUND: Final[int] = -32004


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: Any
    result: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"jsonrpc": self.jsonrpc, "id": self.id, "result": self.result}


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: Any = None
    error: ErrorData

    def to_wire(self) -> dict[str, Any]:
        # `id` stays on the wire even when null; `data` only when present
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "error": self.error.model_dump(exclude_none=True),
        }


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse


class MessageKind(str, Enum):
    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"
    INVALID = "invalid"


def classify_message(message: Any) -> MessageKind:
    """Classify one decoded batch element.

    A member named `method` makes the element a request when it also carries
    an `id` member (even a null one) and a notification otherwise. Elements
    with `result` or `error` and no `method` are responses; anything else
    that is still an object is treated as a notification.
    """
    if not isinstance(message, dict):
        return MessageKind.INVALID
    if "method" in message:
        return MessageKind.REQUEST if "id" in message else MessageKind.NOTIFICATION
    if "result" in message or "error" in message:
        return MessageKind.RESPONSE
    return MessageKind.NOTIFICATION


def error_response(id: Any, code: int, message: str, data: Any | None = None) -> JSONRPCErrorResponse:
    return JSONRPCErrorResponse(id=id, error=ErrorData(code=code, message=message, data=data))


def encode_message(payload: Any) -> str:
    """Serialize a wire payload as compact JSON, keeping non-ASCII text as-is."""
    if isinstance(payload, JSONRPCResultResponse | JSONRPCErrorResponse):
        payload = payload.to_wire()
    elif isinstance(payload, list):
        payload = [item.to_wire() if isinstance(item, BaseModel) else item for item in payload]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

"""Custom exceptions for mcp-http."""

from typing import Any

from mcp_http.types import INTERNAL_ERROR, ErrorData


class McpHttpError(Exception):
    """Base error for mcp-http."""


class ToolError(McpHttpError):
    """Error in tool operations."""


class ResourceError(McpHttpError):
    """Error in resource operations.

    Defaults to INTERNAL_ERROR (-32603), use RESOURCE_NOT_FOUND (-32004)
    for unknown URIs.
    """

    error: ErrorData

    def __init__(self, message: str, code: int = INTERNAL_ERROR, data: Any | None = None):
        super().__init__(message)
        self.error = ErrorData(code=code, message=message, data=data)


class SessionStoreError(McpHttpError):
    """The session backend could not be reached or returned garbage."""


class InvalidSignature(McpHttpError):
    """Invalid signature for a function registered as a tool."""


class TransportError(McpHttpError):
    """An HTTP-level failure answered with a ``{"error", "message"}`` JSON body."""

    def __init__(self, status_code: int, error: str, message: str | None = None):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message or error

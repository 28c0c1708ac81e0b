from mcp_http.types import ErrorData


class McpError(Exception):
    """Exception raised by a method handler to answer with a JSON-RPC error.

    The registry turns it into an error envelope carrying the original
    request id; it never reaches the HTTP layer.

    Attributes:
        error: The ErrorData sent back to the peer
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error

"""Foo Server

Serves the "foo" tool and a hello_world resource over every transport:

    python examples/servers/foo_server.py

then point a client at http://127.0.0.1:8088/mcp.
"""

from typing import Any

from mcp_http import BaseTool, McpServer


class FooTool(BaseTool):
    name = "foo"
    description = 'Return "bar" or 2*n if numeric argument provided.'
    input_schema = {
        "type": "object",
        "properties": {"n": {"type": "number", "description": "Optional number to double"}},
        "required": [],
        "additionalProperties": False,
    }

    def execute(self, arguments: dict[str, Any]) -> str:
        n = arguments.get("n")
        if isinstance(n, bool) or not isinstance(n, int | float | str):
            return "bar"
        try:
            doubled = float(n) * 2
        except ValueError:
            return "bar"
        return str(int(doubled)) if doubled.is_integer() else str(doubled)


server = McpServer(
    tools=[FooTool],
    resources={"hello_world": "Hello, world!"},
)


if __name__ == "__main__":
    server.run()

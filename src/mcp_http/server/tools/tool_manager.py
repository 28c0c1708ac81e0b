from __future__ import annotations as _annotations

import inspect
from collections.abc import Callable
from typing import Any

from mcp_http.server.tools.base import BaseTool, Tool
from mcp_http.server.utilities.logging import get_logger
from mcp_http.shared.exceptions import McpError
from mcp_http.types import INVALID_PARAMS, ErrorData

logger = get_logger(__name__)

ToolSource = Callable[..., Any] | type[BaseTool] | BaseTool


class ToolManager:
    """Manages the tool registry.

    Tools are kept in registration order, which is the order ``tools/list``
    reports them in.
    """

    def __init__(self, warn_on_duplicate_tools: bool = True):
        self._tools: dict[str, Tool] = {}
        self.warn_on_duplicate_tools = warn_on_duplicate_tools

    def get_tool(self, name: str) -> Tool | None:
        """Get tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """List all registered tools."""
        return list(self._tools.values())

    def add_tool(
        self,
        source: ToolSource,
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        """Add a tool to the registry.

        ``source`` may be a plain function (sync or async), a BaseTool
        subclass or a BaseTool instance. If a tool with the same name is
        already registered the existing one is kept and returned.
        """
        if isinstance(source, Tool):
            tool = source
        elif isinstance(source, BaseTool) or (inspect.isclass(source) and issubclass(source, BaseTool)):
            tool = Tool.from_tool(source, name=name, description=description)
        elif callable(source):
            tool = Tool.from_function(source, name=name, description=description)
        else:
            raise TypeError(f"Cannot register {source!r} as a tool")

        existing = self._tools.get(tool.name)
        if existing:
            if self.warn_on_duplicate_tools:
                logger.warning(f"Tool already exists: {tool.name}")
            return existing
        self._tools[tool.name] = tool
        return tool

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Call a tool by name with arguments.

        An unknown name is an invalid-params error; failures inside the tool
        surface as ToolError.
        """
        tool = self.get_tool(name)
        if not tool:
            raise McpError(ErrorData(code=INVALID_PARAMS, message=f"Unknown tool: {name}"))

        return await tool.run(arguments)

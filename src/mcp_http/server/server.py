"""McpServer - a multi-transport MCP server over plain HTTP."""

from __future__ import annotations as _annotations

from collections.abc import Callable, Iterable
from typing import Any

import anyio
from starlette.applications import Starlette

from mcp_http.server.dispatcher import Dispatcher
from mcp_http.server.middleware import AuthCallback
from mcp_http.server.resources import Resource, ResourceManager
from mcp_http.server.session_store import SessionStore, create_session_store
from mcp_http.server.settings import Settings
from mcp_http.server.tools import BaseTool, Tool, ToolManager
from mcp_http.server.tools.tool_manager import ToolSource
from mcp_http.server.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)


class McpServer:
    """A Model Context Protocol server speaking three HTTP transports at once.

    The same tools and resources are served over the SSE handshake
    transport (``{base}/sse``), Streamable HTTP (``{base}/http``) and NDJSON
    (``{base}/requests``).

    Args:
        settings: Server settings; defaults are read from ``MCP_HTTP_*`` environment variables
        tools: Tools to register: plain functions, BaseTool subclasses or instances
        resources: Mapping of URI to value; structured values are served as JSON
        session_store: Storage backend; built from the settings when omitted
        auth_callback: Optional ``callback(request) -> bool`` (sync or async) guarding every route

    Examples:
        ```python
        from mcp_http import McpServer

        server = McpServer(resources={"config://app": {"debug": False}})

        @server.tool()
        def add(a: int, b: int) -> int:
            \"\"\"Add two numbers together.\"\"\"
            return a + b

        if __name__ == "__main__":
            server.run()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        tools: Iterable[ToolSource] | dict[str, ToolSource] | None = None,
        resources: dict[str, Any] | None = None,
        session_store: SessionStore | None = None,
        auth_callback: AuthCallback | None = None,
        **settings_overrides: Any,
    ):
        if settings is None:
            settings = Settings(**settings_overrides)
        elif settings_overrides:
            settings = settings.model_copy(update=settings_overrides)
        self.settings = settings

        self._tool_manager = ToolManager(warn_on_duplicate_tools=self.settings.warn_on_duplicate_tools)
        self._resource_manager = ResourceManager(warn_on_duplicate_resources=self.settings.warn_on_duplicate_resources)
        self.session_store = session_store if session_store is not None else create_session_store(self.settings)
        self.auth_callback = auth_callback

        if isinstance(tools, dict):
            for name, source in tools.items():
                self.add_tool(source, name=name)
        elif tools is not None:
            for source in tools:
                self.add_tool(source)

        for uri, value in (resources or {}).items():
            self.add_resource(uri, value)

        self._dispatcher: Dispatcher | None = None

    @property
    def name(self) -> str:
        return self.settings.server_name

    @property
    def tool_manager(self) -> ToolManager:
        return self._tool_manager

    @property
    def resource_manager(self) -> ResourceManager:
        return self._resource_manager

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            self._dispatcher = Dispatcher(
                self.settings,
                self._tool_manager,
                self._resource_manager,
                self.session_store,
                auth_callback=self.auth_callback,
            )
        return self._dispatcher

    def add_tool(
        self,
        source: ToolSource,
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        """Add a tool to the server.

        Args:
            source: A function (sync or async), a BaseTool subclass or a BaseTool instance
            name: Optional name for the tool (defaults to the function or tool name)
            description: Optional description of what the tool does
        """
        return self._tool_manager.add_tool(source, name=name, description=description)

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
    ) -> Callable[[Any], Any]:
        """Decorator to register a function or a BaseTool subclass as a tool.

        Example:

        ```python
        @server.tool()
        def my_tool(x: int) -> str:
            return str(x)

        @server.tool()
        class Reverse(BaseTool):
            name = "reverse"

            def execute(self, arguments):
                return arguments["text"][::-1]
        ```
        """
        # Check if user passed function directly instead of calling decorator
        if callable(name):
            raise TypeError(
                "The @tool decorator was used incorrectly. Did you forget to call it? Use @tool() instead of @tool"
            )

        def decorator(fn: Any) -> Any:
            self.add_tool(fn, name=name, description=description)
            return fn

        return decorator

    def add_resource(
        self,
        uri: str | Resource,
        value: Any = None,
        *,
        name: str | None = None,
        description: str = "",
        mime_type: str | None = None,
    ) -> Resource:
        """Register a value (or a ready Resource) under a URI."""
        if isinstance(uri, Resource):
            return self._resource_manager.add_resource(uri)
        return self._resource_manager.add_value(uri, value, name=name, description=description, mime_type=mime_type)

    def http_app(self) -> Starlette:
        """Return the Starlette application serving every transport."""
        return self.dispatcher.build_app()

    def run(self) -> None:
        """Run the server with uvicorn. This is a synchronous function."""
        anyio.run(self.run_async)

    async def run_async(self) -> None:
        import uvicorn

        configure_logging(self.settings.log_level, self.settings.log_file)
        config = uvicorn.Config(
            self.http_app(),
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        logger.info(f"Starting {self.name} on http://{self.settings.host}:{self.settings.port}")
        await server.serve()


def main() -> None:
    """Serve an empty server configured from the environment."""
    McpServer().run()


__all__ = ["BaseTool", "McpServer", "main"]

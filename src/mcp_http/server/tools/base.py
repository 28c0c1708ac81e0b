from __future__ import annotations as _annotations

import abc
import copy
import functools
import inspect
from collections.abc import Callable
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from mcp_http.server.exceptions import ToolError
from mcp_http.server.utilities.func_metadata import FuncMetadata, func_metadata

DEFAULT_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {},
    "required": [],
    "additionalProperties": False,
}


class BaseTool(abc.ABC):
    """Contract for tools implemented as classes.

    Subclasses set ``name``, ``description`` and ``input_schema`` and
    implement ``execute``, which may be sync or async and receives the raw
    ``arguments`` object of the ``tools/call`` request.

    ```python
    class EchoTool(BaseTool):
        name = "echo"
        description = "Echo the text argument back"

        def execute(self, arguments: dict[str, Any]) -> Any:
            return arguments.get("text", "")
    ```
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    input_schema: ClassVar[dict[str, Any]] = DEFAULT_INPUT_SCHEMA

    @abc.abstractmethod
    def execute(self, arguments: dict[str, Any]) -> Any:
        """Run the tool."""


class Tool(BaseModel):
    """Internal tool registration info."""

    fn: Callable[..., Any] = Field(exclude=True)
    name: str = Field(description="Name of the tool")
    description: str = Field(description="Description of what the tool does")
    parameters: dict[str, Any] = Field(description="JSON schema for tool parameters")
    fn_metadata: FuncMetadata | None = Field(
        None,
        description="Argument model for function tools; class tools receive the raw arguments",
    )
    is_async: bool = Field(description="Whether the tool is async")

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        """Create a Tool from a function."""
        func_name = name or fn.__name__

        if func_name == "<lambda>":
            raise ValueError("You must provide a name for lambda functions")

        func_doc = description or inspect.getdoc(fn) or ""
        is_async = _is_async_callable(fn)

        func_arg_metadata = func_metadata(fn)
        parameters = func_arg_metadata.arg_model.model_json_schema(by_alias=True)

        return cls(
            fn=fn,
            name=func_name,
            description=func_doc,
            parameters=parameters,
            fn_metadata=func_arg_metadata,
            is_async=is_async,
        )

    @classmethod
    def from_tool(
        cls,
        tool: type[BaseTool] | BaseTool,
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        """Create a Tool from a BaseTool subclass or instance.

        Classes are instantiated here, once. A constructor that raises
        propagates and nothing is registered.
        """
        instance = tool() if isinstance(tool, type) else tool
        if not isinstance(instance, BaseTool):
            raise TypeError(f"{type(instance).__name__} does not implement BaseTool")

        tool_name = name or instance.name or type(instance).__name__
        return cls(
            fn=instance.execute,
            name=tool_name,
            description=description or instance.description or f"Tool {tool_name}",
            parameters=copy.deepcopy(instance.input_schema),
            is_async=_is_async_callable(instance.execute),
        )

    def descriptor(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.parameters}

    async def run(self, arguments: dict[str, Any]) -> Any:
        """Run the tool with arguments."""
        try:
            if self.fn_metadata is not None:
                return await self.fn_metadata.call_fn_with_arg_validation(self.fn, self.is_async, arguments)

            result = self.fn(arguments)
            if inspect.isawaitable(result):
                result = await result
            return result
        except ToolError:
            raise
        except Exception as e:
            raise ToolError(str(e)) from e


def _is_async_callable(obj: Any) -> bool:
    while isinstance(obj, functools.partial):
        obj = obj.func

    return inspect.iscoroutinefunction(obj) or (
        callable(obj) and inspect.iscoroutinefunction(getattr(obj, "__call__", None))
    )

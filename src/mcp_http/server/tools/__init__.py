from .base import BaseTool, Tool
from .tool_manager import ToolManager

__all__ = ["BaseTool", "Tool", "ToolManager"]

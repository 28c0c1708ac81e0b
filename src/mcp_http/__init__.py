from .server import CorsSettings, McpServer, Settings
from .server.tools import BaseTool

__all__ = ["BaseTool", "CorsSettings", "McpServer", "Settings"]

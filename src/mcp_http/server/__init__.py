from .server import McpServer
from .settings import CorsSettings, Settings

__all__ = ["CorsSettings", "McpServer", "Settings"]

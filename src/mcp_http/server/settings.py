"""Server settings for mcp-http."""

from __future__ import annotations as _annotations

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_http.types import DEFAULT_PROTOCOL_VERSION


class CorsSettings(BaseModel):
    """The fixed cross-origin header set attached to every response."""

    allow_origin: str = "*"
    allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allow_headers: list[str] = Field(default_factory=lambda: ["Content-Type", "mcp-session-id", "mcp-protocol-version"])
    expose_headers: list[str] = Field(default_factory=lambda: ["mcp-session-id"])
    allow_credentials: bool = False
    max_age: int = 86400

    def headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allow_origin,
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Expose-Headers": ", ".join(self.expose_headers),
            "Access-Control-Allow-Credentials": "true" if self.allow_credentials else "false",
            "Access-Control-Max-Age": str(self.max_age),
        }


class Settings(BaseSettings):
    """mcp-http server settings.

    All settings can be configured via environment variables with the prefix MCP_HTTP_.
    For example, MCP_HTTP_PORT=9000 will set port=9000 and
    MCP_HTTP_CORS__MAX_AGE=600 the preflight cache lifetime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_HTTP_",
        env_file=".env",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        extra="ignore",
    )

    # Server settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Path | None = None

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = 8088
    base_path: str = "/mcp"
    max_body_bytes: int | None = 1_000_000

    # Identity
    server_name: str = "mcp-http"
    server_version: str = "1.0.0"
    protocol_version: str = DEFAULT_PROTOCOL_VERSION

    # Session settings
    session_storage: Literal["file", "redis"] = "file"
    session_path: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "mcp-sessions")
    redis_url: str = "redis://localhost:6379/0"
    session_ttl: int = 3600
    session_active_window: int = 300
    session_sweep_interval: float = 300

    # Stream settings
    sse_keepalive_interval: float = 30
    ndjson_keepalive_interval: float = 10

    # Manifest settings
    absolute_endpoints: bool = False
    endpoint_base_url: str | None = None

    # resource/tool settings
    warn_on_duplicate_resources: bool = True
    warn_on_duplicate_tools: bool = True

    cors: CorsSettings = Field(default_factory=CorsSettings)

    @property
    def normalized_base_path(self) -> str:
        """The base path without a trailing slash; the empty string means root."""
        base = self.base_path.strip()
        if not base or base == "/":
            return ""
        if not base.startswith("/"):
            base = "/" + base
        return base.rstrip("/")

"""Helpers that turn a Starlette request into a method-handler context."""

from __future__ import annotations

from starlette.requests import Request

from mcp_http.server.methods import RequestContext
from mcp_http.server.settings import Settings

MCP_SESSION_ID_HEADER = "mcp-session-id"


def client_ip(request: Request) -> str | None:
    """Best-effort client address: X-Forwarded-For, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


class EndpointResolver:
    """Builds the ``endpoints`` map advertised by the manifest and ``initialize``."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.base = settings.normalized_base_path

    def relative(self) -> dict[str, str]:
        return {
            "messages": f"{self.base}/sse",
            "requests": f"{self.base}/requests",
            "http": f"{self.base}/http",
        }

    def base_url(self, request: Request) -> str:
        if self.settings.endpoint_base_url:
            return self.settings.endpoint_base_url.rstrip("/")
        proto = request.headers.get("x-forwarded-proto") or request.url.scheme
        host = request.headers.get("host") or request.url.netloc
        return f"{proto}://{host}{self.base}"

    def for_request(self, request: Request) -> dict[str, str]:
        if not self.settings.absolute_endpoints:
            return self.relative()
        base_url = self.base_url(request)
        return {
            "messages": f"{base_url}/sse",
            "requests": f"{base_url}/requests",
            "http": f"{base_url}/http",
        }

    def sse_message_path(self, session_id: str) -> str:
        return f"{self.base}/sse/message?sessionId={session_id}"


def request_context(
    request: Request,
    transport: str,
    endpoints: EndpointResolver,
    session_id: str | None = None,
) -> RequestContext:
    return RequestContext(
        transport=transport,
        session_id=session_id,
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        endpoints=endpoints.for_request(request),
    )

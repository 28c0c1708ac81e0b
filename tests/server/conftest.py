import math
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import anyio
import httpx
import pytest
from anyio.abc import TaskGroup
from starlette.applications import Starlette
from starlette.types import Message

from mcp_http import BaseTool, McpServer, Settings


class FooTool(BaseTool):
    name = "foo"
    description = 'Return "bar" or 2*n if numeric argument provided.'
    input_schema = {
        "type": "object",
        "properties": {"n": {"type": "number"}},
        "required": [],
        "additionalProperties": False,
    }

    def execute(self, arguments: dict[str, Any]) -> str:
        n = arguments.get("n")
        if isinstance(n, int | float) and not isinstance(n, bool):
            doubled = n * 2
            return str(int(doubled)) if float(doubled).is_integer() else str(doubled)
        return "bar"


class BrokenTool(BaseTool):
    name = "broken"
    description = "Always fails"

    async def execute(self, arguments: dict[str, Any]) -> Any:
        raise RuntimeError("boom")


RESOURCES: dict[str, Any] = {
    "hello_world": "Hello, world!",
    "config://app": {"debug": False, "tags": ["a", "b"]},
    "number": 42,
    "greeting://ja": "こんにちは",
}


@pytest.fixture
def session_path(tmp_path: Path) -> Path:
    return tmp_path / "sessions"


@pytest.fixture
def settings(session_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        session_path=session_path,
        session_sweep_interval=0,
        sse_keepalive_interval=30,
    )


@pytest.fixture
def server(settings: Settings) -> McpServer:
    return McpServer(settings, tools=[FooTool, BrokenTool], resources=RESOURCES)


@pytest.fixture
def app(server: McpServer) -> Starlette:
    return server.http_app()


@pytest.fixture
async def client(app: Starlette) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        yield client



class StreamingRequest:
    """Drives one long-lived ASGI request by hand, so the test decides when the client goes away.

    httpx's ASGI transport buffers the whole response body, which never ends
    for a push stream.
    """

    def __init__(
        self,
        app: Starlette,
        method: str,
        path: str,
        *,
        query_string: bytes = b"",
        headers: dict[str, str] | None = None,
        timeout: float = 5,
    ):
        self.app = app
        self.timeout = timeout
        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": query_string,
            "headers": [(b"host", b"testserver")]
            + [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.body = ""
        self.finished = anyio.Event()
        self._started = anyio.Event()
        self._disconnected = anyio.Event()
        self._request_sent = False
        self._chunks_send, self._chunks_receive = anyio.create_memory_object_stream[bytes](math.inf)
        self._task_group: TaskGroup | None = None

    async def _receive(self) -> Message:
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {key.decode().lower(): value.decode() for key, value in message["headers"]}
            self._started.set()
        elif message["type"] == "http.response.body":
            if message.get("body"):
                await self._chunks_send.send(message["body"])
            if not message.get("more_body", False):
                self._chunks_send.close()

    async def _run(self) -> None:
        try:
            await self.app(self.scope, self._receive, self._send)
        finally:
            self._chunks_send.close()
            self.finished.set()

    async def __aenter__(self) -> "StreamingRequest":
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        self._task_group.start_soon(self._run)
        with anyio.fail_after(self.timeout):
            await self._started.wait()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        assert self._task_group is not None
        self.disconnect()
        try:
            with anyio.fail_after(self.timeout):
                await self.finished.wait()
        finally:
            await self._task_group.__aexit__(None, None, None)
            self._chunks_receive.close()

    def disconnect(self) -> None:
        self._disconnected.set()

    async def read_until(self, text: str) -> str:
        """Read body chunks until ``text`` has arrived; returns everything read so far."""
        with anyio.fail_after(self.timeout):
            while text not in self.body:
                try:
                    chunk = await self._chunks_receive.receive()
                except anyio.EndOfStream:
                    raise AssertionError(f"stream ended before {text!r} arrived; got {self.body!r}")
                self.body += chunk.decode()
        return self.body


@pytest.fixture
def streaming_request(app: Starlette) -> Callable[..., StreamingRequest]:
    def open_request(method: str, path: str, app: Starlette = app, **kwargs: Any) -> StreamingRequest:
        return StreamingRequest(app, method, path, **kwargs)

    return open_request

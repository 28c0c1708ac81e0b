import importlib.util
from pathlib import Path
from typing import Any

import httpx
import pytest

from mcp_http import BaseTool, McpServer, Settings
from mcp_http.server.resources import Resource
from mcp_http.server.session_store import FileSessionStore, create_session_store

EXAMPLES_DIR = Path(__file__).parents[2] / "examples" / "servers"


class Upper(BaseTool):
    name = "upper"
    description = "Upper-case the text argument"

    def execute(self, arguments: dict[str, Any]) -> str:
        return str(arguments.get("text", "")).upper()


def test_tools_from_iterable_and_mapping(settings: Settings):
    def add(a: int, b: int) -> int:
        return a + b

    server = McpServer(settings, tools=[add, Upper()])
    assert [tool.name for tool in server.tool_manager.list_tools()] == ["add", "upper"]

    server = McpServer(settings, tools={"plus": add, "shout": Upper})
    assert [tool.name for tool in server.tool_manager.list_tools()] == ["plus", "shout"]


def test_tool_decorator(settings: Settings):
    server = McpServer(settings)

    @server.tool(description="Say hello")
    def hello(name: str) -> str:
        return f"Hello, {name}"

    tool = server.tool_manager.get_tool("hello")
    assert tool is not None
    assert tool.description == "Say hello"
    assert hello("x") == "Hello, x"


def test_tool_decorator_requires_call(settings: Settings):
    server = McpServer(settings)

    with pytest.raises(TypeError, match="Did you forget to call it"):

        @server.tool  # type: ignore[arg-type]
        def hello() -> str:
            return "hi"


def test_add_resource(settings: Settings):
    server = McpServer(settings, resources={"a": 1})
    server.add_resource("b", {"x": 1}, description="bee")
    server.add_resource(Resource(uri="c", value="see", mime_type="text/markdown"))

    resources = server.resource_manager.list_resources()
    assert [r.uri for r in resources] == ["a", "b", "c"]
    assert resources[1].description == "bee"
    assert resources[2].mime_type == "text/markdown"


def test_settings_overrides(settings: Settings):
    server = McpServer(settings, server_name="custom", port=9999)

    assert server.name == "custom"
    assert server.settings.port == 9999
    assert settings.port == 8088


@pytest.mark.anyio
async def test_default_session_store_is_file(settings: Settings, session_path: Path):
    server = McpServer(settings)
    assert isinstance(server.session_store, FileSessionStore)

    await server.session_store.create_session("abc123")
    assert (session_path / "abc123.json").exists()


@pytest.mark.anyio
async def test_create_redis_session_store(settings: Settings):
    from mcp_http.server.session_store.redis import RedisSessionStore

    store = create_session_store(settings.model_copy(update={"session_storage": "redis", "session_ttl": 42}))
    try:
        assert isinstance(store, RedisSessionStore)
        assert store.ttl == 42
    finally:
        await store.aclose()


def test_dispatcher_is_shared(settings: Settings):
    server = McpServer(settings)
    assert server.dispatcher is server.dispatcher


@pytest.mark.anyio
async def test_foo_server_example(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("MCP_HTTP_SESSION_PATH", str(tmp_path / "sessions"))
    spec = importlib.util.spec_from_file_location("foo_server", EXAMPLES_DIR / "foo_server.py")
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    transport = httpx.ASGITransport(app=module.server.http_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        manifest = (await client.get("/mcp")).json()
        doubled = await client.post(
            "/mcp/requests",
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "foo", "arguments": {"n": 5}}},
        )
        bar = await client.post(
            "/mcp/requests",
            json={"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "foo"}},
        )
        hello = await client.post(
            "/mcp/requests",
            json={"jsonrpc": "2.0", "id": 3, "method": "resources/read", "params": {"uri": "hello_world"}},
        )

    assert [tool["name"] for tool in manifest["tools"]] == ["foo"]
    assert doubled.json()["result"]["content"][0]["text"] == "10"
    assert bar.json()["result"]["content"][0]["text"] == "bar"
    assert hello.json()["result"]["contents"][0]["text"] == "Hello, world!"

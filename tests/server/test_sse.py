import json
import re

import httpx
import pytest

from mcp_http import McpServer

pytestmark = pytest.mark.anyio

ENDPOINT_EVENT = re.compile(r"^event: endpoint\ndata: (/mcp/sse/message\?sessionId=([0-9a-f]{32}))\n\n")


def parse_endpoint(body: str) -> tuple[str, str]:
    match = ENDPOINT_EVENT.match(body)
    assert match, body
    return match.group(1), match.group(2)


async def test_handshake_and_message_round_trip(client: httpx.AsyncClient, server: McpServer, streaming_request):
    async with streaming_request("GET", "/mcp/sse") as stream:
        assert stream.status == 200
        assert stream.headers["content-type"].startswith("text/event-stream")

        body = await stream.read_until("\n\n")
        endpoint, session_id = parse_endpoint(body)
        assert stream.headers["mcp-session-id"] == session_id
        assert session_id in server.dispatcher.sse_streams

        response = await client.post(endpoint, json={"method": "ping", "id": 2})
        assert response.status_code == 202
        assert response.text == "Accepted"

        body = await stream.read_until("}\n\n")
        frame = body.split("\n\n")[1]
        lines = frame.split("\n")
        assert lines[0] == "event: message"
        assert json.loads(lines[1].removeprefix("data: ")) == {"jsonrpc": "2.0", "id": 2, "result": {}}

    assert len(server.dispatcher.sse_streams) == 0


async def test_handshake_creates_session(client: httpx.AsyncClient, server: McpServer, streaming_request):
    async with streaming_request("GET", "/mcp/sse", headers={"User-Agent": "sse-test"}) as stream:
        _, session_id = parse_endpoint(await stream.read_until("\n\n"))

        record = await server.session_store.get_session(session_id)
        assert record is not None
        assert record.data["transport"] == "sse"
        assert record.data["user_agent"] == "sse-test"
        assert record.data["client_ip"] == "127.0.0.1"


async def test_post_records_last_message(client: httpx.AsyncClient, server: McpServer, streaming_request):
    async with streaming_request("GET", "/mcp/sse") as stream:
        endpoint, session_id = parse_endpoint(await stream.read_until("\n\n"))

        await client.post(endpoint, json={"jsonrpc": "2.0", "method": "notifications/initialized"})
        await client.post(endpoint, json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        record = await server.session_store.get_session(session_id)
        assert record.data["message_count"] == 2
        assert record.data["last_message"] == {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}


async def test_notification_is_accepted_without_frame(client: httpx.AsyncClient, streaming_request):
    async with streaming_request("GET", "/mcp/sse") as stream:
        endpoint, _ = parse_endpoint(await stream.read_until("\n\n"))

        response = await client.post(endpoint, json={"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert response.status_code == 202

        response = await client.post(endpoint, json={"jsonrpc": "2.0", "id": 7, "method": "ping"})
        assert response.status_code == 202
        body = await stream.read_until('"id":7')

    assert body.count("event: message") == 1


async def test_keepalive_stops_with_stream(settings, streaming_request):
    server = McpServer(settings.model_copy(update={"sse_keepalive_interval": 0.05}))
    app = server.http_app()

    stream = streaming_request("GET", "/mcp/sse", app=app)
    async with stream:
        body = await stream.read_until(": ping\n\n")
        assert body.startswith("event: endpoint\n")
        assert len(server.dispatcher.sse_streams) == 1

    assert stream.finished.is_set()
    assert len(server.dispatcher.sse_streams) == 0


async def test_post_falls_back_to_event_stream_when_stream_is_gone(
    client: httpx.AsyncClient, server: McpServer, streaming_request
):
    async with streaming_request("GET", "/mcp/sse") as stream:
        endpoint, session_id = parse_endpoint(await stream.read_until("\n\n"))

    assert session_id not in server.dispatcher.sse_streams

    response = await client.post(endpoint, json={"jsonrpc": "2.0", "id": 3, "method": "ping"})

    assert response.status_code == 202
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == 'event: message\ndata: {"jsonrpc":"2.0","id":3,"result":{}}\n\n'


async def test_post_without_session_id(client: httpx.AsyncClient):
    response = await client.post("/mcp/sse/message", json={"method": "ping", "id": 1})

    assert response.status_code == 400
    assert response.json()["error"] == "missing_session_id"


async def test_post_with_unknown_session(client: httpx.AsyncClient):
    response = await client.post("/mcp/sse/message?sessionId=deadbeef", json={"method": "ping", "id": 1})

    assert response.status_code == 404
    assert response.json()["error"] == "session_not_found"


async def test_post_invalid_json(client: httpx.AsyncClient, server: McpServer):
    await server.session_store.create_session("abc")

    response = await client.post("/mcp/sse/message?sessionId=abc", content=b"{oops")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_json"


async def test_post_alias_without_base_path(client: httpx.AsyncClient, server: McpServer):
    await server.session_store.create_session("abc")

    response = await client.post("/sse/message?sessionId=abc", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})

    assert response.status_code == 202
    assert '"id":1' in response.text


async def test_sessions_outlive_the_stream(client: httpx.AsyncClient, server: McpServer, streaming_request):
    async with streaming_request("GET", "/mcp/sse") as stream:
        _, session_id = parse_endpoint(await stream.read_until("\n\n"))

    response = await client.get(f"/mcp/sessions/{session_id}")
    assert response.status_code == 200
    assert response.json()["id"] == session_id

"""Tests for MCPClient against an in-process fake SSE tool server."""

from __future__ import annotations

import asyncio

import pytest

from cfo_agent.engine.errors import ProtocolTimeout, ToolCallError, ToolServerError, ToolServerUnavailable
from cfo_agent.mcp.client import PROTOCOL_VERSION, ClientState, MCPClient
from cfo_agent.mcp.transport import StreamTransport


class SilentStream(StreamTransport):
    """Opens a stream that never announces an endpoint."""

    def __init__(self) -> None:
        self.closed = False

    async def open_stream(self, url: str):
        yield ": hello\n\n"

    async def post(self, url, payload) -> None:
        raise AssertionError("nothing should be posted")

    async def close(self) -> None:
        self.closed = True


class TestHandshake:
    async def test_connect_initializes_session(self, fake_server_factory):
        server = fake_server_factory()
        client = MCPClient("http://tools.test/", server)
        await client.connect()
        try:
            assert client.state is ClientState.READY
            assert server.stream_url == "http://tools.test/sse"
            assert client.endpoint == "http://tools.test/messages?session_id=abc123"

            init, notification = server.posts[0][1], server.posts[1][1]
            assert init["method"] == "initialize"
            assert init["params"]["protocolVersion"] == PROTOCOL_VERSION
            assert notification == {"jsonrpc": "2.0", "method": "notifications/initialized"}
            assert "id" not in notification
            assert all(url == client.endpoint for url, _ in server.posts)
            assert client.server_info["name"] == "fake-books"
        finally:
            await client.close()

    async def test_absolute_endpoint(self, fake_server_factory):
        server = fake_server_factory(endpoint="http://rpc.test/session/9")
        async with MCPClient("http://tools.test", server) as client:
            assert client.endpoint == "http://rpc.test/session/9"

    async def test_unreachable_server(self, fake_server_factory):
        server = fake_server_factory(fail_connect=True)
        client = MCPClient("http://tools.test", server)
        with pytest.raises(ToolServerUnavailable):
            await client.connect()
        assert client.state is ClientState.CLOSED
        assert server.closed

    async def test_unanswered_initialize(self, fake_server_factory):
        server = fake_server_factory(silent_methods=("initialize",))
        client = MCPClient("http://tools.test", server, request_timeout=0.05)
        with pytest.raises(ToolServerUnavailable):
            await client.connect()
        assert client.state is ClientState.CLOSED

    async def test_stream_without_endpoint(self):
        transport = SilentStream()
        client = MCPClient("http://tools.test", transport)
        with pytest.raises(ToolServerUnavailable):
            await client.connect()
        assert transport.closed

    async def test_default_timeouts(self):
        assert MCPClient.REQUEST_TIMEOUT == 30.0
        assert MCPClient.CONNECT_TIMEOUT == 10.0


class TestToolCalls:
    async def test_list_tools(self, fake_server_factory):
        async with MCPClient("http://tools.test", fake_server_factory()) as client:
            tools = await client.list_tools()
        names = [t.name for t in tools]
        assert "get_all_invoices" in names
        invoices = next(t for t in tools if t.name == "get_all_invoices")
        assert "status" in invoices.input_schema["properties"]

    async def test_call_tool_joins_text_fragments(self, fake_server_factory):
        server = fake_server_factory(results={
            "get_all_invoices": {"content": [
                {"type": "text", "text": "INV-1"},
                {"type": "image", "data": "..."},
                {"type": "text", "text": "INV-2"},
            ]},
        })
        async with MCPClient("http://tools.test", server) as client:
            text = await client.call_tool("get_all_invoices", {"status": "unpaid"})
            assert client.state is ClientState.READY
        assert text == "INV-1\nINV-2"
        call = server.calls("tools/call")[0]
        assert call["params"] == {"name": "get_all_invoices", "arguments": {"status": "unpaid"}}

    async def test_result_without_text_is_serialized(self, fake_server_factory):
        server = fake_server_factory(results={"get_profit_loss": {"value": 3}})
        async with MCPClient("http://tools.test", server) as client:
            assert await client.call_tool("get_profit_loss", {}) == '{"value": 3}'

    async def test_is_error_result_raises(self, fake_server_factory):
        server = fake_server_factory(results={
            "create_invoice": {"content": [{"type": "text", "text": "customer not found"}], "isError": True},
        })
        async with MCPClient("http://tools.test", server) as client:
            with pytest.raises(ToolCallError, match="customer not found"):
                await client.call_tool("create_invoice", {})

    async def test_jsonrpc_error_raises(self, fake_server_factory):
        server = fake_server_factory(results={"create_invoice": RuntimeError("invalid params")})
        async with MCPClient("http://tools.test", server) as client:
            with pytest.raises(ToolCallError) as exc_info:
                await client.call_tool("create_invoice", {})
        assert exc_info.value.code == -32000
        assert "invalid params" in str(exc_info.value)

    async def test_unanswered_call_times_out(self, fake_server_factory):
        server = fake_server_factory(silent_methods=("tools/call",))
        async with MCPClient("http://tools.test", server, request_timeout=0.05) as client:
            with pytest.raises(ProtocolTimeout):
                await client.call_tool("get_all_invoices", {})
            assert client.state is ClientState.READY
            # the session survives a timeout
            assert await client.list_tools()

    async def test_malformed_replies_do_not_break_session(self, fake_server_factory):
        server = fake_server_factory(silent_methods=("tools/call",))
        async with MCPClient("http://tools.test", server, request_timeout=1.0) as client:
            call = asyncio.create_task(client.call_tool("get_all_invoices", {}))
            while not server.calls("tools/call"):
                await asyncio.sleep(0.005)
            request_id = server.calls("tools/call")[0]["id"]

            server.send({"jsonrpc": "2.0", "id": [request_id], "result": {}})
            server.send({"jsonrpc": "2.0", "id": request_id, "error": "boom"})
            with pytest.raises(ToolCallError, match="boom"):
                await call

            assert client.state is ClientState.READY
            assert await client.list_tools()

    async def test_request_ids_increase(self, fake_server_factory):
        server = fake_server_factory()
        async with MCPClient("http://tools.test", server) as client:
            await client.list_tools()
            await client.call_tool("get_all_invoices", {})
        ids = [p["id"] for _, p in server.posts if "id" in p]
        assert ids == sorted(set(ids))


class TestClose:
    async def test_close_is_idempotent(self, fake_server_factory):
        server = fake_server_factory()
        client = MCPClient("http://tools.test", server)
        await client.connect()
        await client.close()
        await client.close()
        assert client.state is ClientState.CLOSED
        assert server.closed

    async def test_request_after_close_rejected(self, fake_server_factory):
        client = MCPClient("http://tools.test", fake_server_factory())
        await client.connect()
        await client.close()
        with pytest.raises(ToolServerError):
            await client.list_tools()

    async def test_close_rejects_outstanding_calls(self, fake_server_factory):
        server = fake_server_factory(silent_methods=("tools/call",))
        client = MCPClient("http://tools.test", server)
        await client.connect()
        call = asyncio.create_task(client.call_tool("get_all_invoices", {}))
        await asyncio.sleep(0.01)
        await client.close()
        with pytest.raises(ToolServerError):
            await call

    async def test_sending_without_endpoint_raises(self, fake_server_factory):
        client = MCPClient("http://tools.test", fake_server_factory())
        with pytest.raises(ToolServerError, match="no endpoint"):
            await client._send_notification("notifications/initialized")

    async def test_close_before_connect(self, fake_server_factory):
        server = fake_server_factory()
        client = MCPClient("http://tools.test", server)
        await client.close()
        assert client.state is ClientState.CLOSED
        assert server.closed

"""Shared fixtures for cfo_agent tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from cfo_agent.engine.errors import ToolServerUnavailable
from cfo_agent.engine.models import CallerScope, ToolDescriptor
from cfo_agent.mcp.client import MCPClient
from cfo_agent.mcp.transport import StreamTransport
from cfo_agent.skills import QueryRouter, default_skills
from cfo_agent.store.cache import InMemoryResponseCache
from cfo_agent.store.conversation import InMemoryConversationStore
from cfo_agent.tracing.in_memory import InMemoryTraceCollector
from cfo_agent.tracing.jsonl_tracer import JSONLTraceCollector


def _schema(*props: str) -> dict[str, Any]:
    return {"type": "object", "properties": {p: {"type": "string"} for p in props}}


LIVE_TOOLS: list[dict[str, Any]] = [
    {"name": "get_all_invoices", "description": "List sales invoices", "inputSchema": _schema("status", "entity_id")},
    {"name": "create_invoice", "description": "Create a sales invoice",
     "inputSchema": _schema("customer_name", "amount", "entity_id", "org_id")},
    {"name": "get_all_customers", "description": "List customers", "inputSchema": _schema("entity_id")},
    {"name": "get_aged_receivables_report", "description": "Aged receivables", "inputSchema": _schema("entity_id")},
    {"name": "get_profit_loss", "description": "Profit and loss statement", "inputSchema": _schema("period")},
]


class FakeToolServer(StreamTransport):
    """In-process stand-in for an MCP SSE server.

    ``results`` maps tool name → text, a raw result dict, or an Exception
    (sent back as a JSON-RPC error).  Methods listed in ``silent_methods``
    never get an answer.
    """

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        results: dict[str, Any] | None = None,
        endpoint: str = "/messages?session_id=abc123",
        silent_methods: tuple[str, ...] = (),
        fail_connect: bool = False,
    ) -> None:
        self.tools = LIVE_TOOLS if tools is None else tools
        self.results = results or {}
        self.endpoint = endpoint
        self.silent_methods = silent_methods
        self.fail_connect = fail_connect
        self.posts: list[tuple[str, dict[str, Any]]] = []
        self.stream_url: str | None = None
        self.closed = False
        self._queue: asyncio.Queue[str | None] | None = None

    async def open_stream(self, url: str):
        self.stream_url = url
        self._queue = asyncio.Queue()
        if self.fail_connect:
            raise ToolServerUnavailable("connection refused")
        yield ": keep-alive\n\n"
        yield f"event: endpoint\ndata: {self.endpoint}\n\n"
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def post(self, url: str, payload: dict[str, Any]) -> None:
        self.posts.append((url, payload))
        if "id" not in payload or payload["method"] in self.silent_methods:
            return
        method = payload["method"]
        if method == "initialize":
            self.reply(payload["id"], {"protocolVersion": "2024-11-05", "serverInfo": {"name": "fake-books"}})
        elif method == "tools/list":
            self.reply(payload["id"], {"tools": self.tools})
        elif method == "tools/call":
            name = payload["params"]["name"]
            outcome = self.results.get(name, f"{name} ok")
            if isinstance(outcome, Exception):
                self.send({"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32000, "message": str(outcome)}})
            elif isinstance(outcome, dict):
                self.reply(payload["id"], outcome)
            else:
                self.reply(payload["id"], {"content": [{"type": "text", "text": outcome}]})
        else:
            self.send({"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32601, "message": "Method not found"}})

    def reply(self, request_id: int, result: Any) -> None:
        self.send({"jsonrpc": "2.0", "id": request_id, "result": result})

    def send(self, message: dict[str, Any]) -> None:
        assert self._queue is not None, "stream not open"
        self._queue.put_nowait(f"event: message\ndata: {json.dumps(message)}\n\n")

    def calls(self, method: str) -> list[dict[str, Any]]:
        return [p for _, p in self.posts if p.get("method") == method]

    async def close(self) -> None:
        self.closed = True
        if self._queue is not None:
            self._queue.put_nowait(None)


@pytest.fixture
def fake_server_factory() -> Callable[..., FakeToolServer]:
    return FakeToolServer


@pytest.fixture
def mcp_factory_for():
    """Build an engine-side client factory around a given fake server; records the scopes it saw."""

    def build(server: FakeToolServer, request_timeout: float | None = None):
        seen: list[tuple[CallerScope, str]] = []

        def factory(scope: CallerScope, credential: str) -> MCPClient:
            seen.append((scope, credential))
            return MCPClient("http://tools.test", server, request_timeout=request_timeout)

        factory.seen = seen  # type: ignore[attr-defined]
        return factory

    return build


@pytest.fixture
def live_catalog() -> list[ToolDescriptor]:
    return [ToolDescriptor.model_validate(t) for t in LIVE_TOOLS]


@pytest.fixture
def router():
    return QueryRouter(default_skills())


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def response_cache():
    return InMemoryResponseCache()


@pytest.fixture
def trace_collector():
    return InMemoryTraceCollector()


@pytest.fixture
def jsonl_trace_collector(tmp_path):
    return JSONLTraceCollector(trace_dir=str(tmp_path / "traces"))

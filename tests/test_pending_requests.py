"""Tests for the pending JSON-RPC request table."""

from __future__ import annotations

import asyncio

import pytest

from cfo_agent.engine.errors import ProtocolTimeout, ToolServerError
from cfo_agent.mcp.pending import PendingRequests


class TestPendingRequests:
    async def test_resolve_settles_once(self):
        pending = PendingRequests()
        future = pending.register(1, "tools/list")
        assert pending.resolve(1, {"tools": []})
        assert await future == {"tools": []}
        assert not pending.resolve(1, {"tools": ["late"]})
        assert len(pending) == 0

    async def test_timeout_rejects_and_removes_entry(self):
        pending = PendingRequests()
        future = pending.register(42, "tools/call", timeout=0.05)
        with pytest.raises(ProtocolTimeout) as exc_info:
            await future
        assert exc_info.value.request_id == 42
        assert exc_info.value.method == "tools/call"
        assert 42 not in pending
        # late response is ignored
        assert not pending.resolve(42, {"content": []})

    async def test_resolved_request_does_not_time_out(self):
        pending = PendingRequests()
        future = pending.register(7, "tools/call", timeout=0.05)
        pending.resolve(7, "ok")
        await asyncio.sleep(0.1)
        assert future.result() == "ok"

    async def test_duplicate_id_rejected(self):
        pending = PendingRequests()
        pending.register(1)
        with pytest.raises(ValueError):
            pending.register(1)
        pending.discard(1)

    async def test_reject_all(self):
        pending = PendingRequests()
        first = pending.register(1, timeout=5)
        second = pending.register(2, timeout=5)
        assert pending.reject_all() == 2
        assert len(pending) == 0
        for future in (first, second):
            with pytest.raises(ToolServerError):
                await future

    async def test_reject_delivers_given_error(self):
        pending = PendingRequests()
        future = pending.register(3)
        assert pending.reject(3, ToolServerError("boom"))
        with pytest.raises(ToolServerError, match="boom"):
            await future

    async def test_discard_cancels(self):
        pending = PendingRequests()
        future = pending.register(5, timeout=5)
        pending.discard(5)
        assert future.cancelled()
        assert 5 not in pending

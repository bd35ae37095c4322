"""Pending JSON-RPC request table — id → single-resolution future with its own timeout."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from cfo_agent.engine.errors import ProtocolTimeout, ToolServerError

logger = logging.getLogger(__name__)


class PendingRequests:
    """Correlates responses arriving on the event stream with their requests.

    ``register`` schedules an expiry timer; whichever comes first (response,
    error, expiry, ``reject_all``) settles the future and removes the entry.
    A late response for an expired id is ignored.
    """

    def __init__(self) -> None:
        self._futures: dict[int, asyncio.Future[Any]] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._methods: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._futures)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._futures

    def register(self, request_id: int, method: str = "", timeout: float | None = None) -> asyncio.Future[Any]:
        if request_id in self._futures:
            raise ValueError(f"Request id {request_id} is already pending")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._futures[request_id] = future
        self._methods[request_id] = method
        if timeout is not None:
            self._timers[request_id] = loop.call_later(timeout, self._expire, request_id, timeout)
        return future

    def resolve(self, request_id: int, result: Any) -> bool:
        future = self._pop(request_id)
        if future is None or future.done():
            return False
        future.set_result(result)
        return True

    def reject(self, request_id: int, exc: BaseException) -> bool:
        future = self._pop(request_id)
        if future is None or future.done():
            return False
        future.set_exception(exc)
        return True

    def discard(self, request_id: int) -> None:
        """Drop an entry whose request never made it onto the wire."""
        future = self._pop(request_id)
        if future is not None and not future.done():
            future.cancel()

    def reject_all(self, exc: BaseException | None = None) -> int:
        """Fail every outstanding request; returns how many were rejected."""
        exc = exc or ToolServerError("Tool session closed")
        count = 0
        for request_id in list(self._futures):
            if self.reject(request_id, exc):
                count += 1
        return count

    def _expire(self, request_id: int, timeout: float) -> None:
        method = self._methods.get(request_id, "")
        if self.reject(request_id, ProtocolTimeout(request_id, method, timeout)):
            logger.warning("request id=%s method=%s timed out after %.1fs", request_id, method, timeout)

    def _pop(self, request_id: int) -> asyncio.Future[Any] | None:
        timer = self._timers.pop(request_id, None)
        if timer is not None:
            timer.cancel()
        self._methods.pop(request_id, None)
        return self._futures.pop(request_id, None)

"""MCP client over the legacy SSE transport.

Session lifecycle::

    DISCONNECTED → HANDSHAKING → READY → (INVOKING ⇄ READY)* → CLOSED

``GET {base}/sse`` opens the event stream; the server announces a session
endpoint, every JSON-RPC message is POSTed there and the responses come back
as ``message`` events on the stream, correlated by request id.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator
from urllib.parse import urljoin

from cfo_agent.engine.errors import ToolCallError, ToolServerError, ToolServerUnavailable
from cfo_agent.engine.models import ToolDescriptor
from cfo_agent.mcp.framing import SSEFrame, SSEFrameAssembler
from cfo_agent.mcp.pending import PendingRequests
from cfo_agent.mcp.transport import StreamTransport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "cfo-agent", "version": "0.1.0"}


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    HANDSHAKING = "handshaking"
    READY = "ready"
    INVOKING = "invoking"
    CLOSED = "closed"


class MCPClient:
    """One tool-server session. Use as ``async with MCPClient(...) as client:``."""

    REQUEST_TIMEOUT: float = 30.0
    CONNECT_TIMEOUT: float = 10.0

    def __init__(
        self,
        base_url: str,
        transport: StreamTransport,
        request_timeout: float | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self._sse_url = base_url.rstrip("/") + "/sse"
        self._transport = transport
        self._request_timeout = request_timeout if request_timeout is not None else self.REQUEST_TIMEOUT
        self._connect_timeout = connect_timeout if connect_timeout is not None else self.CONNECT_TIMEOUT

        self._state = ClientState.DISCONNECTED
        self._pending = PendingRequests()
        self._assembler = SSEFrameAssembler()
        self._stream: AsyncIterator[str] | None = None
        self._reader: asyncio.Task[None] | None = None
        self._endpoint: str | None = None
        self._msg_id = 0
        self._in_flight = 0
        self.server_info: dict[str, Any] = {}

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        if self._state is not ClientState.DISCONNECTED:
            raise ToolServerError(f"Cannot connect from state {self._state.value}")
        self._state = ClientState.HANDSHAKING
        try:
            self._stream = self._transport.open_stream(self._sse_url)
            backlog = await asyncio.wait_for(self._await_endpoint(), timeout=self._connect_timeout)
            self._reader = asyncio.create_task(self._read_loop(backlog))

            result = await self._send_request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            })
            self.server_info = (result or {}).get("serverInfo", {})
            await self._send_notification("notifications/initialized")
        except asyncio.CancelledError:
            await self.close()
            raise
        except Exception as exc:
            logger.warning("tool server handshake with %s failed: %s", self._sse_url, exc)
            await self.close()
            if isinstance(exc, ToolServerUnavailable):
                raise
            raise ToolServerUnavailable(f"Tool server at {self._sse_url} unavailable: {exc}") from exc

        self._state = ClientState.READY
        logger.info("tool session ready endpoint=%s server=%s", self._endpoint, self.server_info.get("name"))

    async def close(self) -> None:
        if self._state is ClientState.CLOSED:
            return
        self._state = ClientState.CLOSED

        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._reader
            self._reader = None

        if self._stream is not None:
            aclose = getattr(self._stream, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()
            self._stream = None

        rejected = self._pending.reject_all(ToolServerError("Tool session closed"))
        if rejected:
            logger.debug("rejected %d outstanding request(s) on close", rejected)
        await self._transport.close()

    # -- typed calls --------------------------------------------------------

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self.request("tools/list", {})
        tools = [ToolDescriptor.model_validate(t) for t in (result or {}).get("tools", [])]
        logger.info("tool server advertised %d tools", len(tools))
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        result = await self.request("tools/call", {"name": name, "arguments": arguments}) or {}
        fragments = [
            part.get("text", "")
            for part in result.get("content", [])
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        text = "\n".join(fragments) if fragments else json.dumps(result)
        if result.get("isError"):
            raise ToolCallError(text or f"Tool {name} failed")
        return text

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        if self._state not in (ClientState.READY, ClientState.INVOKING):
            raise ToolServerError(f"Tool session is {self._state.value}")
        self._state = ClientState.INVOKING
        self._in_flight += 1
        try:
            return await self._send_request(method, params)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self._state is ClientState.INVOKING:
                self._state = ClientState.READY

    # -- internals ----------------------------------------------------------

    def _next_id(self) -> int:
        self._msg_id += 1
        return self._msg_id

    def _require_endpoint(self) -> str:
        if self._endpoint is None:
            raise ToolServerError("Tool session has no endpoint yet")
        return self._endpoint

    def _require_stream(self) -> AsyncIterator[str]:
        if self._stream is None:
            raise ToolServerError("Tool session has no open event stream")
        return self._stream

    async def _send_request(self, method: str, params: dict[str, Any] | None) -> Any:
        endpoint = self._require_endpoint()
        request_id = self._next_id()
        future = self._pending.register(request_id, method, timeout=self._request_timeout)
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params
        try:
            await self._transport.post(endpoint, payload)
        except BaseException:
            self._pending.discard(request_id)
            raise
        logger.debug("sent request id=%d method=%s", request_id, method)
        return await future

    async def _send_notification(self, method: str) -> None:
        await self._transport.post(self._require_endpoint(), {"jsonrpc": "2.0", "method": method})

    async def _await_endpoint(self) -> list[SSEFrame]:
        """Read the stream until the session endpoint is announced.

        Frames that arrived in the same chunk after the announcement are
        returned so the read loop can dispatch them.
        """
        async for chunk in self._require_stream():
            frames = self._assembler.feed(chunk)
            for i, frame in enumerate(frames):
                data = frame.data.strip()
                if frame.event == "endpoint" or data.startswith(("/", "http")):
                    self._endpoint = urljoin(self._sse_url, data)
                    return frames[i + 1:]
        raise ToolServerUnavailable("Event stream ended before a session endpoint was announced")

    async def _read_loop(self, backlog: list[SSEFrame]) -> None:
        stream = self._require_stream()
        try:
            for frame in backlog:
                self._dispatch_safely(frame)
            async for chunk in stream:
                for frame in self._assembler.feed(chunk):
                    self._dispatch_safely(frame)
            self._pending.reject_all(ToolServerUnavailable("Tool server closed the event stream"))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("tool server stream error: %s", exc)
            self._pending.reject_all(ToolServerUnavailable(f"Connection lost: {exc}"))

    def _dispatch_safely(self, frame: SSEFrame) -> None:
        # one bad frame must not take the session down
        try:
            self._dispatch(frame)
        except Exception:
            logger.exception("dropping malformed message frame")

    def _dispatch(self, frame: SSEFrame) -> None:
        if frame.event != "message":
            logger.debug("ignoring %s event", frame.event)
            return
        try:
            message = json.loads(frame.data)
        except json.JSONDecodeError:
            logger.warning("received non-JSON message frame")
            return
        if not isinstance(message, dict) or "id" not in message:
            # server notification
            return

        request_id = message["id"]
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            logger.warning("ignoring message with invalid id %r", request_id)
            return
        if "error" in message:
            error = message["error"]
            if isinstance(error, dict):
                exc = ToolCallError(str(error.get("message", error)), code=error.get("code"))
            else:
                exc = ToolCallError(str(error))
            settled = self._pending.reject(request_id, exc)
        else:
            settled = self._pending.resolve(request_id, message.get("result"))
        if not settled:
            logger.debug("no pending request for id=%s (late or unknown)", request_id)

"""Transport abstraction for the tool server — a long-lived event stream plus POSTs."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

from cfo_agent.engine.errors import ToolServerUnavailable

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_POST_TIMEOUT = 30.0


class StreamTransport(ABC):
    """What the protocol client needs from the network.

    ``open_stream`` yields raw text chunks of the event stream; ``post``
    delivers one JSON-RPC message (the response arrives on the stream).
    """

    @abstractmethod
    def open_stream(self, url: str) -> AsyncIterator[str]: ...

    @abstractmethod
    async def post(self, url: str, payload: dict[str, Any]) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class HttpxStreamTransport(StreamTransport):
    """``httpx.AsyncClient`` implementation with bearer auth and entity/org headers."""

    def __init__(
        self,
        credential: str,
        entity_id: str | None = None,
        org_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {
            "Authorization": f"Bearer {credential}",
            "Accept": "text/event-stream, application/json",
            "User-Agent": "cfo-agent/0.1",
        }
        if entity_id:
            headers["X-Entity-Id"] = entity_id
        if org_id:
            headers["X-Org-Id"] = org_id
        self._headers = headers
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=DEFAULT_CONNECT_TIMEOUT,
                read=None,  # the event stream is long-lived
                write=DEFAULT_POST_TIMEOUT,
                pool=DEFAULT_CONNECT_TIMEOUT,
            ),
        )

    async def open_stream(self, url: str) -> AsyncIterator[str]:
        try:
            async with self._client.stream("GET", url, headers=self._headers) as response:
                if response.status_code >= 400:
                    raise ToolServerUnavailable(f"Event stream {url} returned HTTP {response.status_code}")
                async for chunk in response.aiter_text():
                    yield chunk
        except httpx.HTTPError as exc:
            raise ToolServerUnavailable(f"Event stream {url} failed: {exc}") from exc

    async def post(self, url: str, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={**self._headers, "Content-Type": "application/json"},
                timeout=DEFAULT_POST_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            raise ToolServerUnavailable(f"POST {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ToolServerUnavailable(f"POST {url} returned HTTP {response.status_code}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

"""Outbound stream helpers — heartbeat merging and NDJSON framing."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import AsyncIterator

from cfo_agent.engine.models import EngineEvent, EngineEventType

HEARTBEAT_INTERVAL = 15.0


async def with_heartbeat(
    events: AsyncIterator[EngineEvent],
    interval: float = HEARTBEAT_INTERVAL,
    request_id: str = "",
) -> AsyncIterator[EngineEvent]:
    """Relay *events*, inserting a ``heartbeat`` whenever the source is idle for *interval* seconds.

    The source generator is closed when this one is, so a client disconnect
    tears down whatever the source holds open.
    """
    iterator = events.__aiter__()
    pending: asyncio.Future[EngineEvent] = asyncio.ensure_future(iterator.__anext__())
    try:
        while True:
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield EngineEvent(type=EngineEventType.HEARTBEAT, request_id=request_id)
                continue
            try:
                event = pending.result()
            except StopAsyncIteration:
                return
            yield event
            pending = asyncio.ensure_future(iterator.__anext__())
    finally:
        if not pending.done():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                await pending
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


def encode_frame(event: EngineEvent) -> str:
    """One event as a single JSON line (``type`` flattened next to ``data``)."""
    payload = {
        "type": event.type.value,
        "data": event.data,
        "requestId": event.request_id,
        "timestamp": event.timestamp,
    }
    return json.dumps(payload, default=str) + "\n"

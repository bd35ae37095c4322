"""In-memory trace collector — for tests and embedding."""

from __future__ import annotations

from typing import Any

from cfo_agent.engine.models import TurnRecord
from cfo_agent.tracing.interface import TraceCollector


class InMemoryTraceCollector(TraceCollector):
    def __init__(self) -> None:
        self.events: dict[str, list[dict[str, Any]]] = {}
        self.flushed: list[str] = []
        self.turns: list[TurnRecord] = []

    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        self.events.setdefault(trace_id, []).append({"event": event_type, **data})

    async def flush(self, trace_id: str) -> None:
        self.flushed.append(trace_id)

    async def record_turn(self, record: TurnRecord) -> None:
        self.turns.append(record)

    def event_types(self, trace_id: str) -> list[str]:
        return [e["event"] for e in self.events.get(trace_id, [])]

"""TraceCollector ABC — depends only on the models module."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from cfo_agent.engine.models import TurnRecord


class TraceCollector(ABC):
    """Collects structured trace events and one audit row per completed turn."""

    @abstractmethod
    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def flush(self, trace_id: str) -> None: ...

    @abstractmethod
    async def record_turn(self, record: TurnRecord) -> None: ...

"""Tool registry over the live tool-server catalog: schemas, identity injection, timeout retry, audit."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, Sequence

from cfo_agent.engine.errors import ProtocolTimeout, ToolServerUnavailable
from cfo_agent.engine.models import CallerScope, ToolDescriptor
from cfo_agent.tools.results import truncate_result
from cfo_agent.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

# Identifier keys the model must never choose for itself.
SCOPED_ARGUMENT_KEYS = ("entity_id", "entityid", "entityId", "org_id", "orgid", "orgId")
_ENTITY_KEYS = ("entity_id", "entityid", "entityId")
_ORG_KEYS = ("org_id", "orgid", "orgId")


class ToolInvoker(Protocol):
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str: ...


class ToolRegistry:
    """Catalog of the tools advertised by one tool-server session."""

    def __init__(self, invoker: ToolInvoker | None = None, max_retries: int = 0) -> None:
        self._invoker = invoker
        self._max_retries = max_retries
        self._tools: dict[str, ToolDescriptor] = {}

    # -- registration -------------------------------------------------------

    def register(self, descriptor: ToolDescriptor) -> None:
        self._tools[descriptor.name] = descriptor

    def register_many(self, descriptors: Sequence[ToolDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)
        logger.info("Registered %d live tools", len(descriptors))

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    # -- OpenAI function-calling schemas ------------------------------------

    def openai_schemas(self, allowed_tools: Sequence[str]) -> list[dict[str, Any]]:
        """OpenAI-compatible function schemas for *allowed_tools*, in that order.

        Scoped identifier properties are removed from the advertised schema.
        """
        schemas: list[dict[str, Any]] = []
        for name in allowed_tools:
            tool = self._tools.get(name)
            if tool is None:
                continue
            schemas.append({
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": _public_parameters(tool.input_schema),
                },
            })
        return schemas

    # -- execution ----------------------------------------------------------

    def scoped_arguments(self, name: str, arguments: dict[str, Any], scope: CallerScope) -> dict[str, Any]:
        """Drop model-supplied identifiers and inject the caller's ones the tool declares."""
        args = {k: v for k, v in arguments.items() if k not in SCOPED_ARGUMENT_KEYS}
        tool = self._tools.get(name)
        properties = (tool.input_schema.get("properties") or {}) if tool else {}
        for key in _ENTITY_KEYS:
            if key in properties:
                args[key] = scope.entity_id
        if scope.org_id:
            for key in _ORG_KEYS:
                if key in properties:
                    args[key] = scope.org_id
        return args

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        scope: CallerScope,
        trace_collector: TraceCollector | None = None,
        trace_id: str | None = None,
    ) -> str:
        if self._invoker is None:
            raise ToolServerUnavailable("No tool server session")
        if name not in self._tools:
            raise ValueError(f"Tool '{name}' not found")

        args = self.scoped_arguments(name, arguments, scope)

        last_exc: Exception | None = None
        for attempt in range(1, self._max_retries + 2):  # +2 because range is exclusive
            try:
                t0 = time.time()
                raw = await self._invoker.call_tool(name, args)
                latency = time.time() - t0

                logger.info("tool=%s attempt=%d latency=%.3fs OK", name, attempt, latency)
                if trace_collector and trace_id:
                    await trace_collector.emit(trace_id, "tool_exec", {
                        "tool": name,
                        "attempt": attempt,
                        "latency_ms": round(latency * 1000, 2),
                        "status": "ok",
                        "result_chars": len(raw),
                    })
                return truncate_result(raw)

            except ProtocolTimeout as exc:
                # Only timeouts are worth another attempt.
                last_exc = exc
                logger.warning("tool=%s attempt=%d timed out", name, attempt)
                await self._trace_error(trace_collector, trace_id, name, attempt, exc)
            except Exception as exc:
                logger.warning("tool=%s attempt=%d error=%s", name, attempt, exc)
                await self._trace_error(trace_collector, trace_id, name, attempt, exc)
                raise

        raise last_exc  # type: ignore[misc]

    @staticmethod
    async def _trace_error(
        trace_collector: TraceCollector | None,
        trace_id: str | None,
        name: str,
        attempt: int,
        exc: Exception,
    ) -> None:
        if trace_collector and trace_id:
            await trace_collector.emit(trace_id, "tool_exec", {
                "tool": name,
                "attempt": attempt,
                "status": "error",
                "error": str(exc),
            })


def _public_parameters(schema: dict[str, Any]) -> dict[str, Any]:
    params = dict(schema or {"type": "object", "properties": {}})
    params.setdefault("type", "object")
    properties = params.get("properties") or {}
    params["properties"] = {k: v for k, v in properties.items() if k not in SCOPED_ARGUMENT_KEYS}
    if "required" in params:
        params["required"] = [r for r in params["required"] if r not in SCOPED_ARGUMENT_KEYS]
    return params

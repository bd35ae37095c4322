"""AgentLoop — bounded LLM ↔ tool iteration for one turn."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterator, Sequence

from cfo_agent.engine.llm import LLMClient
from cfo_agent.engine.models import (
    AgentRunResult,
    AgentRunState,
    CallerScope,
    EngineEvent,
    EngineEventType,
    ToolOutcome,
)
from cfo_agent.tools.registry import ToolRegistry
from cfo_agent.tools.results import preview
from cfo_agent.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = (
    "I wasn't able to finish that request in a reasonable number of steps. "
    "Please narrow your query (for example a specific customer, date range or document) and try again."
)


class AgentLoop:
    """``async for event in loop.stream(state, ...)`` — results land in *state*."""

    MAX_ITERATIONS: int = 5

    def __init__(
        self,
        llm_client: LLMClient,
        tool_registry: ToolRegistry,
        trace_collector: TraceCollector | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self._llm = llm_client
        self._tools = tool_registry
        self._trace = trace_collector
        self.max_iterations = max_iterations or self.MAX_ITERATIONS

    async def stream(
        self,
        state: AgentRunState,
        system_prompt: str,
        tool_schemas: list[dict[str, Any]],
        prior_turns: Sequence[dict[str, Any]],
        query: str,
        scope: CallerScope,
        request_id: str = "",
        model: str | None = None,
    ) -> AsyncIterator[EngineEvent]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            *prior_turns,
            {"role": "user", "content": query},
        ]
        state.transcript = messages

        for iteration in range(self.max_iterations):
            state.iterations = iteration + 1
            t_llm = time.time()
            result = await self._llm.generate(messages, tools=tool_schemas or None, model=model)
            state.usage = state.usage + result.usage
            await self._emit(request_id, "llm_call", {
                "iteration": iteration,
                "model": model,
                "latency_ms": round((time.time() - t_llm) * 1000, 2),
                "has_tool_calls": bool(result.tool_calls),
            })

            # -- plain answer ends the turn ---------------------------------
            if not result.tool_calls:
                state.final_text = result.content or ""
                return

            # -- tool calls, strictly in model order ----------------------------
            messages.append({
                "role": "assistant",
                "content": result.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in result.tool_calls
                ],
            })

            for tc in result.tool_calls:
                yield EngineEvent(
                    type=EngineEventType.TOOL_CALL,
                    data={"id": tc.id, "tool": tc.name, "args": tc.arguments},
                    request_id=request_id,
                )

                try:
                    output = await self._tools.execute(
                        name=tc.name,
                        arguments=tc.arguments,
                        scope=scope,
                        trace_collector=self._trace,
                        trace_id=request_id,
                    )
                except Exception as exc:
                    logger.warning("[%s] tool %s failed: %s", request_id, tc.name, exc)
                    error = str(exc) or type(exc).__name__
                    outcome = ToolOutcome(tool=tc.name, call_id=tc.id, success=False, error=error)
                    content = json.dumps({"error": error})
                    result_data = {"id": tc.id, "tool": tc.name, "success": False, "error": error}
                else:
                    outcome = ToolOutcome(tool=tc.name, call_id=tc.id, success=True, preview=preview(output))
                    content = output
                    result_data = {"id": tc.id, "tool": tc.name, "success": True, "preview": outcome.preview}

                state.outcomes.append(outcome)
                messages.append({"role": "tool", "tool_call_id": tc.id, "content": content})
                yield EngineEvent(type=EngineEventType.TOOL_RESULT, data=result_data, request_id=request_id)

            yield EngineEvent(
                type=EngineEventType.THINKING,
                data={"phase": "analyzing", "iteration": iteration + 1},
                request_id=request_id,
            )

        logger.warning("[%s] iteration budget (%d) exhausted", request_id, self.max_iterations)
        state.exhausted = True
        state.final_text = EXHAUSTED_MESSAGE

    async def run(
        self,
        system_prompt: str,
        tool_schemas: list[dict[str, Any]],
        prior_turns: Sequence[dict[str, Any]],
        query: str,
        scope: CallerScope,
        request_id: str = "",
        model: str | None = None,
    ) -> AgentRunResult:
        state = AgentRunState()
        async for _ in self.stream(
            state, system_prompt, tool_schemas, prior_turns, query, scope, request_id, model=model,
        ):
            pass
        return AgentRunResult(
            final_text=state.final_text,
            outcomes=state.outcomes,
            usage=state.usage,
            iterations=state.iterations,
            exhausted=state.exhausted,
        )

    async def _emit(self, request_id: str, event_type: str, data: dict[str, Any]) -> None:
        if self._trace and request_id:
            await self._trace.emit(request_id, event_type, data)

"""AgentEngine — per-turn orchestration around the agent loop."""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Callable, Mapping, Sequence

from cfo_agent.engine.errors import ToolServerError, user_facing_message
from cfo_agent.engine.llm import LLMClient, select_model_tier
from cfo_agent.engine.loop import AgentLoop
from cfo_agent.engine.models import (
    AgentRunState,
    CacheEntry,
    CallerScope,
    ChatRequest,
    Conversation,
    EngineEvent,
    EngineEventType,
    Message,
    MessageMetadata,
    ToolDescriptor,
    TurnRecord,
    Usage,
)
from cfo_agent.mcp.client import MCPClient
from cfo_agent.skills.router import QueryRouter
from cfo_agent.store.cache import (
    CACHE_TTL_SECONDS,
    ResponseCache,
    cache_key,
    invalidation_targets,
    is_cacheable_answer,
    is_write_tool,
)
from cfo_agent.store.conversation import PREVIEW_CHARS, ConversationStore, generate_title
from cfo_agent.tools.catalog import select_tools
from cfo_agent.tools.registry import ToolRegistry
from cfo_agent.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

MCPClientFactory = Callable[[CallerScope, str], MCPClient]

HISTORY_WINDOW = 10


class AgentEngine:
    """Public API: ``async for event in engine.handle(request): ...``"""

    def __init__(
        self,
        conversation_store: ConversationStore,
        response_cache: ResponseCache,
        router: QueryRouter,
        llm_client: LLMClient,
        trace_collector: TraceCollector,
        mcp_factory: MCPClientFactory | None = None,
        default_credential: str | None = None,
        history_window: int = HISTORY_WINDOW,
        model_tiers: Mapping[str, str] | None = None,
    ) -> None:
        self._conversations = conversation_store
        self._cache = response_cache
        self._router = router
        self._llm = llm_client
        self._trace = trace_collector
        self._mcp_factory = mcp_factory
        self._default_credential = default_credential
        self._history_window = history_window
        # tier name -> model id; an unmapped tier keeps the client's default model
        self._model_tiers = dict(model_tiers or {})

    # ------------------------------------------------------------------
    # Public handle
    # ------------------------------------------------------------------

    async def handle(self, request: ChatRequest) -> AsyncIterator[EngineEvent]:
        rid = request.request_id
        t_start = time.time()
        scope = CallerScope(entity_id=request.entity_id, user_id=request.user_id, org_id=request.org_id)
        client: MCPClient | None = None

        def event(kind: EngineEventType, **data) -> EngineEvent:
            return EngineEvent(type=kind, data=data, request_id=rid)

        try:
            yield event(EngineEventType.CONNECTED)

            # 1. Conversation ------------------------------------------------
            handle = await self._conversations.get_or_create(
                request.conversation_id, request.entity_id, request.user_id,
            )
            conversation = handle.conversation
            history = conversation.messages

            # 2. Route -------------------------------------------------------
            decision = self._router.route(request.message, history)
            skill, follow_up = decision.skill, decision.follow_up
            mode = skill.name
            await self._trace.emit(rid, "route", {
                "mode": mode,
                "is_follow_up": follow_up.is_follow_up,
                "matched_keywords": list(decision.classification.matched_keywords) if decision.classification else [],
            })

            # 3. Cache -------------------------------------------------------
            key = cache_key(request.entity_id, mode, request.message)
            if skill.cacheable and not follow_up.is_follow_up:
                entry = await self._cache.get(request.entity_id, key)
                if entry is not None:
                    logger.info("[%s] cache hit key=%s", rid, key)
                    yield event(EngineEventType.ROUTE_INFO, path=mode, isFollowUp=False, cached=True)
                    for token in _word_tokens(entry.content):
                        yield event(EngineEventType.TOKEN, text=token)
                    yield event(EngineEventType.RESPONSE, text=entry.content)

                    elapsed_ms = _ms_since(t_start)
                    conversation = await self._persist(
                        conversation, request.message, entry.content, mode,
                        tools_used=list(entry.tools_used), tools_available=[],
                        latency_ms=elapsed_ms, is_follow_up=False,
                    )
                    await self._record(request, conversation, entry.content, mode, False,
                                       list(entry.tools_used), [], "cache_hit", elapsed_ms, Usage(), 0)
                    yield self._done(rid, conversation, mode, list(entry.tools_used), elapsed_ms, Usage(), cached=True)
                    return

            yield event(
                EngineEventType.ROUTE_INFO,
                path=mode,
                isFollowUp=follow_up.is_follow_up,
                confidence=decision.classification.confidence if decision.classification else None,
                cached=False,
            )

            # 4. Tool session + selection --------------------------------------
            registry = ToolRegistry()
            tool_names: list[str] = []
            strategy: str | None = None

            if skill.uses_tools:
                yield event(EngineEventType.THINKING, phase="connecting")
                client, live_tools = await self._open_tool_session(scope, request.credential, rid)
                if client is None:
                    yield event(EngineEventType.THINKING, phase="mcp_fallback")
                else:
                    registry = ToolRegistry(invoker=client)
                    registry.register_many(live_tools)

                if follow_up.is_follow_up:
                    tool_names = list(follow_up.reused_tools)
                    strategy = "follow_up_reuse"
                else:
                    selection = select_tools(request.message, mode, registry.descriptors() or None)
                    tool_names = list(selection.tool_names)
                    strategy = selection.strategy
                    await self._trace.emit(rid, "tool_selection", {
                        "strategy": strategy,
                        "categories": list(selection.matched_categories),
                        "tool_count": len(tool_names),
                    })

            tool_schemas = registry.openai_schemas(tool_names)
            yield event(EngineEventType.THINKING, phase="planning", tools=len(tool_schemas), strategy=strategy)

            # 5. Agent loop --------------------------------------------------
            tier = select_model_tier(request.message, mode)
            model = self._model_tiers.get(tier.tier)
            logger.info("[%s] model tier=%s model=%s (%s)", rid, tier.tier, model, tier.reason)
            await self._trace.emit(rid, "model_tier", {"tier": tier.tier, "reason": tier.reason, "model": model})

            state = AgentRunState()
            loop = AgentLoop(self._llm, registry, self._trace)
            async for loop_event in loop.stream(
                state,
                skill.system_prompt(),
                tool_schemas,
                self._prior_turns(history),
                request.message,
                scope,
                rid,
                model=model,
            ):
                yield loop_event

            final_text = state.final_text
            for token in _word_tokens(final_text):
                yield event(EngineEventType.TOKEN, text=token)
            yield event(EngineEventType.RESPONSE, text=final_text)

            # 6. Persist, cache, audit ---------------------------------------
            tools_used = _unique(state.tools_used)
            elapsed_ms = _ms_since(t_start)
            conversation = await self._persist(
                conversation, request.message, final_text, mode,
                tools_used=tools_used, tools_available=tool_names,
                latency_ms=elapsed_ms, is_follow_up=follow_up.is_follow_up,
            )

            if any(is_write_tool(t) for t in tools_used):
                targets = invalidation_targets(tools_used)
                removed = await self._cache.invalidate(request.entity_id, targets)
                await self._trace.emit(rid, "cache_invalidate", {"targets": targets, "removed": removed})
            elif (
                skill.cacheable
                and not follow_up.is_follow_up
                and not state.exhausted
                and is_cacheable_answer(final_text)
            ):
                await self._cache.put(CacheEntry(
                    key=key,
                    entity_id=request.entity_id,
                    query_text=request.message,
                    content=final_text,
                    category=mode,
                    tools_used=tools_used,
                    ttl_seconds=CACHE_TTL_SECONDS,
                ))

            await self._record(request, conversation, final_text, mode, follow_up.is_follow_up,
                               tools_used, tool_names, strategy, elapsed_ms, state.usage, state.iterations,
                               model_tier=tier.tier)
            yield self._done(rid, conversation, mode, tools_used, elapsed_ms, state.usage, cached=False)

        except Exception as exc:
            logger.exception("[%s] turn failed", rid)
            await self._trace.emit(rid, "error", {"error": str(exc), "error_type": type(exc).__name__})
            yield event(EngineEventType.ERROR, message=user_facing_message(exc))

        finally:
            if client is not None:
                await client.close()
            await self._trace.emit(rid, "handle_done", {"total_latency_ms": _ms_since(t_start)})
            await self._trace.flush(rid)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _open_tool_session(
        self,
        scope: CallerScope,
        credential: str | None,
        rid: str,
    ) -> tuple[MCPClient | None, list[ToolDescriptor]]:
        credential = credential or self._default_credential
        if self._mcp_factory is None or not credential:
            logger.info("[%s] no tool server configured for this request; continuing without tools", rid)
            return None, []

        client: MCPClient | None = None
        try:
            client = self._mcp_factory(scope, credential)
            await client.connect()
            tools = await client.list_tools()
        except ToolServerError as exc:
            logger.warning("[%s] tool server unavailable, continuing without tools: %s", rid, exc)
            if client is not None:
                await client.close()
            return None, []
        except BaseException:
            if client is not None:
                await client.close()
            raise
        return client, tools

    def _prior_turns(self, history: Sequence[Message]) -> list[dict[str, str]]:
        window = history[-self._history_window:] if self._history_window else []
        return [{"role": m.role, "content": m.content} for m in window]

    async def _persist(
        self,
        conversation: Conversation,
        query: str,
        answer: str,
        mode: str,
        tools_used: list[str],
        tools_available: list[str],
        latency_ms: float,
        is_follow_up: bool,
    ) -> Conversation:
        metadata = MessageMetadata(
            mode=mode,
            path=mode,
            tools_used=tools_used,
            tools_available=tools_available,
            latency_ms=latency_ms,
            is_follow_up=is_follow_up,
        )
        return await self._conversations.save(
            conversation.conversation_id,
            [
                Message(role="user", content=query),
                Message(role="assistant", content=answer, metadata=metadata),
            ],
            title=None if conversation.title else generate_title(query, mode),
            preview=answer[:PREVIEW_CHARS],
            mode=mode,
        )

    async def _record(
        self,
        request: ChatRequest,
        conversation: Conversation,
        answer: str,
        mode: str,
        is_follow_up: bool,
        tools_used: list[str],
        tools_available: list[str],
        strategy: str | None,
        elapsed_ms: float,
        usage: Usage,
        iterations: int,
        model_tier: str | None = None,
    ) -> None:
        await self._trace.record_turn(TurnRecord(
            request_id=request.request_id,
            conversation_id=conversation.conversation_id,
            entity_id=request.entity_id,
            user_id=request.user_id,
            user_message=request.message,
            assistant_response=answer,
            route_path=mode,
            is_follow_up=is_follow_up,
            tools_used=tools_used,
            tools_available=tools_available,
            selection_strategy=strategy,
            response_time_ms=elapsed_ms,
            usage=usage,
            iterations=iterations,
            model_tier=model_tier,
        ))

    @staticmethod
    def _done(
        rid: str,
        conversation: Conversation,
        mode: str,
        tools_used: list[str],
        elapsed_ms: float,
        usage: Usage,
        cached: bool,
    ) -> EngineEvent:
        return EngineEvent(
            type=EngineEventType.DONE,
            data={
                "conversationId": conversation.conversation_id,
                "path": mode,
                "toolsUsed": tools_used,
                "executionTime": elapsed_ms,
                "usage": usage.model_dump(),
                "chatDisplayId": conversation.display_id,
                "title": conversation.title,
                "messageCount": conversation.message_count,
                "cached": cached,
            },
            request_id=rid,
        )


def _word_tokens(text: str) -> list[str]:
    """Simulated streaming: word-level chunks that concatenate back to *text*."""
    if not text:
        return []
    words = text.split(" ")
    return [w if i == len(words) - 1 else w + " " for i, w in enumerate(words)]


def _unique(names: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _ms_since(t_start: float) -> float:
    return round((time.time() - t_start) * 1000, 2)

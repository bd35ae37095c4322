"""LLM client — ABC, OpenAI implementation, and mocks."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from cfo_agent.config import DEFAULT_MODEL, resolve_llm_base_url
from cfo_agent.engine.errors import LLMProviderError
from cfo_agent.engine.models import LLMResult, ToolCallRequest, Usage

logger = logging.getLogger(__name__)


class LLMClient(ABC):
    """Abstract LLM interface. Returns a complete (non-streaming) response.

    Token-level streaming is simulated in the engine by splitting content
    into word chunks — keeps this interface simple and testable.
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> LLMResult: ...


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

class OpenAILLMClient(LLMClient):
    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        # Late import so the rest of the package works without openai installed
        from openai import AsyncOpenAI

        resolved = resolve_llm_base_url(base_url)
        if base_url and resolved is None:
            logger.warning("LLM base URL %s does not look like a chat-completions API; using default", base_url)
        self._client = AsyncOpenAI(api_key=api_key, base_url=resolved)
        self._model = model
        self._max_tokens = max_tokens

    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> LLMResult:
        kwargs: dict[str, Any] = {"model": model or self._model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
        if self._max_tokens:
            kwargs["max_tokens"] = self._max_tokens

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise classify_provider_error(exc) from exc

        if not response.choices:
            raise LLMProviderError("bad_response", "Provider returned no choices")
        choice = response.choices[0]
        usage = _usage_from(response)

        if choice.message.tool_calls:
            tc_list = [
                ToolCallRequest(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments,
                )
                for tc in choice.message.tool_calls
            ]
            return LLMResult(tool_calls=tc_list, usage=usage)

        return LLMResult(content=choice.message.content or "", usage=usage)


def _usage_from(response: Any) -> Usage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return Usage()
    return Usage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


def classify_provider_error(exc: Exception) -> LLMProviderError:
    """Fold an ``openai`` SDK exception into one of the fixed failure kinds."""
    import openai

    if isinstance(exc, LLMProviderError):
        return exc
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        kind = "auth"
    elif isinstance(exc, openai.RateLimitError):
        kind = "rate_limit"
    elif isinstance(exc, openai.NotFoundError):
        kind = "endpoint"
    elif isinstance(exc, openai.APIConnectionError):  # includes APITimeoutError
        kind = "unreachable"
    elif isinstance(exc, openai.APIStatusError):
        kind = "unreachable" if exc.status_code >= 500 else "bad_response"
    else:
        kind = "unknown"
    logger.error("LLM provider error kind=%s: %s", kind, exc)
    return LLMProviderError(kind, str(exc))


# ---------------------------------------------------------------------------
# Model tier selection
# ---------------------------------------------------------------------------

CHEAP_TIER = "cheap"
CAPABLE_TIER = "capable"
LONG_QUERY_WORDS = 30

COMPLEX_INDICATORS: tuple[str, ...] = (
    # analytical
    "analyze", "analyse", "analysis", "compare", "comparison", "trend",
    "forecast", "predict", "projection", "anomaly", "anomalies",
    "correlation", "regression", "variance", "deviation",
    # multi-step
    "and then", "after that", "also", "additionally", "furthermore",
    "step by step", "detailed", "comprehensive", "deep dive",
    # period-over-period
    "year over year", "yoy", "month over month", "mom", "quarter",
    "seasonal", "cyclical", "benchmark", "industry average",
    # Hindi
    "vishleshan", "tulna", "purvanumaan",
)


@dataclass(frozen=True)
class ModelTier:
    tier: str
    reason: str


def select_model_tier(query: str, mode: str) -> ModelTier:
    """Cheap model for chat and plain lookups, capable model for analytical or multi-step asks.

    A long query with any indicator, or any query with two or more, gets the
    capable tier.
    """
    if mode == "general_chat":
        return ModelTier(CHEAP_TIER, "general conversation")

    text = query.lower()
    word_count = len(text.split())
    hits = [k for k in COMPLEX_INDICATORS if re.search(rf"(?<![a-z0-9]){re.escape(k)}(?![a-z0-9])", text)]

    if word_count > LONG_QUERY_WORDS and hits:
        return ModelTier(CAPABLE_TIER, f"long query ({word_count} words, {len(hits)} analytical keywords)")
    if len(hits) >= 2:
        return ModelTier(CAPABLE_TIER, f"analytical query ({', '.join(hits)})")
    return ModelTier(CHEAP_TIER, "standard query")


# ---------------------------------------------------------------------------
# Test mock: replays pre-loaded responses
# ---------------------------------------------------------------------------

class MockLLMClient(LLMClient):
    """Returns pre-configured responses in order. Used in unit tests.

    An ``Exception`` in the list is raised instead of returned.
    """

    def __init__(self, responses: list[LLMResult | Exception]) -> None:
        self._responses = list(responses)
        self._call_index = 0
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self, messages: list[dict], tools: list[dict] | None = None, model: str | None = None,
    ) -> LLMResult:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools, "model": model})
        if self._call_index >= len(self._responses):
            return LLMResult(content="[mock responses exhausted]")
        result = self._responses[self._call_index]
        self._call_index += 1
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def call_count(self) -> int:
        return self._call_index


# ---------------------------------------------------------------------------
# Demo mock: runs without an API key
# ---------------------------------------------------------------------------

class DemoMockLLMClient(LLMClient):
    """Demonstrates the full tool-calling loop without a real LLM.

    Behaviour:
    1. If the last message is a tool result → summarise it.
    2. If tools are available → call the first offered tool with no arguments.
    3. Otherwise → return a generic text response.
    """

    async def generate(
        self, messages: list[dict], tools: list[dict] | None = None, model: str | None = None,
    ) -> LLMResult:
        last = messages[-1] if messages else {}

        if last.get("role") == "tool":
            content = last.get("content", "")
            try:
                parsed = json.loads(content)
                if isinstance(parsed, dict) and "error" in parsed:
                    return LLMResult(content=f"I couldn't fetch that data: {parsed['error']}")
            except (json.JSONDecodeError, TypeError):
                pass
            return LLMResult(content=f"Here is what the books show: {content[:200]}")

        if tools:
            tool_name = tools[0]["function"]["name"]
            return LLMResult(tool_calls=[
                ToolCallRequest(id="demo-tc-1", name=tool_name, arguments={}),
            ])

        return LLMResult(content="This is a demo response. Set OPENAI_API_KEY for real LLM output.")

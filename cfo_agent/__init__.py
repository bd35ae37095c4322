"""cfo_agent — agent orchestration engine for a conversational accounting assistant.

Usage::

    from cfo_agent import create_engine
    from cfo_agent.engine.models import ChatRequest

    engine = create_engine()
    async for event in engine.handle(ChatRequest(message="show me unpaid invoices", entity_id="e-1")):
        print(event)
"""

from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from cfo_agent.config import EngineConfig
from cfo_agent.engine.agent import AgentEngine, MCPClientFactory
from cfo_agent.engine.llm import CAPABLE_TIER, CHEAP_TIER, DemoMockLLMClient, LLMClient, OpenAILLMClient
from cfo_agent.engine.models import CallerScope, ChatRequest, EngineEvent, EngineEventType
from cfo_agent.mcp.client import MCPClient
from cfo_agent.mcp.transport import HttpxStreamTransport
from cfo_agent.skills import QueryRouter, default_skills
from cfo_agent.store.cache import InMemoryResponseCache
from cfo_agent.store.conversation import InMemoryConversationStore
from cfo_agent.tracing.jsonl_tracer import JSONLTraceCollector

__all__ = [
    "AgentEngine",
    "ChatRequest",
    "EngineConfig",
    "EngineEvent",
    "EngineEventType",
    "create_engine",
    "make_mcp_factory",
    "model_tiers_for",
]


def make_mcp_factory(base_url: str, org_id: str | None = None) -> MCPClientFactory:
    """Factory producing one fresh tool-server session per request."""

    def factory(scope: CallerScope, credential: str) -> MCPClient:
        transport = HttpxStreamTransport(
            credential=credential,
            entity_id=scope.entity_id,
            org_id=scope.org_id or org_id,
        )
        return MCPClient(base_url, transport)

    return factory


def model_tiers_for(config: EngineConfig) -> dict[str, str]:
    return {
        CHEAP_TIER: config.openai_cheap_model or config.openai_model,
        CAPABLE_TIER: config.openai_model,
    }


def create_engine(config: EngineConfig | None = None, **overrides) -> AgentEngine:
    """Wire all components and return a ready-to-use AgentEngine.

    *config* defaults to ``EngineConfig.from_env()``; keyword overrides
    (``openai_api_key=...``, ``trace_dir=...``) win over the environment.
    No API key, or ``USE_MOCK_LLM=1``, selects the demo mock LLM.
    """
    if config is None:
        config = EngineConfig.from_env(**overrides)
    elif overrides:
        config = config.model_copy(update=overrides)

    llm_client: LLMClient
    if config.use_mock_llm or not config.openai_api_key:
        llm_client = DemoMockLLMClient()
    else:
        llm_client = OpenAILLMClient(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            max_tokens=config.llm_max_tokens,
        )

    mcp_factory = make_mcp_factory(config.mcp_base_url, config.mcp_org_id) if config.mcp_base_url else None

    return AgentEngine(
        conversation_store=InMemoryConversationStore(),
        response_cache=InMemoryResponseCache(),
        router=QueryRouter(default_skills()),
        llm_client=llm_client,
        trace_collector=JSONLTraceCollector(config.trace_dir),
        mcp_factory=mcp_factory,
        default_credential=config.mcp_auth_token,
        model_tiers=model_tiers_for(config),
    )

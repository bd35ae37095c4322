from cfo_agent.engine.models import (
    AgentRunResult,
    AgentRunState,
    CallerScope,
    ChatRequest,
    Conversation,
    EngineEvent,
    EngineEventType,
    LLMResult,
    Message,
    MessageMetadata,
    ToolCallRequest,
    ToolDescriptor,
    Usage,
)
from cfo_agent.engine.errors import (
    CFOAgentError,
    LLMProviderError,
    ProtocolTimeout,
    ToolCallError,
    ToolServerError,
    ToolServerUnavailable,
    user_facing_message,
)
from cfo_agent.engine.llm import DemoMockLLMClient, LLMClient, MockLLMClient, OpenAILLMClient
from cfo_agent.engine.loop import EXHAUSTED_MESSAGE, AgentLoop
from cfo_agent.engine.agent import AgentEngine

__all__ = [
    "AgentEngine",
    "AgentLoop",
    "AgentRunResult",
    "AgentRunState",
    "CFOAgentError",
    "CallerScope",
    "ChatRequest",
    "Conversation",
    "DemoMockLLMClient",
    "EXHAUSTED_MESSAGE",
    "EngineEvent",
    "EngineEventType",
    "LLMClient",
    "LLMProviderError",
    "LLMResult",
    "Message",
    "MessageMetadata",
    "MockLLMClient",
    "OpenAILLMClient",
    "ProtocolTimeout",
    "ToolCallError",
    "ToolCallRequest",
    "ToolDescriptor",
    "ToolServerError",
    "ToolServerUnavailable",
    "Usage",
    "user_facing_message",
]

"""Core data models — no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Inbound request (adapter → engine)
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    """Adapter-agnostic incoming chat turn."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    conversation_id: str | None = Field(default=None, alias="conversationId")
    entity_id: str = Field(default="default", alias="entityId")
    user_id: str = Field(default="anonymous", alias="userId")
    org_id: str | None = Field(default=None, alias="orgId")
    credential: str | None = Field(default=None, exclude=True)
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8], alias="requestId")


class CallerScope(BaseModel):
    """Identifiers the engine injects into tool calls on the caller's behalf."""
    entity_id: str
    user_id: str = "anonymous"
    org_id: str | None = None


# ---------------------------------------------------------------------------
# Outbound events (engine → adapter)
# ---------------------------------------------------------------------------

class EngineEventType(str, Enum):
    CONNECTED = "connected"
    ROUTE_INFO = "route_info"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TOKEN = "token"
    RESPONSE = "response"
    DONE = "done"
    ERROR = "error"
    HEARTBEAT = "heartbeat"


class EngineEvent(BaseModel):
    type: EngineEventType
    data: dict[str, Any] = Field(default_factory=dict)
    request_id: str = ""
    timestamp: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class MessageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: str | None = None
    path: str | None = None
    tools_used: list[str] = Field(default_factory=list)
    tools_available: list[str] = Field(default_factory=list)
    latency_ms: float | None = None
    is_follow_up: bool = False


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: MessageMetadata | None = None


class Conversation(BaseModel):
    conversation_id: str
    entity_id: str
    user_id: str = "anonymous"
    chat_number: int
    display_id: str
    title: str = ""
    last_preview: str = ""
    mode: str = "general"
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def message_count(self) -> int:
        return len(self.messages)


class ConversationHandle(BaseModel):
    conversation: Conversation
    is_new: bool


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class ToolDescriptor(BaseModel):
    """A tool as advertised by the remote tool server at connect time."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )


class ToolOutcome(BaseModel):
    tool: str
    call_id: str
    success: bool
    error: str | None = None
    preview: str | None = None


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    key: str
    entity_id: str
    query_text: str
    content: str
    category: str
    tools_used: list[str] = Field(default_factory=list)
    ttl_seconds: int = 300
    created_at: float = Field(default_factory=time.time)

    def is_fresh(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at <= self.ttl_seconds


# ---------------------------------------------------------------------------
# LLM helpers
# ---------------------------------------------------------------------------

class ToolCallRequest(BaseModel):
    """A single tool/function call requested by the LLM.

    ``arguments`` may arrive as the raw JSON string the provider returned;
    anything that does not decode to an object becomes ``{}``.
    """
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _parse_arguments(cls, value: Any) -> dict[str, Any]:
        if isinstance(value, (str, bytes)):
            try:
                value = json.loads(value or "{}")
            except ValueError:
                return {}
        return value if isinstance(value, dict) else {}


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class LLMResult(BaseModel):
    """Complete (non-streaming) LLM response."""
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    usage: Usage = Field(default_factory=Usage)


# ---------------------------------------------------------------------------
# Agent loop + audit
# ---------------------------------------------------------------------------

class AgentRunState(BaseModel):
    """Scratch state for one agent-loop invocation."""
    iterations: int = 0
    outcomes: list[ToolOutcome] = Field(default_factory=list)
    transcript: list[dict[str, Any]] = Field(default_factory=list)
    final_text: str = ""
    usage: Usage = Field(default_factory=Usage)
    exhausted: bool = False

    @property
    def tools_used(self) -> list[str]:
        return [o.tool for o in self.outcomes]


class AgentRunResult(BaseModel):
    final_text: str
    outcomes: list[ToolOutcome]
    usage: Usage
    iterations: int
    exhausted: bool


class TurnRecord(BaseModel):
    """One audit/feedback row per completed turn."""
    request_id: str
    conversation_id: str
    entity_id: str
    user_id: str
    user_message: str
    assistant_response: str
    route_path: str
    is_follow_up: bool = False
    tools_used: list[str] = Field(default_factory=list)
    tools_available: list[str] = Field(default_factory=list)
    selection_strategy: str | None = None
    response_time_ms: float
    usage: Usage = Field(default_factory=Usage)
    iterations: int = 0
    model_tier: str | None = None

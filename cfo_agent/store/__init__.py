from cfo_agent.store.cache import (
    CACHE_INVALIDATION_MAP,
    InMemoryResponseCache,
    ResponseCache,
    cache_key,
    invalidation_targets,
    is_write_tool,
)
from cfo_agent.store.conversation import ConversationStore, InMemoryConversationStore, generate_title

__all__ = [
    "CACHE_INVALIDATION_MAP",
    "ConversationStore",
    "InMemoryConversationStore",
    "InMemoryResponseCache",
    "ResponseCache",
    "cache_key",
    "generate_title",
    "invalidation_targets",
    "is_write_tool",
]

"""Conversation store — ABC + in-memory implementation, plus title generation."""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Sequence

from cfo_agent.engine.models import Conversation, ConversationHandle, Message

PREVIEW_CHARS = 80
DISPLAY_PREFIX = "#CFO-"


def display_id(chat_number: int) -> str:
    return f"{DISPLAY_PREFIX}{chat_number:04d}"


class ConversationStore(ABC):
    """Async conversation persistence interface.

    Swap to Redis/Postgres by implementing this ABC.  Messages are append-only;
    stored copies must never alias objects the caller still holds.
    """

    @abstractmethod
    async def get_or_create(
        self,
        conversation_id: str | None,
        entity_id: str,
        user_id: str = "anonymous",
    ) -> ConversationHandle: ...

    @abstractmethod
    async def get(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def save(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        title: str | None = None,
        preview: str | None = None,
        mode: str | None = None,
    ) -> Conversation: ...


class InMemoryConversationStore(ConversationStore):
    """Dict-backed store — suitable for single-process dev/test."""

    def __init__(self) -> None:
        self._store: dict[str, Conversation] = {}
        self._chat_counters: dict[str, int] = {}

    async def get_or_create(
        self,
        conversation_id: str | None,
        entity_id: str,
        user_id: str = "anonymous",
    ) -> ConversationHandle:
        if conversation_id and conversation_id in self._store:
            return ConversationHandle(conversation=self._store[conversation_id].model_copy(deep=True), is_new=False)

        number = self._chat_counters.get(entity_id, 0) + 1
        self._chat_counters[entity_id] = number
        conversation = Conversation(
            conversation_id=conversation_id or uuid.uuid4().hex,
            entity_id=entity_id,
            user_id=user_id,
            chat_number=number,
            display_id=display_id(number),
        )
        self._store[conversation.conversation_id] = conversation
        return ConversationHandle(conversation=conversation.model_copy(deep=True), is_new=True)

    async def get(self, conversation_id: str) -> Conversation | None:
        conversation = self._store.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def save(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        title: str | None = None,
        preview: str | None = None,
        mode: str | None = None,
    ) -> Conversation:
        conversation = self._store.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Conversation '{conversation_id}' not found")

        conversation.messages.extend(m.model_copy(deep=True) for m in messages)
        if title and not conversation.title:
            conversation.title = title
        if preview is not None:
            conversation.last_preview = preview[:PREVIEW_CHARS]
        if mode:
            conversation.mode = mode
        conversation.updated_at = datetime.now(timezone.utc)
        return conversation.model_copy(deep=True)


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

_ACTION_WORDS = ("show", "get", "fetch", "list", "create", "send", "export", "find")
_ENTITY_WORDS = ("invoice", "bill", "payment", "customer", "vendor", "report", "profit", "cash", "gst", "tax")
_MODE_TITLES = {"bookkeeper": "Accounting Task", "cfo": "Financial Query"}


def generate_title(query: str, mode: str | None = None) -> str:
    """Short conversation title from the first query."""
    words = query.strip().split()
    lowered = [w.lower().strip("?!.,") for w in words]

    action = next((w for w in lowered if w in _ACTION_WORDS), None)
    entity = next(
        (e for e in _ENTITY_WORDS for w in lowered if re.fullmatch(rf"{e}(s|es)?", w)),
        None,
    )
    if action and entity:
        label = entity.upper() if entity in ("gst",) else entity.capitalize()
        return f"{action.capitalize()} {label}"

    if len(words) >= 3:
        return re.sub(r"[?!]+$", "", " ".join(words[:6]))

    return _MODE_TITLES.get(mode or "", "New Chat")

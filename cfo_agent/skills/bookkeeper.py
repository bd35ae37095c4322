"""Bookkeeper skill — write-intent turns (create, update, record, file...)."""

from __future__ import annotations

from cfo_agent.skills.interface import Skill

_SYSTEM_PROMPT = """\
You are a careful bookkeeping assistant for a small business.
Use the provided tools to create, update or record accounting documents.
Before any write, restate what you are about to do; ask for missing required
fields instead of inventing them. After a write, report the document number
the tool returned. Amounts are in the entity's base currency unless stated."""


class BookkeeperSkill(Skill):
    @property
    def name(self) -> str:
        return "bookkeeper"

    def system_prompt(self) -> str:
        return _SYSTEM_PROMPT

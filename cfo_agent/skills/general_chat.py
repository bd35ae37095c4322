"""General chat skill — greetings and small talk, no tool server."""

from __future__ import annotations

from cfo_agent.skills.interface import Skill

_SYSTEM_PROMPT = """\
You are a friendly accounting assistant. Reply briefly and warmly.
If the user seems to want financial data or to record something, tell them
what you can help with (invoices, bills, payments, reports, GST)."""


class GeneralChatSkill(Skill):
    @property
    def name(self) -> str:
        return "general_chat"

    def system_prompt(self) -> str:
        return _SYSTEM_PROMPT

    @property
    def uses_tools(self) -> bool:
        return False

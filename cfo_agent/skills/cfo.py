"""CFO skill — read, report and analysis turns. Answers are cacheable."""

from __future__ import annotations

from cfo_agent.skills.interface import Skill

_SYSTEM_PROMPT = """\
You are a virtual CFO for a small business.
Answer with figures fetched through the provided tools; never guess numbers.
Lead with the answer, then a short breakdown (a compact table when there are
several rows), then at most two observations worth acting on. If the tools
return nothing relevant, say so plainly."""


class CFOSkill(Skill):
    @property
    def name(self) -> str:
        return "cfo"

    def system_prompt(self) -> str:
        return _SYSTEM_PROMPT

    @property
    def cacheable(self) -> bool:
        return True

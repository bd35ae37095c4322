"""Skill ABC — one operating mode: system prompt, tool usage, cacheability."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Skill(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def system_prompt(self) -> str: ...

    @property
    def uses_tools(self) -> bool:
        """Whether this mode talks to the tool server at all."""
        return True

    @property
    def cacheable(self) -> bool:
        """Whether answers in this mode may be served from the response cache."""
        return False

from cfo_agent.skills.interface import Skill
from cfo_agent.skills.bookkeeper import BookkeeperSkill
from cfo_agent.skills.cfo import CFOSkill
from cfo_agent.skills.general_chat import GeneralChatSkill
from cfo_agent.skills.router import Classification, FollowUp, QueryRouter, RouteDecision


def default_skills() -> dict[str, Skill]:
    skills: list[Skill] = [BookkeeperSkill(), CFOSkill(), GeneralChatSkill()]
    return {s.name: s for s in skills}


__all__ = [
    "BookkeeperSkill",
    "CFOSkill",
    "Classification",
    "FollowUp",
    "GeneralChatSkill",
    "QueryRouter",
    "RouteDecision",
    "Skill",
    "default_skills",
]

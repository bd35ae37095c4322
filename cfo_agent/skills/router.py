"""Query router — picks an operating mode and spots follow-ups that reuse the last tool set."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Sequence

from cfo_agent.engine.models import Message
from cfo_agent.skills.interface import Skill

BOOKKEEPER = "bookkeeper"
CFO = "cfo"
GENERAL_CHAT = "general_chat"

FOLLOW_UP_MAX_WORDS = 6
CONTEXTUAL_MAX_WORDS = 20

GENERAL_CHAT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"^(hi|hello|hey|howdy|good\s+(morning|afternoon|evening|night))[\s!?.]*$",
    r"^(thanks|thank\s+you|thx|ty|cheers)[\s!?.]*$",
    r"^(bye|goodbye|see\s+you|take\s+care)[\s!?.]*$",
    r"^(help|what\s+can\s+you\s+do|who\s+are\s+you)[\s!?.]*$",
    r"^(ok|okay|sure|got\s+it|understood)[\s!?.]*$",
    r"^(yes|no|yep|nope|yeah|nah)[\s!?.]*$",
    r"^(namaste|namaskar|dhanyavaad|shukriya|alvida)[\s!?.]*$",
    r"^(haan|nahi|theek|accha)[\s!?.]*$",
))

BOOKKEEPER_KEYWORDS: tuple[str, ...] = (
    "create", "add", "new", "make", "generate", "banao", "naya",
    "edit", "update", "change", "modify", "badlo",
    "delete", "remove", "cancel", "hatao",
    "record", "enter", "book", "darj",
    "send", "email", "bhejo",
    "file", "submit", "upload",
    "void", "reverse", "import", "clone", "duplicate",
    "reconcile", "categorize", "adjust", "transfer",
    "invoice", "bill", "credit note", "debit note", "payment", "expense", "journal",
    "e-invoice", "einvoice", "e-way", "eway",
)

CFO_KEYWORDS: tuple[str, ...] = (
    "show", "get", "fetch", "list", "view", "display", "dikhao", "batao",
    "report", "statement", "summary", "overview",
    "analyze", "analysis", "analyse", "insight", "trend",
    "compare", "comparison", "versus", "vs",
    "revenue", "income", "sales", "turnover",
    "cost", "spending", "kharcha",
    "profit", "loss", "margin", "p&l",
    "balance", "balance sheet", "assets", "liabilities", "equity",
    "cash", "cashflow", "cash flow", "liquidity",
    "receivable", "receivables", "outstanding", "overdue", "aging", "unpaid",
    "payable", "payables", "dues",
    "gst", "tax", "tds", "gstr",
    "kpi", "ratio", "health", "performance",
    "inventory", "stock", "forecast", "projection", "budget",
    "top", "highest", "lowest", "how much", "total",
)

# An action verb next to read keywords still means a write ("send reminders to overdue customers").
ACTION_OVERRIDE_KEYWORDS: tuple[str, ...] = (
    "create", "delete", "send", "file", "record", "void", "cancel",
    "banao", "bhejo", "hatao", "mita", "dakhil",
)

# Explicit entity nouns: a short query naming one is a fresh question, not a follow-up.
ENTITY_KEYWORDS: tuple[str, ...] = (
    "invoice", "bill", "customer", "vendor", "supplier", "payment", "expense", "report",
    "journal", "account", "product", "item", "credit note", "debit note", "challan",
    "eway", "e-way", "gst", "profit", "revenue", "balance sheet", "cash flow", "bank",
    "transaction", "inventory", "stock",
)

CONTEXTUAL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"\bcompare (that|this|it|them) (with|to|against)\b",
    r"\bsame (for|with|as)\b",
    r"\bdrill (down|into)\b",
    r"\bwhat about\b",
    r"\bhow about\b",
    r"\bbreak (it|that|this|them) down\b",
    r"\bbreakdown of (that|this|it)\b",
    r"\bmore details?\b",
    r"\b(tell|show) me more\b",
    r"\b(the )?(first|second|third|last|previous) one\b",
    r"\b(that|this|those|these) (one|ones|invoice|invoices|bill|bills|customer|vendor|entries|records)\b",
    r"\b(next|previous) page\b",
    r"\b(and|also) for\b",
    r"^(and|also|now|then)\b",
))


def _contains(keyword: str, text: str) -> bool:
    # whole word, plural allowed ("invoice" hits "invoices")
    return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?:s|es)?(?![a-z0-9])", text) is not None


@dataclass(frozen=True)
class Classification:
    mode: str
    confidence: float
    matched_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class FollowUp:
    is_follow_up: bool
    reused_category: str | None = None
    reused_tools: tuple[str, ...] = ()


NOT_FOLLOW_UP = FollowUp(False)


@dataclass(frozen=True)
class RouteDecision:
    skill: Skill
    follow_up: FollowUp
    classification: Classification | None = None

    @property
    def mode(self) -> str:
        return self.skill.name


@dataclass
class QueryRouter:
    """Maps a query plus history to a skill.

    Rules (checked in order):
      follow-up of a tool-using turn => that turn's mode and tool list
      greeting / courtesy            => general_chat
      write score > read score       => bookkeeper
      read hits + action verb        => bookkeeper
      *                              => cfo (default)
    """

    skills: Mapping[str, Skill]
    default_mode: str = CFO

    # -- classification -----------------------------------------------------

    def classify(self, query: str) -> Classification:
        text = query.lower().strip()

        for pattern in GENERAL_CHAT_PATTERNS:
            if pattern.match(text):
                return Classification(GENERAL_CHAT, 0.95, (text,))

        book_hits = [kw for kw in BOOKKEEPER_KEYWORDS if _contains(kw, text)]
        cfo_hits = [kw for kw in CFO_KEYWORDS if _contains(kw, text)]

        # One- or two-word chatter with nothing financial in it
        if len(text.split()) <= 2 and not book_hits and not cfo_hits and not re.search(r"[₹$%0-9]", text):
            return Classification(GENERAL_CHAT, 0.7)

        book_score = sum(2 if len(kw) > 4 else 1 for kw in book_hits)
        cfo_score = sum(2 if len(kw) > 4 else 1 for kw in cfo_hits)

        if book_score > cfo_score:
            return Classification(BOOKKEEPER, min(0.95, 0.6 + book_score * 0.1), tuple(book_hits))
        if cfo_score > 0 and book_hits and any(_contains(kw, text) for kw in ACTION_OVERRIDE_KEYWORDS):
            return Classification(BOOKKEEPER, min(0.9, 0.5 + book_score * 0.1), tuple(book_hits + cfo_hits))
        if cfo_score > 0:
            return Classification(CFO, min(0.95, 0.6 + cfo_score * 0.1), tuple(cfo_hits))
        return Classification(self.default_mode, 0.5)

    # -- follow-ups ---------------------------------------------------------

    def detect_follow_up(self, query: str, history: Sequence[Message]) -> FollowUp:
        text = query.lower().strip()
        words = text.split()
        if not words:
            return NOT_FOLLOW_UP

        short_candidate = (
            len(words) <= FOLLOW_UP_MAX_WORDS
            and not any(_contains(kw, text) for kw in ENTITY_KEYWORDS)
        )
        contextual_candidate = (
            len(words) <= CONTEXTUAL_MAX_WORDS
            and any(p.search(text) for p in CONTEXTUAL_PATTERNS)
        )
        if not (short_candidate or contextual_candidate):
            return NOT_FOLLOW_UP

        last_assistant = next((m for m in reversed(history) if m.role == "assistant"), None)
        if last_assistant is None or last_assistant.metadata is None:
            return NOT_FOLLOW_UP
        meta = last_assistant.metadata
        tools = meta.tools_available or meta.tools_used
        if not tools:
            return NOT_FOLLOW_UP
        return FollowUp(True, reused_category=meta.mode, reused_tools=tuple(tools))

    # -- routing ------------------------------------------------------------

    def route(self, query: str, history: Sequence[Message] = ()) -> RouteDecision:
        follow_up = self.detect_follow_up(query, history)
        if follow_up.is_follow_up and follow_up.reused_category in self.skills:
            return RouteDecision(skill=self.skills[follow_up.reused_category], follow_up=follow_up)
        if follow_up.is_follow_up:
            # tool list is still reused; the mode falls back to the default
            return RouteDecision(skill=self.skills[self.default_mode], follow_up=follow_up)

        classification = self.classify(query)
        skill = self.skills.get(classification.mode) or self.skills[self.default_mode]
        return RouteDecision(skill=skill, follow_up=follow_up, classification=classification)

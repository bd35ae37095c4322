"""Tests for QueryRouter — mode classification and follow-up detection."""

from __future__ import annotations

import pytest

from cfo_agent.engine.models import Message, MessageMetadata
from cfo_agent.skills.router import BOOKKEEPER, CFO, GENERAL_CHAT

INVOICE_TOOLS = ["get_all_invoices", "create_invoice", "get_all_customers"]


def _history(mode: str = BOOKKEEPER, tools_available=INVOICE_TOOLS, tools_used=()) -> list[Message]:
    return [
        Message(role="user", content="create invoice for Acme, 1 unit at 5000"),
        Message(
            role="assistant",
            content="Shall I create an invoice for Acme for 5,000? Reply yes to confirm.",
            metadata=MessageMetadata(
                mode=mode,
                tools_available=list(tools_available),
                tools_used=list(tools_used),
            ),
        ),
    ]


class TestClassification:
    @pytest.mark.parametrize("query, mode", [
        ("show me unpaid invoices", CFO),
        ("What is my profit and loss for last quarter?", CFO),
        ("create invoice for Acme, 1 unit at 5000", BOOKKEEPER),
        ("record payment of 5000 from Acme", BOOKKEEPER),
        ("hi", GENERAL_CHAT),
        ("Thank you!", GENERAL_CHAT),
        ("good morning", GENERAL_CHAT),
    ])
    def test_modes(self, router, query, mode):
        assert router.classify(query).mode == mode

    def test_short_chatter_without_keywords_is_general(self, router):
        result = router.classify("asdf qwerty")
        assert result.mode == GENERAL_CHAT

    def test_short_query_with_amount_is_not_chatter(self, router):
        assert router.classify("₹5000?").mode == CFO

    def test_unmatched_long_query_defaults_to_cfo(self, router):
        result = router.classify("what is the weather like in paris today")
        assert result.mode == CFO
        assert result.confidence == 0.5

    def test_matched_keywords_reported(self, router):
        result = router.classify("show me unpaid invoices")
        assert "unpaid" in result.matched_keywords
        assert "show" in result.matched_keywords

    @pytest.mark.parametrize("query", [
        "send reminders to overdue customers",
        "delete the overdue invoice from the sales report",
        "cancel the unpaid bill",
    ])
    def test_action_verb_overrides_read_intent(self, router, query):
        result = router.classify(query)
        assert result.mode == BOOKKEEPER
        assert result.confidence <= 0.9

    def test_override_reports_both_keyword_sets(self, router):
        result = router.classify("send reminders to overdue customers")
        assert result.matched_keywords == ("send", "overdue")

    def test_read_verbs_do_not_override(self, router):
        assert router.classify("show overdue invoices in the sales report").mode == CFO

    def test_plural_keyword_counts(self, router):
        assert router.classify("create bills").mode == BOOKKEEPER


class TestFollowUp:
    def test_yes_reuses_previous_tool_list(self, router):
        decision = router.route("yes", _history())
        assert decision.follow_up.is_follow_up
        assert decision.follow_up.reused_tools == tuple(INVOICE_TOOLS)
        assert decision.mode == BOOKKEEPER
        assert decision.classification is None

    def test_falls_back_to_tools_used(self, router):
        decision = router.route("yes", _history(tools_available=(), tools_used=["create_invoice"]))
        assert decision.follow_up.reused_tools == ("create_invoice",)

    def test_contextual_phrase_is_follow_up(self, router):
        decision = router.route("what about the previous month for the same customers?", _history(mode=CFO))
        assert decision.follow_up.is_follow_up
        assert decision.mode == CFO

    def test_entity_keyword_blocks_short_follow_up(self, router):
        decision = router.route("show invoices", _history())
        assert not decision.follow_up.is_follow_up
        assert decision.classification is not None

    def test_no_metadata_is_not_follow_up(self, router):
        history = [
            Message(role="user", content="hello"),
            Message(role="assistant", content="Hi! How can I help?"),
        ]
        decision = router.route("yes", history)
        assert not decision.follow_up.is_follow_up
        assert decision.mode == GENERAL_CHAT

    def test_previous_turn_without_tools_is_not_follow_up(self, router):
        decision = router.route("yes", _history(tools_available=(), tools_used=()))
        assert not decision.follow_up.is_follow_up

    def test_empty_history(self, router):
        assert not router.detect_follow_up("yes", []).is_follow_up

    def test_long_unrelated_query_is_not_follow_up(self, router):
        query = "please prepare a detailed breakdown of every expense we booked across all departments this year"
        assert not router.detect_follow_up(query, _history()).is_follow_up

    def test_unknown_previous_mode_uses_default_skill(self, router):
        decision = router.route("yes", _history(mode="retired_mode"))
        assert decision.follow_up.is_follow_up
        assert decision.mode == CFO
        assert decision.follow_up.reused_tools == tuple(INVOICE_TOOLS)

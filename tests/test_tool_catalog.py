"""Tests for the tool catalog matcher."""

from __future__ import annotations

from cfo_agent.engine.models import ToolDescriptor
from cfo_agent.tools.catalog import (
    DEFAULT_BUNDLES,
    HARD_CAP_TOOLS,
    expand_categories,
    match_categories,
    resolve_static_tools,
    score_live_tool,
    select_tools,
)


def _tool(name: str, description: str = "") -> ToolDescriptor:
    return ToolDescriptor(name=name, description=description)


class TestCategoryMatching:
    def test_unpaid_invoices_pulls_in_neighbours(self):
        selection = select_tools("show me unpaid invoices", "cfo")
        assert {"invoices", "aging_reports", "customers"} <= set(selection.matched_categories)
        assert selection.strategy == "keyword_matched"
        for name in ("get_all_invoices", "get_aged_receivables_report", "get_all_customers"):
            assert name in selection.tool_names

    def test_short_keywords_need_whole_words(self):
        matched = match_categories("dashboard snapshot")
        assert "kpi_dashboard" in matched
        assert "aging_reports" not in matched

    def test_short_keyword_as_word(self):
        assert "aging_reports" in match_categories("what is our ar position")

    def test_adjacency_keeps_matched_first(self):
        expanded = expand_categories(["bills"])
        assert expanded == ["bills", "vendors"]

    def test_query_conditional_expansion(self):
        expanded = expand_categories(["accounts"], "fixed asset depreciation schedule")
        assert "journal" in expanded
        assert "reports_balance" in expanded

    def test_conditional_expansion_requires_its_category(self):
        expanded = expand_categories(["bills"], "fixed asset depreciation schedule")
        assert "journal" not in expanded

    def test_static_tools_filtered_to_live_catalog(self):
        live = [_tool("get_all_invoices"), _tool("get_all_customers")]
        names = resolve_static_tools(["invoices", "customers"], live)
        assert names == ["get_all_invoices", "get_all_customers"]

    def test_static_tools_deduplicated(self):
        names = resolve_static_tools(["expenses", "banking"])
        assert names.count("list_bank_accounts") == 1


class TestDefaultBundle:
    def test_unmatched_query_uses_mode_bundle(self):
        selection = select_tools("hello there", "bookkeeper")
        assert selection.strategy == "default_bundle"
        assert selection.matched_categories == DEFAULT_BUNDLES["bookkeeper"]
        assert "create_invoice" in selection.tool_names

    def test_unknown_mode_falls_back_to_cfo_bundle(self):
        selection = select_tools("hello there", "general_chat")
        assert selection.matched_categories == DEFAULT_BUNDLES["cfo"]


class TestLiveCatalog:
    def test_dynamic_scoring_admits_unlisted_tool(self):
        live = [
            _tool("get_invoice_aging_summary", "Invoice aging summary by customer"),
            _tool("send_sms_message", "Send a text message"),
        ]
        selection = select_tools("show overdue invoices", "cfo", live)
        assert selection.strategy == "keyword_matched_dynamic"
        assert "get_invoice_aging_summary" in selection.tool_names
        assert "send_sms_message" not in selection.tool_names

    def test_never_empty_when_server_has_tools(self):
        live = [_tool("zzz_widget", "frobnicates widgets")]
        selection = select_tools("hello there", "cfo", live)
        assert selection.strategy == "all_tools_fallback"
        assert selection.tool_names == ("zzz_widget",)

    def test_selection_limited_to_live_tools(self, live_catalog):
        selection = select_tools("show me unpaid invoices", "cfo", live_catalog)
        available = {t.name for t in live_catalog}
        assert selection.tool_names
        assert set(selection.tool_names) <= available
        assert "get_profit_loss" not in selection.tool_names

    def test_score_weights_name_over_description(self):
        vocab = {"invoice", "aging"}
        assert score_live_tool(_tool("get_invoice_aging"), vocab) == 4
        assert score_live_tool(_tool("get_summary", "invoice aging"), vocab) == 2
        assert score_live_tool(_tool("get_summary", "something else"), vocab) == 0


class TestHardCap:
    def test_broad_query_capped(self):
        query = "invoice bill payment customer vendor bank gst stock journal expense profit cash flow"
        selection = select_tools(query, "cfo")
        assert 0 < len(selection.tool_names) <= HARD_CAP_TOOLS
        assert len(selection.tool_names) == len(set(selection.tool_names))

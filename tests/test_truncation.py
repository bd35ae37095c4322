"""Tests for tool-result truncation."""

from __future__ import annotations

import json
import re

from cfo_agent.tools.results import MAX_TOOL_RESULT_CHARS, preview, truncate_result


class TestTruncateResult:
    def test_short_text_untouched(self):
        assert truncate_result("INV-1 due 1,200") == "INV-1 due 1,200"

    def test_json_array_cut_by_item(self):
        items = [{"id": i, "customer": f"customer-{i}", "notes": "x" * 50} for i in range(2000)]
        out = truncate_result(json.dumps(items), max_chars=5000)

        assert len(out) <= 5000
        body, _, _ = out.partition("\n[Truncated:")
        kept = json.loads(body)
        match = re.search(r"showing (\d+) of (\d+) items\]$", out)
        assert match is not None
        shown, total = int(match.group(1)), int(match.group(2))
        assert shown == len(kept) > 0
        assert total == 2000
        assert shown <= total
        assert kept == items[:shown]

    def test_plain_text_hard_cut(self):
        text = "x" * 60_000
        out = truncate_result(text)
        assert len(out) <= MAX_TOOL_RESULT_CHARS
        assert out.endswith("[Truncated: 60000 chars total]")
        assert out.startswith("xxxx")

    def test_json_object_hard_cut(self):
        text = json.dumps({"rows": ["y" * 100] * 100})
        out = truncate_result(text, max_chars=1000)
        assert len(out) <= 1000
        assert out.endswith(f"[Truncated: {len(text)} chars total]")

    def test_exact_limit_untouched(self):
        text = "z" * 100
        assert truncate_result(text, max_chars=100) == text

    def test_preview(self):
        assert preview("a" * 500) == "a" * 200
        assert preview("short") == "short"

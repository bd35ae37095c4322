"""Tool result size ceiling."""

from __future__ import annotations

import json

MAX_TOOL_RESULT_CHARS = 50_000


def truncate_result(text: str, max_chars: int = MAX_TOOL_RESULT_CHARS) -> str:
    """Cap *text* at *max_chars*, marker included.

    JSON arrays are cut item by item so what remains still parses; anything
    else is hard-truncated.
    """
    if len(text) <= max_chars:
        return text

    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        parsed = None

    if isinstance(parsed, list):
        total = len(parsed)
        # N <= M, so this is the longest marker we can end up with
        budget = max_chars - len(_items_marker(total, total))
        kept: list[str] = []
        size = 2  # "[]"
        for item in parsed:
            encoded = json.dumps(item)
            extra = len(encoded) + (2 if kept else 0)
            if size + extra > budget:
                break
            kept.append(encoded)
            size += extra
        return "[" + ", ".join(kept) + "]" + _items_marker(len(kept), total)

    marker = f"\n[Truncated: {len(text)} chars total]"
    return text[: max(max_chars - len(marker), 0)] + marker


def _items_marker(shown: int, total: int) -> str:
    return f"\n[Truncated: showing {shown} of {total} items]"


def preview(text: str, limit: int = 200) -> str:
    return text[:limit]

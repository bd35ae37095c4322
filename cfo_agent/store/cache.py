"""Response cache — ABC + in-memory implementation, key derivation and write-driven invalidation."""

from __future__ import annotations

import hashlib
import logging
import re
import time
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from cfo_agent.engine.models import CacheEntry

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 300
MIN_CACHEABLE_CHARS = 20
MAX_CACHEABLE_CHARS = 50_000

WRITE_TOOL_PREFIXES = (
    "create_", "update_", "delete_", "edit_", "file_", "generate_", "cancel_",
    "reconcile_", "import_", "categorize_", "match_", "adjust_", "stock_", "record_",
)

# prefixed like writes but only read
READ_ONLY_TOOLS = frozenset({"stock_valuation"})

_PNL = ("profit", "revenue", "aging", "receivable", "balance", "trial", "cash", "kpi")
_BILL = ("profit", "expense", "aging", "payable", "balance", "trial", "cash", "kpi")
_PAYMENT = ("aging", "receivable", "payable", "balance", "cash", "bank", "kpi")
_EXPENSE = ("profit", "expense", "balance", "trial", "cash", "kpi")
_JOURNAL = ("profit", "balance", "trial", "ledger")
_BANK = ("bank", "cash", "balance", "reconcil")
_GST_FILING = ("gst", "tax", "itc", "filing")
_STOCK = ("inventory", "stock")
_EWAY = ("gst", "eway")

CACHE_INVALIDATION_MAP: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "create_invoice": _PNL,
    "update_invoice": _PNL,
    "create_invoice_line_item": ("profit", "revenue", "balance", "trial"),
    "create_bill": _BILL,
    "update_bill": _BILL,
    "create_payment": _PAYMENT,
    "update_payment": _PAYMENT,
    "record_payment": _PAYMENT,
    "create_expense": _EXPENSE,
    "categorize_expense": _EXPENSE,
    "edit_expense": _EXPENSE,
    "delete_expense": _EXPENSE,
    "create_journal_entry": _JOURNAL,
    "edit_journal_entry": _JOURNAL,
    "delete_journal_entry": _JOURNAL,
    "import_bank_statement": _BANK,
    "create_bank_rule": _BANK,
    "reconcile_account": _BANK,
    "categorize_transaction": _BANK,
    "match_transaction": _BANK,
    "update_transactions": _BANK,
    "update_transaction_line_item": ("bank", "cash", "balance"),
    "create_customer": ("customer", "receivable"),
    "update_customer": ("customer", "receivable"),
    "update_chart_of_accounts": ("account", "balance", "trial", "ledger", "profit"),
    "update_delivery_challan": ("challan", "delivery", "inventory", "stock"),
    "create_vendor": ("vendor", "payable"),
    "update_vendor": ("vendor", "payable"),
    "update_sales_credit_note": ("receivable", "aging", "balance"),
    "update_purchase_credit_note": ("payable", "aging", "balance"),
    "file_gstr1": _GST_FILING,
    "file_gstr3b": _GST_FILING,
    "generate_einvoice": ("gst", "invoice"),
    "cancel_einvoice": ("gst", "invoice"),
    "reconcile_gst": ("gst", "tax", "itc"),
    "create_product": _STOCK,
    "edit_product": _STOCK,
    "adjust_stock": _STOCK,
    "stock_transfer": _STOCK,
    "create_eway_bill": ("gst", "eway", "invoice"),
    "cancel_eway_bill": _EWAY,
    "extend_eway_bill": _EWAY,
    "update_eway_bill_vehicle": _EWAY,
})


def is_write_tool(name: str) -> bool:
    if name in CACHE_INVALIDATION_MAP:
        return True
    return name.startswith(WRITE_TOOL_PREFIXES) and name not in READ_ONLY_TOOLS


def invalidation_targets(tools_used: Iterable[str]) -> list[str] | None:
    """Cache tags made stale by *tools_used*.

    ``[]`` means nothing to invalidate; ``None`` means an unrecognised write
    tool ran and everything for the entity must go.
    """
    targets: dict[str, None] = {}
    for tool in tools_used:
        if not is_write_tool(tool):
            continue
        patterns = CACHE_INVALIDATION_MAP.get(tool)
        if patterns is None:
            return None
        targets.update(dict.fromkeys(patterns))
    return list(targets)


def normalize_query(query: str) -> str:
    return re.sub(r"\s+", " ", query).strip().lower()


def cache_key(entity_id: str, mode: str, query: str) -> str:
    digest = hashlib.sha256(normalize_query(query).encode("utf-8")).hexdigest()[:16]
    return f"{mode}:{entity_id}:{digest}"


def is_cacheable_answer(text: str) -> bool:
    return MIN_CACHEABLE_CHARS <= len(text) <= MAX_CACHEABLE_CHARS


class ResponseCache(ABC):
    """Per-entity read-through cache of final answers."""

    @abstractmethod
    async def get(self, entity_id: str, key: str) -> CacheEntry | None: ...

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None: ...

    @abstractmethod
    async def invalidate(self, entity_id: str, targets: Sequence[str] | None) -> int: ...


class InMemoryResponseCache(ResponseCache):
    def __init__(self, clock=time.time) -> None:
        self._entries: dict[str, dict[str, CacheEntry]] = {}
        self._clock = clock

    async def get(self, entity_id: str, key: str) -> CacheEntry | None:
        bucket = self._entries.get(entity_id, {})
        entry = bucket.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del bucket[key]
            return None
        return entry.model_copy(deep=True)

    async def put(self, entry: CacheEntry) -> None:
        self._entries.setdefault(entry.entity_id, {})[entry.key] = entry.model_copy(deep=True)

    async def invalidate(self, entity_id: str, targets: Sequence[str] | None) -> int:
        bucket = self._entries.get(entity_id)
        if not bucket:
            return 0
        if targets is None:
            count = len(bucket)
            bucket.clear()
            logger.info("cache: invalidated all %d entries for entity=%s", count, entity_id)
            return count
        if not targets:
            return 0

        stale = [key for key, entry in bucket.items() if _matches(entry, targets)]
        for key in stale:
            del bucket[key]
        if stale:
            logger.info("cache: invalidated %d entries for entity=%s targets=%s", len(stale), entity_id, list(targets))
        return len(stale)

    def __len__(self) -> int:
        return sum(len(b) for b in self._entries.values())


def _matches(entry: CacheEntry, targets: Sequence[str]) -> bool:
    haystacks = [entry.key.lower(), entry.query_text.lower(), *(t.lower() for t in entry.tools_used)]
    return any(target in hay for target in targets for hay in haystacks)

"""Tool catalog — maps a free-text query to a bounded set of remote tool names.

Selection runs in explicit tiers so each one can be tested on its own:

1. ``match_categories``     keyword scan of the lower-cased query
2. ``expand_categories``    fixed adjacency table (or the mode's default bundle)
3. ``resolve_static_tools`` static tool names, filtered to the live catalog
4. ``score_live_tools``     live tools whose name/description overlaps the
                            selected categories' vocabulary
5. catalog-wide fallback    never hand the agent loop an empty tool set when
                            the server advertises tools
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Sequence

from cfo_agent.engine.models import ToolDescriptor

HARD_CAP_TOOLS = 40
DYNAMIC_SCORE_THRESHOLD = 2


@dataclass(frozen=True)
class ToolCategory:
    name: str
    description: str
    tools: tuple[str, ...]
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class ToolSelection:
    tool_names: tuple[str, ...]
    matched_categories: tuple[str, ...]
    strategy: str


TOOL_CATEGORIES: tuple[ToolCategory, ...] = (
    ToolCategory(
        name="invoices",
        description="Sales invoices — list, search, view, create, update",
        tools=("get_all_invoices", "get_invoice_by_id", "update_invoice", "find_invoice_document",
               "create_invoice", "create_invoice_line_item"),
        keywords=("invoice", "invoices", "sales", "revenue", "billing", "billed", "sale",
                  "raise invoice", "discount", "churn", "recurring revenue", "lifetime value",
                  "back order", "disputed", "partial payment", "advance received"),
    ),
    ToolCategory(
        name="bills",
        description="Vendor bills — list, search, view, create, update",
        tools=("get_bills", "get_bill_by_id", "update_bill", "create_bill"),
        keywords=("bill", "bills", "purchase", "purchases", "vendor bill", "payable", "payables",
                  "grn", "goods received", "three-way match", "price variance", "purchase order",
                  "early payment discount"),
    ),
    ToolCategory(
        name="payments",
        description="Payments received and made — list, search, view, create, update",
        tools=("get_all_payments", "get_payment_by_id", "update_payment", "find_payment_document",
               "create_payment"),
        keywords=("payment", "payments", "paid", "pay", "received", "receipt", "collection",
                  "collected", "record payment"),
    ),
    ToolCategory(
        name="customers",
        description="Customer management — list, view, create, update",
        tools=("get_all_customers", "get_customer_by_id", "create_customer", "update_customer"),
        keywords=("customer", "customers", "client", "clients", "buyer", "debtor", "debtors"),
    ),
    ToolCategory(
        name="vendors",
        description="Vendor management — list, view, create, update",
        tools=("get_all_vendors", "get_vendor_by_id", "create_vendor", "update_vendor"),
        keywords=("vendor", "vendors", "supplier", "suppliers", "creditor", "creditors"),
    ),
    ToolCategory(
        name="credit_notes",
        description="Sales & purchase credit notes — list, search, view, update",
        tools=("get_all_sales_credit_notes", "get_sales_credit_note_by_id", "update_sales_credit_note",
               "find_sales_credit_note_document", "get_all_purchase_credit_notes",
               "get_purchase_credit_note_by_id", "update_purchase_credit_note",
               "find_purchase_credit_note_document"),
        keywords=("credit note", "credit notes", "cn", "debit note", "return", "refund"),
    ),
    ToolCategory(
        name="accounts",
        description="Chart of accounts, fixed assets, account hierarchy, cost centers",
        tools=("get_charts_of_accounts", "get_chart_of_accounts_by_id", "update_chart_of_accounts"),
        keywords=("account", "accounts", "chart of accounts", "coa", "ledger", "gl", "general ledger",
                  "fixed asset", "asset register", "depreciation", "book value", "cwip",
                  "cost center", "cost centre", "suspense account", "prepaid expense",
                  "amortization", "impairment", "useful life"),
    ),
    ToolCategory(
        name="transactions",
        description="Bank transactions — list, view, update, group, find transfers",
        tools=("get_all_transactions", "get_transaction_by_id", "get_selected_transactions",
               "update_transactions", "get_grouped_transactions", "get_transaction_line_items",
               "update_transaction_line_item", "find_transfer_document"),
        keywords=("transaction", "transactions", "bank", "banking", "reconcil", "uncategorized",
                  "categorize", "transfer", "debit", "credit", "statement"),
    ),
    ToolCategory(
        name="aging_reports",
        description="Aged receivables and payables reports",
        tools=("get_aged_receivables_report", "get_aged_payables_report"),
        keywords=("aging", "ageing", "aged", "overdue", "outstanding", "unpaid", "receivable",
                  "receivables", "payable", "payables", "ar", "ap", "dso", "dpo", "collection"),
    ),
    ToolCategory(
        name="delivery_challans",
        description="Delivery challans — list, view, update",
        tools=("get_all_delivery_challans", "get_delivery_challan_by_id", "update_delivery_challan"),
        keywords=("challan", "challans", "delivery", "dispatch", "dc"),
    ),
    ToolCategory(
        name="eway_bills",
        description="E-way bill generation, tracking, cancellation, extension",
        tools=("create_eway_bill", "get_eway_bill", "cancel_eway_bill", "extend_eway_bill",
               "list_eway_bills", "get_eway_bill_summary", "update_eway_bill_vehicle"),
        keywords=("eway", "e-way", "ewb", "shipment", "transit", "transporter", "vehicle",
                  "part-b", "part b"),
    ),
    ToolCategory(
        name="expenses",
        description="Expense management and claims — create, edit, list, categorize, reimburse",
        tools=("create_expense", "edit_expense", "delete_expense", "list_expenses",
               "categorize_expense", "list_expense_categories", "list_bank_accounts"),
        keywords=("expense", "expenses", "spending", "expenditure", "kharcha", "claim", "claims",
                  "reimbursement", "reimburse", "per diem", "mileage", "petty cash"),
    ),
    ToolCategory(
        name="banking",
        description="Bank statement import, transaction categorization, reconciliation",
        tools=("import_bank_statement", "categorize_transaction", "match_transaction",
               "create_bank_rule", "list_bank_transactions", "list_bank_accounts",
               "reconcile_account", "get_bank_balance"),
        keywords=("bank", "reconcile", "statement", "import", "bank transaction", "bank balance"),
    ),
    ToolCategory(
        name="inventory",
        description="Product and stock management",
        tools=("create_product", "edit_product", "adjust_stock", "list_products", "get_product",
               "stock_transfer", "list_warehouses", "stock_valuation"),
        keywords=("stock", "warehouse", "product", "item", "sku", "inventory", "fifo",
                  "dead stock", "slow moving", "expiry", "reorder", "batch", "wastage",
                  "landed cost", "stock valuation"),
    ),
    ToolCategory(
        name="journal",
        description="Journal entries, ledger, recurring entries, provisions, accruals",
        tools=("create_journal_entry", "edit_journal_entry", "delete_journal_entry",
               "list_journal_entries", "get_chart_of_accounts", "list_accounts"),
        keywords=("journal", "ledger", "day book", "journal entry", "unposted", "recurring entry",
                  "provision", "accrual", "adjusting entry", "period end", "year-end closing",
                  "doubtful debt", "narration"),
    ),
    ToolCategory(
        name="gst_actions",
        description="GST filing, e-invoice, ITC reconciliation, TDS/TCS, compliance",
        tools=("file_gstr1", "file_gstr3b", "generate_einvoice", "cancel_einvoice", "reconcile_gst",
               "get_gst_summary", "list_hsn_codes", "validate_gstin"),
        keywords=("gst", "gstr", "tax file", "einvoice", "hsn", "itc", "gst filing", "mismatch",
                  "b2c", "b2b", "compliance", "tds", "tcs", "advance tax", "tax return", "tax due",
                  "reverse charge", "rcm", "input credit", "annual return"),
    ),
    ToolCategory(
        name="reports_pnl",
        description="Profit & Loss, revenue breakdown, expense breakdown, margins, EBITDA",
        tools=("get_profit_loss", "get_revenue_breakdown", "get_expense_breakdown",
               "get_gross_margin", "get_operating_margin", "compare_periods"),
        keywords=("p&l", "profit loss", "income statement", "revenue", "margin", "munafa", "profit",
                  "ebitda", "gross margin", "net profit", "cost of goods", "gross profit", "income",
                  "loss", "contribution margin", "fund flow"),
    ),
    ToolCategory(
        name="reports_balance",
        description="Balance sheet, trial balance, equity, borrowings",
        tools=("get_balance_sheet", "get_trial_balance", "get_chart_of_accounts"),
        keywords=("balance sheet", "trial balance", "account balance", "equity", "borrowings",
                  "loan", "reserves", "retained earnings", "net worth", "total assets",
                  "liabilities"),
    ),
    ToolCategory(
        name="reports_cashflow",
        description="Cash flow, liquidity, runway, burn rate, operating cash flow",
        tools=("get_account_balance", "get_account_transactions", "get_cash_flow_statement",
               "get_bank_balance", "get_cash_position", "forecast_cash_flow", "list_bank_accounts"),
        keywords=("cash flow", "cash position", "liquidity", "runway", "burn rate", "operating cash",
                  "free cash", "cash burn", "net cash", "cash conversion cycle", "fcf"),
    ),
    ToolCategory(
        name="reports_payables",
        description="AP aging, overdue bills, vendor balances, DPO, payment schedule",
        tools=("get_ap_aging", "list_overdue_bills", "get_vendor_balance", "get_dpo", "list_vendors",
               "get_payment_schedule"),
        keywords=("ap aging", "overdue bill", "dpo", "payment schedule", "vendor aging",
                  "bill aging", "payable aging", "vendor balance"),
    ),
    ToolCategory(
        name="reports_gst",
        description="GST summary, GSTR data, ITC summary, HSN summary, reconciliation",
        tools=("get_gst_summary", "get_gstr1_data", "get_gstr3b_data", "get_itc_summary",
               "get_hsn_summary", "get_gst_reconciliation"),
        keywords=("gst summary", "gst report", "gstr data", "itc summary", "gst reconciliation",
                  "gst mismatch", "itc blocked", "net gst", "hsn summary", "gstr-2b", "gstr-2a",
                  "itc reversal", "filing status"),
    ),
    ToolCategory(
        name="kpi_dashboard",
        description="Key performance indicators, dashboard overview, health snapshot, ratios",
        tools=("get_revenue_kpi", "get_expense_kpi", "get_profit_kpi", "get_cashflow_kpi",
               "get_ar_kpi", "get_ap_kpi", "get_growth_rate", "get_runway"),
        keywords=("kpi", "dashboard", "health", "overview", "snapshot", "ratio", "current ratio",
                  "quick ratio", "debt equity", "working capital", "financial ratio", "roe", "roi",
                  "scorecard"),
    ),
    ToolCategory(
        name="trends_analysis",
        description="Period comparisons, trend analysis, forecasting, anomaly detection, budget vs actual",
        tools=("compare_periods", "trend", "forecast", "anomaly_detection", "budget_vs_actual",
               "what_if_analysis", "get_profit_loss", "get_balance_sheet"),
        keywords=("compare", "vs", "trend", "forecast", "anomaly", "budget", "what if", "analysis",
                  "variance", "scenario", "projection", "break even", "break-even",
                  "year over year", "yoy", "quarter over quarter", "qoq", "month over month"),
    ),
)

CATEGORIES_BY_NAME: Mapping[str, ToolCategory] = MappingProxyType({c.name: c for c in TOOL_CATEGORIES})

CATEGORY_ADJACENCY: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "invoices": ("customers", "aging_reports"),
    "bills": ("vendors",),
    "aging_reports": ("invoices", "bills"),
    "payments": ("invoices",),
    "credit_notes": ("invoices",),
    "reports_pnl": ("trends_analysis",),
    "reports_cashflow": ("banking",),
    "reports_payables": ("bills", "vendors"),
    "gst_actions": ("reports_gst", "invoices"),
    "reports_gst": ("gst_actions", "invoices"),
    "expenses": ("accounts",),
    "inventory": ("invoices",),
    "eway_bills": ("invoices", "delivery_challans", "gst_actions"),
    "kpi_dashboard": ("aging_reports", "reports_cashflow"),
})

# (required category or None, query pattern, categories added)
QUERY_EXPANSIONS: tuple[tuple[str | None, re.Pattern[str], tuple[str, ...]], ...] = (
    ("accounts", re.compile(r"depreciation|asset|cwip|fixed"), ("journal", "reports_balance")),
    (None, re.compile(r"advance tax|tax liability|tds|tcs|professional tax"), ("gst_actions", "reports_pnl")),
    ("expenses", re.compile(r"department|per diem|travel|mileage|petty cash"), ("reports_pnl",)),
    ("journal", re.compile(r"period end|year.?end|provision|doubtful|prepaid|amortiz"), ("reports_balance", "accounts")),
    ("reports_pnl", re.compile(r"segment|common.?size|contribution|fund flow|break.?even"), ("reports_balance",)),
    ("inventory", re.compile(r"valuation|holding cost|landed|write.?off|obsolescence"), ("accounts",)),
)

DEFAULT_BUNDLES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "cfo": (
        "invoices", "bills", "payments", "transactions", "customers", "vendors",
        "aging_reports", "reports_pnl", "reports_balance", "reports_cashflow", "kpi_dashboard",
        "accounts",
    ),
    "bookkeeper": (
        "invoices", "bills", "payments", "customers", "vendors", "expenses", "journal",
        "banking", "credit_notes",
    ),
})

_STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "that", "this", "all", "any", "get", "list",
    "view", "show", "find", "search", "create", "update", "new", "by", "id", "of", "to", "or",
    "a", "an", "in", "on",
})

_WORD_RE = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------

def _keyword_hit(keyword: str, query_lower: str) -> bool:
    # Very short keywords ("ar", "ap", "po") only count as whole words.
    if len(keyword) <= 3:
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", query_lower) is not None
    return keyword in query_lower


def match_categories(query: str) -> list[str]:
    query_lower = query.lower()
    return [
        category.name
        for category in TOOL_CATEGORIES
        if any(_keyword_hit(kw, query_lower) for kw in category.keywords)
    ]


def expand_categories(matched: Sequence[str], query: str = "") -> list[str]:
    expanded = list(matched)

    def _add(name: str) -> None:
        if name not in expanded:
            expanded.append(name)

    for name in matched:
        for neighbour in CATEGORY_ADJACENCY.get(name, ()):
            _add(neighbour)

    query_lower = query.lower()
    for required, pattern, extra in QUERY_EXPANSIONS:
        if required is not None and required not in matched:
            continue
        if pattern.search(query_lower):
            for name in extra:
                _add(name)
    return expanded


def resolve_static_tools(
    categories: Sequence[str],
    live_catalog: Sequence[ToolDescriptor] | None = None,
) -> list[str]:
    names: list[str] = []
    for cat_name in categories:
        category = CATEGORIES_BY_NAME.get(cat_name)
        if category is None:
            continue
        for tool in category.tools:
            if tool not in names:
                names.append(tool)
    if live_catalog:
        available = {t.name for t in live_catalog}
        names = [n for n in names if n in available]
    return names


def _vocabulary(categories: Sequence[str]) -> set[str]:
    vocab: set[str] = set()
    for cat_name in categories:
        category = CATEGORIES_BY_NAME.get(cat_name)
        if category is None:
            continue
        for kw in category.keywords:
            vocab.update(_WORD_RE.findall(kw))
        vocab.update(_WORD_RE.findall(category.description.lower()))
    return {w for w in vocab if len(w) >= 3 and w not in _STOP_WORDS}


def _singular(word: str) -> str:
    return word[:-1] if len(word) > 3 and word.endswith("s") else word


def score_live_tool(tool: ToolDescriptor, vocabulary: set[str]) -> int:
    """Name-token overlaps count double, description overlaps once."""
    vocab = {_singular(w) for w in vocabulary}
    name_tokens = {_singular(t) for t in tool.name.lower().split("_") if t}
    desc_tokens = {_singular(t) for t in _WORD_RE.findall(tool.description.lower())}
    return 2 * len(name_tokens & vocab) + len((desc_tokens - name_tokens) & vocab)


def score_live_tools(
    live_catalog: Sequence[ToolDescriptor],
    categories: Sequence[str],
    exclude: Sequence[str] = (),
) -> list[str]:
    vocabulary = _vocabulary(categories)
    if not vocabulary:
        return []
    skip = set(exclude)
    scored = [
        (score_live_tool(tool, vocabulary), tool.name)
        for tool in live_catalog
        if tool.name not in skip
    ]
    admitted = [(score, name) for score, name in scored if score >= DYNAMIC_SCORE_THRESHOLD]
    admitted.sort(key=lambda pair: -pair[0])
    return [name for _, name in admitted]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def select_tools(
    query: str,
    category_hint: str | None = None,
    live_catalog: Sequence[ToolDescriptor] | None = None,
) -> ToolSelection:
    matched = match_categories(query)
    if matched:
        categories = expand_categories(matched, query)
        strategy = "keyword_matched"
    else:
        categories = list(DEFAULT_BUNDLES.get(category_hint or "cfo", DEFAULT_BUNDLES["cfo"]))
        strategy = "default_bundle"

    names = resolve_static_tools(categories, live_catalog)
    if live_catalog:
        strategy += "_dynamic"
        names += score_live_tools(live_catalog, categories, exclude=names)
    names = names[:HARD_CAP_TOOLS]

    if not names and live_catalog:
        return ToolSelection(
            tool_names=tuple(t.name for t in live_catalog),
            matched_categories=tuple(categories),
            strategy="all_tools_fallback",
        )

    return ToolSelection(tool_names=tuple(names), matched_categories=tuple(categories), strategy=strategy)

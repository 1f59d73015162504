"""Public API surface for the ``famledger`` package.

Stable import point for host applications (web handlers, schedulers, the CLI)
so they do not depend on the module layout. Everything here takes an explicit
``family_id`` and a :class:`~famledger.persistence.LedgerRepository` bound to
the caller's session; nothing resolves an "active family" implicitly.
"""

from __future__ import annotations

from .anomalies import category_stats, detect_anomalies, is_anomalous
from .budgets import aggregate_category_spend, monthly_goal_allocation, recommend_budgets
from .dedup import check_duplicate
from .forecast import build_spend_series, fit_linear_trend, forecast_spending, project_next
from .insights import answer_question, budget_tips, summarize_budget
from .ledger import assign_category, import_transactions, set_status, write_transaction
from .normalizers import normalize_transaction
from .persistence import LedgerRepository, TransactionFilters
from .sync import sync_gocardless, sync_plaid
from .trends import account_balances, cash_flow_summary, goal_progress, spending_trends

__all__ = [
    "LedgerRepository",
    "TransactionFilters",
    "account_balances",
    "aggregate_category_spend",
    "answer_question",
    "assign_category",
    "budget_tips",
    "build_spend_series",
    "cash_flow_summary",
    "category_stats",
    "check_duplicate",
    "detect_anomalies",
    "fit_linear_trend",
    "forecast_spending",
    "goal_progress",
    "import_transactions",
    "is_anomalous",
    "monthly_goal_allocation",
    "normalize_transaction",
    "project_next",
    "recommend_budgets",
    "set_status",
    "spending_trends",
    "summarize_budget",
    "sync_gocardless",
    "sync_plaid",
    "write_transaction",
]

"""Dashboard figures: monthly trend, cash flow, goal progress and net worth.

Transaction figures read reconciled rows only; transfers count as neither
income nor expense. Net worth comes from the account balances the sync stores.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .budgets import months_before
from .models import AccountBalances, CashFlowSummary, GoalProgress, MonthlyTrend
from .persistence import LedgerRepository, TransactionFilters

_ZERO = Decimal(0)
_CENT = Decimal("0.01")
_HUNDRED = Decimal(100)


def spending_trends(
    repo: LedgerRepository,
    family_id: str,
    *,
    months: int = 6,
    today: date | None = None,
) -> list[MonthlyTrend]:
    """Income, expenses and savings for each ``YYYY-MM`` with activity."""

    today = today or date.today()
    rows = repo.list_transactions(
        family_id,
        TransactionFilters(
            status="RECONCILED", date_from=months_before(today, months), date_to=today
        ),
    )
    buckets: dict[str, list[Decimal]] = {}
    for tx in rows:
        if tx.direction == "TRANSFER":
            continue
        month = f"{tx.date.year:04d}-{tx.date.month:02d}"
        income_expense = buckets.setdefault(month, [_ZERO, _ZERO])
        income_expense[0 if tx.direction == "INCOME" else 1] += Decimal(tx.amount)

    return [
        MonthlyTrend(
            month=month,
            income=income,
            expenses=expenses,
            savings=max(_ZERO, income - expenses),
        )
        for month, (income, expenses) in sorted(buckets.items())
    ]


def cash_flow_summary(
    repo: LedgerRepository, family_id: str, *, today: date | None = None
) -> CashFlowSummary:
    """Current calendar month's income, expenses and savings rate (percent)."""

    today = today or date.today()
    rows = repo.list_transactions(
        family_id,
        TransactionFilters(status="RECONCILED", date_from=today.replace(day=1), date_to=today),
    )
    income = sum((Decimal(t.amount) for t in rows if t.direction == "INCOME"), _ZERO)
    expenses = sum((Decimal(t.amount) for t in rows if t.direction == "EXPENSE"), _ZERO)
    rate = (income - expenses) / income * _HUNDRED if income > 0 else _ZERO
    return CashFlowSummary(
        income=income,
        expenses=expenses,
        savings_rate=rate.quantize(_CENT, rounding=ROUND_HALF_UP),
    )


def goal_progress(repo: LedgerRepository, family_id: str) -> list[GoalProgress]:
    out: list[GoalProgress] = []
    for goal in repo.list_goals(family_id):
        target = Decimal(goal.target_amount)
        current = Decimal(goal.current_amount or 0)
        pct = current / target * _HUNDRED if target > 0 else _ZERO
        out.append(
            GoalProgress(
                goal_id=goal.id,
                name=goal.name,
                target_amount=target,
                current_amount=current,
                progress_percentage=pct.quantize(_CENT, rounding=ROUND_HALF_UP),
            )
        )
    return out


def account_balances(repo: LedgerRepository, family_id: str) -> AccountBalances:
    """Per-type balances of active accounts; ``total`` (net worth) sums them all.

    Balances are stored signed, so credit cards and loans reduce the total.
    Types without their own field only count toward the total.
    """

    by_type: dict[str, Decimal] = {}
    total = _ZERO
    for account in repo.list_accounts(family_id):
        balance = Decimal(account.balance or 0)
        by_type[account.type] = by_type.get(account.type, _ZERO) + balance
        total += balance
    return AccountBalances(
        checking=by_type.get("CHECKING", _ZERO),
        savings=by_type.get("SAVINGS", _ZERO),
        credit_card=by_type.get("CREDIT_CARD", _ZERO),
        total=total,
    )


__all__ = ["account_balances", "cash_flow_summary", "goal_progress", "spending_trends"]

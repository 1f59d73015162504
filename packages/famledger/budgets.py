"""Category budget recommendations from reconciled expense history.

For each category with reconciled expenses in the window
``[today - months, today]`` (calendar months):

- ``average = total / months``
- ``recommended = round(average * 1.05, 2)`` (5% headroom)
- the monthly savings needed by active goals is spread evenly over those
  categories and subtracted; a budget never drops below zero.

Rounding is half-up to cents throughout.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ledger_db.models.ledger import Goal, LedgerTransaction

from .logging_setup import get_logger
from .models import BudgetRecommendation, BudgetRecommendationResult, CategorySpend
from .persistence import LedgerRepository, TransactionFilters

_logger = get_logger("famledger.budgets")

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
BUDGET_HEADROOM = Decimal("1.05")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def months_before(day: date, months: int) -> date:
    """``day`` shifted back by ``months`` calendar months (day clamped)."""

    index = day.year * 12 + (day.month - 1) - months
    year, month0 = divmod(index, 12)
    last = calendar.monthrange(year, month0 + 1)[1]
    return date(year, month0 + 1, min(day.day, last))


def aggregate_category_spend(
    transactions: Iterable[LedgerTransaction], months: int
) -> dict[str, CategorySpend]:
    """Total reconciled, categorized expense magnitude per category."""

    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.status != "RECONCILED" or tx.direction != "EXPENSE" or tx.category_id is None:
            continue
        totals[tx.category_id] = totals.get(tx.category_id, _ZERO) + Decimal(tx.amount)
    return {
        cid: CategorySpend(category_id=cid, total_magnitude=total, months_in_window=months)
        for cid, total in totals.items()
    }


def monthly_goal_allocation(goals: Iterable[Goal], today: date) -> Decimal:
    """Monthly amount needed to reach every active, dated goal on time.

    Goals without a target date, inactive goals and goals whose target month
    is the current one or already past contribute nothing; a goal already met
    contributes zero rather than a negative amount.
    """

    total = _ZERO
    for goal in goals:
        if not goal.is_active or goal.target_date is None:
            continue
        months_left = (goal.target_date.year - today.year) * 12 + (
            goal.target_date.month - today.month
        )
        if months_left <= 0:
            continue
        remaining = Decimal(goal.target_amount) - Decimal(goal.current_amount or 0)
        total += max(_ZERO, remaining / months_left)
    return total


def _explanations_from_summary(summary: str, names: Iterable[str]) -> dict[str, str]:
    """Pick ``"<category name>: <explanation>"`` lines out of an AI summary."""

    by_lower = {n.lower(): n for n in names}
    found: dict[str, str] = {}
    for line in summary.splitlines():
        text = line.strip().lstrip("-*• ").replace("**", "").strip()
        head, sep, tail = text.partition(":")
        if not sep:
            continue
        name = by_lower.get(head.strip().lower())
        if name is not None and tail.strip() and name not in found:
            found[name] = tail.strip()
    return found


def build_recommendations(
    spend: Mapping[str, CategorySpend],
    names: Mapping[str, str],
    *,
    months: int,
    goal_allocation: Decimal = _ZERO,
) -> list[BudgetRecommendation]:
    """Pure core of :func:`recommend_budgets`, ordered by category name."""

    if months <= 0:
        raise ValueError("months must be positive")
    share = goal_allocation / len(spend) if spend else _ZERO
    out: list[BudgetRecommendation] = []
    for cid, item in spend.items():
        average = item.total_magnitude / months
        recommended = _q2(average * BUDGET_HEADROOM)
        adjusted = max(_ZERO, _q2(recommended - share))
        out.append(
            BudgetRecommendation(
                category_id=cid,
                category_name=names.get(cid, cid),
                average_monthly_spend=_q2(average),
                recommended_budget=_q2(adjusted),
            )
        )
    out.sort(key=lambda r: (r.category_name.lower(), r.category_id))
    return out


def recommend_budgets(
    repo: LedgerRepository,
    family_id: str,
    *,
    months: int = 3,
    today: date | None = None,
    summarize: bool = True,
) -> BudgetRecommendationResult:
    """Budget recommendations for ``family_id`` with an optional AI summary.

    Parameters
    ----------
    months:
        Size of the look-back window in calendar months (also the divisor for
        the average).
    today:
        Window end; defaults to ``date.today()``.
    summarize:
        Ask the language model for a summary. Its failure leaves ``summary``
        as ``None`` and the numbers untouched.
    """

    if months <= 0:
        raise ValueError("months must be positive")
    today = today or date.today()
    start = months_before(today, months)

    rows = repo.list_transactions(
        family_id,
        TransactionFilters(
            direction="EXPENSE",
            status="RECONCILED",
            has_category=True,
            date_from=start,
            date_to=today,
        ),
    )
    spend = aggregate_category_spend(rows, months)
    names = repo.category_names(family_id, spend.keys())
    allocation = monthly_goal_allocation(repo.list_goals(family_id), today)
    recommendations = build_recommendations(
        spend, names, months=months, goal_allocation=allocation
    )
    _logger.info(
        "budget family=%s window=%s..%s categories=%d goal_allocation=%s",
        family_id,
        start,
        today,
        len(recommendations),
        _q2(allocation),
    )

    summary: str | None = None
    if summarize and recommendations:
        # Local import keeps the OpenAI SDK off the pure-numbers path
        from .insights import summarize_budget

        summary = summarize_budget(recommendations) or None
        if summary:
            explained = _explanations_from_summary(
                summary, [r.category_name for r in recommendations]
            )
            recommendations = [
                replace(r, explanation=explained.get(r.category_name)) for r in recommendations
            ]

    return BudgetRecommendationResult(
        recommendations=recommendations,
        summary=summary,
        monthly_goal_allocation=_q2(allocation),
    )


__all__ = [
    "BUDGET_HEADROOM",
    "aggregate_category_spend",
    "build_recommendations",
    "monthly_goal_allocation",
    "months_before",
    "recommend_budgets",
]

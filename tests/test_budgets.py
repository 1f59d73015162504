from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

import famledger.insights as insights_mod
from famledger.budgets import (
    build_recommendations,
    monthly_goal_allocation,
    months_before,
    recommend_budgets,
)
from famledger.models import CategorySpend
from famledger.persistence import LedgerRepository
from ledger_db.client import session_scope

from tests.helpers.db import (
    bootstrap_sqlite_db,
    seed_account,
    seed_family,
    seed_goal,
    seed_transactions,
)
from tests.helpers.openai_stub import make_openai_stub

TODAY = date(2024, 4, 15)
CATEGORIES = {"food": "Food & Dining", "util": "Utilities", "fun": "Entertainment"}


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "budget.db")
    seed_family(url, family_id="fam1", categories=CATEGORIES)
    seed_account(url, family_id="fam1", account_id="acc1")
    seed_transactions(
        url,
        family_id="fam1",
        account_id="acc1",
        rows=[
            # Food & Dining: 300 / 320 / 280 over the last three months
            ("2024-01-20", "300.00", "EXPENSE", "food"),
            ("2024-02-20", "320.00", "EXPENSE", "food"),
            ("2024-03-20", "200.00", "EXPENSE", "food"),
            ("2024-03-21", "80.00", "EXPENSE", "food"),
            ("2024-02-01", "100.00", "EXPENSE", "util"),
            # ignored: income, transfer, out of window
            ("2024-03-01", "5000.00", "INCOME", "food"),
            ("2024-03-02", "700.00", "TRANSFER", "util"),
            ("2023-12-31", "999.00", "EXPENSE", "food"),
        ],
    )
    # ignored: not reconciled, or uncategorized
    seed_transactions(
        url,
        family_id="fam1",
        account_id="acc1",
        rows=[("2024-03-03", "1000.00", "EXPENSE", "fun")],
        status="NEEDS_REVIEW",
        provider="gocardless",
    )
    return url


def _recommend(url: str, **kw):
    with session_scope(database_url=url) as session:
        return recommend_budgets(LedgerRepository(session), "fam1", today=TODAY, **kw)


def test_food_and_dining_budget(db_url: str):
    result = _recommend(db_url, months=3, summarize=False)

    by_name = {r.category_name: r for r in result.recommendations}
    assert set(by_name) == {"Food & Dining", "Utilities"}
    food = by_name["Food & Dining"]
    assert food.average_monthly_spend == Decimal("300.00")
    assert food.recommended_budget == Decimal("315.00")
    util = by_name["Utilities"]
    assert util.average_monthly_spend == Decimal("33.33")
    assert util.recommended_budget == Decimal("35.00")
    assert result.summary is None
    assert result.monthly_goal_allocation == Decimal("0.00")


def test_recommendations_sorted_by_name(db_url: str):
    names = [r.category_name for r in _recommend(db_url, summarize=False).recommendations]
    assert names == sorted(names, key=str.lower)


def test_goal_allocation_reduces_budgets(db_url: str):
    # 600 remaining over 6 months -> 100/month, 50 per category
    seed_goal(
        db_url,
        family_id="fam1",
        name="Vacation",
        target_amount="1000",
        current_amount="400",
        target_date=date(2024, 10, 1),
    )
    result = _recommend(db_url, summarize=False)

    by_name = {r.category_name: r for r in result.recommendations}
    assert result.monthly_goal_allocation == Decimal("100.00")
    assert by_name["Food & Dining"].recommended_budget == Decimal("265.00")
    # never below zero
    assert by_name["Utilities"].recommended_budget == Decimal("0.00")


def test_summary_failure_keeps_numbers(db_url: str, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(
        insights_mod, "OpenAI", make_openai_stub(error=RuntimeError("503 upstream"))
    )

    result = _recommend(db_url)

    assert result.summary is None
    food = next(r for r in result.recommendations if r.category_name == "Food & Dining")
    assert food.recommended_budget == Decimal("315.00")
    assert food.explanation is None


def test_summary_attaches_explanations(db_url: str, monkeypatch: pytest.MonkeyPatch):
    reply = (
        "- **Food & Dining**: Groceries stayed steady, so a small cushion is enough.\n"
        "- Utilities: Seasonal bills vary.\n"
        "Overall you are on track."
    )
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(insights_mod, "OpenAI", make_openai_stub(reply))

    result = _recommend(db_url)

    assert result.summary == reply
    by_name = {r.category_name: r for r in result.recommendations}
    assert by_name["Food & Dining"].explanation == (
        "Groceries stayed steady, so a small cushion is enough."
    )
    assert by_name["Utilities"].explanation == "Seasonal bills vary."


def test_no_api_key_means_no_summary(db_url: str):
    assert _recommend(db_url).summary is None


def test_build_recommendations_rounds_from_unrounded_average():
    spend = {
        "c": CategorySpend(category_id="c", total_magnitude=Decimal("100.00"), months_in_window=3)
    }
    (rec,) = build_recommendations(spend, {"c": "Misc"}, months=3)
    # 33.333.. * 1.05 = 34.999.. -> 35.00
    assert rec.average_monthly_spend == Decimal("33.33")
    assert rec.recommended_budget == Decimal("35.00")


def test_build_recommendations_rejects_empty_window():
    with pytest.raises(ValueError):
        build_recommendations({}, {}, months=0)


def _goal(target, current, target_date, active=True):
    return SimpleNamespace(
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        target_date=target_date,
        is_active=active,
    )


def test_monthly_goal_allocation_skips_undated_past_and_met_goals():
    goals = [
        _goal("1200", "0", date(2025, 4, 1)),  # 12 months -> 100
        _goal("500", "0", None),
        _goal("500", "0", date(2024, 4, 30)),  # this month
        _goal("500", "600", date(2024, 9, 1)),  # already met
        _goal("500", "0", date(2024, 9, 1), active=False),
    ]
    assert monthly_goal_allocation(goals, TODAY) == Decimal("100")


def test_months_before_clamps_day():
    assert months_before(date(2024, 3, 31), 1) == date(2024, 2, 29)
    assert months_before(date(2024, 1, 15), 3) == date(2023, 10, 15)

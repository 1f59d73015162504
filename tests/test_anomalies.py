from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import select

from famledger.anomalies import category_stats, detect_anomalies, is_anomalous
from famledger.models import CategoryStats
from famledger.persistence import LedgerRepository
from ledger_db.client import session_scope
from ledger_db.models.ledger import LedgerTransaction

from tests.helpers.db import bootstrap_sqlite_db, seed_account, seed_family, seed_transactions

TODAY = date(2024, 4, 15)


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "anomalies.db")
    seed_family(url, family_id="fam1", categories={"food": "Groceries", "gas": "Fuel"})
    seed_account(url, family_id="fam1", account_id="acc1")
    return url


def _seed(url: str, category: str, amounts: list[str], day: str = "2024-03-10") -> list[int]:
    return seed_transactions(
        url,
        family_id="fam1",
        account_id="acc1",
        rows=[(day, a, "EXPENSE", category) for a in amounts],
    )


def _detect(url: str):
    with session_scope(database_url=url) as session:
        return detect_anomalies(LedgerRepository(session), "fam1", today=TODAY)


def test_outlier_is_flagged(db_url: str):
    ids = _seed(db_url, "food", ["10.00"] * 9 + ["100.00"])

    (found,) = _detect(db_url)

    assert found.transaction_id == ids[-1]
    assert found.category_id == "food"
    assert found.category_name == "Groceries"
    assert found.amount == Decimal("100.00")
    assert found.reason == "Above expected range for Groceries"


def test_value_on_threshold_is_not_flagged(db_url: str):
    # avg 12, std 4 -> threshold exactly 20
    _seed(db_url, "food", ["10", "10", "10", "10", "20"])
    assert _detect(db_url) == []


def test_single_transaction_category_never_flags(db_url: str):
    _seed(db_url, "gas", ["5000.00"])
    assert _detect(db_url) == []


def test_categories_are_judged_separately(db_url: str):
    _seed(db_url, "food", ["10.00"] * 9 + ["100.00"])
    _seed(db_url, "gas", ["100.00", "100.00", "100.00"])
    assert [a.category_id for a in _detect(db_url)] == ["food"]


def test_history_outside_window_is_ignored(db_url: str):
    _seed(db_url, "food", ["10.00"] * 9, day="2023-06-01")
    _seed(db_url, "food", ["100.00", "100.00"])
    assert _detect(db_url) == []


def test_detection_does_not_change_status(db_url: str):
    _seed(db_url, "food", ["10.00"] * 9 + ["100.00"])
    _detect(db_url)
    with session_scope(database_url=db_url) as session:
        statuses = set(session.execute(select(LedgerTransaction.status)).scalars())
    assert statuses == {"RECONCILED"}


def test_is_anomalous_strict_threshold():
    stats = CategoryStats(avg=Decimal("12"), std=Decimal("4"))
    assert is_anomalous(Decimal("20.01"), stats) is True
    assert is_anomalous(Decimal("20"), stats) is False


def test_category_stats_uses_population_std(db_url: str):
    _seed(db_url, "food", ["10", "10", "10", "10", "20"])
    with session_scope(database_url=db_url) as session:
        rows = list(session.execute(select(LedgerTransaction)).scalars())
    stats = category_stats(rows)["food"]
    assert stats.avg == Decimal("12")
    assert stats.std == Decimal("4")

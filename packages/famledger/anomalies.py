"""Per-category outlier detection over reconciled expenses.

A transaction is anomalous when its magnitude is strictly greater than its
category's ``mean + 2 * std`` (population standard deviation), both computed
over the same reconciled history window. Categories with a single transaction
have ``std == 0`` and therefore never flag it.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from ledger_db.models.ledger import LedgerTransaction

from .budgets import months_before
from .logging_setup import get_logger
from .models import AnomalyRecord, CategoryStats
from .persistence import LedgerRepository, TransactionFilters

_logger = get_logger("famledger.anomalies")

STD_MULTIPLIER = Decimal(2)


def _expense_rows(transactions: Iterable[LedgerTransaction]) -> list[LedgerTransaction]:
    return [
        tx
        for tx in transactions
        if tx.status == "RECONCILED" and tx.direction == "EXPENSE" and tx.category_id is not None
    ]


def category_stats(transactions: Iterable[LedgerTransaction]) -> dict[str, CategoryStats]:
    """Mean and population std of expense magnitudes per category."""

    amounts: dict[str, list[Decimal]] = {}
    for tx in _expense_rows(transactions):
        amounts.setdefault(tx.category_id, []).append(Decimal(tx.amount))

    stats: dict[str, CategoryStats] = {}
    for cid, values in amounts.items():
        n = len(values)
        avg = sum(values, Decimal(0)) / n
        variance = sum(((v - avg) ** 2 for v in values), Decimal(0)) / n
        stats[cid] = CategoryStats(avg=avg, std=variance.sqrt())
    return stats


def is_anomalous(amount: Decimal, stats: CategoryStats) -> bool:
    """``amount > avg + 2*std``; a value exactly on the threshold is normal."""

    return Decimal(amount) > stats.avg + STD_MULTIPLIER * stats.std


def find_anomalies(
    transactions: Iterable[LedgerTransaction], names: dict[str, str]
) -> list[AnomalyRecord]:
    rows = _expense_rows(transactions)
    stats = category_stats(rows)
    out: list[AnomalyRecord] = []
    for tx in rows:
        st = stats[tx.category_id]
        if not is_anomalous(tx.amount, st):
            continue
        name = names.get(tx.category_id, tx.category_id)
        out.append(
            AnomalyRecord(
                transaction_id=tx.id,
                category_id=tx.category_id,
                category_name=name,
                amount=Decimal(tx.amount),
                reason=f"Above expected range for {name}",
            )
        )
    return out


def detect_anomalies(
    repo: LedgerRepository,
    family_id: str,
    *,
    months: int = 3,
    today: date | None = None,
) -> list[AnomalyRecord]:
    """Report outlier expenses of the last ``months`` calendar months.

    The ledger is not modified; routing a flagged transaction to review is a
    separate :func:`famledger.ledger.set_status` call.
    """

    today = today or date.today()
    rows = repo.list_transactions(
        family_id,
        TransactionFilters(
            direction="EXPENSE",
            status="RECONCILED",
            has_category=True,
            date_from=months_before(today, months),
            date_to=today,
        ),
    )
    names = repo.category_names(family_id, {tx.category_id for tx in rows if tx.category_id})
    found = find_anomalies(rows, names)
    _logger.info("anomalies family=%s scanned=%d flagged=%d", family_id, len(rows), len(found))
    return found


__all__ = [
    "STD_MULTIPLIER",
    "category_stats",
    "detect_anomalies",
    "find_anomalies",
    "is_anomalous",
]

"""Next-month spending forecast per category (ordinary least squares).

The series for each category has one point per month that carries any
reconciled expense in the window, sorted chronologically and indexed
``1..n``; a category absent from a month contributes ``0`` there. The
projection for month ``n + 1`` is ``intercept + slope * (n + 1)``, floored at
zero and rounded to cents.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ledger_db.models.ledger import LedgerTransaction

from .budgets import months_before
from .logging_setup import get_logger
from .models import CategorySpendSeries, ForecastRecord
from .persistence import LedgerRepository, TransactionFilters

_logger = get_logger("famledger.forecast")

_ZERO = Decimal(0)


def build_spend_series(transactions: Iterable[LedgerTransaction]) -> CategorySpendSeries:
    monthly: dict[str, dict[str, Decimal]] = {}
    for tx in transactions:
        if tx.status != "RECONCILED" or tx.direction != "EXPENSE" or tx.category_id is None:
            continue
        key = f"{tx.date.year:04d}-{tx.date.month:02d}"
        per_cat = monthly.setdefault(key, {})
        per_cat[tx.category_id] = per_cat.get(tx.category_id, _ZERO) + Decimal(tx.amount)

    months = sorted(monthly)
    categories = sorted({cid for per_cat in monthly.values() for cid in per_cat})
    return {
        cid: [(i, monthly[m].get(cid, _ZERO)) for i, m in enumerate(months, start=1)]
        for cid in categories
    }


def fit_linear_trend(points: Sequence[tuple[int, Decimal]]) -> tuple[Decimal, Decimal]:
    """Return ``(slope, intercept)``; slope is 0 when every x is the same."""

    if not points:
        return _ZERO, _ZERO
    n = Decimal(len(points))
    xs = [Decimal(x) for x, _ in points]
    ys = [Decimal(y) for _, y in points]
    mean_x = sum(xs, _ZERO) / n
    mean_y = sum(ys, _ZERO) / n
    sxx = sum(((x - mean_x) ** 2 for x in xs), _ZERO)
    if sxx == 0:
        return _ZERO, mean_y
    sxy = sum(((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys, strict=True)), _ZERO)
    slope = sxy / sxx
    return slope, mean_y - slope * mean_x


def project_next(points: Sequence[tuple[int, Decimal]]) -> Decimal:
    slope, intercept = fit_linear_trend(points)
    value = intercept + slope * (len(points) + 1)
    return max(_ZERO, value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def forecast_spending(
    repo: LedgerRepository,
    family_id: str,
    *,
    months: int = 6,
    today: date | None = None,
) -> list[ForecastRecord]:
    """Project next month's spend for each category seen in the window."""

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
    series = build_spend_series(rows)
    names = repo.category_names(family_id, series.keys())
    records = [
        ForecastRecord(
            category_id=cid,
            category_name=names.get(cid, cid),
            projected_next_month=project_next(points),
        )
        for cid, points in series.items()
    ]
    records.sort(key=lambda r: (r.category_name.lower(), r.category_id))
    _logger.info("forecast family=%s categories=%d", family_id, len(records))
    return records


__all__ = ["build_spend_series", "fit_linear_trend", "forecast_spending", "project_next"]

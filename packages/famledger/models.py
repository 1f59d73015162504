"""Data models for ``famledger``.

Three layers live here:

- provider payloads (:class:`PlaidTransaction`, :class:`GoCardlessTransaction`),
  validated with pydantic straight from the aggregator JSON;
- the canonical :class:`NormalizedTransaction` produced by
  :mod:`famledger.normalizers` and written by :mod:`famledger.ledger`;
- read-only report views produced by the analytics modules.

Money is always ``Decimal``. Persisted rows are the ORM model
``ledger_db.models.ledger.LedgerTransaction``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedInputError

Provider = Literal["plaid", "gocardless"]
Direction = Literal["INCOME", "EXPENSE", "TRANSFER"]
Status = Literal["RECONCILED", "NEEDS_CATEGORIZATION", "NEEDS_REVIEW", "IN_PROGRESS"]
DedupResult = Literal["EXISTS", "NEW"]

PROVIDERS: tuple[Provider, ...] = ("plaid", "gocardless")

# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------


class PlaidTransaction(BaseModel):
    """One entry of Plaid's ``/transactions/get`` ``transactions`` array."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    provider: Literal["plaid"] = "plaid"
    transaction_id: str | None = None
    account_id: str
    # Kept as sent; parsing (and rejecting) happens in the normalizer.
    amount: int | float | str | None = None
    date: str | None = None
    authorized_date: str | None = None
    name: str = ""
    merchant_name: str | None = None
    iso_currency_code: str | None = None
    pending: bool = False
    category: list[str] | None = None
    logo_url: str | None = None


class GoCardlessAmount(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    amount: int | float | str | None = None
    currency: str | None = None


class GoCardlessAccountRef(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    iban: str | None = None


class GoCardlessTransaction(BaseModel):
    """One booked or pending entry from GoCardless Bank Account Data.

    Field names follow the API's camelCase on input and are exposed in
    snake_case.
    """

    model_config = ConfigDict(
        extra="ignore", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    provider: Literal["gocardless"] = "gocardless"
    transaction_id: str | None = None
    booking_date: str | None = None
    value_date: str | None = None
    transaction_amount: GoCardlessAmount | None = None
    remittance_information_unstructured: str | None = None
    remittance_information_structured: str | None = None
    additional_information: str | None = None
    creditor_name: str | None = None
    debtor_name: str | None = None
    creditor_account: GoCardlessAccountRef | None = None
    debtor_account: GoCardlessAccountRef | None = None
    bank_transaction_code: str | None = None
    end_to_end_id: str | None = None
    mandate_id: str | None = None


type RawTransaction = PlaidTransaction | GoCardlessTransaction


def parse_raw_transaction(provider: Provider, payload: Mapping[str, Any]) -> RawTransaction:
    """Validate one provider JSON record into its pydantic model.

    Raises
    ------
    MalformedInputError
        When the payload does not match the provider's record shape.
    """

    model: type[PlaidTransaction] | type[GoCardlessTransaction]
    if provider == "plaid":
        model = PlaidTransaction
    elif provider == "gocardless":
        model = GoCardlessTransaction
    else:
        raise ValueError(f"unknown provider: {provider!r}")
    try:
        return model.model_validate({k: v for k, v in payload.items() if k != "provider"})
    except ValidationError as exc:
        raise MalformedInputError(f"invalid {provider} transaction: {exc}") from exc


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """Provider-independent transaction ready for the dedup gate and writer.

    ``amount`` is a non-negative magnitude; the sign lives only in
    ``direction``. ``external_id`` is the provider's own id or a synthesized
    ``"<provider>-<hash>"`` and is unique per account.
    """

    provider: Provider
    external_id: str
    date: date
    description: str
    merchant: str
    amount: Decimal
    direction: Direction
    currency: str
    pending: bool = False
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("NormalizedTransaction.amount must be >= 0")


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImportSummary:
    """Counts for one :func:`famledger.ledger.import_transactions` run."""

    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    inserted_ids: list[int] = field(default_factory=list)

    @property
    def seen(self) -> int:
        return self.inserted + self.duplicates + self.skipped


@dataclass(slots=True)
class AccountSyncResult:
    account_id: str
    summary: ImportSummary | None = None
    error: str | None = None


@dataclass(slots=True)
class SyncReport:
    """Outcome of a provider sync across all of a family's accounts."""

    provider: Provider
    accounts: list[AccountSyncResult] = field(default_factory=list)
    unmatched: int = 0
    balances_updated: int = 0

    @property
    def inserted(self) -> int:
        return sum(a.summary.inserted for a in self.accounts if a.summary is not None)

    @property
    def failed(self) -> list[AccountSyncResult]:
        return [a for a in self.accounts if a.error is not None]


# ---------------------------------------------------------------------------
# Report views (derived, never persisted)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorySpend:
    category_id: str
    total_magnitude: Decimal
    months_in_window: int


type CategorySpendSeries = dict[str, list[tuple[int, Decimal]]]
"""Category id -> ordered ``(period_index, total)`` points, indices from 1."""


@dataclass(frozen=True, slots=True)
class CategoryStats:
    """Mean and population standard deviation of a category's expenses."""

    avg: Decimal
    std: Decimal


@dataclass(frozen=True, slots=True)
class BudgetRecommendation:
    category_id: str
    category_name: str
    average_monthly_spend: Decimal
    recommended_budget: Decimal
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class BudgetRecommendationResult:
    recommendations: list[BudgetRecommendation]
    summary: str | None = None
    monthly_goal_allocation: Decimal = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class AnomalyRecord:
    transaction_id: int
    category_id: str
    category_name: str
    amount: Decimal
    reason: str


@dataclass(frozen=True, slots=True)
class ForecastRecord:
    category_id: str
    category_name: str
    projected_next_month: Decimal


@dataclass(frozen=True, slots=True)
class MonthlyTrend:
    month: str  # YYYY-MM
    income: Decimal
    expenses: Decimal
    savings: Decimal


@dataclass(frozen=True, slots=True)
class CashFlowSummary:
    income: Decimal
    expenses: Decimal
    savings_rate: Decimal


@dataclass(frozen=True, slots=True)
class AccountBalances:
    """Balances of the family's active accounts; ``total`` is the net worth."""

    checking: Decimal
    savings: Decimal
    credit_card: Decimal
    total: Decimal

    @property
    def net_worth(self) -> Decimal:
        return self.total


@dataclass(frozen=True, slots=True)
class GoalProgress:
    goal_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    progress_percentage: Decimal


__all__ = [
    "AccountBalances",
    "AccountSyncResult",
    "AnomalyRecord",
    "BudgetRecommendation",
    "BudgetRecommendationResult",
    "CashFlowSummary",
    "CategorySpend",
    "CategorySpendSeries",
    "CategoryStats",
    "DedupResult",
    "Direction",
    "ForecastRecord",
    "GoCardlessAccountRef",
    "GoCardlessAmount",
    "GoCardlessTransaction",
    "GoalProgress",
    "ImportSummary",
    "MonthlyTrend",
    "NormalizedTransaction",
    "PROVIDERS",
    "PlaidTransaction",
    "Provider",
    "RawTransaction",
    "SyncReport",
    "Status",
    "parse_raw_transaction",
]

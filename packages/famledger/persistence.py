# ruff: noqa: I001
"""Ledger persistence on top of the shared ``ledger_db`` models.

:class:`LedgerRepository` wraps one SQLAlchemy :class:`~sqlalchemy.orm.Session`
obtained from ``ledger_db.client.session_scope`` (or any caller-owned session)
and exposes the reads and writes the pipeline and analytics need. Transaction
boundaries stay with the caller: the repository flushes so ids and constraint
violations surface immediately, and only commits when asked (see
:meth:`LedgerRepository.commit`).

Every :class:`~sqlalchemy.exc.SQLAlchemyError` is re-raised as
:class:`~famledger.errors.StorageError` with the original chained.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_db.models.ledger import (
    BankConnection,
    Category,
    FinancialAccount,
    Goal,
    LedgerTransaction,
)
from .errors import StorageError
from .logging_setup import get_logger
from .models import Direction, NormalizedTransaction, Provider, Status

_logger = get_logger("famledger.persistence")


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    """Optional predicates for :meth:`LedgerRepository.list_transactions`.

    ``has_category`` selects rows with (``True``) or without (``False``) a
    category; ``date_from``/``date_to`` are inclusive.
    """

    direction: Direction | None = None
    status: Status | None = None
    account_id: str | None = None
    category_id: str | None = None
    has_category: bool | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int | None = None
    offset: int = 0
    order: Literal["asc", "desc"] = "asc"


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        _logger.error("ledger storage failed during %s: %s", action, exc)
        raise StorageError(f"{action} failed: {exc}") from exc


class LedgerRepository:
    """Family-scoped reads and writes against the ledger tables."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ---- transactions ---------------------------------------------------

    def find_transaction(self, account_id: str, external_id: str) -> LedgerTransaction | None:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.account_id == account_id,
            LedgerTransaction.external_id == external_id,
        )
        with _storage_errors("find_transaction"):
            return self.session.execute(stmt).scalars().first()

    def insert_transaction(
        self,
        normalized: NormalizedTransaction,
        *,
        account_id: str,
        family_id: str,
    ) -> LedgerTransaction:
        """Insert one new ledger row (status ``NEEDS_CATEGORIZATION``)."""

        row = LedgerTransaction(
            family_id=family_id,
            account_id=account_id,
            category_id=None,
            provider=normalized.provider,
            external_id=normalized.external_id,
            date=normalized.date,
            description=normalized.description,
            merchant=normalized.merchant,
            amount=normalized.amount,
            direction=normalized.direction,
            status="NEEDS_CATEGORIZATION",
            currency=normalized.currency,
            pending=normalized.pending,
            tags=list(normalized.tags),
        )
        with _storage_errors("insert_transaction"):
            self.session.add(row)
            self.session.flush()
        return row

    def get_transaction(self, family_id: str, transaction_id: int) -> LedgerTransaction | None:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.id == transaction_id,
            LedgerTransaction.family_id == family_id,
        )
        with _storage_errors("get_transaction"):
            return self.session.execute(stmt).scalars().first()

    def update_transaction(self, row: LedgerTransaction, **values: Any) -> LedgerTransaction:
        """Apply column ``values`` to ``row`` and flush."""

        for key, value in values.items():
            if not hasattr(LedgerTransaction, key):
                raise AttributeError(f"LedgerTransaction has no column {key!r}")
            setattr(row, key, value)
        with _storage_errors("update_transaction"):
            self.session.flush()
        return row

    def list_transactions(
        self, family_id: str, filters: TransactionFilters | None = None
    ) -> list[LedgerTransaction]:
        f = filters or TransactionFilters()
        conds = [LedgerTransaction.family_id == family_id]
        if f.direction is not None:
            conds.append(LedgerTransaction.direction == f.direction)
        if f.status is not None:
            conds.append(LedgerTransaction.status == f.status)
        if f.account_id is not None:
            conds.append(LedgerTransaction.account_id == f.account_id)
        if f.category_id is not None:
            conds.append(LedgerTransaction.category_id == f.category_id)
        if f.has_category is True:
            conds.append(LedgerTransaction.category_id.is_not(None))
        elif f.has_category is False:
            conds.append(LedgerTransaction.category_id.is_(None))
        if f.date_from is not None:
            conds.append(LedgerTransaction.date >= f.date_from)
        if f.date_to is not None:
            conds.append(LedgerTransaction.date <= f.date_to)

        if f.order == "desc":
            ordering = (LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
        else:
            ordering = (LedgerTransaction.date.asc(), LedgerTransaction.id.asc())
        stmt = select(LedgerTransaction).where(*conds).order_by(*ordering)
        if f.offset:
            stmt = stmt.offset(f.offset)
        if f.limit is not None:
            stmt = stmt.limit(f.limit)

        with _storage_errors("list_transactions"):
            return list(self.session.execute(stmt).scalars())

    # ---- reference data --------------------------------------------------

    def category_names(self, family_id: str, ids: Iterable[str] | None = None) -> dict[str, str]:
        """Map category id -> name for the family (optionally only ``ids``)."""

        stmt = select(Category.id, Category.name).where(Category.family_id == family_id)
        if ids is not None:
            wanted = list(ids)
            if not wanted:
                return {}
            stmt = stmt.where(Category.id.in_(wanted))
        with _storage_errors("category_names"):
            return {cid: name for cid, name in self.session.execute(stmt)}

    def list_goals(self, family_id: str, *, active_only: bool = True) -> list[Goal]:
        stmt = select(Goal).where(Goal.family_id == family_id)
        if active_only:
            stmt = stmt.where(Goal.is_active.is_(True))
        with _storage_errors("list_goals"):
            return list(self.session.execute(stmt.order_by(Goal.name)).scalars())

    def list_accounts(
        self, family_id: str, *, provider: Provider | None = None, active_only: bool = True
    ) -> list[FinancialAccount]:
        stmt = select(FinancialAccount).where(FinancialAccount.family_id == family_id)
        if provider is not None:
            stmt = stmt.where(FinancialAccount.provider == provider)
        if active_only:
            stmt = stmt.where(FinancialAccount.is_active.is_(True))
        with _storage_errors("list_accounts"):
            return list(self.session.execute(stmt.order_by(FinancialAccount.name)).scalars())

    def update_account_balance(
        self, account_id: str, balance: Decimal, *, currency: str | None = None
    ) -> FinancialAccount | None:
        """Store the aggregator-reported balance; ``None`` if the account is gone."""

        with _storage_errors("update_account_balance"):
            account = self.session.get(FinancialAccount, account_id)
            if account is None:
                return None
            account.balance = balance
            if currency:
                account.currency = currency.upper()
            self.session.flush()
        return account

    def list_connections(self, family_id: str, provider: Provider) -> list[BankConnection]:
        stmt = (
            select(BankConnection)
            .where(BankConnection.family_id == family_id, BankConnection.provider == provider)
            .order_by(BankConnection.created_at)
        )
        with _storage_errors("list_connections"):
            return list(self.session.execute(stmt).scalars())

    # ---- unit of work ----------------------------------------------------

    def commit(self) -> None:
        """Commit the caller's session (sync commits once per account)."""

        with _storage_errors("commit"):
            self.session.commit()

    def rollback(self) -> None:
        with _storage_errors("rollback"):
            self.session.rollback()


__all__ = ["LedgerRepository", "TransactionFilters"]

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# Closed value sets mirrored by ``famledger.models`` enums.
PROVIDERS: tuple[str, ...] = ("plaid", "gocardless")
DIRECTIONS: tuple[str, ...] = ("INCOME", "EXPENSE", "TRANSFER")
STATUSES: tuple[str, ...] = (
    "RECONCILED",
    "NEEDS_CATEGORIZATION",
    "NEEDS_REVIEW",
    "IN_PROGRESS",
)
ACCOUNT_TYPES: tuple[str, ...] = (
    "CHECKING",
    "SAVINGS",
    "CREDIT_CARD",
    "LOAN",
    "MORTGAGE",
    "INVESTMENT",
    "OTHER",
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


class Base(DeclarativeBase):
    pass


# ---------------------------
# Tenancy: families
# ---------------------------


class Family(Base):
    __tablename__ = "families"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, default="USD")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Aggregator links and accounts
# ---------------------------


class BankConnection(Base):
    __tablename__ = "bank_connections"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    family_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider: Mapped[str] = mapped_column(String, nullable=False)
    # Plaid item access token; GoCardless requisitions authenticate per request
    # with the app-level secret, so this stays NULL for them.
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    institution_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_list("provider", PROVIDERS), name="ck_bank_connections_provider"),
    )


class FinancialAccount(Base):
    __tablename__ = "financial_accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    family_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    connection_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("bank_connections.id", ondelete="SET NULL"), nullable=True
    )
    # NULL provider marks a manually maintained account.
    provider: Mapped[str | None] = mapped_column(String, nullable=True)
    provider_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(
        String, nullable=False, default="OTHER", server_default="OTHER"
    )
    # Signed: credit card and loan balances are usually negative.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal(0), server_default="0"
    )
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa_expr.true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_account_id", name="uq_financial_accounts_provider_account"
        ),
        CheckConstraint(
            "provider IS NULL OR " + _in_list("provider", PROVIDERS),
            name="ck_financial_accounts_provider",
        ),
        CheckConstraint(_in_list("type", ACCOUNT_TYPES), name="ck_financial_accounts_type"),
    )


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    family_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa_expr.true()
    )


# ---------------------------
# Savings goals
# ---------------------------


class Goal(Base):
    __tablename__ = "goals"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    family_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0.00")
    )
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa_expr.true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    # SQLite only autoincrements an INTEGER PRIMARY KEY (rowid alias).
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    family_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("families.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("financial_accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    provider: Mapped[str] = mapped_column(String, nullable=False)
    # Dedup key: native provider id, or a synthesized "<provider>-<hash>".
    external_id: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    merchant: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default="NEEDS_CATEGORIZATION"
    )
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False)
    pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_expr.false()
    )
    tags: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_ledger_tx_account_external_id"),
        CheckConstraint("amount >= 0", name="ck_ledger_tx_amount_unsigned"),
        CheckConstraint(_in_list("direction", DIRECTIONS), name="ck_ledger_tx_direction"),
        CheckConstraint(_in_list("status", STATUSES), name="ck_ledger_tx_status"),
        CheckConstraint(_in_list("provider", PROVIDERS), name="ck_ledger_tx_provider"),
        Index("ix_ledger_tx_family_date", "family_id", "date"),
        Index("ix_ledger_tx_family_category", "family_id", "category_id"),
    )


__all__ = [
    "ACCOUNT_TYPES",
    "Base",
    "BankConnection",
    "Category",
    "DIRECTIONS",
    "Family",
    "FinancialAccount",
    "Goal",
    "LedgerTransaction",
    "PROVIDERS",
    "STATUSES",
]

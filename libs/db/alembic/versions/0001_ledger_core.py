# ruff: noqa: I001
"""Family ledger core tables.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_PROVIDER_CHECK = "provider in ('plaid','gocardless')"


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    # families
    op.create_table(
        "families",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("currency", sa.CHAR(3), nullable=False),
        _created_at(),
    )

    # bank_connections (one aggregator link per row)
    op.create_table(
        "bank_connections",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "family_id",
            sa.String(32),
            sa.ForeignKey("families.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("institution_id", sa.String(), nullable=True),
        _created_at(),
        sa.CheckConstraint(_PROVIDER_CHECK, name="ck_bank_connections_provider"),
    )
    op.create_index("ix_bank_connections_family_id", "bank_connections", ["family_id"])

    # financial_accounts
    op.create_table(
        "financial_accounts",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "family_id",
            sa.String(32),
            sa.ForeignKey("families.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "connection_id",
            sa.String(32),
            sa.ForeignKey("bank_connections.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("provider", sa.String(), nullable=True),
        sa.Column("provider_account_id", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("currency", sa.CHAR(3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint(
            "provider", "provider_account_id", name="uq_financial_accounts_provider_account"
        ),
        sa.CheckConstraint(
            "provider IS NULL OR " + _PROVIDER_CHECK, name="ck_financial_accounts_provider"
        ),
    )
    op.create_index("ix_financial_accounts_family_id", "financial_accounts", ["family_id"])

    # categories
    op.create_table(
        "categories",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "family_id",
            sa.String(32),
            sa.ForeignKey("families.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_categories_family_id", "categories", ["family_id"])

    # goals
    op.create_table(
        "goals",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "family_id",
            sa.String(32),
            sa.ForeignKey("families.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("target_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("current_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_goals_family_id", "goals", ["family_id"])

    # ledger_transactions
    op.create_table(
        "ledger_transactions",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column(
            "family_id",
            sa.String(32),
            sa.ForeignKey("families.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.String(32),
            sa.ForeignKey("financial_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.String(32),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("merchant", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column(
            "status", sa.String(), nullable=False, server_default="NEEDS_CATEGORIZATION"
        ),
        sa.Column("currency", sa.CHAR(3), nullable=False),
        sa.Column("pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tags", sa.JSON(), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "account_id", "external_id", name="uq_ledger_tx_account_external_id"
        ),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_tx_amount_unsigned"),
        sa.CheckConstraint(
            "direction in ('INCOME','EXPENSE','TRANSFER')", name="ck_ledger_tx_direction"
        ),
        sa.CheckConstraint(
            "status in ('RECONCILED','NEEDS_CATEGORIZATION','NEEDS_REVIEW','IN_PROGRESS')",
            name="ck_ledger_tx_status",
        ),
        sa.CheckConstraint(_PROVIDER_CHECK, name="ck_ledger_tx_provider"),
    )
    op.create_index("ix_ledger_tx_family_date", "ledger_transactions", ["family_id", "date"])
    op.create_index(
        "ix_ledger_tx_family_category", "ledger_transactions", ["family_id", "category_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_tx_family_category", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_family_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_goals_family_id", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_categories_family_id", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_financial_accounts_family_id", table_name="financial_accounts")
    op.drop_table("financial_accounts")
    op.drop_index("ix_bank_connections_family_id", table_name="bank_connections")
    op.drop_table("bank_connections")
    op.drop_table("families")

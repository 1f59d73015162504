# ruff: noqa: I001
"""Track account type and the aggregator-reported balance on financial accounts.

Revision ID: 0002_account_balances
Revises: 0001_ledger_core
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_account_balances"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Batch mode so SQLite can add the CHECK constraint (table copy)
    with op.batch_alter_table("financial_accounts") as batch:
        batch.add_column(
            sa.Column("type", sa.String(), nullable=False, server_default=sa.text("'OTHER'"))
        )
        batch.add_column(
            sa.Column(
                "balance", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")
            )
        )
        batch.create_check_constraint(
            "ck_financial_accounts_type",
            sa.text(
                "type in ('CHECKING','SAVINGS','CREDIT_CARD','LOAN','MORTGAGE',"
                "'INVESTMENT','OTHER')"
            ),
        )


def downgrade() -> None:
    with op.batch_alter_table("financial_accounts") as batch:
        batch.drop_constraint("ck_financial_accounts_type", type_="check")
        batch.drop_column("balance")
        batch.drop_column("type")

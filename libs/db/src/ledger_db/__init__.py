"""ledger_db: database library for the family ledger (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``ledger_db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.ledger import (
    Base,
    BankConnection,
    Category,
    Family,
    FinancialAccount,
    Goal,
    LedgerTransaction,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "BankConnection",
    "Category",
    "Family",
    "FinancialAccount",
    "Goal",
    "LedgerTransaction",
]

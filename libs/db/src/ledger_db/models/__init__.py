"""SQLAlchemy models registry for the ledger database.

Includes tenancy (families), aggregator links/accounts, categories, goals, and
the ledger itself, all used by ``famledger``.
"""

from .ledger import (
    Base,
    BankConnection,
    Category,
    Family,
    FinancialAccount,
    Goal,
    LedgerTransaction,
)

__all__ = [
    "Base",
    "BankConnection",
    "Category",
    "Family",
    "FinancialAccount",
    "Goal",
    "LedgerTransaction",
]

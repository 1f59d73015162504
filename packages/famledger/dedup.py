"""Exactly-once gate for imported transactions.

A normalized record is new for an account iff no ledger row carries the same
``(account_id, external_id)``. The unique constraint on those columns backs the
check at the storage level; this lookup is what keeps repeated imports quiet.
"""

from __future__ import annotations

from .models import DedupResult, NormalizedTransaction
from .persistence import LedgerRepository


def check_duplicate(
    repo: LedgerRepository, normalized: NormalizedTransaction, account_id: str
) -> DedupResult:
    """Return ``"EXISTS"`` when the account already holds this ``external_id``.

    Storage failures propagate as :class:`~famledger.errors.StorageError`.
    """

    existing = repo.find_transaction(account_id, normalized.external_id)
    return "EXISTS" if existing is not None else "NEW"


__all__ = ["check_duplicate"]

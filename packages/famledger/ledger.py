"""Ledger writer: normalize -> dedup -> insert, plus the review status machine.

Import flow
-----------
:func:`import_transactions` walks a provider batch in the order received. Each
record is normalized, checked against the dedup gate and, when new, inserted
with ``status="NEEDS_CATEGORIZATION"`` and no category. A malformed record is
logged and skipped; a storage failure stops the batch and propagates. Because
the gate is keyed on ``(account_id, external_id)``, re-running the whole batch
after a partial failure only inserts what is still missing.

Status machine
--------------
::

    NEEDS_CATEGORIZATION -> RECONCILED | NEEDS_REVIEW | IN_PROGRESS
    NEEDS_REVIEW         -> RECONCILED
    IN_PROGRESS          -> RECONCILED

``RECONCILED`` is final.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from ledger_db.models.ledger import LedgerTransaction

from .dedup import check_duplicate
from .errors import InvalidStatusTransitionError, MalformedInputError, StorageError
from .logging_setup import get_logger
from .models import (
    GoCardlessTransaction,
    ImportSummary,
    NormalizedTransaction,
    PlaidTransaction,
    Provider,
    RawTransaction,
    Status,
    parse_raw_transaction,
)
from .normalizers import normalize_transaction
from .persistence import LedgerRepository

_logger = get_logger("famledger.ledger")

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "NEEDS_CATEGORIZATION": frozenset({"RECONCILED", "NEEDS_REVIEW", "IN_PROGRESS"}),
    "NEEDS_REVIEW": frozenset({"RECONCILED"}),
    "IN_PROGRESS": frozenset({"RECONCILED"}),
    "RECONCILED": frozenset(),
}


def write_transaction(
    repo: LedgerRepository,
    normalized: NormalizedTransaction,
    *,
    account_id: str,
    family_id: str,
) -> LedgerTransaction:
    """Persist one new ledger row. No retry; :class:`StorageError` propagates."""

    return repo.insert_transaction(normalized, account_id=account_id, family_id=family_id)


def _coerce_raw(
    item: RawTransaction | Mapping[str, Any], provider: Provider | None
) -> RawTransaction:
    if isinstance(item, Mapping):
        if provider is None:
            raise ValueError("provider is required when importing raw JSON mappings")
        return parse_raw_transaction(provider, item)
    if not isinstance(item, PlaidTransaction | GoCardlessTransaction):
        raise MalformedInputError(f"unsupported raw transaction type: {type(item).__name__}")
    return item


def import_transactions(
    repo: LedgerRepository,
    raws: Iterable[RawTransaction | Mapping[str, Any]],
    *,
    account_id: str,
    family_id: str,
    provider_account_id: str,
    pending: bool | None = None,
    provider: Provider | None = None,
    today: date | None = None,
) -> ImportSummary:
    """Import a provider batch into one account.

    Parameters
    ----------
    raws:
        Validated provider models, or plain JSON mappings when ``provider`` is
        given.
    provider_account_id:
        Aggregator-side account id (feeds synthesized external ids).
    pending:
        GoCardless list marker (``True`` for the ``pending`` list).

    Returns
    -------
    ImportSummary
        Inserted/duplicate/skipped counts and the new row ids.

    Raises
    ------
    StorageError
        On the first failed lookup or insert; earlier inserts of this batch
        are left to the caller's commit/rollback.
    """

    summary = ImportSummary()
    for position, item in enumerate(raws):
        try:
            raw = _coerce_raw(item, provider)
            normalized = normalize_transaction(
                raw, provider_account_id=provider_account_id, pending=pending, today=today
            )
        except MalformedInputError as exc:
            summary.skipped += 1
            _logger.warning(
                "skipping malformed record #%d for account %s: %s", position, account_id, exc
            )
            continue

        try:
            if check_duplicate(repo, normalized, account_id) == "EXISTS":
                summary.duplicates += 1
                continue
            row = write_transaction(
                repo, normalized, account_id=account_id, family_id=family_id
            )
        except StorageError:
            _logger.error(
                "import for account %s stopped at record #%d (inserted=%d duplicates=%d)",
                account_id,
                position,
                summary.inserted,
                summary.duplicates,
            )
            raise
        summary.inserted += 1
        summary.inserted_ids.append(row.id)

    _logger.info(
        "import account=%s inserted=%d duplicates=%d skipped=%d",
        account_id,
        summary.inserted,
        summary.duplicates,
        summary.skipped,
    )
    return summary


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def _require_transaction(
    repo: LedgerRepository, family_id: str, transaction_id: int
) -> LedgerTransaction:
    row = repo.get_transaction(family_id, transaction_id)
    if row is None:
        raise LookupError(f"transaction {transaction_id} not found for family {family_id}")
    return row


def set_status(
    repo: LedgerRepository, family_id: str, transaction_id: int, status: Status
) -> LedgerTransaction:
    """Move a transaction to ``status`` if the transition is allowed."""

    row = _require_transaction(repo, family_id, transaction_id)
    current = row.status
    if status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransitionError(current, status)
    _logger.info("transaction %s: %s -> %s", transaction_id, current, status)
    return repo.update_transaction(row, status=status)


def assign_category(
    repo: LedgerRepository, family_id: str, transaction_id: int, category_id: str
) -> LedgerTransaction:
    """Attach a family category and reconcile the transaction."""

    row = _require_transaction(repo, family_id, transaction_id)
    if category_id not in repo.category_names(family_id, [category_id]):
        raise LookupError(f"category {category_id} not found for family {family_id}")
    if "RECONCILED" not in ALLOWED_TRANSITIONS.get(row.status, frozenset()):
        raise InvalidStatusTransitionError(row.status, "RECONCILED")
    _logger.info("transaction %s: category=%s, reconciled", transaction_id, category_id)
    return repo.update_transaction(row, category_id=category_id, status="RECONCILED")


__all__ = [
    "ALLOWED_TRANSITIONS",
    "assign_category",
    "import_transactions",
    "set_status",
    "write_transaction",
]

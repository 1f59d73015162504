from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from famledger.dedup import check_duplicate
from famledger.errors import StorageError
from famledger.ledger import import_transactions
from famledger.models import GoCardlessTransaction, ImportSummary, NormalizedTransaction
from famledger.normalizers import normalize_transaction
from famledger.persistence import LedgerRepository
from ledger_db.client import get_session, session_scope
from ledger_db.models.ledger import LedgerTransaction

from tests.helpers.db import bootstrap_sqlite_db, seed_account, seed_family

SHELL = {
    "transactionAmount": {"amount": "-45.30", "currency": "EUR"},
    "bookingDate": "2024-01-14",
    "remittanceInformationUnstructured": "SHELL GAS",
    "creditorName": "Shell",
}
SALARY = {
    "transactionId": "gc-salary-1",
    "transactionAmount": {"amount": "2500.00", "currency": "EUR"},
    "bookingDate": "2024-01-25",
    "debtorName": "Employer GmbH",
}


@pytest.fixture
def ledger(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    seed_family(url, family_id="fam1")
    seed_account(
        url,
        family_id="fam1",
        account_id="acc1",
        provider="gocardless",
        provider_account_id="gc-remote-1",
        currency="EUR",
    )
    seed_account(
        url,
        family_id="fam1",
        account_id="acc2",
        provider="plaid",
        provider_account_id="plaid-remote-1",
    )
    return url


def _import_gc(url: str, records: list[dict], **kw) -> ImportSummary:
    with session_scope(database_url=url) as session:
        summary = import_transactions(
            LedgerRepository(session),
            records,
            account_id="acc1",
            family_id="fam1",
            provider_account_id="gc-remote-1",
            provider="gocardless",
            **kw,
        )
    return summary


def _rows(url: str) -> list[LedgerTransaction]:
    with session_scope(database_url=url) as session:
        stmt = select(LedgerTransaction).order_by(LedgerTransaction.id)
        return list(session.execute(stmt).scalars())


def test_import_writes_needs_categorization_rows(ledger: str):
    summary = _import_gc(ledger, [SHELL, SALARY])

    assert (summary.inserted, summary.duplicates, summary.skipped) == (2, 0, 0)
    rows = _rows(ledger)
    assert len(rows) == 2
    shell = rows[0]
    assert shell.status == "NEEDS_CATEGORIZATION"
    assert shell.category_id is None
    assert shell.direction == "EXPENSE"
    assert shell.amount == Decimal("45.30")
    assert shell.merchant == "Shell"
    assert shell.family_id == "fam1"
    assert shell.id in summary.inserted_ids
    assert rows[1].external_id == "gc-salary-1"
    assert rows[1].direction == "INCOME"


def test_reimport_is_idempotent(ledger: str):
    _import_gc(ledger, [SHELL, SALARY])
    again = _import_gc(ledger, [SHELL, SALARY])

    assert (again.inserted, again.duplicates) == (0, 2)
    assert len(_rows(ledger)) == 2


def test_overlapping_batch_inserts_only_new(ledger: str):
    _import_gc(ledger, [SHELL])
    summary = _import_gc(ledger, [SHELL, SALARY])
    assert (summary.inserted, summary.duplicates) == (1, 1)


def test_same_external_id_in_another_account_is_new(ledger: str):
    with session_scope(database_url=ledger) as session:
        repo = LedgerRepository(session)
        for account in ("acc1", "acc2"):
            import_transactions(
                repo,
                [SALARY],
                account_id=account,
                family_id="fam1",
                provider_account_id="gc-remote-1",
                provider="gocardless",
            )
    assert len(_rows(ledger)) == 2


def test_plaid_reimport_is_idempotent(ledger: str):
    batch = [
        {
            "transaction_id": "p1",
            "account_id": "plaid-remote-1",
            "amount": -12.5,
            "date": "2024-02-01",
            "name": "Coffee",
        },
        {"account_id": "plaid-remote-1", "amount": -3, "date": "2024-02-02", "name": "Bus"},
    ]
    for expected_inserted in (2, 0):
        with session_scope(database_url=ledger) as session:
            summary = import_transactions(
                LedgerRepository(session),
                batch,
                account_id="acc2",
                family_id="fam1",
                provider_account_id="plaid-remote-1",
                provider="plaid",
            )
        assert summary.inserted == expected_inserted
    assert len(_rows(ledger)) == 2


def test_malformed_record_is_skipped_and_logged(ledger: str, caplog: pytest.LogCaptureFixture):
    bad = {**SHELL, "transactionAmount": {"amount": "not-a-number"}}

    with caplog.at_level(logging.WARNING, logger="famledger.ledger"):
        summary = _import_gc(ledger, [bad, SALARY])

    assert (summary.inserted, summary.skipped) == (1, 1)
    assert "skipping malformed record #0" in caplog.text


def test_out_of_range_amount_is_skipped_not_fatal(ledger: str):
    huge = {**SHELL, "transactionAmount": {"amount": "-1e30", "currency": "EUR"}}

    summary = _import_gc(ledger, [SHELL, huge, SALARY])

    assert (summary.inserted, summary.skipped) == (2, 1)
    assert len(_rows(ledger)) == 2


@pytest.mark.parametrize("junk", ["junk", 42, None, ["nested"]])
def test_non_record_items_are_skipped(ledger: str, junk):
    summary = _import_gc(ledger, [SHELL, junk, SALARY])

    assert (summary.inserted, summary.skipped) == (2, 1)


def test_pending_list_marks_rows_pending(ledger: str):
    _import_gc(ledger, [SALARY], pending=True)
    assert _rows(ledger)[0].pending is True


def test_validated_models_are_accepted_without_provider(ledger: str):
    with session_scope(database_url=ledger) as session:
        summary = import_transactions(
            LedgerRepository(session),
            [GoCardlessTransaction.model_validate(SALARY)],
            account_id="acc1",
            family_id="fam1",
            provider_account_id="gc-remote-1",
        )
    assert summary.inserted == 1


def test_mapping_without_provider_is_rejected(ledger: str):
    session = get_session(database_url=ledger)
    try:
        with pytest.raises(ValueError, match="provider is required"):
            import_transactions(
                LedgerRepository(session),
                [SALARY],
                account_id="acc1",
                family_id="fam1",
                provider_account_id="gc-remote-1",
            )
    finally:
        session.close()


def test_check_duplicate_reports_exists_after_insert(ledger: str):
    normalized: NormalizedTransaction = normalize_transaction(
        GoCardlessTransaction.model_validate(SHELL), provider_account_id="gc-remote-1"
    )
    with session_scope(database_url=ledger) as session:
        repo = LedgerRepository(session)
        assert check_duplicate(repo, normalized, "acc1") == "NEW"
        repo.insert_transaction(normalized, account_id="acc1", family_id="fam1")
        assert check_duplicate(repo, normalized, "acc1") == "EXISTS"
        assert check_duplicate(repo, normalized, "acc2") == "NEW"


def test_storage_failure_propagates(ledger: str, monkeypatch: pytest.MonkeyPatch):
    session = get_session(database_url=ledger)
    repo = LedgerRepository(session)

    def boom(*a, **kw):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "add", boom)
    try:
        with pytest.raises(StorageError, match="insert_transaction failed"):
            import_transactions(
                repo,
                [SHELL],
                account_id="acc1",
                family_id="fam1",
                provider_account_id="gc-remote-1",
                provider="gocardless",
            )
    finally:
        session.rollback()
        session.close()

    with session_scope(database_url=ledger) as s:
        assert s.execute(select(func.count()).select_from(LedgerTransaction)).scalar_one() == 0


def test_unique_constraint_backs_the_gate(ledger: str):
    normalized = normalize_transaction(
        GoCardlessTransaction.model_validate(SALARY), provider_account_id="gc-remote-1"
    )
    session = get_session(database_url=ledger)
    repo = LedgerRepository(session)
    try:
        repo.insert_transaction(normalized, account_id="acc1", family_id="fam1")
        with pytest.raises(StorageError):
            repo.insert_transaction(normalized, account_id="acc1", family_id="fam1")
    finally:
        session.rollback()
        session.close()

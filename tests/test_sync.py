from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from pathlib import Path

import httpx
import pytest
from sqlalchemy import select

from famledger.persistence import LedgerRepository
from famledger.providers import GoCardlessClient, PlaidClient
from famledger.sync import sync_gocardless, sync_plaid
from ledger_db.client import get_session, session_scope
from ledger_db.models.ledger import FinancialAccount, LedgerTransaction

from tests.helpers.db import bootstrap_sqlite_db, seed_account, seed_connection, seed_family

TODAY = date(2024, 4, 15)


def _gc_handler(failing: set[str], balance_failing: frozenset[str] = frozenset()):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/token/new/"):
            return httpx.Response(200, json={"access": "tok"})
        remote_id = path.split("/")[-3]
        if remote_id in failing:
            return httpx.Response(500, text="upstream error")
        if path.endswith("/balances/"):
            if remote_id in balance_failing:
                return httpx.Response(503, text="balances unavailable")
            return httpx.Response(
                200,
                json={
                    "balances": [
                        {
                            "balanceType": "interimAvailable",
                            "balanceAmount": {"amount": "1234.56", "currency": "EUR"},
                        }
                    ]
                },
            )
        return httpx.Response(
            200,
            json={
                "transactions": {
                    "booked": [
                        {
                            "transactionId": f"{remote_id}-b1",
                            "bookingDate": "2024-04-01",
                            "transactionAmount": {"amount": "-20.00", "currency": "EUR"},
                            "creditorName": "Bakery",
                        },
                        {"bookingDate": "2024-04-02", "transactionAmount": {"amount": "oops"}},
                    ],
                    "pending": [
                        {
                            "transactionId": f"{remote_id}-p1",
                            "valueDate": "2024-04-14",
                            "transactionAmount": {"amount": "-7.50", "currency": "EUR"},
                        }
                    ],
                }
            },
        )

    return handler


@pytest.fixture
def gc_db(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "sync-gc.db")
    seed_family(url, family_id="fam1")
    for n in (1, 2):
        seed_account(
            url,
            family_id="fam1",
            account_id=f"acc{n}",
            provider="gocardless",
            provider_account_id=f"remote-{n}",
            currency="EUR",
        )
    return url


def _rows(url: str) -> list[LedgerTransaction]:
    with session_scope(database_url=url) as session:
        stmt = select(LedgerTransaction).order_by(LedgerTransaction.id)
        return list(session.execute(stmt).scalars())


def _sync_gc(url: str, failing: set[str], balance_failing: frozenset[str] = frozenset()):
    transport = httpx.MockTransport(_gc_handler(failing, balance_failing))
    client = GoCardlessClient("sid", "skey", http_client=httpx.Client(transport=transport))
    session = get_session(database_url=url)
    try:
        return sync_gocardless(LedgerRepository(session), client, "fam1", today=TODAY)
    finally:
        session.close()


def test_gocardless_sync_imports_booked_and_pending(gc_db: str):
    report = _sync_gc(gc_db, failing=set())

    assert report.failed == []
    assert report.inserted == 4
    for result in report.accounts:
        assert result.summary is not None
        assert result.summary.skipped == 1
    by_ext = {r.external_id: r for r in _rows(gc_db)}
    assert by_ext["remote-1-b1"].pending is False
    assert by_ext["remote-1-p1"].pending is True
    assert by_ext["remote-2-b1"].account_id == "acc2"


def test_gocardless_failure_is_isolated_per_account(gc_db: str):
    report = _sync_gc(gc_db, failing={"remote-1"})

    (failed,) = report.failed
    assert failed.account_id == "acc1"
    assert "500" in (failed.error or "")
    assert {r.account_id for r in _rows(gc_db)} == {"acc2"}


def test_gocardless_sync_is_rerunnable(gc_db: str):
    _sync_gc(gc_db, failing={"remote-1"})
    report = _sync_gc(gc_db, failing=set())

    inserted = {a.account_id: a.summary.inserted for a in report.accounts if a.summary}
    assert inserted == {"acc1": 2, "acc2": 0}
    assert len(_rows(gc_db)) == 4


def _accounts(url: str) -> dict[str, FinancialAccount]:
    with session_scope(database_url=url) as session:
        return {a.id: a for a in session.execute(select(FinancialAccount)).scalars()}


def test_gocardless_sync_refreshes_balances(gc_db: str):
    report = _sync_gc(gc_db, failing={"remote-1"})

    assert report.balances_updated == 1
    accounts = _accounts(gc_db)
    assert accounts["acc2"].balance == Decimal("1234.56")
    assert accounts["acc1"].balance == Decimal("0")


def test_gocardless_balance_failure_keeps_transactions(gc_db: str):
    report = _sync_gc(gc_db, failing=set(), balance_failing=frozenset({"remote-2"}))

    assert report.failed == []
    assert report.balances_updated == 1
    assert report.inserted == 4
    assert _accounts(gc_db)["acc2"].balance == Decimal("0")


@pytest.fixture
def plaid_db(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "sync-plaid.db")
    seed_family(url, family_id="fam1")
    seed_connection(
        url, family_id="fam1", connection_id="item1", provider="plaid", access_token="access-1"
    )
    seed_connection(
        url, family_id="fam1", connection_id="item2", provider="plaid", access_token="access-2"
    )
    seed_account(
        url,
        family_id="fam1",
        account_id="checking",
        provider="plaid",
        provider_account_id="p-checking",
        connection_id="item1",
    )
    seed_account(
        url,
        family_id="fam1",
        account_id="card",
        provider="plaid",
        provider_account_id="p-card",
        connection_id="item2",
    )
    return url


def _plaid_tx(tx_id: str, account_id: str, name: str) -> dict:
    return {
        "transaction_id": tx_id,
        "account_id": account_id,
        "amount": -12.0,
        "date": "2024-04-10",
        "name": name,
    }


def _plaid_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if body["access_token"] == "access-2":
        return httpx.Response(400, json={"error_code": "ITEM_LOGIN_REQUIRED"})
    if request.url.path == "/accounts/get":
        return httpx.Response(
            200,
            json={
                "accounts": [
                    {"account_id": "p-checking", "balances": {"current": 2500.75}},
                    {"account_id": "p-unknown", "balances": {"current": 99}},
                ]
            },
        )
    txs = [
        _plaid_tx("t1", "p-checking", "Coffee"),
        _plaid_tx("t2", "p-unknown", "Mystery"),
    ]
    return httpx.Response(200, json={"transactions": txs, "total_transactions": len(txs)})


def test_plaid_sync_routes_and_isolates_items(plaid_db: str):
    client = PlaidClient(
        "cid", "secret", http_client=httpx.Client(transport=httpx.MockTransport(_plaid_handler))
    )
    session = get_session(database_url=plaid_db)
    try:
        report = sync_plaid(LedgerRepository(session), client, "fam1", today=TODAY)
    finally:
        session.close()

    assert report.unmatched == 1
    assert report.inserted == 1
    assert report.balances_updated == 1
    (failed,) = report.failed
    assert failed.account_id == "card"
    (row,) = _rows(plaid_db)
    assert (row.account_id, row.external_id) == ("checking", "t1")
    accounts = _accounts(plaid_db)
    assert accounts["checking"].balance == Decimal("2500.75")
    assert accounts["card"].balance == Decimal("0")

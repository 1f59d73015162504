"""Pull transactions from the aggregators into the ledger.

Each account is an independent unit of work: its rows are committed once the
account's import finishes, and a provider or storage failure rolls back only
that account, is logged and recorded in the :class:`~famledger.models.SyncReport`,
and the loop moves on. Re-running a sync is safe; the dedup gate skips rows
already stored.

Account balances are refreshed after the transactions, each in its own
commit. A failed balance fetch is logged as a warning and leaves the stored
balance as it was; it does not mark the account failed.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

from .errors import ProviderAPIError, StorageError
from .ledger import import_transactions
from .logging_setup import get_logger
from .models import AccountSyncResult, ImportSummary, SyncReport
from .persistence import LedgerRepository
from .providers.base import AccountBalance
from .providers.gocardless import GoCardlessClient, select_current_balance
from .providers.plaid import PlaidClient

_logger = get_logger("famledger.sync")


def _merge(a: ImportSummary, b: ImportSummary) -> ImportSummary:
    return ImportSummary(
        inserted=a.inserted + b.inserted,
        duplicates=a.duplicates + b.duplicates,
        skipped=a.skipped + b.skipped,
        inserted_ids=[*a.inserted_ids, *b.inserted_ids],
    )


def _run_account(
    repo: LedgerRepository,
    report: SyncReport,
    account_id: str,
    work: Callable[[], ImportSummary],
) -> None:
    try:
        summary = work()
        repo.commit()
    except (ProviderAPIError, StorageError) as exc:
        _logger.error("%s sync failed for account %s: %s", report.provider, account_id, exc)
        repo.rollback()
        report.accounts.append(AccountSyncResult(account_id=account_id, error=str(exc)))
        return
    report.accounts.append(AccountSyncResult(account_id=account_id, summary=summary))


def _refresh_balance(
    repo: LedgerRepository,
    report: SyncReport,
    account_id: str,
    fetch: Callable[[], AccountBalance | None],
) -> None:
    try:
        balance = fetch()
        updated = (
            balance is not None
            and repo.update_account_balance(account_id, balance.amount, currency=balance.currency)
            is not None
        )
        if updated:
            repo.commit()
    except (ProviderAPIError, StorageError) as exc:
        # Balance only; the account's transactions stay committed.
        _logger.warning(
            "%s balance refresh failed for account %s: %s", report.provider, account_id, exc
        )
        repo.rollback()
        return
    if updated:
        report.balances_updated += 1
    else:
        _logger.info("%s reported no balance for account %s", report.provider, account_id)


def sync_gocardless(
    repo: LedgerRepository,
    client: GoCardlessClient,
    family_id: str,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    today: date | None = None,
) -> SyncReport:
    """Import booked, then pending, transactions for every active GoCardless account.

    Each account's balance is refreshed afterwards (see
    :func:`~famledger.providers.gocardless.select_current_balance`).
    """

    report = SyncReport(provider="gocardless")
    # Plain tuples: a rollback expires ORM instances
    accounts = [
        (a.id, a.provider_account_id)
        for a in repo.list_accounts(family_id, provider="gocardless")
    ]
    for account_id, provider_account_id in accounts:
        if not provider_account_id:
            _logger.warning("gocardless account %s has no provider account id", account_id)
            continue

        def work(
            account_id: str = account_id, remote_id: str = provider_account_id
        ) -> ImportSummary:
            batch = client.fetch_transactions(remote_id, date_from=date_from, date_to=date_to)
            common: dict[str, Any] = {
                "account_id": account_id,
                "family_id": family_id,
                "provider_account_id": remote_id,
                "provider": "gocardless",
                "today": today,
            }
            booked = import_transactions(repo, batch.booked, pending=False, **common)
            pending = import_transactions(repo, batch.pending, pending=True, **common)
            return _merge(booked, pending)

        _run_account(repo, report, account_id, work)
        _refresh_balance(
            repo,
            report,
            account_id,
            lambda remote_id=provider_account_id: select_current_balance(
                remote_id, client.fetch_balances(remote_id)
            ),
        )

    _logger.info(
        "gocardless sync family=%s accounts=%d inserted=%d balances=%d failed=%d",
        family_id,
        len(report.accounts),
        report.inserted,
        report.balances_updated,
        len(report.failed),
    )
    return report


def sync_plaid(
    repo: LedgerRepository,
    client: PlaidClient,
    family_id: str,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> SyncReport:
    """Fetch each Plaid item and route its transactions to the matching accounts.

    Transactions whose Plaid ``account_id`` matches no active account of the
    family are logged and counted in ``SyncReport.unmatched``. After its
    transactions, every matched account of the item gets its current balance.
    """

    report = SyncReport(provider="plaid")
    accounts = {
        a.provider_account_id: (a.id, a.connection_id)
        for a in repo.list_accounts(family_id, provider="plaid")
        if a.provider_account_id
    }
    connections = [(c.id, c.access_token) for c in repo.list_connections(family_id, "plaid")]

    for connection_id, access_token in connections:
        if not access_token:
            _logger.warning("plaid connection %s has no access token", connection_id)
            continue
        try:
            raws = client.fetch_transactions(
                access_token, start_date=start_date, end_date=end_date, today=today
            )
        except ProviderAPIError as exc:
            _logger.error("plaid fetch failed for connection %s: %s", connection_id, exc)
            affected = [aid for aid, cid in accounts.values() if cid == connection_id]
            for account_id in affected or [connection_id]:
                report.accounts.append(AccountSyncResult(account_id=account_id, error=str(exc)))
            continue

        grouped: dict[str, list[dict[str, Any]]] = {}
        for raw in raws:
            remote_id = raw.get("account_id")
            if remote_id not in accounts:
                report.unmatched += 1
                _logger.warning(
                    "plaid transaction %s references unknown account %s; skipped",
                    raw.get("transaction_id"),
                    remote_id,
                )
                continue
            grouped.setdefault(remote_id, []).append(raw)

        for remote_id, items in grouped.items():
            account_id = accounts[remote_id][0]

            def work(
                account_id: str = account_id,
                remote_id: str = remote_id,
                items: list[dict[str, Any]] = items,
            ) -> ImportSummary:
                return import_transactions(
                    repo,
                    items,
                    account_id=account_id,
                    family_id=family_id,
                    provider_account_id=remote_id,
                    provider="plaid",
                    today=today,
                )

            _run_account(repo, report, account_id, work)

        try:
            balances = client.fetch_balances(access_token)
        except ProviderAPIError as exc:
            _logger.warning("plaid balance fetch failed for connection %s: %s", connection_id, exc)
            continue
        for balance in balances:
            match = accounts.get(balance.provider_account_id)
            if match is not None:
                _refresh_balance(repo, report, match[0], lambda balance=balance: balance)

    _logger.info(
        "plaid sync family=%s accounts=%d inserted=%d unmatched=%d balances=%d failed=%d",
        family_id,
        len(report.accounts),
        report.inserted,
        report.unmatched,
        report.balances_updated,
        len(report.failed),
    )
    return report


__all__ = ["sync_gocardless", "sync_plaid"]

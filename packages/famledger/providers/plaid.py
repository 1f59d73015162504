"""Plaid ``/transactions/get`` client.

Plaid authenticates every call with ``client_id``/``secret`` in the JSON body
plus the item's ``access_token``. Results are paged with
``options.count``/``options.offset`` until ``total_transactions`` rows have
been read. ``/accounts/get`` returns the item's accounts with their balances.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any

import httpx

from ..errors import ProviderAPIError
from ..logging_setup import get_logger
from .base import AccountBalance, ProviderHTTPClient, parse_balance_amount

_logger = get_logger("famledger.providers.plaid")

PLAID_HOSTS: dict[str, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
DEFAULT_LOOKBACK_DAYS = 30
PAGE_SIZE = 500


class PlaidClient(ProviderHTTPClient):
    name = "plaid"

    def __init__(
        self,
        client_id: str,
        secret: str,
        *,
        environment: str = "sandbox",
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not client_id or not secret:
            raise ValueError("Plaid client_id and secret are required")
        if base_url is None:
            try:
                base_url = PLAID_HOSTS[environment]
            except KeyError:
                raise ValueError(
                    f"unknown Plaid environment {environment!r}; "
                    f"expected one of {', '.join(PLAID_HOSTS)}"
                ) from None
        super().__init__(base_url, http_client=http_client)
        self._client_id = client_id
        self._secret = secret

    @classmethod
    def from_env(cls, **kwargs: Any) -> PlaidClient:
        """Build from ``PLAID_CLIENT_ID``, ``PLAID_SECRET`` and ``PLAID_ENV``."""

        kwargs.setdefault("environment", os.getenv("PLAID_ENV") or "sandbox")
        return cls(os.getenv("PLAID_CLIENT_ID", ""), os.getenv("PLAID_SECRET", ""), **kwargs)

    def fetch_transactions(
        self,
        access_token: str,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        today: date | None = None,
    ) -> list[dict[str, Any]]:
        """Return every raw transaction of the item in the date range.

        Defaults to the last :data:`DEFAULT_LOOKBACK_DAYS` days ending today.
        """

        end = end_date or today or date.today()
        start = start_date or end - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        out: list[dict[str, Any]] = []
        while True:
            data = self._request(
                "POST",
                "/transactions/get",
                json={
                    "client_id": self._client_id,
                    "secret": self._secret,
                    "access_token": access_token,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "options": {"count": PAGE_SIZE, "offset": len(out)},
                },
            )
            if not isinstance(data, Mapping) or not isinstance(data.get("transactions"), list):
                raise ProviderAPIError("plaid response has no 'transactions' list")
            page = [dict(t) for t in data["transactions"] if isinstance(t, Mapping)]
            out.extend(page)
            total = data.get("total_transactions")
            if not page or not isinstance(total, int) or len(out) >= total:
                break
        _logger.info("plaid fetched %d transactions (%s..%s)", len(out), start, end)
        return out

    def fetch_balances(self, access_token: str) -> list[AccountBalance]:
        """Current balance of every account of the item (``/accounts/get``).

        A missing ``balances.current`` counts as zero.
        """

        data = self._request(
            "POST",
            "/accounts/get",
            json={
                "client_id": self._client_id,
                "secret": self._secret,
                "access_token": access_token,
            },
        )
        if not isinstance(data, Mapping) or not isinstance(data.get("accounts"), list):
            raise ProviderAPIError("plaid response has no 'accounts' list")

        out: list[AccountBalance] = []
        for account in data["accounts"]:
            if not isinstance(account, Mapping) or not account.get("account_id"):
                continue
            balances = account.get("balances")
            if not isinstance(balances, Mapping):
                balances = {}
            current = balances.get("current")
            out.append(
                AccountBalance(
                    provider_account_id=str(account["account_id"]),
                    amount=parse_balance_amount(
                        0 if current is None else current, provider="plaid"
                    ),
                    currency=balances.get("iso_currency_code") or None,
                )
            )
        _logger.info("plaid fetched balances for %d accounts", len(out))
        return out


__all__ = ["DEFAULT_LOOKBACK_DAYS", "PLAID_HOSTS", "PlaidClient"]

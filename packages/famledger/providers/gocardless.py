"""GoCardless Bank Account Data client (formerly Nordigen).

Two calls are needed for an import: ``POST /token/new/`` exchanges the
application's secret id/key for a short-lived access token, then
``GET /accounts/{id}/transactions/`` returns ``{"transactions": {"booked":
[...], "pending": [...]}}`` for one linked account, and
``GET /accounts/{id}/balances/`` reports its balances by type.

Tokens expire after a day; a request answered with 401 drops the cached token
and is retried once with a fresh one, so one client can serve a long sync.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx

from ..errors import ProviderAPIError
from ..logging_setup import get_logger
from .base import AccountBalance, ProviderHTTPClient, parse_balance_amount

_logger = get_logger("famledger.providers.gocardless")

GOCARDLESS_API_BASE = "https://bankaccountdata.gocardless.com/api/v2"


@dataclass(slots=True)
class GoCardlessTransactions:
    """Raw booked and pending records for one account, as sent by the API."""

    booked: list[dict[str, Any]] = field(default_factory=list)
    pending: list[dict[str, Any]] = field(default_factory=list)


def split_transactions_payload(payload: Any) -> GoCardlessTransactions:
    """Extract the booked/pending lists from a transactions response body."""

    if not isinstance(payload, Mapping):
        raise ProviderAPIError("gocardless transactions payload is not an object")
    inner = payload.get("transactions")
    if not isinstance(inner, Mapping):
        raise ProviderAPIError("gocardless payload has no 'transactions' object")

    out = GoCardlessTransactions()
    for key in ("booked", "pending"):
        items = inner.get(key) or []
        if not isinstance(items, list):
            raise ProviderAPIError(f"gocardless '{key}' is not a list")
        getattr(out, key).extend(dict(i) for i in items if isinstance(i, Mapping))
    return out


class GoCardlessClient(ProviderHTTPClient):
    name = "gocardless"

    def __init__(
        self,
        secret_id: str,
        secret_key: str,
        *,
        base_url: str = GOCARDLESS_API_BASE,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not secret_id or not secret_key:
            raise ValueError("GoCardless secret_id and secret_key are required")
        super().__init__(base_url, http_client=http_client)
        self._secret_id = secret_id
        self._secret_key = secret_key
        self._access_token: str | None = None

    @classmethod
    def from_env(cls, **kwargs: Any) -> GoCardlessClient:
        """Build from ``GOCARDLESS_SECRET_ID`` / ``GOCARDLESS_SECRET_KEY``."""

        return cls(
            os.getenv("GOCARDLESS_SECRET_ID", ""),
            os.getenv("GOCARDLESS_SECRET_KEY", ""),
            **kwargs,
        )

    def access_token(self) -> str:
        """Return a cached access token, requesting one on first use."""

        if self._access_token is None:
            _logger.info("requesting GoCardless access token")
            data = self._request(
                "POST",
                "/token/new/",
                json={"secret_id": self._secret_id, "secret_key": self._secret_key},
            )
            token = data.get("access") if isinstance(data, Mapping) else None
            if not token:
                raise ProviderAPIError("gocardless token response has no 'access' token")
            self._access_token = str(token)
        return self._access_token

    def _authorized_get(self, path: str, *, params: dict[str, str] | None = None) -> Any:
        """GET with the bearer token; a rejected token is renewed once."""

        try:
            return self._request("GET", path, params=params, headers=self._auth_headers())
        except ProviderAPIError as exc:
            if exc.status_code != 401:
                raise
            _logger.info("gocardless access token rejected; requesting a new one")
            self._access_token = None
        return self._request("GET", path, params=params, headers=self._auth_headers())

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token()}"}

    def fetch_transactions(
        self,
        account_id: str,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> GoCardlessTransactions:
        params: dict[str, str] = {}
        if date_from is not None:
            params["date_from"] = date_from.isoformat()
        if date_to is not None:
            params["date_to"] = date_to.isoformat()
        payload = self._authorized_get(f"/accounts/{account_id}/transactions/", params=params)
        result = split_transactions_payload(payload)
        _logger.info(
            "gocardless account=%s booked=%d pending=%d",
            account_id,
            len(result.booked),
            len(result.pending),
        )
        return result

    def fetch_balances(self, account_id: str) -> list[dict[str, Any]]:
        """Raw ``balances`` entries of ``GET /accounts/{id}/balances/``."""

        payload = self._authorized_get(f"/accounts/{account_id}/balances/")
        balances = payload.get("balances") if isinstance(payload, Mapping) else None
        if not isinstance(balances, list):
            raise ProviderAPIError("gocardless balances payload has no 'balances' list")
        return [dict(b) for b in balances if isinstance(b, Mapping)]


def select_current_balance(
    account_id: str, balances: list[dict[str, Any]]
) -> AccountBalance | None:
    """Pick the balance shown for an account.

    ``interimAvailable`` wins, then ``closingBooked``, then whatever entry came
    first. Returns ``None`` when the chosen entry carries no amount.
    """

    by_type = {b.get("balanceType"): b for b in reversed(balances)}
    chosen = (
        by_type.get("interimAvailable")
        or by_type.get("closingBooked")
        or (balances[0] if balances else None)
    )
    money = chosen.get("balanceAmount") if chosen else None
    if not isinstance(money, Mapping) or money.get("amount") is None:
        return None
    return AccountBalance(
        provider_account_id=account_id,
        amount=parse_balance_amount(money["amount"], provider="gocardless"),
        currency=money.get("currency") or None,
    )


__all__ = [
    "GOCARDLESS_API_BASE",
    "GoCardlessClient",
    "GoCardlessTransactions",
    "select_current_balance",
    "split_transactions_payload",
]

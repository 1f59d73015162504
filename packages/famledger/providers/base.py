"""Shared httpx plumbing for aggregator clients."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx

from ..errors import ProviderAPIError
from ..logging_setup import get_logger

_logger = get_logger("famledger.providers")

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=5.0)
# financial_accounts.balance is NUMERIC(18, 2)
_MAX_BALANCE = Decimal(10) ** 16
_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class AccountBalance:
    """Current balance the aggregator reports for one of its accounts."""

    provider_account_id: str
    amount: Decimal
    currency: str | None = None


def parse_balance_amount(raw: Any, *, provider: str) -> Decimal:
    """Parse a balance sent as a JSON number or string into cents.

    Balances are signed (credit cards are usually negative). Anything that is
    not a finite amount the ledger can store raises :class:`ProviderAPIError`.
    """

    text = repr(raw) if isinstance(raw, float) else str(raw).strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ProviderAPIError(f"{provider} sent an invalid balance: {raw!r}") from None
    if not value.is_finite() or abs(value) >= _MAX_BALANCE:
        raise ProviderAPIError(f"{provider} sent an unusable balance: {raw!r}")
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class ProviderHTTPClient:
    """Owns (or borrows) an ``httpx.Client`` and maps failures to ``ProviderAPIError``.

    Pass ``http_client`` to reuse a configured client (tests inject one built
    on ``httpx.MockTransport``); otherwise a client bound to ``base_url`` is
    created and closed by :meth:`close`.
    """

    name = "provider"

    def __init__(self, base_url: str, *, http_client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=DEFAULT_TIMEOUT,
            headers={"accept": "application/json"},
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ProviderHTTPClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send one request and return the decoded JSON body."""

        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            _logger.error("%s %s %s failed: %s", self.name, method, path, exc)
            raise ProviderAPIError(f"{self.name} request failed: {exc}") from exc

        if response.status_code >= 400:
            _logger.error(
                "%s %s %s returned HTTP %d", self.name, method, path, response.status_code
            )
            raise ProviderAPIError(
                f"{self.name} {method} {path} returned {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderAPIError(f"{self.name} returned a non-JSON body for {path}") from exc


__all__ = ["AccountBalance", "DEFAULT_TIMEOUT", "ProviderHTTPClient", "parse_balance_amount"]

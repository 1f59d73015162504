"""Provider payload -> :class:`~famledger.models.NormalizedTransaction`.

Plaid and GoCardless describe the same bank movement differently: signed
amounts as numbers or strings, optional ids, and several candidate text
fields for the description and the counterparty. This module folds both into
one canonical record.

Rules shared by both providers:

- ``amount`` is parsed into ``Decimal``; an unparseable or non-finite value
  raises :class:`~famledger.errors.MalformedInputError`, and so does a
  magnitude of 10^16 or more, which the ledger column cannot store.
- negative -> ``EXPENSE``, positive -> ``INCOME``, zero -> ``EXPENSE`` with a
  zero magnitude. The stored amount is always the absolute value.
- without a native id, ``external_id`` is ``"<provider>-<hash>"`` over the
  identifying fields (see :func:`synthesize_external_id`), so re-fetching the
  same record always yields the same key.
- description and merchant are cut to 255 and 100 characters.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import MalformedInputError
from .models import (
    Direction,
    GoCardlessTransaction,
    NormalizedTransaction,
    PlaidTransaction,
    Provider,
    RawTransaction,
)

DESCRIPTION_MAX_LEN = 255
MERCHANT_MAX_LEN = 100
# Largest magnitude a NUMERIC(18, 2) column holds, exclusive
MAX_AMOUNT = Decimal(10) ** 16

_CENT = Decimal("0.01")
_JS_EXPONENT_LIMIT = 10**21

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _js_number_text(raw: int | float) -> str:
    """``String(n)`` as a JS producer would print the JSON number ``raw``."""

    if isinstance(raw, int) and abs(raw) < _JS_EXPONENT_LIMIT:
        return str(raw)
    value = float(raw)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < _JS_EXPONENT_LIMIT:
        # 12.0 prints as "12"
        return str(int(value))
    mantissa, _, exp_text = repr(value).partition("e")
    if not exp_text:
        return mantissa
    exponent = int(exp_text)
    if -7 < exponent < 21:
        return format(Decimal(repr(value)), "f")
    return f"{mantissa}e{'+' if exponent > 0 else '-'}{abs(exponent)}"


def _amount_text(raw: int | float | str | None) -> str:
    """Render the provider amount the way it is hashed into synthesized ids."""

    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return _js_number_text(raw)


def _parse_amount(raw: int | float | str | None) -> Decimal:
    text = _amount_text(raw).strip()
    if not text:
        raise MalformedInputError("transaction amount is missing")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise MalformedInputError(f"invalid amount: {raw!r}") from exc
    if not value.is_finite():
        raise MalformedInputError(f"non-finite amount: {raw!r}")
    if abs(value) >= MAX_AMOUNT:
        # ledger_transactions.amount is NUMERIC(18, 2)
        raise MalformedInputError(f"amount out of range: {raw!r}")
    return value


def _signed_to_direction(value: Decimal) -> tuple[Decimal, Direction]:
    magnitude = abs(value).quantize(_CENT, rounding=ROUND_HALF_UP)
    return magnitude, ("INCOME" if value > 0 else "EXPENSE")


def _parse_date(raw: str | None, *, field: str) -> date | None:
    if raw is None or not raw.strip():
        return None
    try:
        # Accept "YYYY-MM-DD" and ISO datetimes by keeping the date part
        return date.fromisoformat(raw.strip()[:10])
    except ValueError as exc:
        raise MalformedInputError(f"invalid {field}: {raw!r}") from exc


def _first(*values: str | None) -> str | None:
    for v in values:
        if v:
            return v
    return None


def _java_string_hash(text: str) -> int:
    """32-bit ``h = h*31 + c`` over UTF-16 code units, as a signed int."""

    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | (data[i + 1] << 8))) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def synthesize_external_id(provider: Provider, parts: Sequence[str | None]) -> str:
    """Deterministic ``"<provider>-<n>"`` id from the non-empty ``parts``.

    Ids already stored by earlier importers use this exact hash, so changing it
    would re-import every id-less transaction.
    """

    base = "-".join(p for p in parts if p)
    return f"{provider}-{abs(_java_string_hash(base))}"


# ---------------------------------------------------------------------------
# Per-provider normalization
# ---------------------------------------------------------------------------


def _normalize_plaid(
    tx: PlaidTransaction, *, provider_account_id: str, pending: bool | None
) -> NormalizedTransaction:
    value = _parse_amount(tx.amount)
    amount, direction = _signed_to_direction(value)
    tx_date = _parse_date(tx.date, field="date")
    if tx_date is None:
        raise MalformedInputError("plaid transaction has no date")

    external_id = tx.transaction_id or synthesize_external_id(
        "plaid",
        [provider_account_id, tx.date, _amount_text(tx.amount), tx.name, tx.merchant_name],
    )
    tags = [f"plaid:{external_id}"]
    tags.extend(f"category:{c}" for c in tx.category or ())

    return NormalizedTransaction(
        provider="plaid",
        external_id=external_id,
        date=tx_date,
        description=tx.name[:DESCRIPTION_MAX_LEN],
        merchant=(tx.merchant_name or tx.name)[:MERCHANT_MAX_LEN],
        amount=amount,
        direction=direction,
        currency=(tx.iso_currency_code or "USD").upper(),
        pending=tx.pending if pending is None else pending,
        tags=tuple(tags),
    )


def _normalize_gocardless(
    tx: GoCardlessTransaction,
    *,
    provider_account_id: str,
    pending: bool | None,
    today: date,
) -> NormalizedTransaction:
    raw_amount = tx.transaction_amount.amount if tx.transaction_amount else None
    value = _parse_amount(raw_amount)
    amount, direction = _signed_to_direction(value)

    unstructured = tx.remittance_information_unstructured
    structured = tx.remittance_information_structured
    counterparty = _first(tx.creditor_name, tx.debtor_name)

    external_id = tx.transaction_id or synthesize_external_id(
        "gocardless",
        [
            provider_account_id,
            _first(tx.booking_date, tx.value_date),
            _amount_text(raw_amount),
            _first(unstructured, structured),
            counterparty,
            tx.end_to_end_id,
        ],
    )

    merchant = counterparty or (unstructured.split(" ")[0] if unstructured else "") or "Unknown"
    if tx.creditor_name:
        fallback = f"Payment to {tx.creditor_name}"
    elif tx.debtor_name:
        fallback = f"Payment from {tx.debtor_name}"
    else:
        fallback = "Transaction"
    description = _first(unstructured, structured, tx.additional_information) or fallback

    tx_date = (
        _parse_date(tx.booking_date, field="bookingDate")
        or _parse_date(tx.value_date, field="valueDate")
        or today
    )
    currency = (tx.transaction_amount.currency if tx.transaction_amount else None) or "EUR"

    tags = [f"gocardless:{external_id}"]
    if tx.bank_transaction_code:
        tags.append(f"code:{tx.bank_transaction_code}")
    if tx.creditor_account and tx.creditor_account.iban:
        tags.append(f"creditor:{tx.creditor_account.iban}")
    if tx.debtor_account and tx.debtor_account.iban:
        tags.append(f"debtor:{tx.debtor_account.iban}")
    if tx.end_to_end_id:
        tags.append(f"e2e:{tx.end_to_end_id}")
    if tx.mandate_id:
        tags.append(f"mandate:{tx.mandate_id}")

    return NormalizedTransaction(
        provider="gocardless",
        external_id=external_id,
        date=tx_date,
        description=description[:DESCRIPTION_MAX_LEN],
        merchant=merchant[:MERCHANT_MAX_LEN],
        amount=amount,
        direction=direction,
        currency=currency.upper(),
        pending=bool(pending),
        tags=tuple(tags),
    )


def normalize_transaction(
    raw: RawTransaction,
    *,
    provider_account_id: str,
    pending: bool | None = None,
    today: date | None = None,
) -> NormalizedTransaction:
    """Map one provider record to the canonical form.

    Parameters
    ----------
    raw:
        A validated :class:`PlaidTransaction` or :class:`GoCardlessTransaction`.
    provider_account_id:
        The aggregator's id for the account the record belongs to; part of the
        synthesized id when the provider sent none.
    pending:
        For GoCardless, whether the record came from the ``pending`` list
        (``None`` means booked). For Plaid, overrides the payload flag.
    today:
        Fallback date for GoCardless records with neither booking nor value
        date. Defaults to ``date.today()``.

    Raises
    ------
    MalformedInputError
        The amount (or a present date) cannot be parsed, the amount is out of
        range, or ``raw`` is not a provider model.
    """

    match raw:
        case PlaidTransaction():
            return _normalize_plaid(raw, provider_account_id=provider_account_id, pending=pending)
        case GoCardlessTransaction():
            return _normalize_gocardless(
                raw,
                provider_account_id=provider_account_id,
                pending=pending,
                today=today or date.today(),
            )
        case _:
            raise MalformedInputError(f"unsupported raw transaction type: {type(raw).__name__}")


__all__ = [
    "DESCRIPTION_MAX_LEN",
    "MAX_AMOUNT",
    "MERCHANT_MAX_LEN",
    "normalize_transaction",
    "synthesize_external_id",
]

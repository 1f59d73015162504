"""Exception hierarchy for ``famledger``.

Two families matter to callers:

- data-integrity failures (:class:`MalformedInputError`, :class:`StorageError`,
  :class:`InvalidStatusTransitionError`) always surface; a batch importer may
  skip a malformed record but never a failed write.
- enrichment failures (:class:`AIProviderError`) are recovered inside
  :mod:`famledger.insights` and never abort a data operation.
"""

from __future__ import annotations


class FamledgerError(Exception):
    """Base class for all package errors."""


class MalformedInputError(FamledgerError, ValueError):
    """A raw provider record cannot be normalized (e.g. unparseable amount)."""


class StorageError(FamledgerError):
    """The ledger store rejected or failed a read/write."""


class ProviderAPIError(FamledgerError):
    """An aggregator API call failed (transport, HTTP status, or payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AIProviderError(FamledgerError):
    """The language-model call failed or returned no usable text."""


class InvalidStatusTransitionError(FamledgerError):
    """A ledger status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot move transaction from {current} to {requested}")
        self.current = current
        self.requested = requested


__all__ = [
    "AIProviderError",
    "FamledgerError",
    "InvalidStatusTransitionError",
    "MalformedInputError",
    "ProviderAPIError",
    "StorageError",
]

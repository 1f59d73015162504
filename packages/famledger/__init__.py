"""famledger: transaction import, reconciliation and analytics for family finances.

Import business functions from :mod:`famledger.api`; the canonical data types
live in :mod:`famledger.models` and the exception hierarchy in
:mod:`famledger.errors`.
"""

from __future__ import annotations

from .errors import (
    AIProviderError,
    FamledgerError,
    InvalidStatusTransitionError,
    MalformedInputError,
    ProviderAPIError,
    StorageError,
)
from .models import GoCardlessTransaction, NormalizedTransaction, PlaidTransaction

__version__ = "0.1.0"

__all__ = [
    "AIProviderError",
    "FamledgerError",
    "GoCardlessTransaction",
    "InvalidStatusTransitionError",
    "MalformedInputError",
    "NormalizedTransaction",
    "PlaidTransaction",
    "ProviderAPIError",
    "StorageError",
    "__version__",
]

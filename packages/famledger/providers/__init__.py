"""HTTP clients for the supported bank-data aggregators."""

from .base import AccountBalance
from .gocardless import GoCardlessClient, GoCardlessTransactions
from .plaid import PlaidClient

__all__ = ["AccountBalance", "GoCardlessClient", "GoCardlessTransactions", "PlaidClient"]

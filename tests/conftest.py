"""Pytest configuration for test isolation.

Three kinds of process-global state leak between tests unless reset:

- ``ledger_db.client`` caches one engine per database URL, and each test owns
  its own SQLite file;
- the CLI callback calls ``configure_logging``, which attaches a handler and
  stops propagation (``caplog`` would then see nothing);
- credentials and model settings read from the environment (a developer's
  ``.env`` may have exported them).
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from famledger.logging_setup import reset_logging
from ledger_db.client import dispose_engines

_ENV_VARS = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "FAMLEDGER_AI_MODEL",
    "FAMLEDGER_LOG_LEVEL",
    "GOCARDLESS_SECRET_ID",
    "GOCARDLESS_SECRET_KEY",
    "PLAID_CLIENT_ID",
    "PLAID_SECRET",
    "PLAID_ENV",
)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    reset_logging()
    dispose_engines()

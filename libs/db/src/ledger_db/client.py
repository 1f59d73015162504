"""SQLAlchemy engine/session helpers for the ledger database.

Usage
-----
from ledger_db.client import session_scope

with session_scope() as s:
    s.execute(...)

Engines are cached per database URL, so a long-running process reuses one
connection pool per database while short-lived callers (CLI commands, batch
jobs) acquire a scoped session for the duration of one operation. Call
``dispose_engines()`` to release pooled connections.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINES: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _entry(database_url: str | None) -> tuple[Engine, sessionmaker[Session]]:
    url = _database_url(database_url)
    entry = _ENGINES.get(url)
    if entry is None:
        engine = create_engine(url, pool_pre_ping=True)
        entry = (engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
        _ENGINES[url] = entry
    return entry


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the engine for ``database_url`` (or ``DATABASE_URL``), creating it on first use."""

    return _entry(database_url)[0]


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the cached engine for the resolved URL."""

    return _entry(database_url)[1]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Dispose every cached engine and forget it."""

    for engine, _maker in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()


__all__ = [
    "dispose_engines",
    "get_engine",
    "get_session",
    "session_scope",
]

"""Logging configuration for ``famledger``.

Entrypoints (the Typer CLI, a scheduler, a host web app) call
:func:`configure_logging` once; library modules only ever call
:func:`get_logger` with a dotted ``famledger.<module>`` name and never attach
handlers of their own.

The level comes from the explicit argument, else ``FAMLEDGER_LOG_LEVEL``, else
``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "famledger"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_handler: logging.Handler | None = None


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("FAMLEDGER_LOG_LEVEL") or logging.INFO
    if isinstance(level, int):
        return level
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    numeric = logging.getLevelName(text)
    # getLevelName returns "Level X" for unknown names
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach a single ``StreamHandler`` to the ``famledger`` logger.

    Parameters
    ----------
    level:
        ``int`` or level name (``"DEBUG"``, ``"WARNING"``...). ``None`` reads
        ``FAMLEDGER_LOG_LEVEL``.
    fmt:
        Optional format string; defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream, ``sys.stderr`` when omitted.

    Repeated calls are no-ops until :func:`reset_logging` runs.
    """

    global _handler
    if _handler is not None:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    _handler = handler


def reset_logging() -> None:
    """Undo :func:`configure_logging` (used by tests that drive the CLI)."""

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler = None
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``.

    Until :func:`configure_logging` runs, the package logger carries a
    ``NullHandler`` so library use stays silent.
    """

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "reset_logging"]

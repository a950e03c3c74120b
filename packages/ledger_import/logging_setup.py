"""Logging for the ``ledger_import`` package.

Library modules call ``get_logger("ledger_import.<module>")`` and never attach
handlers; until an entrypoint calls :func:`configure_logging`, the package
logger only carries a ``NullHandler``. The CLI configures a stderr handler at
the level named by ``LEDGER_IMPORT_LOG_LEVEL`` (``INFO`` when unset or bad).
"""

from __future__ import annotations

import logging
import os
import sys

_PKG_LOGGER_NAME = "ledger_import"
_ENV_LEVEL = "LEDGER_IMPORT_LOG_LEVEL"
_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def level_from_env() -> int:
    raw = (os.getenv(_ENV_LEVEL) or "").strip().upper()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelNamesMapping().get(raw)
    return level if level is not None else logging.INFO


def configure_logging() -> None:
    """Attach one stderr handler to the package logger; later calls are no-ops."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.setLevel(level_from_env())
    logger.addHandler(handler)
    logger.propagate = False
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)

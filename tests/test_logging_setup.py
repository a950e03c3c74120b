# ruff: noqa: E402, I001
import logging
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import.logging_setup import get_logger, level_from_env


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, logging.INFO),
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
        ("15", 15),
        ("verbose", logging.INFO),
    ],
)
def test_level_from_env(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("LEDGER_IMPORT_LOG_LEVEL", raw)
    assert level_from_env() == expected


def test_library_loggers_hang_off_the_package_logger():
    logger = get_logger("ledger_import.api")
    assert logger.name == "ledger_import.api"
    assert logging.getLogger("ledger_import").handlers

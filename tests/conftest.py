"""Pytest configuration for test isolation.

The engine reads two environment variables at runtime: ``LEDGER_IMPORT_CONFIG``
(a JSON config override picked up by the CLI) and ``LEDGER_IMPORT_LOG_LEVEL``.
A developer shell or a local ``.env`` may have either set, which would make
CLI tests depend on files outside the test tree.

To keep tests hermetic, an autouse fixture clears both variables and runs each
test from its own temporary working directory, so the CLI's ``.env`` lookup
(``Path.cwd() / ".env"``) never finds a real file.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear engine env overrides and chdir into the test's temporary directory."""

    for name in ("LEDGER_IMPORT_CONFIG", "LEDGER_IMPORT_LOG_LEVEL", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

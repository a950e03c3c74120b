# ruff: noqa: E402, I001
import json
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from typer.testing import CliRunner

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import ledger_import.cli as cli_mod
from ledger_import.cli import app, load_prior_keys

from tests.helpers.workbooks import zip_bytes

CSV = "Data;Historico;Valor\n01/03/2025;PIX RECEBIDO;250,00\n02/03/2025;ALUGUEL MARIA;-150,00\n"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI callback from attaching handlers to the real stderr."""

    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **k: None)


def _write(tmp_path: Path, name: str, content: str | bytes) -> Path:
    path = tmp_path / name
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


def test_detect_prints_format(tmp_path):
    path = _write(tmp_path, "extrato.csv", CSV)
    result = runner.invoke(app, ["detect", str(path)])
    assert result.exit_code == 0
    assert result.stdout.strip() == "DELIMITED_TEXT"


def test_import_summary_lines_and_exit_codes(tmp_path):
    good = _write(tmp_path, "extrato.csv", CSV)
    bad = _write(tmp_path, "misterio.bin", b"???")

    ok = runner.invoke(app, ["import", str(good)])
    assert ok.exit_code == 0
    assert ok.stdout.startswith("extrato.csv\tDELIMITED_TEXT\t2025-03-01..2025-03-02\t2 records")

    mixed = runner.invoke(app, ["import", str(good), str(bad)])
    assert mixed.exit_code == 1
    assert "misterio.bin\tERROR\t" in mixed.stdout


def test_import_json_with_prior_keys_and_registry(tmp_path):
    path = _write(tmp_path, "extrato.csv", CSV)
    keys = _write(tmp_path, "keys.json", json.dumps([["tx", "2025-03-01", "PIX RECEBIDO", "250,00"]]))
    registry = _write(
        tmp_path,
        "registry.json",
        json.dumps(
            {
                "counterparties": [{"id": "cp-1", "name": "Maria Lucia", "expected_amount": "150.00"}],
                "categories": [{"id": "rent", "name": "Aluguel", "type": "OUTFLOW"}],
            }
        ),
    )

    result = runner.invoke(
        app,
        ["import", str(path), "--prior-keys", str(keys), "--registry", str(registry), "--json"],
    )
    assert result.exit_code == 0
    (doc,) = json.loads(result.stdout)
    assert doc["file_format"] == "DELIMITED_TEXT"
    assert doc["duplicate_records"] == 1
    rent = next(r for r in doc["records"] if r["direction"] == "OUTFLOW")
    assert rent["amount"] == "150.00"
    assert rent["match_confidence"] == 90
    assert rent["matched_counterparty"]["id"] == "cp-1"


def test_unusable_inputs_exit_with_two(tmp_path, monkeypatch):
    missing = runner.invoke(app, ["import", str(tmp_path / "nope.csv")])
    assert missing.exit_code == 2

    path = _write(tmp_path, "extrato.csv", CSV)
    bad_config = _write(tmp_path, "config.json", json.dumps({"unknown_key": 1}))
    monkeypatch.setenv("LEDGER_IMPORT_CONFIG", str(bad_config))
    assert runner.invoke(app, ["import", str(path)]).exit_code == 2

    monkeypatch.delenv("LEDGER_IMPORT_CONFIG")
    assert runner.invoke(app, ["import", str(path), "--ocr"]).exit_code == 2


def test_config_file_changes_behavior(tmp_path):
    path = _write(tmp_path, "extrato.csv", CSV)
    config = _write(tmp_path, "config.json", json.dumps({"file_concurrency": 1}))
    result = runner.invoke(app, ["import", str(path), "--config", str(config)])
    assert result.exit_code == 0


def test_preview_archive(tmp_path):
    path = _write(tmp_path, "lote.zip", zip_bytes({"UNIMED.xls": b"x", "guia.pdf": b"%PDF", "a.txt": b""}))
    result = runner.invoke(app, ["preview-archive", str(path)])
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["spreadsheet\tUNIMED.xls", "document\tguia.pdf", "other\ta.txt"]

    broken = _write(tmp_path, "quebrado.zip", b"nope")
    assert runner.invoke(app, ["preview-archive", str(broken)]).exit_code == 2


def test_load_prior_keys_normalizes_tx_amounts(tmp_path):
    path = _write(tmp_path, "keys.json", json.dumps([["fitid", "F1"], ["tx", "2025-03-01", "X", 10]]))
    keys = load_prior_keys(path)
    assert ("fitid", "F1") in keys
    assert ("tx", "2025-03-01", "X", Decimal("10.00")) in keys

    with pytest.raises(ValueError):
        load_prior_keys(_write(tmp_path, "bad.json", json.dumps({"a": 1})))

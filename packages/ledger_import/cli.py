# ruff: noqa: I001
"""CLI for the ``ledger_import`` package.

A Typer console interface over :mod:`ledger_import.api`. Environment
variables (``OPENAI_API_KEY`` for OCR, ``LEDGER_IMPORT_CONFIG`` for a config
file, ``LEDGER_IMPORT_LOG_LEVEL``) are loaded from a local ``.env`` with
``python-dotenv`` before any command runs.
"""

from __future__ import annotations

import dataclasses
import json
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any
from collections.abc import Collection, Hashable

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .config import EngineConfig, default_config, load_config
from .logging_setup import configure_logging
from .models import FileImportOutcome, Registry

# ---- Small module-level helpers used by CLI commands -------------------------


def _resolve_config(config_path: Path | None) -> EngineConfig:
    """Explicit ``--config`` wins, then ``LEDGER_IMPORT_CONFIG``, then defaults."""

    path = config_path or (Path(p) if (p := os.getenv("LEDGER_IMPORT_CONFIG")) else None)
    return load_config(path) if path is not None else default_config()


def load_prior_keys(path: Path) -> set[Hashable]:
    """Load previously imported keys from a JSON array of arrays.

    Each inner array is a key as built by :mod:`ledger_import.duplicates`,
    e.g. ``["fitid", "123"]``, ``["lab", "CTL", "2025-03-01", "CTL-9"]`` or
    ``["tx", "2025-03-01", "PIX RECEBIDO", "250.00"]``.
    """

    from .duplicates import bank_dedup_key

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError("prior keys file must hold a JSON array")
    keys: set[Hashable] = set()
    for item in raw:
        if not isinstance(item, list) or not item:
            raise ValueError(f"invalid prior key: {item!r}")
        if item[0] == "tx" and len(item) == 4:
            keys.add(bank_dedup_key(date=item[1], description=item[2], amount=str(item[3])))
        else:
            keys.add(tuple(item))
    return keys


def load_registry(path: Path) -> Registry:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("registry file must hold a JSON object")
    return Registry.from_mapping(raw)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"not JSON serializable: {type(value).__name__}")


def _outcome_to_json(outcome: FileImportOutcome) -> dict[str, Any]:
    payload: dict[str, Any] = {"file_name": outcome.file_name, "error": outcome.error}
    if outcome.result is not None:
        result = outcome.result
        payload.update(
            {
                "file_format": result.file_format.value,
                "period_start": result.period_start,
                "period_end": result.period_end,
                "institution_name": result.institution_name,
                "account_id": result.account_id,
                "total_records": result.total_records,
                "valid_records": result.valid_records,
                "invalid_records": result.invalid_records,
                "duplicate_records": result.duplicate_records,
                "providers_count": result.providers_count,
                "skipped": [dataclasses.asdict(s) for s in result.skipped],
                "records": [
                    {"type": type(r).__name__, **dataclasses.asdict(r)} for r in result.records
                ],
            }
        )
    return payload


def _summary_line(outcome: FileImportOutcome) -> str:
    if outcome.result is None:
        return f"{outcome.file_name}\tERROR\t{outcome.error}"
    r = outcome.result
    period = f"{r.period_start or '?'}..{r.period_end or '?'}"
    return (
        f"{outcome.file_name}\t{r.file_format.value}\t{period}\t"
        f"{r.total_records} records\t{r.valid_records} valid\t"
        f"{r.invalid_records} invalid\t{r.duplicate_records} duplicate"
    )


# ---- Command handlers ----------------------------------------------------------


def cmd_import_files(
    paths: list[Path],
    *,
    prior_keys_path: Path | None = None,
    registry_path: Path | None = None,
    config_path: Path | None = None,
    use_ocr: bool = False,
    as_json: bool = False,
) -> int:
    """Import files and print one summary line (or a JSON document) to stdout.

    Returns ``0`` when every file imported, ``1`` when any file failed, ``2``
    on unusable inputs (missing file, bad config/keys/registry).
    """

    from .api import LedgerImporter

    try:
        config = _resolve_config(config_path)
        prior_keys: Collection[Hashable] | None = (
            load_prior_keys(prior_keys_path) if prior_keys_path else None
        )
        registry = load_registry(registry_path) if registry_path else None
        files = [(p.name, p.read_bytes()) for p in paths]
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    ocr_client = None
    if use_ocr:
        if not os.getenv("OPENAI_API_KEY"):
            print("Error: OPENAI_API_KEY is not set in the environment.", file=sys.stderr)
            return 2
        from .ingest.ocr import OpenAIVisionOcr

        ocr_client = OpenAIVisionOcr()

    importer = LedgerImporter(config, ocr_client=ocr_client)
    outcomes = importer.import_batch(files, prior_keys=prior_keys, registry=registry)

    if as_json:
        doc = [_outcome_to_json(o) for o in outcomes]
        print(json.dumps(doc, ensure_ascii=False, indent=2, default=_json_default))
    else:
        for outcome in outcomes:
            print(_summary_line(outcome))
    return 0 if all(o.ok for o in outcomes) else 1


def cmd_detect(path: Path) -> int:
    from .detect import detect_format

    try:
        data = path.read_bytes()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    print(detect_format(path.name, data).value)
    return 0


def cmd_preview_archive(path: Path) -> int:
    from .errors import LedgerImportError
    from .ingest.archive import preview_archive

    try:
        preview = preview_archive(path.read_bytes())
    except (OSError, LedgerImportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    for kind, names in (
        ("spreadsheet", preview.spreadsheets),
        ("document", preview.documents),
        ("other", preview.others),
    ):
        for name in names:
            print(f"{kind}\t{name}")
    return 0


# ---- Typer application -----------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements, lab reconciliation spreadsheets and payer report "
        "archives into normalized, deduplicated records."
    ),
)

# Module-level argument object keeps calls out of parameter defaults (ruff B008).
FILES_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., help="Files to import (.ofx, .csv, .xls/.xlsx, .zip, .pdf/.png/.jpg).", dir_okay=False
)


@app.command("import")
def import_cmd(
    paths: Annotated[list[Path], FILES_ARGUMENT],
    *,
    prior_keys: Path | None = typer.Option(
        None, "--prior-keys", help="JSON array of previously imported keys.", dir_okay=False
    ),
    registry: Path | None = typer.Option(
        None, "--registry", help="JSON counterparty/category registry.", dir_okay=False
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Engine config JSON (falls back to LEDGER_IMPORT_CONFIG).",
        dir_okay=False,
    ),
    ocr: bool = typer.Option(False, "--ocr/--no-ocr", help="Read scanned files with OpenAI OCR."),
    as_json: bool = typer.Option(False, "--json", help="Print a JSON document instead of lines."),
) -> None:
    """Import one or more files (at most two processed at a time)."""

    raise typer.Exit(
        cmd_import_files(
            paths,
            prior_keys_path=prior_keys,
            registry_path=registry,
            config_path=config,
            use_ocr=ocr,
            as_json=as_json,
        )
    )


@app.command("detect")
def detect_cmd(
    path: Annotated[Path, typer.Argument(help="File to inspect.", dir_okay=False)],
) -> None:
    """Print the detected file format."""

    raise typer.Exit(cmd_detect(path))


@app.command("preview-archive")
def preview_archive_cmd(
    path: Annotated[Path, typer.Argument(help="ZIP archive of payer reports.", dir_okay=False)],
) -> None:
    """List archive entries by kind without parsing them."""

    raise typer.Exit(cmd_preview_archive(path))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment.
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

"""Batch orchestration: the public entry point of the import engine.

For one file the pipeline is::

    detect format -> parse (archives fan out per entry) -> consolidate lab rows
    -> mark duplicates (when prior keys are given) -> match entities (bank
    dialects, when a registry is given) -> ImportBatchResult

For several files, :meth:`LedgerImporter.import_batch` runs files through
:func:`~ledger_import.pmap.p_map` with ``config.file_concurrency`` (2) files in
flight, which also caps concurrent OCR calls. A file that fails becomes a
:class:`~ledger_import.models.FileImportOutcome` with an error and never
affects its siblings. Setting the ``abort`` event stops new files and new OCR
pages from starting; work already in flight completes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Collection, Hashable, Iterable
from pathlib import PurePath

from .config import EngineConfig, default_config
from .detect import detect_format
from .duplicates import consolidate_in_file, mark_duplicates
from .errors import LedgerImportError, OcrUnavailableError, UnrecognizedFormatError
from .ingest.adapters.delimited import parse_delimited
from .ingest.adapters.lab_report import parse_lab_report
from .ingest.adapters.ofx import parse_ofx
from .ingest.archive import extract_payer_reports
from .ingest.ocr import OcrBridge, OcrClient, Rasterizer
from .logging_setup import get_logger
from .matching import EntityMatcher
from .models import (
    FileFormat,
    FileImportOutcome,
    ImportBatchResult,
    LedgerImportRow,
    NormalizedRecord,
    ParseResult,
    Registry,
)
from .pmap import p_map

_logger = get_logger("ledger_import.api")

_BANK_FORMATS = frozenset(
    {FileFormat.OFX_DIALECT, FileFormat.DELIMITED_TEXT, FileFormat.SCANNED_DOCUMENT}
)

type InputFile = tuple[str, bytes]
"""A ``(file name, raw bytes)`` pair as uploaded."""


class LedgerImporter:
    """Import engine bound to one configuration and optional OCR collaborators.

    Parameters
    ----------
    config:
        Lookup tables and tunables; defaults to :func:`default_config`.
    ocr_client:
        OCR collaborator for scanned documents. Without one, scanned files
        fail with :class:`OcrUnavailableError`.
    rasterizer:
        Page renderer for the OCR bridge; defaults to PyMuPDF.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        ocr_client: OcrClient | None = None,
        rasterizer: Rasterizer | None = None,
    ) -> None:
        self.config = config if config is not None else default_config()
        self._matcher = EntityMatcher.from_config(self.config)
        self._ocr = OcrBridge(ocr_client, rasterizer) if ocr_client is not None else None

    # ---- single file -----------------------------------------------------------

    def _parse(
        self,
        name: str,
        data: bytes,
        fmt: FileFormat,
        should_stop: Callable[[], bool] | None,
    ) -> ParseResult:
        if fmt is FileFormat.OFX_DIALECT:
            return parse_ofx(data)
        if fmt is FileFormat.DELIMITED_TEXT:
            return parse_delimited(data)
        if fmt is FileFormat.SPREADSHEET:
            return parse_lab_report(data, config=self.config, name=name)
        if fmt is FileFormat.SPREADSHEET_ARCHIVE:
            archive = extract_payer_reports(data)
            return ParseResult(
                records=archive.rows,
                period_start=archive.period_start,
                period_end=archive.period_end,
                provider_files=archive.files,
                skipped=archive.skipped,
            )
        if fmt is FileFormat.SCANNED_DOCUMENT:
            if self._ocr is None:
                raise OcrUnavailableError(f"{name}: scanned document but no OCR client configured")
            return self._ocr.read_statement(data, file_name=name, should_stop=should_stop)
        raise UnrecognizedFormatError(
            f"{name}: unrecognized file format (extension {PurePath(name).suffix or 'none'!r})"
        )

    def import_file(
        self,
        name: str,
        data: bytes,
        *,
        prior_keys: Collection[Hashable] | None = None,
        registry: Registry | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> ImportBatchResult:
        """Import one file. Raises a :class:`LedgerImportError` subclass on failure."""

        fmt = detect_format(name, data)
        parsed = self._parse(name, data, fmt, should_stop)

        records: list[NormalizedRecord] = list(parsed.records)
        if fmt is FileFormat.SPREADSHEET and self.config.consolidate_lab_rows:
            lab_rows = [r for r in records if isinstance(r, LedgerImportRow)]
            if len(lab_rows) == len(records):
                records = list(consolidate_in_file(lab_rows))
        if prior_keys is not None:
            records = mark_duplicates(records, prior_keys)
        if registry is not None and fmt in _BANK_FORMATS:
            records = self._matcher.enrich(records, registry)

        result = ImportBatchResult(
            file_name=name,
            file_format=fmt,
            records=tuple(records),
            period_start=parsed.period_start,
            period_end=parsed.period_end,
            institution_name=parsed.institution_name,
            account_id=parsed.account_id,
            statement_start=parsed.statement_start,
            statement_end=parsed.statement_end,
            provider_files=parsed.provider_files,
            skipped=parsed.skipped,
            pages_total=parsed.pages_total,
        )
        _logger.info(
            "%s: %s, %d record(s) (%d valid, %d invalid, %d duplicate)",
            name,
            fmt.value,
            result.total_records,
            result.valid_records,
            result.invalid_records,
            result.duplicate_records,
        )
        return result

    # ---- batch -----------------------------------------------------------------

    def import_batch(
        self,
        files: Iterable[InputFile],
        *,
        prior_keys: Collection[Hashable] | None = None,
        registry: Registry | None = None,
        abort: threading.Event | None = None,
    ) -> list[FileImportOutcome]:
        """Import several files, at most ``config.file_concurrency`` at a time.

        Returns one outcome per input file, in input order.
        """

        should_stop = abort.is_set if abort is not None else None
        unstarted: list[tuple[int, InputFile]] = []

        def _one(entry: tuple[int, InputFile]) -> tuple[int, FileImportOutcome]:
            idx, (name, data) = entry
            try:
                result = self.import_file(
                    name, data, prior_keys=prior_keys, registry=registry, should_stop=should_stop
                )
            except LedgerImportError as exc:
                _logger.warning("%s: import failed: %s", name, exc)
                return idx, FileImportOutcome(file_name=name, error=str(exc))
            except Exception as exc:  # noqa: BLE001 - one broken file never sinks the batch
                _logger.exception("%s: unexpected import failure", name)
                return idx, FileImportOutcome(file_name=name, error=f"{type(exc).__name__}: {exc}")
            return idx, FileImportOutcome(file_name=name, result=result)

        done = p_map(
            enumerate(files),
            _one,
            concurrency=self.config.file_concurrency,
            should_stop=should_stop,
            on_unstarted=unstarted.append,
        )
        outcomes = dict(done)
        for idx, (name, _data) in unstarted:
            outcomes[idx] = FileImportOutcome(
                file_name=name, error="aborted before start", aborted=True
            )
        if unstarted:
            _logger.info("batch aborted: %d file(s) not started", len(unstarted))
        return [outcomes[i] for i in sorted(outcomes)]


def import_file(
    name: str,
    data: bytes,
    *,
    config: EngineConfig | None = None,
    prior_keys: Collection[Hashable] | None = None,
    registry: Registry | None = None,
    ocr_client: OcrClient | None = None,
) -> ImportBatchResult:
    """Convenience wrapper: import one file with a fresh :class:`LedgerImporter`."""

    return LedgerImporter(config, ocr_client=ocr_client).import_file(
        name, data, prior_keys=prior_keys, registry=registry
    )


def import_batch(
    files: Iterable[InputFile],
    *,
    config: EngineConfig | None = None,
    prior_keys: Collection[Hashable] | None = None,
    registry: Registry | None = None,
    ocr_client: OcrClient | None = None,
    abort: threading.Event | None = None,
) -> list[FileImportOutcome]:
    """Convenience wrapper: import several files with a fresh :class:`LedgerImporter`."""

    return LedgerImporter(config, ocr_client=ocr_client).import_batch(
        files, prior_keys=prior_keys, registry=registry, abort=abort
    )


__all__ = ["InputFile", "LedgerImporter", "import_batch", "import_file"]

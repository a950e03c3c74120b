"""ZIP bundles of payer reports.

:func:`extract_payer_reports` opens the container, skips directories and
dot-files (``.DS_Store``, ``__MACOSX/._*`` resource forks), parses every
``.xls``/``.xlsx`` entry as a payer report and ignores anything else. A bad
entry is logged and recorded as skipped; it never aborts its siblings.

:func:`preview_archive` only lists entries by kind, for upload confirmation.
"""

from __future__ import annotations

import zipfile
import zlib
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePosixPath

from ..errors import CorruptArchiveError, LedgerImportError
from ..logging_setup import get_logger
from ..models import PayerReportFile, PayerReportRow, SkippedEntry
from .adapters.payer_report import parse_payer_report

_logger = get_logger("ledger_import.ingest.archive")

_SPREADSHEET_SUFFIXES = (".xls", ".xlsx")


@dataclass(frozen=True, slots=True)
class ArchiveImport:
    files: tuple[PayerReportFile, ...]
    skipped: tuple[SkippedEntry, ...] = ()
    period_start: str | None = None
    period_end: str | None = None

    @property
    def rows(self) -> tuple[PayerReportRow, ...]:
        return tuple(r for f in self.files for r in f.rows)

    @property
    def providers_count(self) -> int:
        return len(self.files)


@dataclass(frozen=True, slots=True)
class ArchivePreview:
    spreadsheets: tuple[str, ...] = ()
    documents: tuple[str, ...] = ()
    others: tuple[str, ...] = ()


def _is_hidden(name: str) -> bool:
    return any(part.startswith(".") for part in PurePosixPath(name).parts)


def _open(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise CorruptArchiveError(f"corrupt archive: {exc}") from exc


def _union_period(files: tuple[PayerReportFile, ...]) -> tuple[str | None, str | None]:
    starts = [f.period_start for f in files if f.period_start]
    ends = [f.period_end for f in files if f.period_end]
    if starts or ends:
        return (min(starts) if starts else None, max(ends) if ends else None)
    # No entry declared a period: fall back to observed row dates.
    dates = [r.date for f in files for r in f.rows]
    return (min(dates), max(dates)) if dates else (None, None)


def extract_payer_reports(data: bytes) -> ArchiveImport:
    """Parse every payer report inside a ZIP archive.

    Raises :class:`CorruptArchiveError` when the container cannot be opened.
    """

    files: list[PayerReportFile] = []
    skipped: list[SkippedEntry] = []
    with _open(data) as zf:
        for info in zf.infolist():
            name = info.filename
            if info.is_dir() or _is_hidden(name):
                continue
            if not name.lower().endswith(_SPREADSHEET_SUFFIXES):
                _logger.debug("archive: ignoring non-spreadsheet entry %s", name)
                continue
            try:
                report = parse_payer_report(name, zf.read(info))
            except (
                LedgerImportError,
                zipfile.BadZipFile,
                zlib.error,
                OSError,
                RuntimeError,
                NotImplementedError,
            ) as exc:
                _logger.warning("archive: skipping %s: %s", name, exc)
                skipped.append(SkippedEntry(name=name, reason=str(exc)))
                continue
            if not report.rows:
                _logger.warning("archive: skipping %s: no data rows", name)
                skipped.append(SkippedEntry(name=name, reason="no data rows"))
                continue
            files.append(report)

    parsed = tuple(files)
    start, end = _union_period(parsed)
    _logger.info(
        "archive: %d report(s), %d row(s), %d skipped",
        len(parsed),
        sum(len(f.rows) for f in parsed),
        len(skipped),
    )
    return ArchiveImport(files=parsed, skipped=tuple(skipped), period_start=start, period_end=end)


def preview_archive(data: bytes) -> ArchivePreview:
    """List visible entries as spreadsheets, PDF documents and everything else."""

    spreadsheets: list[str] = []
    documents: list[str] = []
    others: list[str] = []
    with _open(data) as zf:
        for info in zf.infolist():
            if info.is_dir() or _is_hidden(info.filename):
                continue
            lowered = info.filename.lower()
            if lowered.endswith(_SPREADSHEET_SUFFIXES):
                spreadsheets.append(info.filename)
            elif lowered.endswith(".pdf"):
                documents.append(info.filename)
            else:
                others.append(info.filename)
    return ArchivePreview(
        spreadsheets=tuple(spreadsheets), documents=tuple(documents), others=tuple(others)
    )


__all__ = ["ArchiveImport", "ArchivePreview", "extract_payer_reports", "preview_archive"]

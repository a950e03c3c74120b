"""Exception taxonomy for the import engine.

Unrecoverable per-file problems raise a subclass of :class:`LedgerImportError`
and abort only the file being imported. Per-entry problems inside an archive
raise :class:`EntryParseError`, which the archive extractor catches, logs and
records as a skipped entry. Per-row problems never raise: they are carried on
the record itself (``error`` / ``parse_warnings``).
"""

from __future__ import annotations


class LedgerImportError(ValueError):
    """Base class for every error raised by ``ledger_import``."""


class UnrecognizedFormatError(LedgerImportError):
    """File content matches none of the supported formats."""


class CorruptArchiveError(LedgerImportError):
    """ZIP container could not be opened."""


class UnreadableSpreadsheetError(LedgerImportError):
    """Workbook bytes could not be read into a cell grid."""


class UnreadableDocumentError(LedgerImportError):
    """Scanned document could not be rasterized into pages."""


class OcrUnavailableError(LedgerImportError):
    """A scanned document was submitted but no OCR client is configured."""


class EntryParseError(LedgerImportError):
    """A single spreadsheet report has no usable header or lacks columns."""


__all__ = [
    "CorruptArchiveError",
    "EntryParseError",
    "LedgerImportError",
    "OcrUnavailableError",
    "UnreadableDocumentError",
    "UnreadableSpreadsheetError",
    "UnrecognizedFormatError",
]

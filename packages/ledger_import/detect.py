"""Route an uploaded file to its dialect parser.

The extension decides first. Content is sniffed only when the name carries no
extension or an unknown one; anything still unidentified is
``FileFormat.UNRECOGNIZED`` and the orchestrator fails that file instead of
guessing.
"""

from __future__ import annotations

import zipfile
from io import BytesIO
from pathlib import PurePath

from .models import FileFormat

_BY_EXTENSION: dict[str, FileFormat] = {
    ".ofx": FileFormat.OFX_DIALECT,
    ".csv": FileFormat.DELIMITED_TEXT,
    ".txt": FileFormat.DELIMITED_TEXT,
    ".xls": FileFormat.SPREADSHEET,
    ".xlsx": FileFormat.SPREADSHEET,
    ".zip": FileFormat.SPREADSHEET_ARCHIVE,
    ".pdf": FileFormat.SCANNED_DOCUMENT,
    ".png": FileFormat.SCANNED_DOCUMENT,
    ".jpg": FileFormat.SCANNED_DOCUMENT,
    ".jpeg": FileFormat.SCANNED_DOCUMENT,
}

_PDF_MAGIC = b"%PDF"
_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"


def is_ooxml_workbook(data: bytes) -> bool:
    """True when ``data`` is a ZIP container holding an ``.xlsx`` workbook."""

    if not data.startswith(_ZIP_MAGIC):
        return False
    try:
        with zipfile.ZipFile(BytesIO(data)) as zf:
            names = zf.namelist()
    except zipfile.BadZipFile:
        return False
    return any(n.startswith("xl/") for n in names)


def sniff_spreadsheet_engine(data: bytes) -> str | None:
    """Pick the pandas Excel engine from magic bytes (``openpyxl`` or ``xlrd``)."""

    if data.startswith(_ZIP_MAGIC):
        return "openpyxl"
    if data.startswith(_OLE2_MAGIC):
        return "xlrd"
    return None


def _sniff(data: bytes) -> FileFormat:
    head = data[:1024].lstrip(b"\xef\xbb\xbf \t\r\n")
    if head.startswith(_PDF_MAGIC) or head.startswith((_PNG_MAGIC, _JPEG_MAGIC)):
        return FileFormat.SCANNED_DOCUMENT
    if head.startswith(_OLE2_MAGIC):
        return FileFormat.SPREADSHEET
    if head.startswith(_ZIP_MAGIC):
        return FileFormat.SPREADSHEET if is_ooxml_workbook(data) else FileFormat.SPREADSHEET_ARCHIVE
    upper = head.upper()
    if upper.startswith(b"OFXHEADER") or b"<OFX>" in upper:
        return FileFormat.OFX_DIALECT
    return FileFormat.UNRECOGNIZED


def detect_format(name: str, data: bytes) -> FileFormat:
    """Return the :class:`FileFormat` for a file name and its bytes."""

    suffix = PurePath(name).suffix.lower()
    fmt = _BY_EXTENSION.get(suffix)
    if fmt is not None:
        return fmt
    return _sniff(data)


__all__ = ["detect_format", "is_ooxml_workbook", "sniff_spreadsheet_engine"]

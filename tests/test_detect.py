# ruff: noqa: E402, I001
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import.detect import detect_format, is_ooxml_workbook, sniff_spreadsheet_engine
from ledger_import.models import FileFormat

from tests.helpers.workbooks import xlsx_bytes, zip_bytes


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("extrato.OFX", FileFormat.OFX_DIALECT),
        ("extrato.csv", FileFormat.DELIMITED_TEXT),
        ("extrato.txt", FileFormat.DELIMITED_TEXT),
        ("caixa.xls", FileFormat.SPREADSHEET),
        ("caixa.xlsx", FileFormat.SPREADSHEET),
        ("convenios.zip", FileFormat.SPREADSHEET_ARCHIVE),
        ("extrato.pdf", FileFormat.SCANNED_DOCUMENT),
        ("foto.JPG", FileFormat.SCANNED_DOCUMENT),
        ("foto.png", FileFormat.SCANNED_DOCUMENT),
    ],
)
def test_extension_decides(name, expected):
    assert detect_format(name, b"") is expected


def test_unknown_extension_sniffs_content():
    assert detect_format("statement", b"OFXHEADER:100\nDATA:OFXSGML") is FileFormat.OFX_DIALECT
    assert detect_format("statement.dat", b"\xef\xbb\xbf<OFX><BANKMSGSRSV1>") is FileFormat.OFX_DIALECT
    assert detect_format("scan", b"%PDF-1.7\n...") is FileFormat.SCANNED_DOCUMENT
    assert detect_format("blob.bin", b"hello, world") is FileFormat.UNRECOGNIZED


def test_zip_sniffing_separates_workbooks_from_archives():
    workbook = xlsx_bytes([["a", "b"]])
    archive = zip_bytes({"UNIMED.xls": workbook})
    assert is_ooxml_workbook(workbook)
    assert not is_ooxml_workbook(archive)
    assert detect_format("upload", workbook) is FileFormat.SPREADSHEET
    assert detect_format("upload", archive) is FileFormat.SPREADSHEET_ARCHIVE


def test_spreadsheet_engine_from_magic_bytes():
    assert sniff_spreadsheet_engine(xlsx_bytes([["x"]])) == "openpyxl"
    assert sniff_spreadsheet_engine(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1rest") == "xlrd"
    assert sniff_spreadsheet_engine(b"Data;Valor") is None

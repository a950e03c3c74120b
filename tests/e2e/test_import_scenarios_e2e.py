# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[2]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import import Counterparty, Direction, FileFormat, LedgerImporter, Registry  # noqa: E402

from tests.helpers.workbooks import payer_report_rows, xlsx_bytes, zip_bytes  # noqa: E402

OFX_FRAGMENT = b"""<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS><BANKTRANLIST>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20250301
<TRNAMT>-150.00
<FITID>0001
<MEMO>ALUGUEL MARIA
</STMTTRN>
</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>
"""


def test_ofx_rent_payment_is_matched_to_landlord():
    registry = Registry(counterparties=(Counterparty(id="cp-ml", name="Maria Lúcia"),))

    (outcome,) = LedgerImporter().import_batch([("extrato.ofx", OFX_FRAGMENT)], registry=registry)

    assert outcome.ok
    result = outcome.result
    assert result.file_format is FileFormat.OFX_DIALECT
    (record,) = result.records
    assert record.date == "2025-03-01"
    assert record.amount == Decimal("150.00")
    assert record.direction is Direction.OUTFLOW
    assert record.match_confidence == 90
    assert record.matched_counterparty.id == "cp-ml"


def test_delimited_pix_receipt():
    data = "Data;Historico;Valor\n01/04/2025;PIX RECEBIDO;250,00\n".encode()

    (outcome,) = LedgerImporter().import_batch([("extrato.csv", data)])

    (record,) = outcome.result.records
    assert record.date == "2025-04-01"
    assert record.amount == Decimal("250.00")
    assert record.direction is Direction.INFLOW


def test_archive_with_single_particular_report():
    report = xlsx_bytes(payer_report_rows([["10/03/2025", 555, "Ana Souza", "", "HEMOGRAMA", 35.0]]))
    archive = zip_bytes({"PARTICULARES.xls": report})

    (outcome,) = LedgerImporter().import_batch([("faturamento.zip", archive)])

    result = outcome.result
    assert result.file_format is FileFormat.SPREADSHEET_ARCHIVE
    assert result.providers_count == 1
    (provider,) = result.provider_files
    assert provider.is_particular is True
    assert provider.rows[0].external_code == "555"

# ruff: noqa: E402, I001
import sys
from decimal import Decimal
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import.ingest.adapters.ofx import decode_ofx, parse_ofx
from ledger_import.models import Direction

SGML_OFX = """OFXHEADER:100
DATA:OFXSGML
VERSION:102
ENCODING:USASCII

<OFX>
<SIGNONMSGSRSV1><SONRS><FI><ORG>Banco Exemplo S/A<FID>001</FI></SONRS></SIGNONMSGSRSV1>
<BANKMSGSRSV1><STMTTRNRS><STMTRS>
<BANKACCTFROM><BANKID>001<ACCTID>12345-6<ACCTTYPE>CHECKING</BANKACCTFROM>
<BANKTRANLIST>
<DTSTART>20250301
<DTEND>20250331
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20250305120000[-3:BRT]
<TRNAMT>-150.00
<FITID>2025030501
<MEMO>ALUGUEL MARIA
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20250310
<TRNAMT>1.234,56
<FITID>2025031001
<NAME>PIX RECEBIDO UNIMED
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20250320
<TRNAMT>abc
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<TRNAMT>10.00
</STMTTRN>
</BANKTRANLIST>
</STMTRS></STMTTRNRS></BANKMSGSRSV1>
</OFX>
"""


def test_sgml_statement_records_and_metadata():
    result = parse_ofx(SGML_OFX)

    assert [r.date for r in result.records] == ["2025-03-10", "2025-03-05"]
    credit, debit = result.records
    assert credit.amount == Decimal("1234.56")
    assert credit.direction is Direction.INFLOW
    assert credit.description == "PIX RECEBIDO UNIMED"
    assert credit.source_id == "2025031001"
    assert debit.amount == Decimal("150.00")
    assert debit.direction is Direction.OUTFLOW
    assert debit.description == "ALUGUEL MARIA"

    assert result.institution_name == "Banco Exemplo S/A"
    assert result.account_id == "12345-6"
    assert (result.period_start, result.period_end) == ("2025-03-05", "2025-03-10")
    assert (result.statement_start, result.statement_end) == ("2025-03-01", "2025-03-31")


def test_xml_variant_and_memo_preferred_over_name():
    xml = (
        '<?xml version="1.0"?><OFX><BANKTRANLIST>'
        "<STMTTRN><DTPOSTED>20250401</DTPOSTED><TRNAMT>25.5</TRNAMT>"
        "<NAME>TARIFA</NAME><MEMO>Tarifa &amp; juros</MEMO></STMTTRN>"
        "</BANKTRANLIST></OFX>"
    )
    (record,) = parse_ofx(xml).records
    assert record.description == "Tarifa & juros"
    assert record.amount == Decimal("25.50")
    assert record.source_id is None


def test_fragment_without_header_and_empty_statement():
    fragment = "<STMTTRN><DTPOSTED>20250301<TRNAMT>-150.00<MEMO>ALUGUEL MARIA</STMTTRN>"
    (record,) = parse_ofx(fragment).records
    assert record.direction is Direction.OUTFLOW

    empty = parse_ofx("<OFX></OFX>")
    assert empty.records == ()
    assert empty.period_start is None


def test_decode_falls_back_to_cp1252():
    assert decode_ofx("<MEMO>TARIFA SERVIÇO".encode("cp1252")) == "<MEMO>TARIFA SERVIÇO"
    assert parse_ofx(
        "<STMTTRN><DTPOSTED>20250301<TRNAMT>-9,90<MEMO>TARIFA SERVIÇO</STMTTRN>".encode("cp1252")
    ).records[0].description == "TARIFA SERVIÇO"

"""Adapter for OFX bank statements (SGML 1.x and XML 2.x variants).

Top-level tags read:
    ``ORG`` (institution name), ``ACCTID`` (account id), ``DTSTART`` /
    ``DTEND`` (declared statement period).

Per ``<STMTTRN>`` block:
    ``DTPOSTED`` (``YYYYMMDD`` prefix), ``TRNAMT``, optional ``FITID``,
    ``MEMO`` (preferred) or ``NAME`` as description.

SGML OFX does not close leaf tags, so values are read up to the next ``<`` or
end of line. Blocks without a valid date or a parsable amount are skipped.
"""

from __future__ import annotations

import html
import re

from ...logging_setup import get_logger
from ...models import Direction, NormalizedRecord, ParseResult
from ...normalizers import clean_text, compact_date_to_iso, parse_amount

_logger = get_logger("ledger_import.ingest.adapters.ofx")

_BLOCK_RE = re.compile(
    r"<STMTTRN>(.*?)(?:</STMTTRN>|(?=<STMTTRN>)|(?=</BANKTRANLIST>)|\Z)", re.I | re.S
)


def _tag(text: str, name: str) -> str | None:
    m = re.search(rf"<{name}>\s*([^<\r\n]*)", text, re.I)
    if not m:
        return None
    value = html.unescape(m.group(1)).strip()
    return value or None


def decode_ofx(data: bytes) -> str:
    """Decode OFX bytes: UTF-8 first, then Windows-1252 (common in SGML exports)."""

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("cp1252", errors="replace")


def parse_ofx(content: str | bytes) -> ParseResult:
    """Parse an OFX statement into records sorted by date descending."""

    text = decode_ofx(content) if isinstance(content, bytes) else content

    records: list[NormalizedRecord] = []
    skipped = 0
    for m in _BLOCK_RE.finditer(text):
        block = m.group(1)
        date = compact_date_to_iso(_tag(block, "DTPOSTED"))
        raw_amount = _tag(block, "TRNAMT")
        if date is None or raw_amount is None:
            skipped += 1
            continue
        amount, warning = parse_amount(raw_amount)
        if warning:
            skipped += 1
            continue
        description = clean_text(_tag(block, "MEMO") or _tag(block, "NAME") or "")
        records.append(
            NormalizedRecord(
                date=date,
                description=description,
                amount=abs(amount),
                direction=Direction.INFLOW if amount >= 0 else Direction.OUTFLOW,
                source_id=_tag(block, "FITID"),
            )
        )
    if skipped:
        _logger.debug("ofx: skipped %d malformed STMTTRN block(s)", skipped)

    records.sort(key=lambda r: r.date, reverse=True)
    dates = [r.date for r in records]
    return ParseResult(
        records=tuple(records),
        period_start=min(dates) if dates else None,
        period_end=max(dates) if dates else None,
        institution_name=_tag(text, "ORG"),
        account_id=_tag(text, "ACCTID"),
        statement_start=compact_date_to_iso(_tag(text, "DTSTART")),
        statement_end=compact_date_to_iso(_tag(text, "DTEND")),
    )


__all__ = ["decode_ofx", "parse_ofx"]

"""Adapter for delimited-text bank statements (CSV with ``;`` or ``,``).

The delimiter is ``;`` when the header line contains one, else ``,``. Lines
are split with the stdlib :mod:`csv` reader, so quoted fields keep embedded
delimiters. Columns are located by :data:`~ledger_import.header_map.BANK_DELIMITED_RULES`:

- date, description, optional details (joined as ``"description: details"``)
- either a credit/debit column pair or a single signed amount column

Only rows with a parsable date and a strictly positive amount are kept.
"""

from __future__ import annotations

import csv
from decimal import Decimal
from io import StringIO

from ...errors import UnrecognizedFormatError
from ...header_map import BANK_DELIMITED_RULES, HeaderMap, HeaderResolver
from ...logging_setup import get_logger
from ...models import Direction, NormalizedRecord, ParseResult
from ...normalizers import clean_text, normalize_date, parse_amount

_logger = get_logger("ledger_import.ingest.adapters.delimited")

_RESOLVER = HeaderResolver(BANK_DELIMITED_RULES)


def decode_text(data: bytes) -> str:
    """Decode text exports: UTF-8 (BOM tolerated), then Windows-1252, then Latin-1."""

    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


def detect_delimiter(header_line: str) -> str:
    return ";" if ";" in header_line else ","


def _row_description(row: list[str], header: HeaderMap) -> str:
    main = clean_text(header.cell(row, "description"))
    details = clean_text(header.cell(row, "details"))
    if main and details:
        return f"{main}: {details}"
    return main or details


def _row_amount(row: list[str], header: HeaderMap) -> tuple[Decimal, Direction, tuple[str, ...]]:
    if "credit" in header and "debit" in header:
        credit, w_credit = parse_amount(header.cell(row, "credit"))
        debit, w_debit = parse_amount(header.cell(row, "debit"))
        warnings = tuple(w for w in (w_credit, w_debit) if w)
        # A credit that is not positive defers to the debit column.
        if credit > 0:
            return credit, Direction.INFLOW, warnings
        return abs(debit), Direction.OUTFLOW, warnings
    amount, warning = parse_amount(header.cell(row, "amount"))
    direction = Direction.INFLOW if amount >= 0 else Direction.OUTFLOW
    return abs(amount), direction, (warning,) if warning else ()


def parse_delimited(content: str | bytes) -> ParseResult:
    """Parse a delimited-text statement into records sorted by date descending.

    Raises :class:`UnrecognizedFormatError` when the header has no date column
    or no amount column(s); fewer than two non-blank rows yield an empty result.
    """

    text = decode_text(content) if isinstance(content, bytes) else content
    header_line = next((ln for ln in text.splitlines() if ln.strip()), "")
    delimiter = detect_delimiter(header_line)
    rows = [
        row
        for row in csv.reader(StringIO(text), delimiter=delimiter)
        if any(cell.strip() for cell in row)
    ]
    if len(rows) < 2:
        return ParseResult(records=())

    header = _RESOLVER.resolve(rows[0], row_index=0)
    has_pair = "credit" in header and "debit" in header
    if "date" not in header or not (has_pair or "amount" in header):
        raise UnrecognizedFormatError(f"delimited: unrecognized header {rows[0]!r}")

    records: list[NormalizedRecord] = []
    dropped = 0
    for row in rows[1:]:
        date = normalize_date(header.cell(row, "date"))
        amount, direction, warnings = _row_amount(row, header)
        if date is None or amount <= 0:
            dropped += 1
            continue
        records.append(
            NormalizedRecord(
                date=date,
                description=_row_description(row, header),
                amount=amount,
                direction=direction,
                parse_warnings=warnings,
            )
        )
    if dropped:
        _logger.debug("delimited: dropped %d row(s) without date or positive amount", dropped)

    records.sort(key=lambda r: r.date, reverse=True)
    return ParseResult(
        records=tuple(records),
        period_start=records[-1].date if records else None,
        period_end=records[0].date if records else None,
    )


__all__ = ["decode_text", "detect_delimiter", "parse_delimited"]

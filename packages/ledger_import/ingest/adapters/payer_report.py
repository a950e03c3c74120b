"""Adapter for a single payer (insurer) billing report.

Reports are workbooks named after the payer (``UNIMED.xls``,
``PARTICULARES.xlsx``). The provider name is the file name without its
extension. A title cell near the top may declare the billing period as
``DD/MM/YYYY a DD/MM/YYYY``; the data table starts below a header row naming
date, code, patient and value columns.

Missing header or missing essential columns raise :class:`EntryParseError`,
which the archive extractor turns into a skipped entry.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import PurePosixPath
from typing import Any

from ...errors import EntryParseError
from ...header_map import PAYER_REPORT_RULES, HeaderResolver, find_header_row
from ...logging_setup import get_logger
from ...models import PayerReportFile, PayerReportRow
from ...normalizers import clean_text, fold_lower, normalize_date, parse_amount
from ..workbook import Grid, read_first_sheet

_logger = get_logger("ledger_import.ingest.adapters.payer_report")

_RESOLVER = HeaderResolver(PAYER_REPORT_RULES)
_PERIOD_RE = re.compile(r"(\d{2}/\d{2}/\d{4})\s*a\s*(\d{2}/\d{2}/\d{4})")
_PERIOD_SCAN_ROWS = 11
_HEADER_SCAN_ROWS = 31
_ESSENTIAL = ("date", "code", "amount")


def provider_name_for(filename: str) -> str:
    """``"reports/UNIMED.xls"`` gives ``"UNIMED"``."""

    return PurePosixPath(filename.replace("\\", "/")).stem.strip()


def find_report_period(grid: Grid) -> tuple[str | None, str | None]:
    for row in grid[:_PERIOD_SCAN_ROWS]:
        for cell in row:
            m = _PERIOD_RE.search(clean_text(cell))
            if m:
                return normalize_date(m.group(1)), normalize_date(m.group(2))
    return None, None


def _is_header(row: Sequence[Any]) -> bool:
    texts = [fold_lower(c) for c in row]
    has_date = any("data" in t for t in texts)
    has_code = any(t in ("codigo", "cod", "cod.") for t in texts)
    has_name = any("paciente" in t or "nome" in t for t in texts)
    has_value = any("valor" in t for t in texts)
    return (has_date and has_code) or (has_date and has_value) or (has_code and has_name)


def parse_payer_rows(filename: str, grid: Grid) -> PayerReportFile:
    """Parse an already-read grid; see :func:`parse_payer_report`."""

    header_idx = find_header_row(grid, _is_header, max_scan=_HEADER_SCAN_ROWS)
    if header_idx is None:
        raise EntryParseError(f"{filename}: no table header found")
    columns = _RESOLVER.resolve(grid[header_idx], row_index=header_idx)
    missing = columns.missing(_ESSENTIAL)
    if missing:
        raise EntryParseError(f"{filename}: missing column(s) {', '.join(missing)}")

    provider = provider_name_for(filename)
    period_start, period_end = find_report_period(grid)

    rows: list[PayerReportRow] = []
    for row in grid[header_idx + 1 :]:
        raw_date = columns.cell(row, "date")
        code = clean_text(columns.cell(row, "code"))
        if raw_date is None and not code:
            continue
        row_date = normalize_date(raw_date)
        if row_date is None or not code:
            continue
        amount, warning = parse_amount(columns.cell(row, "amount"))
        patient = clean_text(columns.cell(row, "patient"))
        rows.append(
            PayerReportRow(
                date=row_date,
                description=f"[LIS {code}] {patient}".strip(),
                amount=abs(amount),
                parse_warnings=(warning,) if warning else (),
                external_code=code,
                provider_name=provider,
                row_index=len(rows) + 1,
                patient_name=patient,
                company_name=clean_text(columns.cell(row, "company")),
                exam_list=clean_text(columns.cell(row, "exams")),
                report_period_start=period_start,
                report_period_end=period_end,
            )
        )
    _logger.debug("payer report %s: %d row(s)", filename, len(rows))

    return PayerReportFile(
        filename=filename,
        provider_name=provider,
        is_particular="particular" in fold_lower(provider),
        rows=tuple(rows),
        period_start=period_start,
        period_end=period_end,
    )


def parse_payer_report(filename: str, data: bytes) -> PayerReportFile:
    """Read the first sheet of a payer report workbook and parse it."""

    return parse_payer_rows(filename, read_first_sheet(data, name=filename))


__all__ = [
    "find_report_period",
    "parse_payer_report",
    "parse_payer_rows",
    "provider_name_for",
]

"""Adapter for the lab system's daily reconciliation spreadsheet.

Each data row is one paid order at a business unit::

    date | unit | code | patient | payer | gross | discount | surcharge |
    paid | payment-method label | operator

The header row is discovered within the first ``config.header_scan_rows``
rows (a row mentioning ``data cad``, ``codigo`` or ``paciente``). When no
header is found, the row above the first date-led row is taken as the header.
Columns are named through :data:`~ledger_import.header_map.LAB_REPORT_RULES`;
anything the header does not name falls back to the fixed layout above.

Rows whose date does not parse are dropped. Rows whose business unit cannot
be resolved, or whose paid amount is not positive, are kept with ``error``
set so the day's totals stay auditable.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ...config import BusinessUnit, EngineConfig
from ...header_map import (
    LAB_REPORT_POSITIONS,
    LAB_REPORT_RULES,
    HeaderMap,
    HeaderResolver,
    find_header_row,
    joined_text,
)
from ...logging_setup import get_logger
from ...models import LedgerImportRow, ParseResult, PaymentMethod
from ...normalizers import clean_text, fold_lower, normalize_date, parse_amount
from ..workbook import Grid, read_first_sheet

_logger = get_logger("ledger_import.ingest.adapters.lab_report")

_RESOLVER = HeaderResolver(LAB_REPORT_RULES)

_HEADER_MARKERS: tuple[str, ...] = ("data cad", "codigo", "paciente")
_SKIP_MARKERS: tuple[str, ...] = ("total", "subtotal", "soma", "boleto:", "data cad", "codigo")
_DATE_LED = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}")
_CODE_PREFIX = re.compile(r"^([A-Z]{2,3})")
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Layout discovery
# ---------------------------------------------------------------------------


def _is_header(row: Sequence[Any]) -> bool:
    text = joined_text(row)
    return any(marker in text for marker in _HEADER_MARKERS)


def _is_date_led(row: Sequence[Any]) -> bool:
    if len(row) <= 5 or not row:
        return False
    first = row[0]
    if isinstance(first, (datetime, date)):
        return True
    return bool(_DATE_LED.match(clean_text(first)))


def locate_layout(grid: Grid, *, max_scan: int) -> tuple[int, HeaderMap] | None:
    """Return ``(first_data_row, column_map)`` or ``None`` when nothing looks tabular."""

    header_idx = find_header_row(grid, _is_header, max_scan=max_scan)
    if header_idx is None:
        first_data = find_header_row(grid, _is_date_led, max_scan=max_scan)
        if first_data is None:
            return None
        header_idx = first_data - 1
    if header_idx < 0:
        return 0, HeaderMap(columns=dict(LAB_REPORT_POSITIONS))
    resolved = _RESOLVER.resolve(grid[header_idx], row_index=header_idx)
    columns = resolved.with_fallback(LAB_REPORT_POSITIONS)
    if columns.unplaced:
        _logger.warning(
            "lab report: no column for %s (header row %d)", ", ".join(columns.unplaced), header_idx
        )
    return header_idx + 1, columns


def _is_skip_row(row: Sequence[Any]) -> bool:
    if len(row) < 5:
        return True
    first = fold_lower(row[0])
    if not first:
        return True
    return first.startswith(_SKIP_MARKERS)


# ---------------------------------------------------------------------------
# Lookups (business unit, payment method, card fee)
# ---------------------------------------------------------------------------


def code_prefix(code: str) -> str:
    """``"CTL-123"`` and ``"CTL123"`` both give ``"CTL"``; ``""`` when absent."""

    code = code.strip().upper()
    if not code:
        return ""
    if "-" in code:
        return code.split("-", 1)[0].strip()
    m = _CODE_PREFIX.match(code)
    return m.group(1) if m else ""


def resolve_business_unit(label: str, code: str, config: EngineConfig) -> BusinessUnit | None:
    """Resolve a unit by label, then by code prefix, then by label keywords."""

    unit = config.unit_by_label(label)
    if unit is not None:
        return unit
    prefix = code_prefix(code)
    if prefix:
        unit = config.unit_by_code(prefix)
        if unit is not None:
            return unit
    folded = fold_lower(label)
    if folded:
        for candidate in config.business_units:
            if any(fold_lower(k) in folded for k in candidate.keywords if k):
                return candidate
    return None


def map_payment_method(label: str, config: EngineConfig) -> PaymentMethod:
    key = fold_lower(label)
    exact = config.payment_method_synonyms.get(key)
    if exact is not None:
        return exact
    for keyword, method in config.payment_method_keywords:
        if keyword and keyword in key:
            return method
    return config.default_payment_method


def card_fee_percent(label: str, config: EngineConfig) -> tuple[Decimal | None, str | None]:
    """Return ``(fee_percent, error)`` for a CARD payment label.

    Labels mentioning debit use the debit fee; everything else is credit.
    Configured fee rules whose name carries the same keyword win; otherwise
    the fallback percent applies unless ``require_card_fee_config`` is set.
    """

    key = fold_lower(label)
    kind = "debito" if "deb" in key else "credito"
    for rule in config.card_fees:
        if kind in fold_lower(rule.name):
            return rule.fee_percent, None
    if config.require_card_fee_config:
        return None, f"no card fee configured for {kind}"
    if kind == "debito":
        return config.debit_fee_fallback_percent, None
    return config.credit_fee_fallback_percent, None


# ---------------------------------------------------------------------------
# Row extraction
# ---------------------------------------------------------------------------


def _text(row: Sequence[Any], layout: HeaderMap, name: str) -> str:
    return clean_text(layout.cell(row, name))


def _build_row(
    row: Sequence[Any], layout: HeaderMap, row_date: str, config: EngineConfig
) -> LedgerImportRow:
    unit_label = _text(row, layout, "unit")
    code = _text(row, layout, "code")
    patient = _text(row, layout, "patient")
    payer = _text(row, layout, "payer")
    method_raw = _text(row, layout, "method")

    warnings: list[str] = []
    amounts: dict[str, Decimal] = {}
    for name in ("gross", "discount", "surcharge", "paid"):
        value, warning = parse_amount(layout.cell(row, name))
        if warning:
            warnings.append(f"{name}: {warning}")
        amounts[name] = value
    paid = amounts["paid"]
    if "method" not in layout:
        warnings.append("payment method column not found")

    unit = resolve_business_unit(unit_label, code, config)
    error: str | None = None
    if unit is None:
        error = f"unresolved business unit: {code_prefix(code) or unit_label or '?'}"
    elif paid == 0:
        error = "paid amount is zero"
    elif paid < 0:
        error = "paid amount is negative"

    method = map_payment_method(method_raw, config)
    net = abs(paid)
    fee_ratio = fee_amount = net_after_fee = None
    if method is PaymentMethod.CARD:
        pct, fee_error = card_fee_percent(method_raw, config)
        if fee_error:
            error = "; ".join(e for e in (error, fee_error) if e)
        else:
            fee_ratio = pct / _HUNDRED
            fee_amount = (net * fee_ratio).quantize(_CENT, rounding=ROUND_HALF_UP)
            net_after_fee = net - fee_amount

    description = f"[LIS {code}] {patient}".strip() if code else patient
    return LedgerImportRow(
        date=row_date,
        description=description,
        amount=net,
        parse_warnings=tuple(warnings),
        error=error,
        external_code=code,
        business_unit_code=unit.code if unit else None,
        business_unit_label=unit.name if unit else unit_label,
        patient_name=patient,
        payer_name=payer,
        operator=_text(row, layout, "operator"),
        is_particular="particular" in fold_lower(payer),
        gross_amount=abs(amounts["gross"]),
        discount_amount=abs(amounts["discount"]),
        surcharge_amount=abs(amounts["surcharge"]),
        payment_method_raw=method_raw,
        payment_method=method,
        card_fee_ratio=fee_ratio,
        card_fee_amount=fee_amount,
        net_after_fee=net_after_fee,
        cash_component=net if method is PaymentMethod.CASH else Decimal("0.00"),
        receivable_component=Decimal("0.00") if method is PaymentMethod.CASH else net,
    )


def parse_lab_rows(grid: Grid, *, config: EngineConfig) -> ParseResult:
    """Parse an already-read cell grid (see :func:`parse_lab_report`)."""

    layout = locate_layout(grid, max_scan=config.header_scan_rows)
    if layout is None:
        _logger.warning("lab report: no header or date-led rows found")
        return ParseResult(records=())
    start, columns = layout

    records: list[LedgerImportRow] = []
    undated = 0
    for row in grid[start:]:
        if _is_skip_row(row):
            continue
        row_date = normalize_date(columns.cell(row, "date"))
        if row_date is None:
            undated += 1
            continue
        records.append(_build_row(row, columns, row_date, config))
    if undated:
        _logger.debug("lab report: dropped %d row(s) with unparsable dates", undated)

    dates = [r.date for r in records]
    return ParseResult(
        records=tuple(records),
        period_start=min(dates) if dates else None,
        period_end=max(dates) if dates else None,
    )


def parse_lab_report(
    data: bytes, *, config: EngineConfig, name: str = "<lab report>"
) -> ParseResult:
    """Read the first sheet of a lab reconciliation workbook and parse its rows."""

    return parse_lab_rows(read_first_sheet(data, name=name), config=config)


__all__ = [
    "card_fee_percent",
    "code_prefix",
    "locate_layout",
    "map_payment_method",
    "parse_lab_report",
    "parse_lab_rows",
    "resolve_business_unit",
]

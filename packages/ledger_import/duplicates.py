"""Duplicate detection against previously imported composite keys.

The engine never queries storage: callers hand in the keys they already hold
for the relevant scope (unit and date range, or a FITID set) and
:func:`mark_duplicates` performs an exact set-membership test.

Public surface:
- ``lab_dedup_key`` / ``bank_dedup_key`` / ``payer_dedup_key``: build the
  composite key of each dialect, so callers can assemble prior-key sets from
  their own rows.
- ``extract_external_code``: recover the external code from a stored
  ``"[LIS <code>] ..."`` description.
- ``mark_duplicates``: flag fresh records whose key is already known.
- ``consolidate_in_file``: merge lab rows that share a key inside one file.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Hashable, Iterable, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import TypeVar

from .models import DedupKey, LedgerImportRow, NormalizedRecord, PaymentMethod
from .normalizers import normalize_amount

_EXTERNAL_CODE_RE = re.compile(r"\[LIS\s+([^\]]+)\]", re.I)
_ZERO = Decimal("0.00")

R = TypeVar("R", bound=NormalizedRecord)


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------


def lab_dedup_key(business_unit_code: str | None, date: str, external_code: str) -> DedupKey:
    return ("lab", business_unit_code, date, external_code)


def payer_dedup_key(provider_name: str, date: str, external_code: str) -> DedupKey:
    return ("payer", provider_name, date, external_code)


def bank_dedup_key(
    *,
    source_id: str | None = None,
    date: str | None = None,
    description: str | None = None,
    amount: Decimal | str | None = None,
) -> DedupKey:
    """FITID key when ``source_id`` is given, else ``(date, description, amount)``."""

    if source_id:
        return ("fitid", source_id)
    if date is None or description is None or amount is None:
        raise ValueError("bank_dedup_key needs source_id or date, description and amount")
    return ("tx", date, description, abs(normalize_amount(amount)))


def extract_external_code(description: str | None) -> str | None:
    if not description:
        return None
    m = _EXTERNAL_CODE_RE.search(description)
    return m.group(1).strip() if m else None


# ---------------------------------------------------------------------------
# Marking and consolidation
# ---------------------------------------------------------------------------


def mark_duplicates(records: Iterable[R], prior_keys: Collection[Hashable]) -> list[R]:
    """Return copies of ``records`` with ``is_duplicate`` set by key membership.

    ``prior_keys`` is only read. Records are never mutated; unchanged records
    are returned as-is.
    """

    out: list[R] = []
    for record in records:
        if record.dedup_key() in prior_keys:
            out.append(replace(record, is_duplicate=True))
        else:
            out.append(record)
    return out


def _merge(group: Sequence[LedgerImportRow]) -> LedgerImportRow:
    first = group[0]
    if len(group) == 1:
        return first

    def total(values: Iterable[Decimal | None]) -> Decimal:
        return sum((v for v in values if v is not None), _ZERO)

    paid = total(r.amount for r in group)
    cash = total(r.amount for r in group if r.payment_method is PaymentMethod.CASH)
    methods = {r.payment_method for r in group}
    method = first.payment_method if len(methods) == 1 else PaymentMethod.MIXED
    has_fee = any(r.card_fee_amount is not None for r in group)
    fee = total(r.card_fee_amount for r in group) if has_fee else None
    errors = [r.error for r in group if r.error]
    warnings = tuple(w for r in group for w in r.parse_warnings)
    labels = dict.fromkeys(r.payment_method_raw for r in group if r.payment_method_raw)
    return replace(
        first,
        amount=paid,
        gross_amount=total(r.gross_amount for r in group),
        discount_amount=total(r.discount_amount for r in group),
        surcharge_amount=total(r.surcharge_amount for r in group),
        payment_method=method,
        payment_method_raw=" / ".join(labels),
        card_fee_ratio=first.card_fee_ratio if method is PaymentMethod.CARD else None,
        card_fee_amount=fee,
        net_after_fee=(paid - fee) if fee is not None else None,
        cash_component=cash,
        receivable_component=paid - cash,
        consolidated_count=len(group),
        error="; ".join(dict.fromkeys(errors)) or None,
        parse_warnings=warnings,
    )


def consolidate_in_file(rows: Iterable[LedgerImportRow]) -> list[LedgerImportRow]:
    """Merge rows sharing ``(business_unit_code, date, external_code)``.

    Amounts are summed; a group paid with more than one method becomes
    ``MIXED`` with its cash part in ``cash_component`` and the rest in
    ``receivable_component``. Rows without an external code are left alone.
    Order of first appearance is preserved.
    """

    groups: dict[DedupKey, list[LedgerImportRow]] = {}
    singles: list[tuple[int, LedgerImportRow]] = []
    order: list[DedupKey | int] = []
    for pos, row in enumerate(rows):
        if not row.external_code:
            singles.append((pos, row))
            order.append(pos)
            continue
        key = row.dedup_key()
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(row)

    by_pos = dict(singles)
    return [by_pos[k] if isinstance(k, int) else _merge(groups[k]) for k in order]


__all__ = [
    "bank_dedup_key",
    "consolidate_in_file",
    "extract_external_code",
    "lab_dedup_key",
    "mark_duplicates",
    "payer_dedup_key",
]

"""Value, date and text normalizers shared by every dialect parser.

Amounts arrive in both Brazilian (``1.234,56``) and international
(``1,234.56``) conventions, sometimes with currency markers, quotes or
accounting parentheses. Dates arrive as ``DD/MM/YYYY``, ``DD/MM/YY``, ISO
``YYYY-MM-DD``, spreadsheet cell ``datetime`` values or numeric spreadsheet
serials.

Amount normalization never raises: unparsable text becomes ``Decimal("0")``
and :func:`parse_amount` reports a warning the caller attaches to the record.
Date normalization returns ``None`` on failure and callers drop the row.
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_CURRENCY_MARKERS = ("R$", "$")


def _quantize(d: Decimal, raw: Any) -> tuple[Decimal, str | None]:
    if not d.is_finite():
        return _ZERO, f"invalid amount: {raw!r}"
    try:
        return d.quantize(_CENT, rounding=ROUND_HALF_UP), None
    except InvalidOperation:
        return _ZERO, f"amount out of range: {raw!r}"


def _strip_markers(s: str) -> tuple[str, bool]:
    negative = False
    # Strip sign, currency marker and parentheses in any order until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        for marker in _CURRENCY_MARKERS:
            if s.upper().startswith(marker):
                s = s[len(marker) :].lstrip()
                changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if s.endswith("-") and len(s) > 1:
            # Trailing minus as printed by some bank exports ("150,00-").
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if not changed:
            break
    return s, negative


def _canonical_number(s: str) -> str:
    last_dot = s.rfind(".")
    last_comma = s.rfind(",")
    if last_dot != -1 and last_comma != -1:
        # Both present: the right-most separator is the decimal point.
        if last_comma > last_dot:
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if last_comma != -1:
        # Comma only: decimal comma. Earlier commas are thousands separators.
        head, _, tail = s.rpartition(",")
        return head.replace(",", "") + "." + tail
    if s.count(".") > 1:
        # "1.234.567" cannot be a decimal number: every dot groups thousands.
        return s.replace(".", "")
    return s


def parse_amount(raw: Any) -> tuple[Decimal, str | None]:
    """Normalize ``raw`` to a signed, cent-quantized ``Decimal``.

    Returns ``(amount, warning)``. ``warning`` is ``None`` on success or when
    the input is blank; otherwise it describes why the amount became zero.
    """

    if raw is None:
        return _ZERO, None
    if isinstance(raw, bool):
        return _ZERO, f"invalid amount: {raw!r}"
    if isinstance(raw, Decimal):
        return _quantize(raw, raw)
    if isinstance(raw, int):
        return _quantize(Decimal(raw), raw)
    if isinstance(raw, float):
        # repr() keeps the shortest round-tripping text (0.1 stays 0.1).
        return _quantize(Decimal(repr(raw)), raw)

    s = str(raw).strip().strip('"').strip("'")
    s = re.sub(r"\s+", "", s)
    if not s:
        return _ZERO, None
    s, negative = _strip_markers(s)
    try:
        d = Decimal(_canonical_number(s))
    except InvalidOperation:
        return _ZERO, f"invalid amount: {raw!r}"
    d, warning = _quantize(d, raw)
    if warning:
        return d, warning
    return (-abs(d) if negative else d), None


def normalize_amount(raw: Any) -> Decimal:
    """Normalize a locale-ambiguous amount; unparsable input yields ``0``.

    ``normalize_amount(str(normalize_amount(x))) == normalize_amount(x)``.
    """

    return parse_amount(raw)[0]


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

# Spreadsheet serials count days from 1899-12-30 (this absorbs the historical
# 1900 leap-year bug for every date after February 1900).
_SERIAL_EPOCH = date(1899, 12, 30)
_SERIAL_MAX = 2958465  # 9999-12-31

_BR_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})(?:[\sT].*)?$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[\sT].*)?$")
_SERIAL = re.compile(r"^\d{1,5}(?:\.\d+)?$")


def _iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _from_serial(serial: float) -> str | None:
    if not math.isfinite(serial) or serial < 1 or serial > _SERIAL_MAX:
        return None
    return (_SERIAL_EPOCH + timedelta(days=int(serial))).isoformat()


def normalize_date(raw: Any) -> str | None:
    """Return ``YYYY-MM-DD`` for ``raw`` or ``None`` when it is not a valid date.

    Two-digit years map to ``20YY``. Invalid calendar dates such as
    ``31/02/2025`` return ``None``.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    if isinstance(raw, (int, float)):
        return _from_serial(float(raw))

    s = str(raw).strip()
    if not s:
        return None
    m = _BR_DATE.match(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        if len(m.group(3)) == 2:
            year += 2000
        return _iso(year, month, day)
    m = _ISO_DATE.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return _iso(year, month, day)
    if _SERIAL.match(s):
        return _from_serial(float(s))
    return None


def compact_date_to_iso(raw: str | None) -> str | None:
    """Convert an OFX-style ``YYYYMMDD`` prefix to ISO; ``None`` when invalid."""

    if not raw:
        return None
    m = re.match(r"^(\d{4})(\d{2})(\d{2})", raw.strip())
    if not m:
        return None
    return _iso(int(m.group(1)), int(m.group(2)), int(m.group(3)))


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def clean_text(value: Any) -> str:
    """Collapse whitespace (including newlines) and strip; ``None`` becomes ``""``."""

    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet codes read as floats ("1234.0").
        value = int(value)
    return re.sub(r"\s+", " ", str(value)).strip()


def fold(value: Any) -> str:
    """Strip diacritics (NFD decomposition, combining marks removed)."""

    decomposed = unicodedata.normalize("NFD", clean_text(value))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_upper(value: Any) -> str:
    return fold(value).upper()


def fold_lower(value: Any) -> str:
    return fold(value).lower()


__all__ = [
    "clean_text",
    "compact_date_to_iso",
    "fold",
    "fold_lower",
    "fold_upper",
    "normalize_amount",
    "normalize_date",
    "parse_amount",
]

# ruff: noqa: E402, I001
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import.normalizers import (
    clean_text,
    compact_date_to_iso,
    fold_lower,
    fold_upper,
    normalize_amount,
    normalize_date,
    parse_amount,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("150,00", Decimal("150.00")),
        ("150.00", Decimal("150.00")),
        ("R$ 1.234,56", Decimal("1234.56")),
        ("-150,00", Decimal("-150.00")),
        ("(150,00)", Decimal("-150.00")),
        ("150,00-", Decimal("-150.00")),
        ('"2.500,10"', Decimal("2500.10")),
        ("1.234.567", Decimal("1234567.00")),
        ("0,005", Decimal("0.01")),
        (Decimal("10.125"), Decimal("10.13")),
        (42, Decimal("42.00")),
        (0.1, Decimal("0.10")),
    ],
)
def test_normalize_amount_handles_both_conventions(raw, expected):
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_amount_is_zero_without_warning(raw):
    assert parse_amount(raw) == (Decimal("0"), None)


@pytest.mark.parametrize("raw", ["abc", "12,3a", float("nan"), float("inf"), True])
def test_unparsable_amount_is_zero_with_warning(raw):
    amount, warning = parse_amount(raw)
    assert amount == 0
    assert warning is not None


@pytest.mark.parametrize("raw", ["1.234,56", "(99,90)", "1,234.56", "R$ 10", "abc"])
def test_normalize_amount_is_idempotent(raw):
    once = normalize_amount(raw)
    assert normalize_amount(str(once)) == once


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("15/03/2025", "2025-03-15"),
        ("5/3/25", "2025-03-05"),
        ("15/03/2025 10:42", "2025-03-15"),
        ("2025-03-15", "2025-03-15"),
        (datetime(2025, 3, 15, 8, 30), "2025-03-15"),
        (date(2025, 3, 15), "2025-03-15"),
        (45731, "2025-03-15"),
        ("45731", "2025-03-15"),
    ],
)
def test_normalize_date_accepts_supported_shapes(raw, expected):
    assert normalize_date(raw) == expected


@pytest.mark.parametrize("raw", ["31/02/2025", "2025-13-01", "", None, "ontem", 0, -5, True])
def test_normalize_date_rejects_invalid(raw):
    assert normalize_date(raw) is None


def test_compact_date_to_iso():
    assert compact_date_to_iso("20250315120000[-3:BRT]") == "2025-03-15"
    assert compact_date_to_iso("20250230") is None
    assert compact_date_to_iso(None) is None


def test_text_helpers():
    assert clean_text("  PIX\n  RECEBIDO  ") == "PIX RECEBIDO"
    assert clean_text(1234.0) == "1234"
    assert clean_text(None) == ""
    assert fold_upper("Mercês") == "MERCES"
    assert fold_lower("CARTÃO DE CRÉDITO") == "cartao de credito"

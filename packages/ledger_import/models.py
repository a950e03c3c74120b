"""Data model shared by every stage of the import pipeline.

Records are frozen, slotted dataclasses. Parsers create them once; the
deduplication checker and the entity matcher derive updated copies with
:func:`dataclasses.replace` and never mutate what they were given.

Amounts are non-negative :class:`~decimal.Decimal` magnitudes quantized to
cents; sign lives in :class:`Direction`. Dates are ISO ``YYYY-MM-DD`` strings.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Direction(StrEnum):
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"


class FileFormat(StrEnum):
    OFX_DIALECT = "OFX_DIALECT"
    DELIMITED_TEXT = "DELIMITED_TEXT"
    SPREADSHEET = "SPREADSHEET"
    SPREADSHEET_ARCHIVE = "SPREADSHEET_ARCHIVE"
    SCANNED_DOCUMENT = "SCANNED_DOCUMENT"
    UNRECOGNIZED = "UNRECOGNIZED"


class PaymentMethod(StrEnum):
    """Closed set of payment methods a lab row can be mapped onto.

    ``MIXED`` is never produced by label mapping; it only appears after
    in-file consolidation merges rows paid with different methods.
    """

    CASH = "CASH"
    PIX = "PIX"
    CARD = "CARD"
    BOLETO = "BOLETO"
    TRANSFER = "TRANSFER"
    MIXED = "MIXED"


class DiscountLevel(StrEnum):
    NONE = "NONE"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


_MEDIUM_FROM = Decimal("0.10")
_HIGH_ABOVE = Decimal("0.30")


def discount_level_for(ratio: Decimal) -> DiscountLevel:
    """Tier a discount ratio: below 10% NONE, 10%..30% MEDIUM, above 30% HIGH."""

    if ratio < _MEDIUM_FROM:
        return DiscountLevel.NONE
    if ratio <= _HIGH_ABOVE:
        return DiscountLevel.MEDIUM
    return DiscountLevel.HIGH


_ZERO = Decimal("0")

type DedupKey = tuple[Hashable, ...]
"""Composite key used for duplicate detection (see :mod:`ledger_import.duplicates`)."""


# ---------------------------------------------------------------------------
# Registry data handed in by callers (plain values, no I/O)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    type: Direction
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Counterparty:
    id: str
    name: str
    expected_amount: Decimal | None = None
    default_category_id: str | None = None


@dataclass(frozen=True, slots=True)
class Registry:
    """Caller's current counterparties and categories."""

    counterparties: tuple[Counterparty, ...] = ()
    categories: tuple[Category, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Registry:
        """Build a registry from plain JSON-like data.

        Expected shape: ``{"counterparties": [{"id", "name", "expected_amount"?,
        "default_category_id"?}], "categories": [{"id", "name", "type",
        "description"?}]}`` where ``type`` is ``INFLOW`` or ``OUTFLOW``.
        """

        counterparties = tuple(
            Counterparty(
                id=str(cp["id"]),
                name=str(cp["name"]),
                expected_amount=(
                    Decimal(str(cp["expected_amount"]))
                    if cp.get("expected_amount") is not None
                    else None
                ),
                default_category_id=cp.get("default_category_id"),
            )
            for cp in data.get("counterparties", ())
        )
        categories = tuple(
            Category(
                id=str(cat["id"]),
                name=str(cat["name"]),
                type=Direction(cat["type"]),
                description=cat.get("description"),
            )
            for cat in data.get("categories", ())
        )
        return cls(counterparties=counterparties, categories=categories)

    def category(self, category_id: str | None) -> Category | None:
        if category_id is None:
            return None
        for cat in self.categories:
            if cat.id == category_id:
                return cat
        return None


@dataclass(frozen=True, slots=True)
class ValueDivergence:
    """Informational annotation: amount differs from the counterparty's expected amount."""

    expected: Decimal
    actual: Decimal
    difference: Decimal


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True)
class NormalizedRecord:
    """Unifying output of every parser.

    ``is_duplicate`` is set only by the deduplication checker and the
    ``matched_*`` / ``match_confidence`` / ``value_divergence`` fields only by
    the entity matcher. ``parse_warnings`` explains soft outcomes such as an
    amount that normalized to zero because its text was unparsable.
    """

    date: str
    description: str
    amount: Decimal
    direction: Direction
    source_id: str | None = None
    parse_warnings: tuple[str, ...] = ()
    error: str | None = None
    is_duplicate: bool = False
    matched_counterparty: Counterparty | None = None
    matched_category: Category | None = None
    match_confidence: int = 0
    value_divergence: ValueDivergence | None = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"amount must be a non-negative magnitude, got {self.amount}")
        if not self.date:
            raise ValueError("date is required")

    @property
    def is_valid(self) -> bool:
        return self.error is None and not self.is_duplicate

    def dedup_key(self) -> DedupKey:
        if self.source_id:
            return ("fitid", self.source_id)
        return ("tx", self.date, self.description, self.amount)


@dataclass(frozen=True, slots=True, kw_only=True)
class LedgerImportRow(NormalizedRecord):
    """A lab-reconciliation row (one paid exam order at a business unit).

    ``discount_ratio`` and ``discount_level`` are derived on access and never
    stored. Card fee fields are ``None`` unless ``payment_method`` is CARD.
    """

    direction: Direction = Direction.INFLOW
    external_code: str
    business_unit_code: str | None
    business_unit_label: str = ""
    patient_name: str = ""
    payer_name: str = ""
    operator: str = ""
    is_particular: bool = False
    gross_amount: Decimal = _ZERO
    discount_amount: Decimal = _ZERO
    surcharge_amount: Decimal = _ZERO
    payment_method_raw: str = ""
    payment_method: PaymentMethod = PaymentMethod.PIX
    card_fee_ratio: Decimal | None = None
    card_fee_amount: Decimal | None = None
    net_after_fee: Decimal | None = None
    consolidated_count: int = 1
    cash_component: Decimal = _ZERO
    receivable_component: Decimal = _ZERO

    @property
    def net_amount(self) -> Decimal:
        return self.amount

    @property
    def discount_ratio(self) -> Decimal:
        # NOTE: assumes gross_amount is already net of this discount.
        denominator = self.gross_amount + self.discount_amount
        if denominator == 0:
            return _ZERO
        return self.discount_amount / denominator

    @property
    def discount_level(self) -> DiscountLevel:
        return discount_level_for(self.discount_ratio)

    def dedup_key(self) -> DedupKey:
        return ("lab", self.business_unit_code, self.date, self.external_code)


@dataclass(frozen=True, slots=True, kw_only=True)
class PayerReportRow(NormalizedRecord):
    """One billed row from a payer (insurer) report inside an archive."""

    direction: Direction = Direction.INFLOW
    external_code: str
    provider_name: str
    row_index: int
    patient_name: str = ""
    company_name: str = ""
    exam_list: str = ""
    report_period_start: str | None = None
    report_period_end: str | None = None

    def dedup_key(self) -> DedupKey:
        return ("payer", self.provider_name, self.date, self.external_code)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PayerReportFile:
    filename: str
    provider_name: str
    is_particular: bool
    rows: tuple[PayerReportRow, ...]
    period_start: str | None = None
    period_end: str | None = None


@dataclass(frozen=True, slots=True)
class SkippedEntry:
    """An archive entry or document page left out of the result, with the reason."""

    name: str
    reason: str


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Dialect parser output before deduplication and matching."""

    records: tuple[NormalizedRecord, ...]
    period_start: str | None = None
    period_end: str | None = None
    institution_name: str | None = None
    account_id: str | None = None
    statement_start: str | None = None
    statement_end: str | None = None
    provider_files: tuple[PayerReportFile, ...] = ()
    skipped: tuple[SkippedEntry, ...] = ()
    pages_total: int | None = None


@dataclass(frozen=True, slots=True)
class ImportBatchResult:
    """Final per-file result handed to the persistence/review layer.

    Format-specific metadata (institution, account, payer files) lives here
    rather than on individual records.
    """

    file_name: str
    file_format: FileFormat
    records: tuple[NormalizedRecord, ...]
    period_start: str | None = None
    period_end: str | None = None
    institution_name: str | None = None
    account_id: str | None = None
    statement_start: str | None = None
    statement_end: str | None = None
    provider_files: tuple[PayerReportFile, ...] = ()
    skipped: tuple[SkippedEntry, ...] = ()
    pages_total: int | None = None

    @property
    def total_records(self) -> int:
        return len(self.records)

    @property
    def valid_records(self) -> int:
        return sum(1 for r in self.records if r.is_valid)

    @property
    def invalid_records(self) -> int:
        return sum(1 for r in self.records if r.error is not None)

    @property
    def duplicate_records(self) -> int:
        return sum(1 for r in self.records if r.is_duplicate)

    @property
    def matched_records(self) -> int:
        return sum(1 for r in self.records if r.matched_counterparty is not None)

    @property
    def providers_count(self) -> int:
        return len(self.provider_files)


@dataclass(frozen=True, slots=True)
class FileImportOutcome:
    """Outcome of one file within a multi-file batch."""

    file_name: str
    result: ImportBatchResult | None = None
    error: str | None = None
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None


__all__ = [
    "Category",
    "Counterparty",
    "DedupKey",
    "Direction",
    "DiscountLevel",
    "FileFormat",
    "FileImportOutcome",
    "ImportBatchResult",
    "LedgerImportRow",
    "NormalizedRecord",
    "ParseResult",
    "PayerReportFile",
    "PayerReportRow",
    "PaymentMethod",
    "Registry",
    "SkippedEntry",
    "ValueDivergence",
    "discount_level_for",
]

"""Engine configuration: every lookup table the parsers and matcher consult.

Tables are immutable pydantic models built once and passed into the engine
(``LedgerImporter(config=...)``); nothing here is a module-level mutable
global. :func:`default_config` returns the built-in clinic tables and
:func:`load_config` validates a JSON override file, where any key left out
keeps its default.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import PaymentMethod
from .normalizers import fold_lower, fold_upper


class BusinessUnit(BaseModel):
    """An operational site whose code or name appears in lab rows."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    code: str
    name: str
    keywords: tuple[str, ...] = ()

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        if not v:
            raise ValueError("business unit code must be non-empty")
        return v.upper()


class CardFeeRule(BaseModel):
    """Configured card fee, looked up by a credit/debit keyword in its name."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str
    fee_percent: Decimal = Field(ge=0, le=100)


_DEFAULT_UNITS: tuple[BusinessUnit, ...] = (
    BusinessUnit(code="CTL", name="Rio Pomba", keywords=("rio pomba", "central")),
    BusinessUnit(code="MRC", name="Mercês", keywords=("merces",)),
    BusinessUnit(code="GUA", name="Guarani", keywords=("guarani",)),
    BusinessUnit(code="SIL", name="Silveirânia", keywords=("silveirania",)),
)

_DEFAULT_METHOD_SYNONYMS: dict[str, PaymentMethod] = {
    "dinheiro": PaymentMethod.CASH,
    "especie": PaymentMethod.CASH,
    "pix": PaymentMethod.PIX,
    "cartao de credito": PaymentMethod.CARD,
    "cartao de debito": PaymentMethod.CARD,
    "c. credito": PaymentMethod.CARD,
    "c. debito": PaymentMethod.CARD,
    "boleto": PaymentMethod.BOLETO,
    "transferencia": PaymentMethod.TRANSFER,
    "ted": PaymentMethod.TRANSFER,
    "doc": PaymentMethod.TRANSFER,
    "nao informado": PaymentMethod.PIX,
    "n. informado": PaymentMethod.PIX,
    "": PaymentMethod.PIX,
}

# Ordered: first keyword contained in the label wins.
_DEFAULT_METHOD_KEYWORDS: tuple[tuple[str, PaymentMethod], ...] = (
    ("dinheiro", PaymentMethod.CASH),
    ("pix", PaymentMethod.PIX),
    ("cart", PaymentMethod.CARD),
    ("credito", PaymentMethod.CARD),
    ("debito", PaymentMethod.CARD),
    ("boleto", PaymentMethod.BOLETO),
    ("transf", PaymentMethod.TRANSFER),
)

_DEFAULT_COUNTERPARTY_PATTERNS: dict[str, tuple[str, ...]] = {
    "maria lucia": ("MARIA LUCIA", "MARIALUCIA", "M LUCIA", "ALUGUEL MARIA"),
    "lab shopping": ("LAB SHOPPING", "LABSHOPPING", "LAB SHOP"),
    "db diagnosticos": ("DB DIAGN", "DB MOLEC", "DBMOLEC", "DB DIAGNOS"),
    "central de art": ("CENTRAL ART", "CENTRAL DE ART", "CENTRALART"),
    "unimed": ("UNIMED", "UNIAO MEDICA"),
    "cassi": ("CASSI", "CAIXA DE ASSIST"),
    "prefeitura": (
        "PREFEITURA",
        "MUNICIPIO",
        "PMRP",
        "PMMERC",
        "PMRIB",
        "PMUBE",
        "SECRETARIA SAUDE",
    ),
    "vivo": ("VIVO", "TELEFONICA"),
    "copasa": ("COPASA", "SANEAMENTO"),
    "cemig": ("CEMIG", "ENERGIA ELETRICA"),
    "contador": ("CONTADOR", "CONTABILIDADE"),
}

_DEFAULT_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "aluguel": ("ALUGUEL", "LOCACAO"),
    "energia": ("CEMIG", "ENERGIA", "ELETRICA", "CPFL"),
    "agua": ("COPASA", "SABESP", "AGUA", "SANEAMENTO"),
    "telefone": ("VIVO", "TIM", "CLARO", "OI", "TELEFONE", "TELEFONICA"),
    "internet": ("INTERNET", "FIBRA", "BANDA LARGA"),
    "laboratorio": ("LABORAT", "EXAME", "ANALISE"),
    "convenio": ("UNIMED", "CASSI", "BRADESCO SAUDE", "SULAMERICA"),
}


class EngineConfig(BaseModel):
    """Immutable lookup tables and tunables for one engine instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    business_units: tuple[BusinessUnit, ...] = _DEFAULT_UNITS
    payment_method_synonyms: Mapping[str, PaymentMethod] = Field(
        default_factory=lambda: dict(_DEFAULT_METHOD_SYNONYMS)
    )
    payment_method_keywords: tuple[tuple[str, PaymentMethod], ...] = _DEFAULT_METHOD_KEYWORDS
    default_payment_method: PaymentMethod = PaymentMethod.PIX
    card_fees: tuple[CardFeeRule, ...] = ()
    credit_fee_fallback_percent: Decimal = Decimal("2.99")
    debit_fee_fallback_percent: Decimal = Decimal("1.99")
    require_card_fee_config: bool = False
    counterparty_patterns: Mapping[str, tuple[str, ...]] = Field(
        default_factory=lambda: dict(_DEFAULT_COUNTERPARTY_PATTERNS)
    )
    category_keywords: Mapping[str, tuple[str, ...]] = Field(
        default_factory=lambda: dict(_DEFAULT_CATEGORY_KEYWORDS)
    )
    divergence_epsilon: Decimal = Decimal("0.01")
    header_scan_rows: int = Field(default=20, ge=1)
    file_concurrency: int = Field(default=2, ge=1)
    consolidate_lab_rows: bool = True

    @field_validator("payment_method_synonyms")
    @classmethod
    def _fold_synonyms(cls, v: Mapping[str, PaymentMethod]) -> dict[str, PaymentMethod]:
        return {fold_lower(k): PaymentMethod(m) for k, m in v.items()}

    @field_validator("payment_method_keywords")
    @classmethod
    def _fold_method_keywords(
        cls, v: tuple[tuple[str, PaymentMethod], ...]
    ) -> tuple[tuple[str, PaymentMethod], ...]:
        return tuple((fold_lower(k), PaymentMethod(m)) for k, m in v)

    @field_validator("counterparty_patterns", "category_keywords")
    @classmethod
    def _fold_pattern_table(cls, v: Mapping[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
        return {k: tuple(fold_upper(p) for p in pats if fold_upper(p)) for k, pats in v.items()}

    def unit_by_label(self, label: str) -> BusinessUnit | None:
        folded = fold_lower(label)
        if not folded:
            return None
        for unit in self.business_units:
            if folded in (unit.code.lower(), fold_lower(unit.name)):
                return unit
        return None

    def unit_by_code(self, code: str) -> BusinessUnit | None:
        code = code.strip().upper()
        return next((u for u in self.business_units if u.code == code), None)


def default_config() -> EngineConfig:
    return EngineConfig()


def load_config(path: str | Path) -> EngineConfig:
    """Load and validate an :class:`EngineConfig` from a JSON file."""

    raw: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"config file must hold a JSON object: {path}")
    return EngineConfig.model_validate(raw)


__all__ = [
    "BusinessUnit",
    "CardFeeRule",
    "EngineConfig",
    "default_config",
    "load_config",
]

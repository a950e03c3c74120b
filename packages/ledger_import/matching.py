"""Counterparty and category suggestions for bank-statement records.

Tiers are tried in order and the first hit wins:

1. Pattern dictionary (confidence 90): a curated table maps name variants
   found in statement descriptions to a canonical counterparty key; the key is
   then looked up among the caller's counterparties by name containment.
2. Direct name containment (confidence 75): the description contains a
   counterparty's registered name, or one of its words longer than three
   characters.
3. Category keyword fallback (confidence 50): only a category is suggested,
   and only one whose type matches the record's direction.

Descriptions and names are compared diacritic-stripped and upper-cased.
Category keywords of three characters or fewer (``OI``, ``TIM``) must match
a whole word so they do not fire inside longer words.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from functools import lru_cache
from typing import TypeVar

from .config import EngineConfig
from .logging_setup import get_logger
from .models import (
    Category,
    Counterparty,
    NormalizedRecord,
    Registry,
    ValueDivergence,
)
from .normalizers import fold_lower, fold_upper

_logger = get_logger("ledger_import.matching")

PATTERN_CONFIDENCE = 90
NAME_CONFIDENCE = 75
KEYWORD_CONFIDENCE = 50

_SHORT_KEYWORD_LEN = 3

R = TypeVar("R", bound=NormalizedRecord)


@dataclass(frozen=True, slots=True)
class MatchResult:
    counterparty: Counterparty | None = None
    category: Category | None = None
    confidence: int = 0
    divergence: ValueDivergence | None = None


_NO_MATCH = MatchResult()


@lru_cache(maxsize=256)
def _word_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![A-Z0-9]){re.escape(keyword)}(?![A-Z0-9])")


def _has_keyword(text: str, keyword: str) -> bool:
    if len(keyword) <= _SHORT_KEYWORD_LEN:
        return _word_pattern(keyword).search(text) is not None
    return keyword in text


class EntityMatcher:
    """Tiered matcher built from immutable pattern and keyword tables."""

    def __init__(
        self,
        *,
        patterns: Mapping[str, Sequence[str]],
        category_keywords: Mapping[str, Sequence[str]],
        divergence_epsilon: Decimal = Decimal("0.01"),
    ) -> None:
        self._patterns = {
            key: tuple(fold_upper(p) for p in pats if fold_upper(p))
            for key, pats in patterns.items()
        }
        self._category_keywords = {
            key: tuple(fold_upper(k) for k in kws if fold_upper(k))
            for key, kws in category_keywords.items()
        }
        self._epsilon = divergence_epsilon

    @classmethod
    def from_config(cls, config: EngineConfig) -> EntityMatcher:
        return cls(
            patterns=config.counterparty_patterns,
            category_keywords=config.category_keywords,
            divergence_epsilon=config.divergence_epsilon,
        )

    # ---- tiers ---------------------------------------------------------------

    def _by_pattern(self, desc: str, registry: Registry) -> Counterparty | None:
        for key, variants in self._patterns.items():
            if not any(v in desc for v in variants):
                continue
            folded_key = fold_lower(key)
            for cp in registry.counterparties:
                name = fold_lower(cp.name)
                if name and (folded_key in name or name in folded_key):
                    return cp
        return None

    def _by_name(self, desc: str, registry: Registry) -> Counterparty | None:
        for cp in registry.counterparties:
            name = fold_upper(cp.name)
            if not name:
                continue
            if name in desc or any(w in desc for w in name.split() if len(w) > 3):
                return cp
        return None

    def _by_keyword(
        self, desc: str, record: NormalizedRecord, registry: Registry
    ) -> Category | None:
        for key, keywords in self._category_keywords.items():
            if not any(_has_keyword(desc, k) for k in keywords):
                continue
            folded_key = fold_lower(key)
            for cat in registry.categories:
                if cat.type != record.direction:
                    continue
                if folded_key in fold_lower(cat.name) or folded_key in fold_lower(cat.description):
                    return cat
        return None

    # ---- public --------------------------------------------------------------

    def match(self, record: NormalizedRecord, registry: Registry) -> MatchResult:
        desc = fold_upper(record.description)
        if not desc:
            return _NO_MATCH

        confidence = PATTERN_CONFIDENCE
        counterparty = self._by_pattern(desc, registry)
        if counterparty is None:
            confidence = NAME_CONFIDENCE
            counterparty = self._by_name(desc, registry)
        if counterparty is not None:
            return MatchResult(
                counterparty=counterparty,
                category=registry.category(counterparty.default_category_id),
                confidence=confidence,
                divergence=self._divergence(record, counterparty),
            )

        category = self._by_keyword(desc, record, registry)
        if category is not None:
            return MatchResult(category=category, confidence=KEYWORD_CONFIDENCE)
        return _NO_MATCH

    def _divergence(self, record: NormalizedRecord, cp: Counterparty) -> ValueDivergence | None:
        if cp.expected_amount is None:
            return None
        difference = record.amount - cp.expected_amount
        if abs(difference) <= self._epsilon:
            return None
        return ValueDivergence(
            expected=cp.expected_amount, actual=record.amount, difference=difference
        )

    def enrich(self, records: Iterable[R], registry: Registry) -> list[R]:
        """Return copies of ``records`` carrying their match suggestion."""

        out: list[R] = []
        matched = 0
        for record in records:
            result = self.match(record, registry)
            if result.confidence == 0:
                out.append(record)
                continue
            matched += result.counterparty is not None
            out.append(
                replace(
                    record,
                    matched_counterparty=result.counterparty,
                    matched_category=result.category,
                    match_confidence=result.confidence,
                    value_divergence=result.divergence,
                )
            )
        _logger.debug("matching: %d of %d record(s) matched a counterparty", matched, len(out))
        return out


__all__ = [
    "KEYWORD_CONFIDENCE",
    "NAME_CONFIDENCE",
    "PATTERN_CONFIDENCE",
    "EntityMatcher",
    "MatchResult",
]

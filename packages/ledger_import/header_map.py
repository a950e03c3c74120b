"""Keyword-driven header discovery for tabular imports.

A :class:`HeaderResolver` takes an ordered table of :class:`FieldRule` entries
and maps logical field names to column indexes for one header row. Matching is
done on diacritic-stripped, lower-cased cell text. Rules are evaluated in
order and a column claimed by an earlier rule is not offered to later rules,
so ``credito`` is never also read as the generic ``valor`` column.

Resolution is kept separate from row extraction: parsers resolve once, then
read cells through the returned :class:`HeaderMap`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .normalizers import fold_lower


@dataclass(frozen=True, slots=True)
class FieldRule:
    """How to recognize one logical column.

    - ``exact``: cell text equal to one of these wins first.
    - ``keywords``: otherwise the first column whose text contains one of these.
    - ``exclude``: a column containing any of these is never matched.
    """

    name: str
    keywords: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not text or any(x in text for x in self.exclude):
            return False
        if text in self.exact:
            return True
        return any(k in text for k in self.keywords)


@dataclass(frozen=True, slots=True)
class HeaderMap:
    """Resolved mapping from logical field name to 0-based column index."""

    columns: Mapping[str, int] = field(default_factory=dict)
    header_row: int | None = None
    unplaced: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def get(self, name: str) -> int | None:
        return self.columns.get(name)

    def missing(self, names: Sequence[str]) -> list[str]:
        return [n for n in names if n not in self.columns]

    def cell(self, row: Sequence[Any], name: str) -> Any:
        """Return the cell for ``name`` in ``row`` or ``None`` when absent/short."""

        idx = self.columns.get(name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    def with_fallback(self, positions: Mapping[str, int]) -> HeaderMap:
        """Fill fields this map could not resolve from a fixed positional layout.

        A fallback position already claimed by a resolved column is not reused;
        the field stays absent and is listed in ``unplaced``.
        """

        taken = set(self.columns.values())
        merged = dict(self.columns)
        unplaced: list[str] = []
        for name, idx in positions.items():
            if name in merged:
                continue
            if idx in taken:
                unplaced.append(name)
                continue
            merged[name] = idx
            taken.add(idx)
        return HeaderMap(columns=merged, header_row=self.header_row, unplaced=tuple(unplaced))


class HeaderResolver:
    """Resolve header cells against an ordered rule table."""

    def __init__(self, rules: Sequence[FieldRule]) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[FieldRule, ...]:
        return self._rules

    def resolve(self, cells: Sequence[Any], *, row_index: int | None = None) -> HeaderMap:
        texts = [fold_lower(c) for c in cells]
        claimed: set[int] = set()
        columns: dict[str, int] = {}
        for rule in self._rules:
            # Exact hits take precedence over substring hits for the same rule.
            idx = next(
                (i for i, t in enumerate(texts) if i not in claimed and t and t in rule.exact),
                None,
            )
            if idx is None:
                idx = next(
                    (i for i, t in enumerate(texts) if i not in claimed and rule.matches(t)),
                    None,
                )
            if idx is not None:
                columns[rule.name] = idx
                claimed.add(idx)
        return HeaderMap(columns=columns, header_row=row_index)


def find_header_row(
    rows: Sequence[Sequence[Any]],
    accept: Callable[[Sequence[Any]], bool],
    *,
    max_scan: int,
) -> int | None:
    """Return the index of the first row within ``max_scan`` rows that ``accept`` likes."""

    for i, row in enumerate(rows[:max_scan]):
        if accept(row):
            return i
    return None


def joined_text(row: Sequence[Any]) -> str:
    """Folded, lower-cased text of every cell joined with spaces."""

    return " ".join(t for t in (fold_lower(c) for c in row) if t)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

BANK_DELIMITED_RULES: tuple[FieldRule, ...] = (
    FieldRule("date", keywords=("data", "date")),
    # Credit/debit must be claimed before the generic amount column.
    FieldRule("credit", keywords=("credito", "credit")),
    FieldRule("debit", keywords=("debito", "debit")),
    FieldRule("amount", keywords=("valor", "amount", "value")),
    FieldRule("description", keywords=("descr", "memo", "historic", "lancamento")),
    FieldRule("details", keywords=("detalhe", "details", "observ")),
)

LAB_REPORT_RULES: tuple[FieldRule, ...] = (
    FieldRule("date", keywords=("data cad", "data")),
    FieldRule("unit", keywords=("unidade", "posto", "local")),
    FieldRule("code", exact=("codigo", "cod", "cod."), keywords=("codigo",)),
    FieldRule("patient", keywords=("paciente", "nome")),
    FieldRule("payer", keywords=("convenio", "pagador", "plano")),
    FieldRule("gross", keywords=("bruto", "valor total", "total", "pedido")),
    FieldRule("discount", keywords=("desconto", "desc")),
    FieldRule("surcharge", keywords=("acrescimo", "acresc")),
    FieldRule("paid", keywords=("pago", "recebido", "liquido")),
    FieldRule("method", keywords=("forma", "pagamento", "pgto", "form. pag", "form pag")),
    FieldRule("operator", keywords=("operador", "usuario", "atendente")),
)

# Fixed column layout of the lab export, used for fields the header cannot name.
LAB_REPORT_POSITIONS: Mapping[str, int] = {
    "date": 0,
    "unit": 1,
    "code": 2,
    "patient": 3,
    "payer": 4,
    "gross": 5,
    "discount": 6,
    "surcharge": 7,
    "paid": 8,
    "method": 9,
    "operator": 10,
}

PAYER_REPORT_RULES: tuple[FieldRule, ...] = (
    FieldRule("date", keywords=("data",)),
    FieldRule("code", exact=("codigo", "cod", "cod.")),
    FieldRule("company", keywords=("empresa",)),
    FieldRule("patient", keywords=("paciente", "nome"), exclude=("empresa",)),
    FieldRule("exams", keywords=("exame",)),
    FieldRule("amount", keywords=("valor",)),
)


__all__ = [
    "BANK_DELIMITED_RULES",
    "FieldRule",
    "HeaderMap",
    "HeaderResolver",
    "LAB_REPORT_POSITIONS",
    "LAB_REPORT_RULES",
    "PAYER_REPORT_RULES",
    "find_header_row",
    "joined_text",
]

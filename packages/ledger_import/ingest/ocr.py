"""OCR bridge for scanned or PDF bank statements.

Pages are rasterized one at a time and sent to an OCR collaborator that
answers with an explicit tagged result: :class:`OcrOk` carrying raw
transaction items, or :class:`OcrErr` carrying a reason. Every raw item is
validated and coerced by :class:`OcrTransaction` before it becomes a
:class:`~ledger_import.models.NormalizedRecord`; invalid items are dropped
with a warning.

Pages of one document are processed sequentially. A page that fails to
render or to read is skipped and recorded; it never aborts the document.
When the caller's ``should_stop`` returns true, no further pages are sent.

Collaborators shipped here:

- :class:`PyMuPdfRasterizer`: renders PDF pages with PyMuPDF; image files pass
  through as a single page.
- :class:`OpenAIVisionOcr`: reads a page image with the OpenAI Responses API.
"""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal, Protocol

import fitz  # PyMuPDF
from openai import OpenAI
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..errors import UnreadableDocumentError
from ..logging_setup import get_logger
from ..models import Direction, NormalizedRecord, ParseResult, SkippedEntry
from ..normalizers import clean_text, normalize_date, parse_amount

_logger = get_logger("ledger_import.ingest.ocr")

# ---- Tunables (private) ------------------------------------------------------

_RENDER_SCALE: float = 2.0
_MODEL: str = "gpt-4o"

_PROMPT = (
    "You read one page of a Brazilian bank statement. Extract every transaction "
    "on the page. For each, return: date (YYYY-MM-DD), description (text as "
    "printed), amount (absolute number, dot as decimal separator) and type "
    '("ENTRADA" for credits, "SAIDA" for debits). Ignore balances, running '
    "totals and headers. Answer with a JSON array only, no prose. If the page "
    "has no transactions answer []."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


# ---------------------------------------------------------------------------
# Boundary model and tagged result
# ---------------------------------------------------------------------------


class OcrTransaction(BaseModel):
    """One OCR tuple after boundary validation."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    date: str
    description: str
    amount: Decimal
    type: Literal["ENTRADA", "SAIDA"]

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, v: Any) -> str:
        iso = normalize_date(v)
        if iso is None:
            raise ValueError(f"unparsable date: {v!r}")
        return iso

    @field_validator("description", mode="before")
    @classmethod
    def _non_empty(cls, v: Any) -> str:
        text = clean_text(v)
        if not text:
            raise ValueError("description must be non-empty")
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def _magnitude(cls, v: Any) -> Decimal:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("amount is required")
        amount, warning = parse_amount(v)
        if warning:
            raise ValueError(warning)
        return abs(amount)

    @field_validator("type", mode="before")
    @classmethod
    def _direction_label(cls, v: Any) -> str:
        # Anything other than an explicit credit is read as a debit.
        return "ENTRADA" if clean_text(v).upper() == "ENTRADA" else "SAIDA"

    def to_record(self) -> NormalizedRecord:
        return NormalizedRecord(
            date=self.date,
            description=self.description,
            amount=self.amount,
            direction=Direction.INFLOW if self.type == "ENTRADA" else Direction.OUTFLOW,
        )


@dataclass(frozen=True, slots=True)
class OcrOk:
    items: tuple[Mapping[str, Any], ...]


@dataclass(frozen=True, slots=True)
class OcrErr:
    reason: str


type OcrResult = OcrOk | OcrErr
"""Tagged OCR answer for one page."""


class OcrClient(Protocol):
    def extract(self, image: bytes, *, page_number: int) -> OcrResult: ...


type PageRender = Callable[[], bytes]
"""Renders one page to image bytes when called; may raise."""


class Rasterizer(Protocol):
    def pages(self, data: bytes, *, file_name: str) -> Iterator[PageRender]: ...


def coerce_items(items: Sequence[Any], *, where: str = "") -> list[OcrTransaction]:
    """Validate raw OCR items, dropping (and logging) the invalid ones."""

    out: list[OcrTransaction] = []
    for item in items:
        if not isinstance(item, Mapping):
            _logger.warning("ocr%s: dropping non-object item %r", where, item)
            continue
        try:
            out.append(OcrTransaction.model_validate(dict(item)))
        except ValidationError as exc:
            _logger.warning(
                "ocr%s: dropping invalid item (%d error(s)): %r", where, exc.error_count(), item
            )
    return out


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------


class OcrBridge:
    """Fold per-page OCR answers into one statement-shaped parse result."""

    def __init__(self, client: OcrClient, rasterizer: Rasterizer | None = None) -> None:
        self._client = client
        self._rasterizer = rasterizer if rasterizer is not None else PyMuPdfRasterizer()

    def read_statement(
        self,
        data: bytes,
        *,
        file_name: str,
        should_stop: Callable[[], bool] | None = None,
    ) -> ParseResult:
        records: list[NormalizedRecord] = []
        skipped: list[SkippedEntry] = []
        pages = 0
        for page_number, render in enumerate(
            self._rasterizer.pages(data, file_name=file_name), start=1
        ):
            if should_stop is not None and should_stop():
                _logger.info("ocr %s: stopped before page %d", file_name, page_number)
                skipped.append(
                    SkippedEntry(name=f"{file_name}#page{page_number}", reason="aborted by caller")
                )
                break
            pages += 1
            where = f" {file_name} p{page_number}"
            try:
                image = render()
            except Exception as exc:  # noqa: BLE001 - a broken page never aborts the document
                result: OcrResult = OcrErr(reason=f"render failed: {type(exc).__name__}: {exc}")
            else:
                try:
                    result = self._client.extract(image, page_number=page_number)
                except Exception as exc:  # noqa: BLE001
                    result = OcrErr(reason=f"{type(exc).__name__}: {exc}")
            if isinstance(result, OcrErr):
                _logger.warning("ocr%s: page skipped: %s", where, result.reason)
                skipped.append(
                    SkippedEntry(name=f"{file_name}#page{page_number}", reason=result.reason)
                )
                continue
            records.extend(tx.to_record() for tx in coerce_items(result.items, where=where))

        records.sort(key=lambda r: r.date, reverse=True)
        dates = [r.date for r in records]
        _logger.info(
            "ocr %s: %d page(s), %d transaction(s), %d page(s) skipped",
            file_name,
            pages,
            len(records),
            len(skipped),
        )
        return ParseResult(
            records=tuple(records),
            period_start=min(dates) if dates else None,
            period_end=max(dates) if dates else None,
            skipped=tuple(skipped),
            pages_total=pages,
        )


# ---------------------------------------------------------------------------
# Default collaborators
# ---------------------------------------------------------------------------


class PyMuPdfRasterizer:
    """Render PDF pages to PNG with PyMuPDF; images pass through as one page.

    Each yielded callable renders its page on demand while the document is
    open, so one page failing to render leaves the others readable.
    """

    def __init__(self, scale: float = _RENDER_SCALE) -> None:
        self._scale = scale

    def pages(self, data: bytes, *, file_name: str) -> Iterator[PageRender]:
        if data.lstrip()[:4] != b"%PDF":
            yield lambda: data
            return
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001 - PyMuPDF raises several error types
            raise UnreadableDocumentError(f"{file_name}: unreadable PDF ({exc})") from exc
        with doc:
            matrix = fitz.Matrix(self._scale, self._scale)
            for page in doc:
                yield lambda page=page: page.get_pixmap(matrix=matrix, alpha=False).tobytes("png")


def _image_mime(image: bytes) -> str:
    if image.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return "image/png"


def _response_text(resp: Any) -> str:
    """Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``."""

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                text = getattr(content[0], "text", None)
        except Exception:  # noqa: BLE001 - tolerate SDK shape differences
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("unexpected Responses API shape; no text output")
    return text


def decode_items(text: str) -> list[Any]:
    """Decode the model's JSON answer, tolerating a Markdown code fence."""

    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    decoded = json.loads(cleaned)
    if isinstance(decoded, Mapping):
        decoded = decoded.get("transactions", [])
    if not isinstance(decoded, list):
        raise ValueError("OCR answer is not a JSON array")
    return decoded


class OpenAIVisionOcr:
    """OCR collaborator backed by the OpenAI Responses API (vision input)."""

    def __init__(self, client: Any | None = None, *, model: str = _MODEL) -> None:
        self._client = client if client is not None else OpenAI()
        self._model = model

    def extract(self, image: bytes, *, page_number: int) -> OcrResult:
        data_url = f"data:{_image_mime(image)};base64,{base64.b64encode(image).decode('ascii')}"
        try:
            resp = self._client.responses.create(
                model=self._model,
                instructions=_PROMPT,
                input=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_text", "text": f"Statement page {page_number}."},
                            {"type": "input_image", "image_url": data_url},
                        ],
                    }
                ],
            )
            items = decode_items(_response_text(resp))
        except Exception as exc:  # noqa: BLE001 - transport, API and decode failures fail the page
            return OcrErr(reason=f"{type(exc).__name__}: {exc}")
        return OcrOk(items=tuple(items))


__all__ = [
    "OcrBridge",
    "OcrClient",
    "OcrErr",
    "OcrOk",
    "OcrResult",
    "OcrTransaction",
    "OpenAIVisionOcr",
    "PageRender",
    "PyMuPdfRasterizer",
    "Rasterizer",
    "coerce_items",
    "decode_items",
]

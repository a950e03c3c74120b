"""Test doubles for the OCR bridge.

- ``ScriptedOcr``: an ``OcrClient`` answering from a per-page script. A script
  entry may be a list of raw items, an ``OcrErr`` or an exception to raise.
- ``FakeRasterizer``: yields renderers for a fixed number of fake page images;
  pages listed in ``fail_on`` raise when rendered.
- ``ResponsesStub``: minimal stand-in for ``openai.OpenAI`` exposing
  ``.responses.create(**kwargs)`` with an ``output_text`` answer.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator, Sequence
from typing import Any

from ledger_import.ingest.ocr import OcrErr, OcrOk, OcrResult, PageRender


class ScriptedOcr:
    def __init__(self, script: Sequence[Any]) -> None:
        self._script = list(script)
        self.calls: list[int] = []

    def extract(self, image: bytes, *, page_number: int) -> OcrResult:
        self.calls.append(page_number)
        entry = self._script[page_number - 1]
        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, OcrErr):
            return entry
        return OcrOk(items=tuple(entry))


class FakeRasterizer:
    def __init__(self, page_count: int, *, fail_on: Collection[int] = ()) -> None:
        self.page_count = page_count
        self.fail_on = set(fail_on)

    def _render(self, n: int) -> bytes:
        if n in self.fail_on:
            raise RuntimeError(f"cannot render page {n}")
        return b"\x89PNG\r\n\x1a\n" + f"page-{n}".encode()

    def pages(self, data: bytes, *, file_name: str) -> Iterator[PageRender]:
        for n in range(1, self.page_count + 1):
            yield lambda n=n: self._render(n)


class _Resp:
    def __init__(self, text: str) -> None:
        self.output_text = text


class ResponsesStub:
    """Records ``responses.create`` kwargs and answers with canned text."""

    def __init__(self, answers: Sequence[str | BaseException]) -> None:
        self._answers = list(answers)
        self.calls: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: ResponsesStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> _Resp:
                self._outer.calls.append(kwargs)
                answer = self._outer._answers.pop(0)
                if isinstance(answer, BaseException):
                    raise answer
                return _Resp(answer)

        self.responses = _Responses(self)

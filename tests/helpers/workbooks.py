"""Build small workbook and archive fixtures in memory.

Workbooks are written with ``openpyxl`` so both the lab-report adapter and the
payer-report adapter can be exercised through ``pandas.read_excel`` exactly as
they are in production. Cell values are written as given (strings stay
strings), which mirrors exports where dates arrive as ``DD/MM/YYYY`` text.
"""

from __future__ import annotations

import zipfile
from collections.abc import Iterable, Mapping, Sequence
from io import BytesIO
from typing import Any

from openpyxl import Workbook


def xlsx_bytes(rows: Iterable[Sequence[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def zip_bytes(entries: Mapping[str, bytes]) -> bytes:
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def payer_report_rows(
    rows: Iterable[Sequence[Any]],
    *,
    period: str | None = "01/03/2025 a 31/03/2025",
) -> list[list[Any]]:
    """A payer report grid: optional title with period, header, then ``rows``."""

    grid: list[list[Any]] = []
    if period:
        grid.append([f"Relatório de faturamento {period}"])
        grid.append([])
    grid.append(["Data", "Código", "Paciente", "Empresa", "Exames", "Valor"])
    grid.extend(list(r) for r in rows)
    return grid


def set_compression_method(archive: bytes, name: str, method: int) -> bytes:
    """Rewrite the compression method recorded for entry ``name``.

    Both the central directory record and the local header are patched, which
    lets tests produce entries ``zipfile`` cannot decompress (e.g. Deflate64).
    """

    buf = bytearray(archive)
    target = name.encode()
    pos = buf.find(b"PK\x01\x02")
    while pos != -1:
        name_len = int.from_bytes(buf[pos + 28 : pos + 30], "little")
        if bytes(buf[pos + 46 : pos + 46 + name_len]) == target:
            buf[pos + 10 : pos + 12] = method.to_bytes(2, "little")
            local = int.from_bytes(buf[pos + 42 : pos + 46], "little")
            buf[local + 8 : local + 10] = method.to_bytes(2, "little")
        pos = buf.find(b"PK\x01\x02", pos + 4)
    return bytes(buf)

"""Read the first sheet of a workbook into a plain grid of cell values.

Both legacy (``.xls``, via ``xlrd``) and modern (``.xlsx``, via ``openpyxl``)
workbooks are read through :func:`pandas.read_excel`. The engine is chosen
from the file's magic bytes rather than its name, so an OOXML file saved with
a ``.xls`` name still opens. Empty cells come back as ``None``.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any

import pandas as pd

from ..detect import sniff_spreadsheet_engine
from ..errors import UnreadableSpreadsheetError
from ..logging_setup import get_logger

type Grid = list[list[Any]]
"""Rows of raw cell values (``str``, ``float``, ``int``, ``datetime`` or ``None``)."""

_logger = get_logger("ledger_import.ingest.workbook")


def _cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def read_first_sheet(data: bytes, *, name: str = "<workbook>") -> Grid:
    """Return the first sheet of ``data`` as a list of rows.

    Raises :class:`UnreadableSpreadsheetError` when the bytes are not a
    workbook either engine can open.
    """

    engine = sniff_spreadsheet_engine(data)
    if engine is None:
        raise UnreadableSpreadsheetError(f"{name}: not a spreadsheet workbook")
    try:
        frame = pd.read_excel(
            BytesIO(data),
            sheet_name=0,
            header=None,
            dtype=object,
            engine=engine,
        )
    except Exception as exc:  # noqa: BLE001 - engines raise many unrelated types
        raise UnreadableSpreadsheetError(f"{name}: unreadable spreadsheet ({exc})") from exc

    grid: Grid = []
    for row in frame.itertuples(index=False, name=None):
        cells = [_cell(v) for v in row]
        # Trim trailing empties so short rows keep a meaningful length.
        while cells and cells[-1] is None:
            cells.pop()
        grid.append(cells)
    _logger.debug("read %d rows from %s (engine=%s)", len(grid), name, engine)
    return grid


__all__ = ["Grid", "read_first_sheet"]

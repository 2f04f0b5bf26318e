"""Decode an uploaded bank export into a row matrix.

Parsers work on a list of rows (lists of cell values) and never touch files.
This module is the only place that reads bytes from disk:

- ``.csv``: ``csv.reader`` over UTF-8 text (a BOM is tolerated). Cells are
  strings.
- ``.xlsx``/``.xlsm``: the first worksheet via ``openpyxl`` in read-only,
  values-only mode. Cells keep their spreadsheet types (``str``, ``float``,
  ``int``, ``datetime`` or ``None``).

Legacy ``.xls`` workbooks are rejected with a clear message; openpyxl only
reads the Office Open XML formats.
"""

from __future__ import annotations

import csv
from os import PathLike
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from ..logging_setup import get_logger
from ..models import Row, SourceFile

logger = get_logger("ledgerline.ingest.rows")

OPENPYXL_EXTENSIONS = frozenset({".xlsx", ".xlsm"})


class UnsupportedFileError(ValueError):
    """The file type cannot be decoded into rows."""


def _trim_trailing_none(values: tuple[Any, ...] | list[Any]) -> Row:
    cells = list(values)
    while cells and cells[-1] is None:
        cells.pop()
    return cells


def read_csv_rows(path: str | PathLike[str]) -> list[Row]:
    with Path(path).open(encoding="utf-8-sig", newline="") as f:
        return [list(r) for r in csv.reader(f)]


def read_xlsx_rows(path: str | PathLike[str]) -> list[Row]:
    wb = load_workbook(Path(path), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        # Trailing empty cells are padding from the sheet's used range
        return [_trim_trailing_none(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def read_file_to_rows(path: str | PathLike[str]) -> tuple[SourceFile, list[Row]]:
    """Return the file descriptor and decoded rows for ``path``.

    Raises
    ------
    UnsupportedFileError
        For extensions other than ``.csv``, ``.xlsx`` and ``.xlsm``.
    FileNotFoundError
        When ``path`` does not exist.
    """

    p = Path(path)
    file = SourceFile(name=p.name, size=p.stat().st_size)
    ext = file.extension
    if ext == ".csv":
        rows = read_csv_rows(p)
    elif ext in OPENPYXL_EXTENSIONS:
        rows = read_xlsx_rows(p)
    elif ext == ".xls":
        raise UnsupportedFileError(
            f"{p.name}: legacy .xls workbooks are not supported; re-save as .xlsx or .csv"
        )
    else:
        raise UnsupportedFileError(f"{p.name}: unsupported file type {ext or '(none)'!r}")

    logger.debug("Decoded %s: %d rows", p.name, len(rows))
    return file, rows


__all__ = [
    "UnsupportedFileError",
    "read_csv_rows",
    "read_file_to_rows",
    "read_xlsx_rows",
]

"""Cell and row helpers shared by the bank parsers.

Everything here is pure: no I/O and no logging. Rows are the decoded cell
lists handed over by the CSV/spreadsheet decoder, so cells may be ``None``,
strings, numbers or even ``datetime`` objects (spreadsheets).
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from ..models import Confidence

EXCEL_EXTENSIONS: frozenset[str] = frozenset({".xlsx", ".xls", ".xlsm"})

# Rows sampled by detect()/validate(); a full scan is unnecessary to tell
# formats apart and keeps detection cheap on large exports.
SAMPLE_SIZE = 10

_MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_SLASH_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_AMOUNT_JUNK_RE = re.compile(r"[^0-9.,\-]")


# ---------------------------------------------------------------------------
# File type
# ---------------------------------------------------------------------------


def is_excel_file(file_name: str) -> bool:
    return file_name.lower().endswith(tuple(EXCEL_EXTENSIONS))


def is_csv_file(file_name: str) -> bool:
    return file_name.lower().endswith(".csv")


# ---------------------------------------------------------------------------
# Cells and rows
# ---------------------------------------------------------------------------


def _cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet decoders hand back 12.0 for an integer cell
        return str(int(value))
    return str(value)


def get_cell(row: Sequence[Any] | None, index: int) -> str:
    """Return the trimmed text of ``row[index]``; ``""`` when missing or ``None``."""

    if not row or index < 0 or index >= len(row):
        return ""
    return _cell_to_text(row[index]).strip()


def is_empty_row(row: Sequence[Any] | None) -> bool:
    """True when the row is missing or every cell is blank."""

    if not row:
        return True
    return all(_cell_to_text(cell).strip() == "" for cell in row)


def sample_rows(
    rows: Sequence[Sequence[Any] | None],
    *,
    min_columns: int = 0,
    limit: int = SAMPLE_SIZE,
) -> list[Sequence[Any]]:
    """Return the first ``limit`` non-empty rows having at least ``min_columns`` cells."""

    picked: list[Sequence[Any]] = []
    for row in rows:
        if len(picked) >= limit:
            break
        if row is None or len(row) < min_columns or is_empty_row(row):
            continue
        picked.append(row)
    return picked


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Decimal:
    """Parse a money cell into a ``Decimal``; unparseable input yields ``0``.

    Currency symbols, spaces and letters are dropped. Whichever of the last
    ``.`` or last ``,`` sits further right is the decimal separator, so both
    ``"1,234.56"`` (US) and ``"1.234,56"`` (European) give ``1234.56``.
    """

    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    cleaned = _AMOUNT_JUNK_RE.sub("", str(value))
    if not cleaned:
        return Decimal("0")

    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")
    if last_comma > last_dot:
        normalized = cleaned.replace(".", "").replace(",", ".", 1)
        # Any further commas would have been thousands separators in a
        # malformed value; keep only the first as the decimal point.
        normalized = normalized.replace(",", "")
    else:
        normalized = cleaned.replace(",", "")

    # Keep a leading minus only; stray inner dashes make the value invalid.
    negative = normalized.startswith("-")
    digits = normalized.lstrip("-")
    if "-" in digits:
        return Decimal("0")
    try:
        amount = Decimal(digits) if digits not in {"", "."} else Decimal("0")
    except InvalidOperation:
        return Decimal("0")
    return -amount if negative else amount


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def parse_date_mdy(value: Any) -> date | None:
    """``MM/DD/YYYY`` (``"12/16/2025"``)."""

    native = _as_date(value)
    if native is not None:
        return native
    m = _SLASH_DATE_RE.match(_cell_to_text(value).strip())
    if not m:
        return None
    return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))


def parse_date_dmy(value: Any) -> date | None:
    """``DD/MM/YYYY`` (``"16/12/2025"``)."""

    native = _as_date(value)
    if native is not None:
        return native
    m = _SLASH_DATE_RE.match(_cell_to_text(value).strip())
    if not m:
        return None
    return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))


def parse_date_iso(value: Any) -> date | None:
    """``YYYY-MM-DD``."""

    native = _as_date(value)
    if native is not None:
        return native
    m = _ISO_DATE_RE.match(_cell_to_text(value).strip())
    if not m:
        return None
    return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def parse_date_d_mon_y(value: Any) -> date | None:
    """``"16 Dec. 2025"``, ``"16 Dec 2025"`` or ``"1 January 2025"``."""

    native = _as_date(value)
    if native is not None:
        return native
    parts = _cell_to_text(value).replace(".", "").strip().lower().split()
    if len(parts) != 3 or not parts[0].isdigit() or not parts[2].isdigit():
        return None
    month = _MONTHS.get(parts[1][:3])
    if month is None:
        return None
    return _safe_date(int(parts[2]), month, int(parts[0]))


def parse_date_mon_d_y(value: Any) -> date | None:
    """``"Dec 16, 2025"`` or ``"January 1, 2025"``."""

    native = _as_date(value)
    if native is not None:
        return native
    parts = _cell_to_text(value).replace(",", " ").strip().lower().split()
    if len(parts) != 3 or not parts[1].isdigit() or not parts[2].isdigit():
        return None
    month = _MONTHS.get(parts[0].rstrip(".")[:3])
    if month is None:
        return None
    return _safe_date(int(parts[2]), month, int(parts[1]))


# ---------------------------------------------------------------------------
# Detection scoring
# ---------------------------------------------------------------------------


def confidence_for_ratio(ratio: float) -> Confidence:
    """Map the fraction of sampled rows passing every signal to a tier."""

    if ratio >= 0.8:
        return "high"
    if ratio >= 0.5:
        return "medium"
    if ratio >= 0.2:
        return "low"
    return "none"


__all__ = [
    "EXCEL_EXTENSIONS",
    "SAMPLE_SIZE",
    "confidence_for_ratio",
    "get_cell",
    "is_csv_file",
    "is_empty_row",
    "is_excel_file",
    "parse_amount",
    "parse_date_d_mon_y",
    "parse_date_dmy",
    "parse_date_iso",
    "parse_date_mdy",
    "parse_date_mon_d_y",
    "sample_rows",
]

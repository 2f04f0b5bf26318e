"""CIBC (Canadian Imperial Bank of Commerce) account export.

File format
-----------
- CSV or Excel (``.csv``, ``.xlsx``, ``.xls``), no header row.
- Column A (0): date, ``MM/DD/YYYY`` or ``YYYY-MM-DD``.
- Column B (1): description (also the keyword match field).
- Column C (2): money out (debit), plain number without currency symbol.
- Column D (3): money in (credit).
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date
from typing import Any

from ..models import (
    BankParserMeta,
    DetectionResult,
    ParsedTransaction,
    SourceFile,
    ValidationResult,
)
from .base import BankParser, RowError, Rows
from .utils import get_cell, parse_amount, parse_date_iso, parse_date_mdy, sample_rows

DATE_MDY_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
DATE_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

EXPECTED_COLUMNS = 4
MAX_COLUMNS = 6

COL_DATE = 0
COL_DESCRIPTION = 1
COL_MONEY_OUT = 2
COL_MONEY_IN = 3


def _looks_like_date(row: Sequence[Any]) -> bool:
    # Spreadsheet decoders may already hand back date objects
    if len(row) > COL_DATE and isinstance(row[COL_DATE], date):
        return True
    text = get_cell(row, COL_DATE)
    return bool(DATE_MDY_RE.match(text) or DATE_ISO_RE.match(text))


def parse_cibc_date(value: Any) -> date | None:
    if isinstance(value, date):
        return parse_date_iso(value)
    text = "" if value is None else str(value).strip()
    if DATE_ISO_RE.match(text):
        return parse_date_iso(text)
    if DATE_MDY_RE.match(text):
        return parse_date_mdy(text)
    return None


class CibcParser(BankParser):
    meta = BankParserMeta(
        id="CIBC",
        name="CIBC",
        country="CA",
        supported_extensions=(".csv", ".xlsx", ".xls"),
        format_description="4 columns: Date, Description, Money Out, Money In. No headers.",
        export_instructions_url=(
            "https://www.cibc.com/en/personal-banking/ways-to-bank/"
            "ways-to-bank-faq/download-transactions.html"
        ),
        filename_patterns=(r"cibc", r"^cibc_?\d*"),
    )
    signals_description = "date format, 4 columns, no currency symbols"
    min_row_columns = EXPECTED_COLUMNS

    def detect(self, file: SourceFile, rows: Rows) -> DetectionResult:
        if len(rows) == 0:
            return DetectionResult(False, "none", "File is empty")

        sampled = sample_rows(rows, min_columns=EXPECTED_COLUMNS)
        matched = 0
        for row in sampled:
            no_currency = "$" not in get_cell(row, COL_MONEY_OUT) + get_cell(row, COL_MONEY_IN)
            if (
                _looks_like_date(row)
                and no_currency
                and EXPECTED_COLUMNS <= len(row) <= MAX_COLUMNS
                and get_cell(row, COL_DESCRIPTION)
            ):
                matched += 1
        return self._detection_from_counts(matched, len(sampled))

    def validate(self, file: SourceFile, rows: Rows) -> ValidationResult:
        result = ValidationResult(is_valid=False)
        if len(rows) == 0:
            result.errors.append("File is empty")
            return result
        if file.extension and file.extension not in self.meta.supported_extensions:
            result.errors.append(
                f"Unsupported file type {file.extension!r} for CIBC "
                f"(expected one of: {', '.join(self.meta.supported_extensions)})"
            )
            return result

        checked = 0
        bad_dates = 0
        missing_descriptions = 0
        for pos, row in enumerate(rows[:10]):
            if not row:
                continue
            if len(row) < EXPECTED_COLUMNS:
                result.errors.append(
                    f"Row {pos + 1} has {len(row)} columns, expected {EXPECTED_COLUMNS} "
                    "(Date, Description, Money Out, Money In)"
                )
                continue
            checked += 1
            if not _looks_like_date(row):
                bad_dates += 1
            if not get_cell(row, COL_DESCRIPTION):
                missing_descriptions += 1

        if checked == 0:
            result.errors.append(
                "No valid rows found. CIBC files need 4 columns: "
                "Date, Description, Money Out, Money In"
            )
            return result

        if bad_dates > checked / 2:
            result.errors.append(
                "Date format doesn't match CIBC format (expected: MM/DD/YYYY or YYYY-MM-DD)"
            )
        if missing_descriptions > checked / 2:
            result.warnings.append(
                f"{missing_descriptions} of {checked} sampled rows are missing descriptions"
            )

        result.is_valid = not result.errors
        return result

    def parse_row(self, row: Sequence[Any]) -> ParsedTransaction:
        date_text = get_cell(row, COL_DATE)
        description = get_cell(row, COL_DESCRIPTION)
        if not date_text or not description:
            raise RowError("Missing date or description")

        tx_date = parse_cibc_date(row[COL_DATE])
        if tx_date is None:
            raise RowError(f'Invalid date format "{date_text}"')

        return ParsedTransaction(
            date=tx_date,
            description=description,
            match_field=description,
            amount_out=abs(parse_amount(row[COL_MONEY_OUT])),
            amount_in=abs(parse_amount(row[COL_MONEY_IN])),
        )


__all__ = ["CibcParser", "parse_cibc_date"]

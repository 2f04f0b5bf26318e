"""American Express (Canada) Excel export.

File format
-----------
- Excel only (``.xlsx``; ``.xls``/``.xlsm`` are tolerated).
- Rows 1-11: account metadata; row 12: column headers; data from row 13.
- Column A (0): transaction date, ``DD Mon. YYYY`` (``"16 Dec. 2025"``).
- Column B (1): date processed.
- Column C (2): description.
- Column D (3): amount with ``$``; positive = expense, negative = payment.
- Column I (8): payment description (payment rows only).
- Column J (9): additional information; preferred for display and matching.

Payment rows (money returning to the card) leave column D empty and carry the
amount in column C and the description in column I.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from ..models import (
    BankParserMeta,
    DetectionResult,
    ParsedTransaction,
    SourceFile,
    ValidationResult,
)
from .base import BankParser, RowError, Rows
from .utils import (
    get_cell,
    is_excel_file,
    parse_amount,
    parse_date_d_mon_y,
    sample_rows,
)

AMEX_DATE_RE = re.compile(r"^\d{1,2}\s+[A-Za-z]{3,9}\.?\s+\d{4}$")

HEADER_ROWS = 12
MIN_COLUMNS = 4

COL_DATE = 0
COL_DESCRIPTION = 2
COL_AMOUNT = 3
COL_PAYMENT_DESCRIPTION = 8
COL_ADDITIONAL_INFO = 9


def _has_amex_date(row: Sequence[Any]) -> bool:
    # openpyxl returns real date cells as datetime objects
    if len(row) > COL_DATE and isinstance(row[COL_DATE], date):
        return True
    return bool(AMEX_DATE_RE.match(get_cell(row, COL_DATE)))


def _amount_text(row: Sequence[Any]) -> str:
    return get_cell(row, COL_AMOUNT) or get_cell(row, COL_DESCRIPTION)


class AmexParser(BankParser):
    meta = BankParserMeta(
        id="AMEX",
        name="American Express",
        country="CA",
        supported_extensions=(".xlsx",),
        format_description="Excel file with data starting at row 13. Date format: DD Mon. YYYY",
        export_instructions_url="https://www.americanexpress.com/en-ca/account/login",
        filename_patterns=(r"amex", r"american[\s_-]?express", r"^summary"),
    )
    signals_description = "date format, column structure, $ amounts"
    header_rows = HEADER_ROWS

    def detect(self, file: SourceFile, rows: Rows) -> DetectionResult:
        if not is_excel_file(file.name):
            return DetectionResult(False, "none", "AMEX files must be Excel format")
        if len(rows) < HEADER_ROWS + 1:
            return DetectionResult(False, "none", "File too short for AMEX format")

        sampled = sample_rows(rows[HEADER_ROWS:], min_columns=MIN_COLUMNS)
        matched = 0
        for row in sampled:
            has_date = _has_amex_date(row)
            has_dollar = "$" in _amount_text(row)
            # Real exports carry ~10 columns
            wide = len(row) > 6
            if has_date and (has_dollar or wide):
                matched += 1
        return self._detection_from_counts(matched, len(sampled))

    def validate(self, file: SourceFile, rows: Rows) -> ValidationResult:
        result = ValidationResult(is_valid=False)
        if not is_excel_file(file.name):
            result.errors.append("AMEX files must be in Excel format (.xlsx)")
            return result
        if len(rows) < HEADER_ROWS + 1:
            result.errors.append(
                "File doesn't have enough rows. AMEX files should have data starting at row 13."
            )
            return result

        sampled = sample_rows(rows[HEADER_ROWS:], min_columns=3)
        if not sampled:
            result.errors.append(f"No transaction data found after row {HEADER_ROWS}")
            return result

        bad_dates = sum(1 for r in sampled if not _has_amex_date(r))
        missing_amounts = sum(1 for r in sampled if not _amount_text(r))

        if bad_dates > len(sampled) / 2:
            result.errors.append(
                "Date format doesn't match AMEX format "
                "(expected: DD Mon. YYYY, e.g., '16 Dec. 2025')"
            )
        if missing_amounts > len(sampled) / 2:
            result.warnings.append(
                f"{missing_amounts} of {len(sampled)} sampled rows are missing amount values"
            )
        if len(sampled[0]) < MIN_COLUMNS:
            result.errors.append(
                f"Expected at least {MIN_COLUMNS} columns for AMEX, found {len(sampled[0])}"
            )

        result.is_valid = not result.errors
        return result

    def parse_row(self, row: Sequence[Any]) -> ParsedTransaction:
        date_text = get_cell(row, COL_DATE)

        if not get_cell(row, COL_AMOUNT):
            # Payment row
            amount_text = get_cell(row, COL_DESCRIPTION)
            description = get_cell(row, COL_PAYMENT_DESCRIPTION)
        else:
            amount_text = get_cell(row, COL_AMOUNT)
            description = get_cell(row, COL_ADDITIONAL_INFO) or get_cell(row, COL_DESCRIPTION)

        if not date_text or not description:
            raise RowError("Missing date or description")

        tx_date = parse_date_d_mon_y(row[COL_DATE])
        if tx_date is None:
            raise RowError(f'Invalid date format "{date_text}"')

        # Positive = expense, negative = payment/refund
        amount = parse_amount(amount_text)
        return ParsedTransaction(
            date=tx_date,
            description=description,
            match_field=description,
            amount_out=amount if amount > 0 else Decimal("0"),
            amount_in=-amount if amount < 0 else Decimal("0"),
        )


__all__ = ["AmexParser"]

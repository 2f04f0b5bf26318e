from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from ledgerline.models import SourceFile
from ledgerline.parsers import NO_TRANSACTIONS_ERROR, CibcParser

from tests.helpers.rows import CIBC_FILE, cibc_rows

parser = CibcParser()


def test_detects_plain_four_column_export():
    result = parser.detect(CIBC_FILE, cibc_rows())

    assert result.detected
    assert result.confidence == "high"
    assert result.reason.startswith("File structure matches CIBC format")


def test_detect_rejects_currency_symbols_and_empty_files():
    rows = [["12/16/2025", "TIM HORTONS", "$4.50", ""] for _ in range(5)]
    assert parser.detect(CIBC_FILE, rows).confidence == "none"

    empty = parser.detect(CIBC_FILE, [])
    assert (empty.detected, empty.reason) == (False, "File is empty")


def test_detect_accepts_spreadsheet_date_cells():
    rows = [[datetime(2025, 12, 16), "TIM HORTONS", 4.5, None]]

    assert parser.detect(SourceFile(name="cibc.xlsx"), rows).confidence == "high"


def test_validate_reports_short_rows_and_bad_dates():
    short = parser.validate(CIBC_FILE, [["12/16/2025", "TIM HORTONS"]])
    assert not short.is_valid
    assert short.errors[0] == (
        "Row 1 has 2 columns, expected 4 (Date, Description, Money Out, Money In)"
    )

    bad_dates = parser.validate(
        CIBC_FILE, [["Dec 16", "A", "1", ""], ["Dec 17", "B", "2", ""], ["12/18/2025", "C", "", "3"]]
    )
    assert not bad_dates.is_valid
    assert bad_dates.errors == [
        "Date format doesn't match CIBC format (expected: MM/DD/YYYY or YYYY-MM-DD)"
    ]


def test_validate_rejects_unsupported_extension_and_warns_on_blank_descriptions():
    pdf = parser.validate(SourceFile(name="cibc.pdf"), cibc_rows())
    assert not pdf.is_valid
    assert "Unsupported file type" in pdf.errors[0]

    blank = ["12/20/2025", "", "1.00", ""]
    result = parser.validate(CIBC_FILE, [cibc_rows()[0], blank, blank])
    assert result.is_valid
    assert result.warnings == ["2 of 3 sampled rows are missing descriptions"]

    one_blank = parser.validate(CIBC_FILE, [*cibc_rows(), blank])
    assert one_blank.is_valid
    assert one_blank.warnings == []


def test_parse_takes_absolute_amounts_and_both_date_formats():
    result = parser.parse(CIBC_FILE, cibc_rows())

    assert result.errors == []
    coffee, groceries, payroll, refund = result.transactions
    assert coffee.date == date(2025, 12, 16)
    assert coffee.match_field == "TIM HORTONS #1234"
    assert coffee.amount_out == Decimal("4.50")
    assert payroll.date == date(2025, 12, 18)
    assert payroll.amount_in == Decimal("1500.00")
    assert payroll.net_amount == Decimal("1500.00")
    assert groceries.net_amount == Decimal("-82.13")
    assert refund.amount_in == Decimal("20.00")

    negative = parser.parse(CIBC_FILE, [["12/16/2025", "X", "-4.50", ""]])
    assert negative.transactions[0].amount_out == Decimal("4.50")


def test_parse_skips_narrow_rows_and_reports_bad_ones():
    rows = [
        ["12/16/2025", "TIM HORTONS", "4.50", ""],
        ["Total"],
        ["13/45/2025", "BROKEN", "1.00", ""],
        ["", "NO DATE", "1.00", ""],
    ]

    result = parser.parse(CIBC_FILE, rows)

    assert len(result.transactions) == 1
    assert result.errors == [
        'Row 3: Invalid date format "13/45/2025"',
        "Row 4: Missing date or description",
    ]


def test_parse_empty_file():
    assert parser.parse(CIBC_FILE, []).errors == [NO_TRANSACTIONS_ERROR]

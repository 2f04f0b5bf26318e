from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from ledgerline.parsers.utils import (
    confidence_for_ratio,
    get_cell,
    is_csv_file,
    is_empty_row,
    is_excel_file,
    parse_amount,
    parse_date_d_mon_y,
    parse_date_dmy,
    parse_date_iso,
    parse_date_mdy,
    parse_date_mon_d_y,
    sample_rows,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("$4.50", Decimal("4.50")),
        ("-$12.00", Decimal("-12.00")),
        ("CA$ 1 500.25", Decimal("1500.25")),
        ("12,5", Decimal("12.5")),
        ("", Decimal("0")),
        ("n/a", Decimal("0")),
        ("1-2", Decimal("0")),
        (None, Decimal("0")),
        (12.5, Decimal("12.5")),
        (7, Decimal("7")),
    ],
)
def test_parse_amount_disambiguates_decimal_separator(raw, expected):
    assert parse_amount(raw) == expected


def test_parse_amount_single_comma_with_three_digits_is_decimal():
    # Rightmost separator wins, so a lone comma is read as the decimal point.
    assert parse_amount("$1,234") == Decimal("1.234")


def test_date_parsers_accept_their_formats_and_reject_others():
    assert parse_date_mdy("12/16/2025") == date(2025, 12, 16)
    assert parse_date_dmy("16/12/2025") == date(2025, 12, 16)
    assert parse_date_iso("2025-12-16") == date(2025, 12, 16)
    assert parse_date_d_mon_y("16 Dec. 2025") == date(2025, 12, 16)
    assert parse_date_d_mon_y("1 January 2025") == date(2025, 1, 1)
    assert parse_date_mon_d_y("Dec 16, 2025") == date(2025, 12, 16)

    assert parse_date_mdy("16/12/2025") is None  # month 16
    assert parse_date_iso("2025-02-30") is None
    assert parse_date_d_mon_y("16 Foo 2025") is None
    assert parse_date_mon_d_y("") is None


def test_date_parsers_pass_through_native_dates():
    assert parse_date_mdy(datetime(2025, 12, 16, 8, 30)) == date(2025, 12, 16)
    assert parse_date_d_mon_y(date(2025, 1, 2)) == date(2025, 1, 2)


def test_cell_helpers():
    row = [" a ", None, 12.0, 3.5]
    assert get_cell(row, 0) == "a"
    assert get_cell(row, 1) == ""
    assert get_cell(row, 2) == "12"
    assert get_cell(row, 3) == "3.5"
    assert get_cell(row, 9) == ""
    assert get_cell(None, 0) == ""

    assert is_empty_row([])
    assert is_empty_row(None)
    assert is_empty_row(["", None, "  "])
    assert not is_empty_row(["", "x"])


def test_sample_rows_skips_empty_and_narrow_rows():
    rows = [[], ["a"], ["1", "2", "3", "4"], None, ["", "", "", ""]] + [["x"] * 4] * 20
    picked = sample_rows(rows, min_columns=4)
    assert len(picked) == 10
    assert picked[0] == ["1", "2", "3", "4"]


def test_file_type_helpers():
    assert is_excel_file("Statement.XLSX")
    assert is_excel_file("a.xls")
    assert not is_excel_file("a.csv")
    assert is_csv_file("export.CSV")


@pytest.mark.parametrize(
    ("ratio", "tier"),
    [(1.0, "high"), (0.8, "high"), (0.79, "medium"), (0.5, "medium"), (0.2, "low"), (0.1, "none")],
)
def test_confidence_tiers(ratio, tier):
    assert confidence_for_ratio(ratio) == tier

from __future__ import annotations

import pytest
from db.client import session_scope
from db.models.finance import Transaction
from sqlalchemy import update

from ledgerline import api
from ledgerline.errors import CategoryNotFoundError, TransactionNotFoundError

from tests.helpers.db import by_match_field, category_id, seed_categories, tx
from tests.helpers.rows import OTHER_USER, USER

RULES = {
    "Groceries": ["loblaws", "METRO"],
    "Coffee": ["tim hortons"],
    "Snacks": ["tim"],
}


@pytest.fixture
def ids(database_url):
    return seed_categories(database_url=database_url, user_id=USER, categories=RULES)


def _system_id(database_url: str, name: str) -> int:
    api.list_categories(USER)  # creates the system categories
    cid = category_id(database_url=database_url, user_id=USER, name=name)
    assert cid is not None
    return cid


def test_single_match_assigns_and_multiple_matches_record_conflict(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "TIM HORTONS #1234", out="4.50"),
            tx("2025-12-17", "loblaws 1021", out="82.13"),
            tx("2025-12-18", "NETFLIX.COM", out="9.99"),
        ],
    )

    result = api.recategorize(USER)

    assert (result.processed, result.updated, result.conflicts) == (3, 1, 1)
    rows = by_match_field(database_url=database_url, user_id=USER)
    assert rows["loblaws 1021"]["category_id"] == ids["Groceries"]
    assert rows["TIM HORTONS #1234"]["category_id"] is None
    assert rows["TIM HORTONS #1234"]["conflict_category_ids"] == sorted(
        [ids["Coffee"], ids["Snacks"]]
    )
    assert rows["NETFLIX.COM"]["category_id"] is None
    assert rows["NETFLIX.COM"]["conflict_category_ids"] is None


def test_uncategorized_mode_treats_the_system_category_as_uncategorized(database_url, ids):
    uncategorized = _system_id(database_url, "Uncategorized")
    api.bulk_import(
        USER,
        [
            tx("2025-12-17", "METRO 44", out="10.00", category_id=uncategorized),
            tx("2025-12-18", "LOBLAWS 1021", out="82.13", category_id=ids["Coffee"]),
        ],
    )

    result = api.recategorize(USER, "uncategorized")

    assert (result.processed, result.updated) == (1, 1)
    rows = by_match_field(database_url=database_url, user_id=USER)
    assert rows["METRO 44"]["category_id"] == ids["Groceries"]
    assert rows["LOBLAWS 1021"]["category_id"] == ids["Coffee"]


def test_zero_matches_clear_a_stale_conflict_marker(database_url, ids):
    api.bulk_import(USER, [tx("2025-12-18", "NETFLIX.COM", out="9.99")])
    with session_scope() as s:
        s.execute(
            update(Transaction).values(conflict_category_ids=[ids["Coffee"], ids["Snacks"]])
        )

    result = api.recategorize(USER)

    assert (result.updated, result.conflicts) == (0, 0)
    row = by_match_field(database_url=database_url, user_id=USER)["NETFLIX.COM"]
    assert row["conflict_category_ids"] is None


def test_all_mode_revisits_assigned_rows_but_skips_excluded(database_url, ids):
    excluded = _system_id(database_url, "Excluded")
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "TIM HORTONS #1234", out="4.50", category_id=ids["Coffee"]),
            tx("2025-12-17", "METRO 44", out="10.00", category_id=ids["Coffee"]),
            tx("2025-12-18", "LOBLAWS 1021", out="82.13", category_id=excluded),
        ],
    )

    result = api.recategorize(USER, "all")

    assert (result.processed, result.updated, result.conflicts) == (2, 1, 1)
    rows = by_match_field(database_url=database_url, user_id=USER)
    assert rows["METRO 44"]["category_id"] == ids["Groceries"]
    # Ambiguous rows keep their category and gain a marker
    assert rows["TIM HORTONS #1234"]["category_id"] == ids["Coffee"]
    assert rows["TIM HORTONS #1234"]["conflict_category_ids"] is not None
    assert rows["LOBLAWS 1021"]["category_id"] == excluded


def test_income_is_matchable_but_other_system_categories_are_not(database_url):
    ids = seed_categories(
        database_url=database_url,
        user_id=USER,
        categories={"Income": ["payroll"], "Uncategorized": ["netflix"]},
        system=("Income", "Uncategorized"),
    )
    api.bulk_import(
        USER,
        [
            tx("2025-12-18", "PAYROLL DEPOSIT", in_="1500.00"),
            tx("2025-12-19", "NETFLIX.COM", out="9.99"),
        ],
    )

    result = api.recategorize(USER)

    assert result.updated == 1
    rows = by_match_field(database_url=database_url, user_id=USER)
    assert rows["PAYROLL DEPOSIT"]["category_id"] == ids["Income"]
    assert rows["NETFLIX.COM"]["category_id"] is None


def test_unknown_mode_is_rejected(database_url):
    with pytest.raises(ValueError):
        api.recategorize(USER, "everything")  # type: ignore[arg-type]


def test_list_and_resolve_conflicts(database_url, ids):
    api.bulk_import(USER, [tx("2025-12-16", "TIM HORTONS #1234", out="4.50")])
    api.recategorize(USER)

    [conflict] = api.list_conflicts(USER)
    assert conflict["match_field"] == "TIM HORTONS #1234"
    assert [c["name"] for c in conflict["candidates"]] == ["Coffee", "Snacks"]

    api.resolve_conflict(USER, conflict["transaction_id"], ids["Snacks"])

    assert api.list_conflicts(USER) == []
    row = by_match_field(database_url=database_url, user_id=USER)["TIM HORTONS #1234"]
    assert row["category_id"] == ids["Snacks"]
    assert row["conflict_category_ids"] is None


def test_resolve_conflict_checks_ownership(database_url, ids):
    api.bulk_import(USER, [tx("2025-12-16", "TIM HORTONS #1234", out="4.50")])
    api.recategorize(USER)
    [conflict] = api.list_conflicts(USER)
    foreign = seed_categories(
        database_url=database_url, user_id=OTHER_USER, categories={"Coffee": ["tim"]}
    )

    with pytest.raises(TransactionNotFoundError):
        api.resolve_conflict(OTHER_USER, conflict["transaction_id"], foreign["Coffee"])
    with pytest.raises(CategoryNotFoundError):
        api.resolve_conflict(USER, conflict["transaction_id"], foreign["Coffee"])

    assert len(api.list_conflicts(USER)) == 1

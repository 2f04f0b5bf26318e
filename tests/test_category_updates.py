from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.finance import Budget, Category
from sqlalchemy import select

from ledgerline import api
from ledgerline.categories import dedupe_keywords, normalize_name, validate_name
from ledgerline.errors import (
    CategoryNotFoundError,
    CategoryValidationError,
    SystemCategoryError,
)

from tests.helpers.db import by_match_field, category_id, seed_categories, tx
from tests.helpers.rows import OTHER_USER, USER


@pytest.fixture
def ids(database_url):
    ids = seed_categories(
        database_url=database_url,
        user_id=USER,
        categories={
            "Groceries": ["loblaws", "market"],
            "Farmers": ["market"],
            "Coffee": ["tim hortons"],
            "Snacks": ["tim"],
        },
    )
    api.list_categories(USER)
    for name in ("Uncategorized", "Excluded"):
        ids[name] = category_id(database_url=database_url, user_id=USER, name=name)
    return ids


def _rows(database_url):
    return by_match_field(database_url=database_url, user_id=USER)


def _budgets(category: int) -> list[Budget]:
    with session_scope() as s:
        return list(s.execute(select(Budget).where(Budget.category_id == category)).scalars())


# ---------------------------
# Names
# ---------------------------


def test_name_helpers():
    assert normalize_name("  Eating \t  Out ") == "Eating Out"
    assert validate_name("Bills & Utilities (home)").ok
    assert not validate_name("").ok
    assert not validate_name("x" * 65).ok
    assert not validate_name("Food<script>").ok
    assert not validate_name("EXCLUDED").ok
    assert dedupe_keywords([" Tim ", "tim", "", "Coffee"]) == ["Tim", "Coffee"]


def test_create_category_normalizes_and_appends(database_url, ids):
    created = api.create_category(USER, "  Eating   Out ", ["uber eats", "UBER EATS", " "])

    assert created["name"] == "Eating Out"
    assert created["keywords"] == ["uber eats"]
    assert created["is_system"] is False
    assert api.list_categories(USER)[-1]["id"] == created["id"]


@pytest.mark.parametrize("name", ["groceries", "Uncategorized", "excluded", "bad|name"])
def test_create_category_rejects_taken_reserved_and_invalid_names(database_url, ids, name):
    with pytest.raises(CategoryValidationError):
        api.create_category(USER, name)


def test_same_name_is_allowed_for_another_user(database_url, ids):
    created = api.create_category(OTHER_USER, "Groceries")

    assert created["name"] == "Groceries"


# ---------------------------
# Keyword edits
# ---------------------------


def test_narrowing_keywords_uncategorizes_or_moves_rows(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "LOBLAWS 1021", out="82.13"),
            tx("2025-12-17", "MARKET ST", out="12.00", category_id=ids["Groceries"]),
            tx("2025-12-18", "CORNER SHOP", out="3.00", category_id=ids["Groceries"]),
        ],
    )
    api.recategorize(USER)

    result = api.update_category(USER, ids["Groceries"], {"keywords": ["loblaws"]})

    assert (result.assigned, result.uncategorized, result.conflicts) == (1, 1, 0)
    rows = _rows(database_url)
    assert rows["LOBLAWS 1021"]["category_id"] == ids["Groceries"]
    assert rows["MARKET ST"]["category_id"] == ids["Farmers"]
    assert rows["CORNER SHOP"]["category_id"] is None


def test_broadening_keywords_picks_up_uncategorized_rows(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "STARBUCKS 12", out="6.00"),
            tx("2025-12-17", "TIM HORTONS #1", out="4.50"),
        ],
    )

    result = api.add_keyword(USER, ids["Coffee"], "Starbucks")

    assert (result.assigned, result.conflicts) == (1, 1)
    rows = _rows(database_url)
    assert rows["STARBUCKS 12"]["category_id"] == ids["Coffee"]
    # Coffee and Snacks both match, so the row waits for manual resolution
    assert rows["TIM HORTONS #1"]["category_id"] is None
    assert rows["TIM HORTONS #1"]["conflict_category_ids"] == sorted(
        [ids["Coffee"], ids["Snacks"]]
    )


def test_narrowing_keywords_drops_stale_conflict_marker(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-17", "TIM HORTONS #1", out="4.50"),
            tx("2025-12-18", "MARKET TIM", out="9.00"),
        ],
    )
    api.recategorize(USER)
    assert len(api.list_conflicts(USER)) == 2

    result = api.update_category(USER, ids["Snacks"], {"keywords": ["chips"]})

    assert (result.assigned, result.conflicts) == (1, 1)
    rows = _rows(database_url)
    assert rows["TIM HORTONS #1"]["category_id"] == ids["Coffee"]
    assert rows["TIM HORTONS #1"]["conflict_category_ids"] is None
    # Groceries and Farmers still both match, Snacks is dropped from the marker
    assert rows["MARKET TIM"]["category_id"] is None
    assert rows["MARKET TIM"]["conflict_category_ids"] == sorted(
        [ids["Groceries"], ids["Farmers"]]
    )
    [conflict] = api.list_conflicts(USER)
    assert conflict["match_field"] == "MARKET TIM"


def test_keyword_removal_to_a_conflict(database_url, ids):
    api.bulk_import(
        USER,
        [tx("2025-12-17", "TIM HORTONS MARKET", out="4.50", category_id=ids["Coffee"])],
    )

    result = api.remove_keyword(USER, ids["Coffee"], "TIM HORTONS")

    assert result.conflicts == 1
    row = _rows(database_url)["TIM HORTONS MARKET"]
    assert row["category_id"] is None
    assert row["conflict_category_ids"] == sorted(
        [ids["Groceries"], ids["Farmers"], ids["Snacks"]]
    )


def test_unchanged_keyword_set_skips_reclassification(database_url, ids):
    api.bulk_import(USER, [tx("2025-12-16", "CORNER SHOP", out="3.00", category_id=ids["Coffee"])])

    result = api.update_category(USER, ids["Coffee"], {"keywords": ["TIM HORTONS", " "]})

    assert (result.assigned, result.uncategorized, result.conflicts) == (0, 0, 0)
    assert _rows(database_url)["CORNER SHOP"]["category_id"] == ids["Coffee"]


def test_add_keyword_edge_cases(database_url, ids):
    with pytest.raises(CategoryValidationError):
        api.add_keyword(USER, ids["Coffee"], "   ")

    result = api.add_keyword(USER, ids["Coffee"], "Tim Hortons")
    assert (result.assigned, result.uncategorized, result.conflicts) == (0, 0, 0)
    coffee = next(c for c in api.list_categories(USER) if c["id"] == ids["Coffee"])
    assert coffee["keywords"] == ["tim hortons"]

    assert api.remove_keyword(USER, ids["Coffee"], "nope").assigned == 0


# ---------------------------
# System protection
# ---------------------------


def test_system_categories_cannot_be_renamed_or_deleted(database_url, ids):
    with pytest.raises(SystemCategoryError):
        api.update_category(USER, ids["Uncategorized"], {"name": "Misc", "keywords": ["x"]})
    with pytest.raises(SystemCategoryError):
        api.delete_category(USER, ids["Excluded"])
    with pytest.raises(SystemCategoryError):
        api.merge_categories(USER, ids["Excluded"], ids["Coffee"])

    names = {c["name"]: c for c in api.list_categories(USER)}
    assert names["Uncategorized"]["keywords"] == []
    assert names["Excluded"]["is_system"] is True


def test_system_category_keywords_and_order_stay_editable(database_url, ids):
    api.update_category(USER, ids["Excluded"], {"keywords": ["transfer"], "order": 0})

    excluded = next(c for c in api.list_categories(USER) if c["id"] == ids["Excluded"])
    assert (excluded["keywords"], excluded["order"]) == (["transfer"], 0)


def test_rename_validates_new_name(database_url, ids):
    with pytest.raises(CategoryValidationError):
        api.update_category(USER, ids["Coffee"], {"name": "snacks"})

    api.update_category(USER, ids["Coffee"], {"name": "Coffee Shops"})
    assert "Coffee Shops" in {c["name"] for c in api.list_categories(USER)}


def test_unknown_or_foreign_category_is_not_found(database_url, ids):
    with pytest.raises(CategoryNotFoundError):
        api.update_category(OTHER_USER, ids["Coffee"], {"name": "Mine"})
    with pytest.raises(CategoryNotFoundError):
        api.delete_category(USER, 999_999)


# ---------------------------
# Delete / merge
# ---------------------------


def test_delete_reassigns_rows_and_drops_budgets_and_markers(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "CORNER SHOP", out="3.00", category_id=ids["Coffee"]),
            tx("2025-12-17", "TIM HORTONS #1", out="4.50"),
        ],
    )
    api.recategorize(USER)
    api.set_budget(USER, ids["Coffee"], 2025, 12, "50")

    result = api.delete_category(USER, ids["Coffee"])

    assert (result.deleted, result.reassigned) == (True, 1)
    rows = _rows(database_url)
    assert rows["CORNER SHOP"]["category_id"] == ids["Uncategorized"]
    # Only Snacks remains a candidate, so the marker is gone
    assert rows["TIM HORTONS #1"]["conflict_category_ids"] is None
    assert _budgets(ids["Coffee"]) == []
    assert "Coffee" not in {c["name"] for c in api.list_categories(USER)}


def test_merge_moves_rows_and_keywords(database_url, ids):
    api.bulk_import(
        USER,
        [
            tx("2025-12-16", "CHIPS", out="3.00", category_id=ids["Snacks"]),
            tx("2025-12-17", "TIM HORTONS #1", out="4.50"),
        ],
    )
    api.recategorize(USER)
    api.set_budget(USER, ids["Snacks"], 2025, None, "100")

    result = api.merge_categories(USER, ids["Snacks"], ids["Coffee"])

    assert result.reassigned == 1
    rows = _rows(database_url)
    assert rows["CHIPS"]["category_id"] == ids["Coffee"]
    assert rows["TIM HORTONS #1"]["conflict_category_ids"] is None
    coffee = next(c for c in api.list_categories(USER) if c["id"] == ids["Coffee"])
    assert coffee["keywords"] == ["tim hortons", "tim"]
    assert _budgets(ids["Snacks"]) == []

    with pytest.raises(CategoryValidationError):
        api.merge_categories(USER, ids["Coffee"], ids["Coffee"])


# ---------------------------
# Ordering and budgets
# ---------------------------


def test_reorder_moves_and_renumbers(database_url, ids):
    ordered = api.reorder_categories(USER, ids["Snacks"], ids["Groceries"])

    assert [c["name"] for c in ordered] == [
        "Snacks",
        "Groceries",
        "Farmers",
        "Coffee",
        "Uncategorized",
        "Excluded",
    ]
    assert [c["order"] for c in ordered] == list(range(6))
    assert api.list_categories(USER) == ordered

    with pytest.raises(CategoryNotFoundError):
        api.reorder_categories(USER, ids["Snacks"], 999_999)


def test_set_budget_upserts(database_url, ids):
    api.set_budget(USER, ids["Coffee"], 2025, 12, "50")
    api.set_budget(USER, ids["Coffee"], 2025, 12, Decimal("75.25"))
    api.set_budget(USER, ids["Coffee"], 2025, None, 600)

    budgets = sorted(_budgets(ids["Coffee"]), key=lambda b: b.month or 0)
    assert [(b.month, b.amount) for b in budgets] == [
        (None, Decimal("600")),
        (12, Decimal("75.25")),
    ]

    with pytest.raises(ValueError):
        api.set_budget(USER, ids["Coffee"], 2025, 13, "1")
    with pytest.raises(ValueError):
        api.set_budget(USER, ids["Coffee"], 2025, 1, "-1")


def test_seeded_category_rows_are_user_scoped(database_url, ids):
    with session_scope() as s:
        owners = set(s.execute(select(Category.user_id)).scalars())
    assert owners == {USER}

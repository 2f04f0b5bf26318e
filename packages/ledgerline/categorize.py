"""Keyword categorization engine.

A category *matches* a transaction when the lower-cased ``match_field``
contains any of the category's lower-cased, non-blank keywords. Only
*matchable* categories take part: every user category plus a system category
named ``"Income"`` when one exists. ``"Uncategorized"`` and ``"Excluded"`` are
never matched.

Outcomes per transaction
------------------------
- exactly one match: the category is assigned and any conflict marker cleared;
- several matches: the sorted candidate ids are stored in
  ``conflict_category_ids`` for manual resolution;
- no match: nothing is assigned, a stale conflict marker is cleared.

Both ``category_id IS NULL`` and the user's ``"Uncategorized"`` id count as
uncategorized. Keyword-edit re-classification writes ``NULL``; category
deletion reassigns to the ``"Uncategorized"`` id.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypedDict

from db.models.finance import Category, Transaction
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from .errors import CategoryNotFoundError, TransactionNotFoundError
from .logging_setup import get_logger
from .models import RecategorizeMode, RecategorizeResult, UpdateCategoryResult

logger = get_logger("ledgerline.categorize")

UNCATEGORIZED = "Uncategorized"
EXCLUDED = "Excluded"
INCOME = "Income"
RESERVED_NAMES: frozenset[str] = frozenset({UNCATEGORIZED, EXCLUDED})


# ---------------------------
# System categories
# ---------------------------


@dataclass(frozen=True, slots=True)
class SystemCategories:
    uncategorized: Category
    excluded: Category


def ensure_system_categories(session: Session, *, user_id: str) -> SystemCategories:
    """Create the user's ``Uncategorized`` and ``Excluded`` categories if missing."""

    found: dict[str, Category] = {}
    for name in (UNCATEGORIZED, EXCLUDED):
        row = session.execute(
            select(Category).where(Category.user_id == user_id, Category.name == name)
        ).scalar_one_or_none()
        if row is None:
            next_order = session.execute(
                select(func.coalesce(func.max(Category.sort_order), -1)).where(
                    Category.user_id == user_id
                )
            ).scalar_one()
            row = Category(
                uuid=str(uuid.uuid4()),
                user_id=user_id,
                name=name,
                keywords=[],
                sort_order=next_order + 1,
                is_system=True,
            )
            session.add(row)
            session.flush()
            logger.info("Created system category %r for %s", name, user_id)
        elif not row.is_system:
            row.is_system = True
        found[name] = row
    return SystemCategories(uncategorized=found[UNCATEGORIZED], excluded=found[EXCLUDED])


# ---------------------------
# Matching
# ---------------------------


def normalized_keywords(keywords: Iterable[str] | None) -> list[str]:
    return [k.strip().lower() for k in (keywords or []) if k and k.strip()]


def is_matchable(category: Category) -> bool:
    return not category.is_system or category.name == INCOME


def matchable_categories(session: Session, *, user_id: str) -> list[Category]:
    rows = session.execute(
        select(Category)
        .where(Category.user_id == user_id)
        .order_by(Category.sort_order, Category.id)
    ).scalars()
    return [c for c in rows if is_matchable(c)]


def category_matches(category: Category, text: str | None) -> bool:
    haystack = (text or "").lower()
    return any(kw in haystack for kw in normalized_keywords(category.keywords))


def find_matches(text: str | None, categories: Sequence[Category]) -> list[Category]:
    return [c for c in categories if category_matches(c, text)]


def _candidate_ids(categories: Iterable[Category]) -> list[int]:
    return sorted({c.id for c in categories})


def _uncategorized_clause(system: SystemCategories):
    return or_(
        Transaction.category_id.is_(None),
        Transaction.category_id == system.uncategorized.id,
    )


# ---------------------------
# Bulk re-classification
# ---------------------------


def recategorize(
    session: Session,
    *,
    user_id: str,
    mode: RecategorizeMode = "uncategorized",
) -> RecategorizeResult:
    """Apply keyword rules to the user's transactions.

    ``mode="uncategorized"`` only looks at uncategorized rows; ``mode="all"``
    revisits every row outside ``"Excluded"``. In ``"all"`` mode a row that
    turns out ambiguous keeps its current category and gains a conflict
    marker.
    """

    if mode not in ("uncategorized", "all"):
        raise ValueError(f"Unknown recategorize mode: {mode!r}")

    system = ensure_system_categories(session, user_id=user_id)
    categories = matchable_categories(session, user_id=user_id)

    stmt = select(Transaction).where(Transaction.user_id == user_id)
    if mode == "uncategorized":
        stmt = stmt.where(_uncategorized_clause(system))
    else:
        stmt = stmt.where(
            or_(
                Transaction.category_id.is_(None),
                Transaction.category_id != system.excluded.id,
            )
        )

    processed = updated = conflicts = 0
    for tx in session.execute(stmt.order_by(Transaction.id)).scalars().all():
        processed += 1
        matches = find_matches(tx.match_field, categories)
        if len(matches) == 1:
            tx.category_id = matches[0].id
            tx.conflict_category_ids = None
            updated += 1
        elif len(matches) > 1:
            tx.conflict_category_ids = _candidate_ids(matches)
            conflicts += 1
            logger.debug("Transaction %d conflicts: %s", tx.id, tx.conflict_category_ids)
        elif tx.conflict_category_ids is not None:
            tx.conflict_category_ids = None

    session.flush()
    logger.info(
        "Recategorize (%s) for %s: processed=%d updated=%d conflicts=%d",
        mode,
        user_id,
        processed,
        updated,
        conflicts,
    )
    return RecategorizeResult(processed=processed, updated=updated, conflicts=conflicts)


def reclassify_for_keyword_change(
    session: Session,
    *,
    user_id: str,
    category: Category,
) -> UpdateCategoryResult:
    """Re-evaluate transactions after ``category``'s keywords changed.

    ``category.keywords`` must already hold the new list.

    1. Rows currently in ``category`` that no longer match move to the single
       other matching category, become a conflict when several match, or are
       reset to uncategorized.
    2. Uncategorized rows that now match ``category``, or whose conflict marker
       names it, are matched again against every category: a single match is
       assigned, several rewrite the marker and none clears it.
    """

    result = UpdateCategoryResult()
    system = ensure_system_categories(session, user_id=user_id)
    others = [c for c in matchable_categories(session, user_id=user_id) if c.id != category.id]

    current = session.execute(
        select(Transaction).where(
            Transaction.user_id == user_id, Transaction.category_id == category.id
        )
    ).scalars().all()
    for tx in current:
        if category_matches(category, tx.match_field):
            continue
        alternatives = find_matches(tx.match_field, others)
        if len(alternatives) == 1:
            tx.category_id = alternatives[0].id
            tx.conflict_category_ids = None
            result.assigned += 1
        elif alternatives:
            tx.category_id = None
            tx.conflict_category_ids = _candidate_ids(alternatives)
            result.conflicts += 1
        else:
            tx.category_id = None
            tx.conflict_category_ids = None
            result.uncategorized += 1
    session.flush()

    uncategorized = session.execute(
        select(Transaction).where(Transaction.user_id == user_id, _uncategorized_clause(system))
    ).scalars().all()
    for tx in uncategorized:
        flagged = category.id in (tx.conflict_category_ids or [])
        if not flagged and not category_matches(category, tx.match_field):
            continue
        matches = find_matches(tx.match_field, [category, *others])
        if len(matches) == 1:
            tx.category_id = matches[0].id
            tx.conflict_category_ids = None
            result.assigned += 1
        elif matches:
            tx.conflict_category_ids = _candidate_ids(matches)
            result.conflicts += 1
        else:
            tx.conflict_category_ids = None
    session.flush()

    logger.info(
        "Keyword change on %r: assigned=%d uncategorized=%d conflicts=%d",
        category.name,
        result.assigned,
        result.uncategorized,
        result.conflicts,
    )
    return result


# ---------------------------
# Conflicts
# ---------------------------


class ConflictCandidate(TypedDict):
    id: int
    name: str


class ConflictDict(TypedDict):
    transaction_id: int
    date: date
    description: str
    match_field: str
    net_amount: Decimal
    category_id: int | None
    candidates: list[ConflictCandidate]


def list_conflicts(session: Session, *, user_id: str) -> list[ConflictDict]:
    """Return transactions with a pending conflict marker, oldest first."""

    names = {
        c.id: c.name
        for c in session.execute(select(Category).where(Category.user_id == user_id)).scalars()
    }
    rows = session.execute(
        select(Transaction)
        .where(Transaction.user_id == user_id, Transaction.conflict_category_ids.is_not(None))
        .order_by(Transaction.date, Transaction.id)
    ).scalars()
    out: list[ConflictDict] = []
    for tx in rows:
        out.append(
            {
                "transaction_id": tx.id,
                "date": tx.date,
                "description": tx.description,
                "match_field": tx.match_field,
                "net_amount": tx.net_amount,
                "category_id": tx.category_id,
                "candidates": [
                    {"id": cid, "name": names[cid]}
                    for cid in tx.conflict_category_ids or []
                    if cid in names
                ],
            }
        )
    return out


def resolve_conflict(
    session: Session,
    *,
    user_id: str,
    transaction_id: int,
    category_id: int,
) -> Transaction:
    """Assign ``category_id`` to the transaction and clear its conflict marker.

    Any of the user's categories is accepted, not only the recorded
    candidates.
    """

    tx = session.execute(
        select(Transaction).where(Transaction.id == transaction_id, Transaction.user_id == user_id)
    ).scalar_one_or_none()
    if tx is None:
        raise TransactionNotFoundError(f"Transaction not found: {transaction_id}")
    category = session.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()
    if category is None:
        raise CategoryNotFoundError(f"Category not found: {category_id}")

    tx.category_id = category.id
    tx.conflict_category_ids = None
    session.flush()
    logger.debug("Resolved conflict on transaction %d -> %r", tx.id, category.name)
    return tx


__all__ = [
    "EXCLUDED",
    "INCOME",
    "RESERVED_NAMES",
    "UNCATEGORIZED",
    "ConflictDict",
    "SystemCategories",
    "category_matches",
    "ensure_system_categories",
    "find_matches",
    "is_matchable",
    "list_conflicts",
    "matchable_categories",
    "normalized_keywords",
    "reclassify_for_keyword_change",
    "recategorize",
    "resolve_conflict",
]

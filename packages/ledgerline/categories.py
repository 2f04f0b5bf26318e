"""Category service operations.

Every function takes an active ``Session`` and a ``user_id`` and only ever
touches that user's rows. Integrity checks (existence, system protection,
name rules) run before anything is mutated so a failing call leaves the
session untouched; :mod:`ledgerline.api` rolls back the scope on any error
anyway.

System categories
-----------------
``"Uncategorized"`` and ``"Excluded"`` always exist (see
:func:`~ledgerline.categorize.ensure_system_categories`). They cannot be
renamed, deleted or merged away, and user categories may not take their
names. Their keywords and order remain editable.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import TypedDict

from db.models.finance import Budget, Category, Transaction
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from .categorize import (
    RESERVED_NAMES,
    ensure_system_categories,
    is_matchable,
    normalized_keywords,
    reclassify_for_keyword_change,
)
from .errors import CategoryNotFoundError, CategoryValidationError, SystemCategoryError
from .logging_setup import get_logger
from .models import CategoryUpdate, DeleteCategoryResult, UpdateCategoryResult

logger = get_logger("ledgerline.categories")

# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[\w &\-/'.,()+]+$")


def normalize_name(name: str) -> str:
    """Trim and collapse internal whitespace; case is preserved."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, max_len: int = 64) -> NameValidation:
    """Check a normalized category name.

    Rules
    -----
    - 1..64 characters after trimming.
    - Letters, digits, spaces and ``& - / ' . , ( ) +``.
    - Not one of the reserved system names (case-insensitive).
    """

    n = normalize_name(name)
    if not n:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Name contains unsupported characters")
    if n.lower() in {r.lower() for r in RESERVED_NAMES}:
        return NameValidation(False, f"{n!r} is reserved for a system category")
    return NameValidation(True, None)


def dedupe_keywords(keywords: Iterable[str]) -> list[str]:
    """Trim, drop blanks and case-insensitive repeats; first spelling wins."""

    seen: set[str] = set()
    out: list[str] = []
    for kw in keywords:
        k = kw.strip()
        if k and k.lower() not in seen:
            seen.add(k.lower())
            out.append(k)
    return out


# ---------------------------
# Result shape
# ---------------------------


class CategoryDict(TypedDict):
    id: int
    uuid: str
    name: str
    keywords: list[str]
    order: int
    is_system: bool


def _row_to_dict(row: Category) -> CategoryDict:
    return {
        "id": row.id,
        "uuid": row.uuid,
        "name": row.name,
        "keywords": list(row.keywords or []),
        "order": row.sort_order,
        "is_system": bool(row.is_system),
    }


# ---------------------------
# Lookups
# ---------------------------


def get_category(session: Session, *, user_id: str, category_id: int) -> Category:
    row = session.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()
    if row is None:
        raise CategoryNotFoundError(f"Category not found: {category_id}")
    return row


def _ordered(session: Session, user_id: str) -> list[Category]:
    return list(
        session.execute(
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(Category.sort_order, Category.id)
        ).scalars()
    )


def _name_taken(session: Session, user_id: str, name: str, *, exclude_id: int | None) -> bool:
    stmt = select(Category.id).where(
        Category.user_id == user_id, func.lower(Category.name) == name.lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return session.execute(stmt).first() is not None


def _checked_name(session: Session, user_id: str, name: str, *, exclude_id: int | None) -> str:
    n = normalize_name(name)
    v = validate_name(n)
    if not v.ok:
        raise CategoryValidationError(f"Invalid category name: {v.reason}")
    if _name_taken(session, user_id, n, exclude_id=exclude_id):
        raise CategoryValidationError(f"Category {n!r} already exists")
    return n


def list_categories(session: Session, *, user_id: str) -> list[CategoryDict]:
    """Return the user's categories in display order (system ones included)."""

    ensure_system_categories(session, user_id=user_id)
    return [_row_to_dict(c) for c in _ordered(session, user_id)]


# ---------------------------
# Create / reorder
# ---------------------------


def create_category(
    session: Session,
    *,
    user_id: str,
    name: str,
    keywords: Iterable[str] = (),
) -> CategoryDict:
    """Create a user category at the end of the display order.

    Existing transactions are not re-classified; run
    :func:`~ledgerline.categorize.recategorize` for that.
    """

    ensure_system_categories(session, user_id=user_id)
    n = _checked_name(session, user_id, name, exclude_id=None)
    next_order = session.execute(
        select(func.coalesce(func.max(Category.sort_order), -1)).where(
            Category.user_id == user_id
        )
    ).scalar_one()
    row = Category(
        uuid=str(uuid.uuid4()),
        user_id=user_id,
        name=n,
        keywords=dedupe_keywords(keywords),
        sort_order=next_order + 1,
        is_system=False,
    )
    session.add(row)
    session.flush()
    logger.info("Created category %r (%d keywords)", n, len(row.keywords))
    return _row_to_dict(row)


def reorder_categories(
    session: Session,
    *,
    user_id: str,
    active_id: int,
    over_id: int,
) -> list[CategoryDict]:
    """Move ``active_id`` to the position of ``over_id`` and renumber 0..n-1."""

    ordered = _ordered(session, user_id)
    ids = [c.id for c in ordered]
    if active_id not in ids:
        raise CategoryNotFoundError(f"Category not found: {active_id}")
    if over_id not in ids:
        raise CategoryNotFoundError(f"Category not found: {over_id}")

    moving = ordered.pop(ids.index(active_id))
    ordered.insert(ids.index(over_id), moving)
    for pos, c in enumerate(ordered):
        c.sort_order = pos
    session.flush()
    return [_row_to_dict(c) for c in ordered]


# ---------------------------
# Update (with keyword-driven re-classification)
# ---------------------------


def update_category(
    session: Session,
    *,
    user_id: str,
    category_id: int,
    updates: CategoryUpdate,
) -> UpdateCategoryResult:
    """Apply a partial update and re-classify when the keyword set changed.

    Raises
    ------
    CategoryNotFoundError
        Unknown id for this user.
    SystemCategoryError
        Renaming a system category.
    CategoryValidationError
        Invalid, reserved or duplicate new name.
    """

    ensure_system_categories(session, user_id=user_id)
    category = get_category(session, user_id=user_id, category_id=category_id)

    new_name: str | None = None
    if updates.name is not None and normalize_name(updates.name) != category.name:
        if category.is_system:
            raise SystemCategoryError(f"Cannot rename system category {category.name!r}")
        new_name = _checked_name(session, user_id, updates.name, exclude_id=category.id)

    keywords_changed = False
    new_keywords: list[str] | None = None
    if updates.keywords is not None:
        new_keywords = dedupe_keywords(updates.keywords)
        keywords_changed = set(normalized_keywords(new_keywords)) != set(
            normalized_keywords(category.keywords)
        )

    if new_name is not None:
        logger.info("Renaming category %r -> %r", category.name, new_name)
        category.name = new_name
    if new_keywords is not None:
        category.keywords = new_keywords
    if updates.order is not None:
        category.sort_order = updates.order
    session.flush()

    if keywords_changed and is_matchable(category):
        return reclassify_for_keyword_change(session, user_id=user_id, category=category)
    return UpdateCategoryResult()


def add_keyword(
    session: Session,
    *,
    user_id: str,
    category_id: int,
    keyword: str,
) -> UpdateCategoryResult:
    """Append ``keyword`` unless already present (case-insensitive)."""

    kw = keyword.strip()
    if not kw:
        raise CategoryValidationError("Keyword cannot be empty")
    category = get_category(session, user_id=user_id, category_id=category_id)
    if kw.lower() in normalized_keywords(category.keywords):
        return UpdateCategoryResult()
    return update_category(
        session,
        user_id=user_id,
        category_id=category_id,
        updates=CategoryUpdate(keywords=[*(category.keywords or []), kw]),
    )


def remove_keyword(
    session: Session,
    *,
    user_id: str,
    category_id: int,
    keyword: str,
) -> UpdateCategoryResult:
    """Remove every case-insensitive occurrence of ``keyword``."""

    category = get_category(session, user_id=user_id, category_id=category_id)
    target = keyword.strip().lower()
    remaining = [k for k in (category.keywords or []) if k.strip().lower() != target]
    if len(remaining) == len(category.keywords or []):
        return UpdateCategoryResult()
    return update_category(
        session,
        user_id=user_id,
        category_id=category_id,
        updates=CategoryUpdate(keywords=remaining),
    )


# ---------------------------
# Delete / merge
# ---------------------------


def _rewrite_conflicts(session: Session, user_id: str, old_id: int, new_id: int | None) -> None:
    """Replace (or drop, when ``new_id`` is None) ``old_id`` in pending conflict markers.

    A marker left with fewer than two candidates is no longer a conflict and
    is cleared.
    """

    rows = session.execute(
        select(Transaction).where(
            Transaction.user_id == user_id, Transaction.conflict_category_ids.is_not(None)
        )
    ).scalars()
    for tx in rows.all():
        ids = tx.conflict_category_ids or []
        if old_id not in ids:
            continue
        kept = {i for i in ids if i != old_id}
        if new_id is not None:
            kept.add(new_id)
        tx.conflict_category_ids = sorted(kept) if len(kept) > 1 else None


def _move_transactions(session: Session, user_id: str, old_id: int, new_id: int) -> int:
    owned = (Transaction.user_id == user_id, Transaction.category_id == old_id)
    count = session.execute(
        select(func.count()).select_from(Transaction).where(*owned)
    ).scalar_one()
    session.execute(
        update(Transaction)
        .where(*owned)
        .values(category_id=new_id)
        .execution_options(synchronize_session="fetch")
    )
    return count


def delete_category(session: Session, *, user_id: str, category_id: int) -> DeleteCategoryResult:
    """Delete a user category, moving its transactions to ``Uncategorized``.

    Budgets for the category are dropped and the id is removed from pending
    conflict markers.
    """

    system = ensure_system_categories(session, user_id=user_id)
    category = get_category(session, user_id=user_id, category_id=category_id)
    if category.is_system:
        raise SystemCategoryError(f"Cannot delete system category {category.name!r}")

    reassigned = _move_transactions(session, user_id, category.id, system.uncategorized.id)
    _rewrite_conflicts(session, user_id, category.id, None)
    session.execute(
        delete(Budget).where(Budget.user_id == user_id, Budget.category_id == category.id)
    )
    session.delete(category)
    session.flush()
    logger.info("Deleted category %r; %d transactions reassigned", category.name, reassigned)
    return DeleteCategoryResult(deleted=True, reassigned=reassigned)


def merge_categories(
    session: Session,
    *,
    user_id: str,
    source_id: int,
    target_id: int,
) -> DeleteCategoryResult:
    """Fold ``source_id`` into ``target_id`` and delete the source.

    Transactions move to the target, the source's keywords are appended to
    the target's (case-insensitive de-duplication), conflict markers naming
    the source name the target instead, and the source's budgets are
    dropped.
    """

    ensure_system_categories(session, user_id=user_id)
    if source_id == target_id:
        raise CategoryValidationError("Cannot merge a category into itself")
    source = get_category(session, user_id=user_id, category_id=source_id)
    target = get_category(session, user_id=user_id, category_id=target_id)
    if source.is_system:
        raise SystemCategoryError(f"Cannot merge away system category {source.name!r}")

    moved = _move_transactions(session, user_id, source.id, target.id)
    target.keywords = dedupe_keywords([*(target.keywords or []), *(source.keywords or [])])
    _rewrite_conflicts(session, user_id, source.id, target.id)
    session.execute(
        delete(Budget).where(Budget.user_id == user_id, Budget.category_id == source.id)
    )
    session.delete(source)
    session.flush()
    logger.info("Merged category %r into %r; %d transactions moved", source.name, target.name, moved)
    return DeleteCategoryResult(deleted=True, reassigned=moved)


# ---------------------------
# Budgets
# ---------------------------


def set_budget(
    session: Session,
    *,
    user_id: str,
    category_id: int,
    year: int,
    month: int | None,
    amount: Decimal | int | str,
) -> Budget:
    """Create or update the budget for ``(category, year, month)``.

    ``month=None`` is a yearly budget.
    """

    if month is not None and not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12 or None, got {month}")
    value = Decimal(str(amount))
    if value < 0:
        raise ValueError("Budget amount must be non-negative")
    get_category(session, user_id=user_id, category_id=category_id)

    stmt = select(Budget).where(
        Budget.user_id == user_id,
        Budget.category_id == category_id,
        Budget.year == year,
        Budget.month.is_(None) if month is None else Budget.month == month,
    )
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        row = Budget(
            user_id=user_id, category_id=category_id, year=year, month=month, amount=value
        )
        session.add(row)
    else:
        row.amount = value
    session.flush()
    return row


__all__ = [
    "CategoryDict",
    "NameValidation",
    "add_keyword",
    "create_category",
    "dedupe_keywords",
    "delete_category",
    "get_category",
    "list_categories",
    "merge_categories",
    "normalize_name",
    "remove_keyword",
    "reorder_categories",
    "set_budget",
    "update_category",
    "validate_name",
]

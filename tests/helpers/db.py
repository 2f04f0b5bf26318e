"""DB helpers for tests: bootstrap a temporary SQLite DB and seed categories."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from db import Base
from db.client import get_engine, session_scope
from db.models.finance import Category, Transaction
from sqlalchemy import select

from ledgerline.models import TransactionIn


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file with the full schema and return its URL.

    A file-backed database lets every SQLAlchemy connection see the same
    state (in-memory SQLite databases are per-connection).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=get_engine(database_url=url))
    return url


def seed_categories(
    *,
    database_url: str,
    user_id: str,
    categories: Mapping[str, Iterable[str]],
    system: Iterable[str] = (),
) -> dict[str, int]:
    """Insert categories (name -> keywords) and return their ids by name.

    Names listed in ``system`` are created with ``is_system=True``.
    """

    system_names = set(system)
    ids: dict[str, int] = {}
    with session_scope(database_url=database_url) as s:
        for order, (name, keywords) in enumerate(categories.items(), start=10):
            row = Category(
                uuid=str(uuid.uuid4()),
                user_id=user_id,
                name=name,
                keywords=list(keywords),
                sort_order=order,
                is_system=name in system_names,
            )
            s.add(row)
            s.flush()
            ids[name] = row.id
    return ids


def tx(
    day: str,
    description: str,
    *,
    out: str = "0",
    in_: str = "0",
    match: str | None = None,
    **extra: Any,
) -> TransactionIn:
    return TransactionIn(
        date=date.fromisoformat(day),
        description=description,
        match_field=match,
        amount_out=Decimal(out),
        amount_in=Decimal(in_),
        **extra,
    )


def fetch_transactions(*, database_url: str, user_id: str) -> list[dict[str, Any]]:
    """Return the user's transactions as plain dicts ordered by id."""

    with session_scope(database_url=database_url) as s:
        rows = s.execute(
            select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.id)
        ).scalars()
        return [
            {
                "id": r.id,
                "uuid": r.uuid,
                "date": r.date,
                "description": r.description,
                "match_field": r.match_field,
                "amount_out": r.amount_out,
                "amount_in": r.amount_in,
                "net_amount": r.net_amount,
                "source": r.source,
                "category_id": r.category_id,
                "import_id": r.import_id,
                "conflict_category_ids": r.conflict_category_ids,
            }
            for r in rows
        ]


def by_match_field(*, database_url: str, user_id: str) -> dict[str, dict[str, Any]]:
    rows = fetch_transactions(database_url=database_url, user_id=user_id)
    return {t["match_field"]: t for t in rows}


def category_id(*, database_url: str, user_id: str, name: str) -> int | None:
    with session_scope(database_url=database_url) as s:
        return s.execute(
            select(Category.id).where(Category.user_id == user_id, Category.name == name)
        ).scalar_one_or_none()

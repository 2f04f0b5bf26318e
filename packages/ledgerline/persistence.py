"""Transaction persistence: deduplicated bulk insert and import batches.

Functions here take an active SQLAlchemy ``Session`` and never commit; the
caller (normally :mod:`ledgerline.api`) owns the transaction scope so that a
batch record, its rows and the follow-up categorization land atomically.

Duplicate filtering
-------------------
A transaction's *signature* is ``"YYYY-MM-DD|description|out|in"`` with both
amounts rendered to two decimals. With ``skip_duplicates`` enabled, incoming
rows whose signature already exists among the user's stored transactions are
skipped. Signatures are only compared with rows persisted *before* the call:
two identical rows inside one file are both inserted, since a statement can
legitimately list the same purchase twice on one day.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypedDict

from db.models.finance import Category, ImportBatch, Transaction
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .errors import CategoryNotFoundError, ImportNotFoundError
from .logging_setup import get_logger
from .models import BulkImportResult, TransactionIn

logger = get_logger("ledgerline.persistence")

_CENT = Decimal("0.01")


def _to_decimal_2(raw: Decimal | int | str) -> Decimal:
    return Decimal(str(raw)).quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_signature(
    tx_date: date,
    description: str,
    amount_out: Decimal | int | str,
    amount_in: Decimal | int | str,
) -> str:
    """Return the duplicate-detection key for one transaction."""

    return (
        f"{tx_date.isoformat()}|{description}"
        f"|{_to_decimal_2(amount_out):.2f}|{_to_decimal_2(amount_in):.2f}"
    )


def _coerce(tx: TransactionIn | Mapping[str, Any]) -> TransactionIn:
    if isinstance(tx, TransactionIn):
        return tx
    return TransactionIn.model_validate(dict(tx))


def existing_signatures(session: Session, *, user_id: str) -> set[str]:
    rows = session.execute(
        select(
            Transaction.date,
            Transaction.description,
            Transaction.amount_out,
            Transaction.amount_in,
        ).where(Transaction.user_id == user_id)
    )
    return {compute_signature(d, desc, out, in_) for d, desc, out, in_ in rows}


def preview_duplicates(
    session: Session,
    *,
    user_id: str,
    transactions: Iterable[TransactionIn | Mapping[str, Any]],
) -> list[int]:
    """Return the positions of incoming rows that ``bulk_import`` would skip."""

    seen = existing_signatures(session, user_id=user_id)
    dupes: list[int] = []
    for idx, raw in enumerate(transactions):
        tx = _coerce(raw)
        if compute_signature(tx.date, tx.description, tx.amount_out, tx.amount_in) in seen:
            dupes.append(idx)
    return dupes


def _check_category_ids(
    session: Session, *, user_id: str, payloads: list[TransactionIn]
) -> None:
    wanted = {tx.category_id for tx in payloads if tx.category_id is not None}
    if not wanted:
        return
    owned = set(
        session.execute(
            select(Category.id).where(Category.user_id == user_id, Category.id.in_(wanted))
        ).scalars()
    )
    missing = sorted(wanted - owned)
    if missing:
        raise CategoryNotFoundError(f"Unknown category id(s) for {user_id}: {missing}")


def insert_transactions(
    session: Session,
    *,
    user_id: str,
    transactions: Iterable[TransactionIn | Mapping[str, Any]],
    skip_duplicates: bool = True,
    import_id: int | None = None,
) -> tuple[list[Transaction], int]:
    """Insert non-duplicate rows and return ``(inserted_rows, skipped_count)``.

    ``import_id`` (when given) overrides the per-row value so every row of a
    file import references its batch. A ``category_id`` that is not one of
    ``user_id``'s categories raises ``CategoryNotFoundError`` before any row
    is staged.
    """

    payloads = [_coerce(raw) for raw in transactions]
    _check_category_ids(session, user_id=user_id, payloads=payloads)

    seen = existing_signatures(session, user_id=user_id) if skip_duplicates else set()
    new_rows: list[Transaction] = []
    skipped = 0
    for tx in payloads:
        sig = compute_signature(tx.date, tx.description, tx.amount_out, tx.amount_in)
        if sig in seen:
            skipped += 1
            logger.debug("Skipping duplicate %s", sig)
            continue
        new_rows.append(
            Transaction(
                uuid=str(uuid.uuid4()),
                user_id=user_id,
                date=tx.date,
                description=tx.description,
                match_field=tx.match_field or tx.description,
                amount_out=tx.amount_out,
                amount_in=tx.amount_in,
                net_amount=tx.net_amount,
                source=tx.source,
                category_id=tx.category_id,
                import_id=import_id if import_id is not None else tx.import_id,
            )
        )

    if new_rows:
        session.add_all(new_rows)
        session.flush()
    return new_rows, skipped


def bulk_import(
    session: Session,
    *,
    user_id: str,
    transactions: Iterable[TransactionIn | Mapping[str, Any]],
    skip_duplicates: bool = True,
    import_id: int | None = None,
) -> BulkImportResult:
    """Insert transactions for ``user_id``, filtering signature duplicates.

    Parameters
    ----------
    session:
        Active session; the caller commits.
    transactions:
        ``TransactionIn`` payloads or mappings accepted by
        ``TransactionIn.model_validate``. Invalid payloads raise
        ``pydantic.ValidationError`` before anything is written.
        A ``category_id`` outside ``user_id``'s categories raises
        ``CategoryNotFoundError``, also before any write.
    skip_duplicates:
        When ``False`` every row is inserted.

    Returns
    -------
    BulkImportResult
        ``inserted + skipped == total``.
    """

    payloads = [_coerce(t) for t in transactions]
    inserted, skipped = insert_transactions(
        session,
        user_id=user_id,
        transactions=payloads,
        skip_duplicates=skip_duplicates,
        import_id=import_id,
    )
    result = BulkImportResult(inserted=len(inserted), skipped=skipped, total=len(payloads))
    logger.info(
        "Bulk import for %s: %d inserted, %d skipped of %d",
        user_id,
        result.inserted,
        result.skipped,
        result.total,
    )
    return result


# ---------------------------
# Import batches
# ---------------------------


class ImportDict(TypedDict):
    id: int
    file_name: str
    source: str
    transaction_count: int
    total_amount: Decimal
    imported_at: datetime


def _import_to_dict(row: ImportBatch) -> ImportDict:
    return {
        "id": row.id,
        "file_name": row.file_name,
        "source": row.source,
        "transaction_count": row.transaction_count,
        "total_amount": row.total_amount,
        "imported_at": row.imported_at,
    }


def create_import(session: Session, *, user_id: str, file_name: str, source: str) -> ImportBatch:
    batch = ImportBatch(
        user_id=user_id,
        file_name=file_name,
        source=source,
        transaction_count=0,
        total_amount=Decimal("0"),
    )
    session.add(batch)
    session.flush()
    return batch


def finalize_import(batch: ImportBatch, inserted: Iterable[Transaction]) -> None:
    """Record count and summed ``net_amount`` of the rows actually inserted."""

    rows = list(inserted)
    batch.transaction_count = len(rows)
    batch.total_amount = sum((r.net_amount for r in rows), Decimal("0"))


def list_imports(session: Session, *, user_id: str) -> list[ImportDict]:
    """Return the user's import batches, newest first."""

    rows = session.execute(
        select(ImportBatch)
        .where(ImportBatch.user_id == user_id)
        .order_by(ImportBatch.imported_at.desc(), ImportBatch.id.desc())
    ).scalars()
    return [_import_to_dict(r) for r in rows]


def delete_import(session: Session, *, user_id: str, import_id: int) -> int:
    """Delete an import batch and every transaction it created.

    Returns the number of transactions removed. Rows are deleted explicitly
    rather than relying on ``ON DELETE CASCADE`` so the count is exact on
    every backend.
    """

    batch = session.execute(
        select(ImportBatch).where(ImportBatch.id == import_id, ImportBatch.user_id == user_id)
    ).scalar_one_or_none()
    if batch is None:
        raise ImportNotFoundError(f"Import not found: {import_id}")

    count = session.execute(
        select(func.count())
        .select_from(Transaction)
        .where(Transaction.import_id == import_id, Transaction.user_id == user_id)
    ).scalar_one()
    session.execute(
        delete(Transaction).where(
            Transaction.import_id == import_id, Transaction.user_id == user_id
        )
    )
    session.delete(batch)
    session.flush()
    logger.info("Deleted import %d (%s): %d transactions", import_id, batch.file_name, count)
    return count


__all__ = [
    "ImportDict",
    "bulk_import",
    "compute_signature",
    "create_import",
    "delete_import",
    "existing_signatures",
    "finalize_import",
    "insert_transactions",
    "list_imports",
    "preview_duplicates",
]

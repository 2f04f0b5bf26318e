"""Public API for ``ledgerline``.

This module is the stable import surface. Parser operations are pure and work
on a decoded row matrix. Every database-backed operation opens exactly one
``db.client.session_scope`` (commit on success, rollback on any exception),
so multi-step changes such as category deletion, keyword re-classification,
deduplicated inserts and import-batch deletion are atomic.

All database-backed functions accept ``database_url`` to override the
``DATABASE_URL`` environment variable.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from db.client import session_scope

from . import categories as _categories
from . import categorize as _categorize
from . import persistence as _persistence
from .categories import CategoryDict
from .categorize import ConflictDict
from .errors import FileValidationError, UnrecognizedFormatError
from .logging_setup import get_logger
from .models import (
    BankParserMeta,
    BulkImportResult,
    CategoryUpdate,
    DeleteCategoryResult,
    ImportReport,
    ParseResult,
    ParserMatch,
    RecategorizeMode,
    RecategorizeResult,
    SourceFile,
    TransactionIn,
    UpdateCategoryResult,
    ValidationResult,
)
from .parsers.base import BankParser, Rows
from .parsers.registry import ParserRegistry, default_registry
from .persistence import ImportDict

logger = get_logger("ledgerline.api")

# The one piece of process-wide state: the static set of built-in parsers.
DEFAULT_REGISTRY: ParserRegistry = default_registry()


def _registry(registry: ParserRegistry | None) -> ParserRegistry:
    return registry if registry is not None else DEFAULT_REGISTRY


# ---------------------------
# Parsers
# ---------------------------


def list_parsers(*, registry: ParserRegistry | None = None) -> list[BankParserMeta]:
    return [p.meta for p in _registry(registry)]


def get_parser(parser_id: str, *, registry: ParserRegistry | None = None) -> BankParser:
    parser = _registry(registry).get(parser_id)
    if parser is None:
        raise UnrecognizedFormatError(f"Unknown parser id: {parser_id!r}")
    return parser


def detect_parser(
    file: SourceFile,
    rows: Rows,
    *,
    registry: ParserRegistry | None = None,
) -> ParserMatch | None:
    """Return the best-matching parser for ``rows`` or ``None`` when unrecognized."""

    outcome = _registry(registry).detect(file, rows)
    match = outcome.to_match()
    if match is None:
        logger.info("No parser recognized %s", file.name)
    else:
        logger.info(
            "Detected %s for %s (%s%s)",
            match.parser_id,
            file.name,
            match.confidence,
            ", ambiguous" if match.ambiguous else "",
        )
    return match


def validate(
    parser_id: str,
    file: SourceFile,
    rows: Rows,
    *,
    registry: ParserRegistry | None = None,
) -> ValidationResult:
    return get_parser(parser_id, registry=registry).validate(file, rows)


def parse(
    parser_id: str,
    file: SourceFile,
    rows: Rows,
    *,
    registry: ParserRegistry | None = None,
) -> ParseResult:
    return get_parser(parser_id, registry=registry).parse(file, rows)


def _select_parser(
    file: SourceFile,
    rows: Rows,
    parser_id: str | None,
    registry: ParserRegistry,
) -> BankParser:
    if parser_id is not None:
        return get_parser(parser_id, registry=registry)

    match = registry.detect(file, rows).to_match()
    if match is None:
        raise UnrecognizedFormatError(f"{file.name}: no supported bank format recognized")
    if not match.auto_selectable:
        options = ", ".join((match.parser_id, *match.alternatives))
        raise UnrecognizedFormatError(
            f"{file.name}: format detection is not conclusive "
            f"({match.confidence} confidence; candidates: {options}); choose a parser explicitly"
        )
    return get_parser(match.parser_id, registry=registry)


# ---------------------------
# Transactions and imports
# ---------------------------


def bulk_import(
    user_id: str,
    transactions: Iterable[TransactionIn | Mapping[str, Any]],
    skip_duplicates: bool = True,
    *,
    database_url: str | None = None,
) -> BulkImportResult:
    with session_scope(database_url=database_url) as s:
        return _persistence.bulk_import(
            s, user_id=user_id, transactions=transactions, skip_duplicates=skip_duplicates
        )


def preview_duplicates(
    user_id: str,
    transactions: Iterable[TransactionIn | Mapping[str, Any]],
    *,
    database_url: str | None = None,
) -> list[int]:
    with session_scope(database_url=database_url) as s:
        return _persistence.preview_duplicates(s, user_id=user_id, transactions=transactions)


def import_file(
    user_id: str,
    file: SourceFile,
    rows: Rows,
    *,
    parser_id: str | None = None,
    skip_duplicates: bool = True,
    auto_categorize: bool = True,
    database_url: str | None = None,
    registry: ParserRegistry | None = None,
) -> ImportReport:
    """Detect, validate, parse and persist one bank export.

    Raises
    ------
    UnrecognizedFormatError
        No ``parser_id`` was given and detection was missing, below
        ``medium`` or ambiguous; or ``parser_id`` is unknown.
    FileValidationError
        The parser rejected the file, or no row could be parsed.
    """

    reg = _registry(registry)
    parser = _select_parser(file, rows, parser_id, reg)

    validation = parser.validate(file, rows)
    if not validation.is_valid:
        raise FileValidationError(parser.id, validation.errors, validation.warnings)

    parsed = parser.parse(file, rows)
    if not parsed.transactions:
        raise FileValidationError(parser.id, parsed.errors, validation.warnings)
    if parsed.errors:
        logger.warning("%s: %d rows could not be parsed", file.name, len(parsed.errors))

    payloads = [TransactionIn.from_parsed(tx, source=parser.id) for tx in parsed.transactions]

    with session_scope(database_url=database_url) as s:
        _categorize.ensure_system_categories(s, user_id=user_id)
        batch = _persistence.create_import(
            s, user_id=user_id, file_name=file.name, source=parser.id
        )
        inserted, skipped = _persistence.insert_transactions(
            s,
            user_id=user_id,
            transactions=payloads,
            skip_duplicates=skip_duplicates,
            import_id=batch.id,
        )
        _persistence.finalize_import(batch, inserted)
        categorization = (
            _categorize.recategorize(s, user_id=user_id, mode="uncategorized")
            if auto_categorize
            else None
        )
        report = ImportReport(
            parser_id=parser.id,
            import_id=batch.id,
            result=BulkImportResult(
                inserted=len(inserted), skipped=skipped, total=len(payloads)
            ),
            parse_errors=tuple(parsed.errors),
            warnings=tuple(validation.warnings),
            categorization=categorization,
        )

    logger.info(
        "Imported %s via %s: %d inserted, %d skipped",
        file.name,
        parser.id,
        report.result.inserted,
        report.result.skipped,
    )
    return report


def list_imports(user_id: str, *, database_url: str | None = None) -> list[ImportDict]:
    with session_scope(database_url=database_url) as s:
        return _persistence.list_imports(s, user_id=user_id)


def delete_import(user_id: str, import_id: int, *, database_url: str | None = None) -> int:
    with session_scope(database_url=database_url) as s:
        return _persistence.delete_import(s, user_id=user_id, import_id=import_id)


# ---------------------------
# Categorization
# ---------------------------


def recategorize(
    user_id: str,
    mode: RecategorizeMode = "uncategorized",
    *,
    database_url: str | None = None,
) -> RecategorizeResult:
    with session_scope(database_url=database_url) as s:
        return _categorize.recategorize(s, user_id=user_id, mode=mode)


def list_conflicts(user_id: str, *, database_url: str | None = None) -> list[ConflictDict]:
    with session_scope(database_url=database_url) as s:
        return _categorize.list_conflicts(s, user_id=user_id)


def resolve_conflict(
    user_id: str,
    transaction_id: int,
    category_id: int,
    *,
    database_url: str | None = None,
) -> None:
    with session_scope(database_url=database_url) as s:
        _categorize.resolve_conflict(
            s, user_id=user_id, transaction_id=transaction_id, category_id=category_id
        )


# ---------------------------
# Categories
# ---------------------------


def list_categories(user_id: str, *, database_url: str | None = None) -> list[CategoryDict]:
    with session_scope(database_url=database_url) as s:
        return _categories.list_categories(s, user_id=user_id)


def create_category(
    user_id: str,
    name: str,
    keywords: Sequence[str] = (),
    *,
    database_url: str | None = None,
) -> CategoryDict:
    with session_scope(database_url=database_url) as s:
        return _categories.create_category(s, user_id=user_id, name=name, keywords=keywords)


def update_category(
    user_id: str,
    category_id: int,
    updates: CategoryUpdate | Mapping[str, Any],
    *,
    database_url: str | None = None,
) -> UpdateCategoryResult:
    payload = (
        updates if isinstance(updates, CategoryUpdate) else CategoryUpdate.model_validate(updates)
    )
    with session_scope(database_url=database_url) as s:
        return _categories.update_category(
            s, user_id=user_id, category_id=category_id, updates=payload
        )


def delete_category(
    user_id: str,
    category_id: int,
    *,
    database_url: str | None = None,
) -> DeleteCategoryResult:
    with session_scope(database_url=database_url) as s:
        return _categories.delete_category(s, user_id=user_id, category_id=category_id)


def merge_categories(
    user_id: str,
    source_id: int,
    target_id: int,
    *,
    database_url: str | None = None,
) -> DeleteCategoryResult:
    with session_scope(database_url=database_url) as s:
        return _categories.merge_categories(
            s, user_id=user_id, source_id=source_id, target_id=target_id
        )


def reorder_categories(
    user_id: str,
    active_id: int,
    over_id: int,
    *,
    database_url: str | None = None,
) -> list[CategoryDict]:
    with session_scope(database_url=database_url) as s:
        return _categories.reorder_categories(
            s, user_id=user_id, active_id=active_id, over_id=over_id
        )


def add_keyword(
    user_id: str,
    category_id: int,
    keyword: str,
    *,
    database_url: str | None = None,
) -> UpdateCategoryResult:
    with session_scope(database_url=database_url) as s:
        return _categories.add_keyword(
            s, user_id=user_id, category_id=category_id, keyword=keyword
        )


def remove_keyword(
    user_id: str,
    category_id: int,
    keyword: str,
    *,
    database_url: str | None = None,
) -> UpdateCategoryResult:
    with session_scope(database_url=database_url) as s:
        return _categories.remove_keyword(
            s, user_id=user_id, category_id=category_id, keyword=keyword
        )


def set_budget(
    user_id: str,
    category_id: int,
    year: int,
    month: int | None,
    amount: Decimal | int | str,
    *,
    database_url: str | None = None,
) -> None:
    with session_scope(database_url=database_url) as s:
        _categories.set_budget(
            s,
            user_id=user_id,
            category_id=category_id,
            year=year,
            month=month,
            amount=amount,
        )


__all__ = [
    "DEFAULT_REGISTRY",
    "add_keyword",
    "bulk_import",
    "create_category",
    "delete_category",
    "delete_import",
    "detect_parser",
    "get_parser",
    "import_file",
    "list_categories",
    "list_conflicts",
    "list_imports",
    "list_parsers",
    "merge_categories",
    "parse",
    "preview_duplicates",
    "recategorize",
    "remove_keyword",
    "reorder_categories",
    "resolve_conflict",
    "set_budget",
    "update_category",
    "validate",
]

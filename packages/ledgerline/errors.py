"""Exception types raised by ``ledgerline``.

Row-level parse problems are never raised; parsers collect them as strings in
``ParseResult.errors``. Keyword conflicts are persisted state, not errors.
Everything below aborts the operation before anything is written.
"""

from __future__ import annotations

from collections.abc import Sequence


class LedgerlineError(Exception):
    """Base class for all package errors."""


class UnrecognizedFormatError(LedgerlineError):
    """No parser recognized the file with enough confidence to pick it automatically.

    Also raised for an unknown explicit ``parser_id``. Callers should ask the
    user to pick the bank format manually.
    """


class FileValidationError(LedgerlineError):
    """The chosen parser rejected the file structure (blocks parsing)."""

    def __init__(
        self,
        parser_id: str,
        errors: Sequence[str],
        warnings: Sequence[str] = (),
    ) -> None:
        self.parser_id = parser_id
        self.errors = list(errors)
        self.warnings = list(warnings)
        detail = "; ".join(self.errors) or "unknown validation failure"
        super().__init__(f"{parser_id}: file failed validation: {detail}")


class CategoryNotFoundError(LedgerlineError, LookupError):
    pass


class TransactionNotFoundError(LedgerlineError, LookupError):
    pass


class ImportNotFoundError(LedgerlineError, LookupError):
    pass


class CategoryValidationError(LedgerlineError, ValueError):
    """Invalid category payload (bad or duplicate name, unknown candidate, ...)."""


class SystemCategoryError(CategoryValidationError):
    """Attempt to rename, delete or merge away a protected system category."""


__all__ = [
    "CategoryNotFoundError",
    "CategoryValidationError",
    "FileValidationError",
    "ImportNotFoundError",
    "LedgerlineError",
    "SystemCategoryError",
    "TransactionNotFoundError",
    "UnrecognizedFormatError",
]

"""Public interface for the ``ledgerline`` package.

Symbol re-exports only; see :mod:`ledgerline.api` for the operations.
"""

from .api import (
    add_keyword,
    bulk_import,
    create_category,
    delete_category,
    delete_import,
    detect_parser,
    import_file,
    list_categories,
    list_conflicts,
    list_imports,
    list_parsers,
    merge_categories,
    parse,
    preview_duplicates,
    recategorize,
    remove_keyword,
    reorder_categories,
    resolve_conflict,
    set_budget,
    update_category,
    validate,
)
from .errors import (
    CategoryNotFoundError,
    CategoryValidationError,
    FileValidationError,
    ImportNotFoundError,
    LedgerlineError,
    SystemCategoryError,
    TransactionNotFoundError,
    UnrecognizedFormatError,
)
from .models import (
    BulkImportResult,
    CategoryUpdate,
    DeleteCategoryResult,
    DetectionResult,
    ImportReport,
    ParsedTransaction,
    ParseResult,
    ParserMatch,
    RecategorizeResult,
    SourceFile,
    TransactionIn,
    UpdateCategoryResult,
    ValidationResult,
)

__all__ = [
    # API
    "add_keyword",
    "bulk_import",
    "create_category",
    "delete_category",
    "delete_import",
    "detect_parser",
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
    # Errors
    "CategoryNotFoundError",
    "CategoryValidationError",
    "FileValidationError",
    "ImportNotFoundError",
    "LedgerlineError",
    "SystemCategoryError",
    "TransactionNotFoundError",
    "UnrecognizedFormatError",
    # Models / types
    "BulkImportResult",
    "CategoryUpdate",
    "DeleteCategoryResult",
    "DetectionResult",
    "ImportReport",
    "ParseResult",
    "ParsedTransaction",
    "ParserMatch",
    "RecategorizeResult",
    "SourceFile",
    "TransactionIn",
    "UpdateCategoryResult",
    "ValidationResult",
]

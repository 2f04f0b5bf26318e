"""Bank parser contract.

One subclass per institution export format. A parser is a stateless object
exposing three capabilities over a decoded row matrix:

- ``detect``: cheap, sampling-based guess of whether the file is ours.
- ``validate``: structural checks that must pass before parsing.
- ``parse``: row extraction into :class:`~ledgerline.models.ParsedTransaction`.

Adding a bank
-------------
1. Create ``ledgerline/parsers/<bank>.py`` with a ``BankParser`` subclass and
   a ``meta`` descriptor (``id`` must be stable: it is stored as the
   transaction ``source``).
2. Register an instance in :func:`ledgerline.parsers.registry.default_registry`.
3. Check detection against the other banks' sample files to avoid false
   positives.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar, TypeAlias

from ..models import (
    BankParserMeta,
    DetectionResult,
    ParsedTransaction,
    ParseResult,
    SourceFile,
    ValidationResult,
)
from .utils import confidence_for_ratio, is_empty_row

Rows: TypeAlias = Sequence[Sequence[Any] | None]

NO_TRANSACTIONS_ERROR = "No valid transactions found in file"


class RowError(ValueError):
    """Raised inside ``parse_row`` for a row whose required fields are unusable.

    ``BankParser.parse`` turns it into a ``"Row N: ..."`` entry and moves on.
    """


class BankParser(ABC):
    meta: ClassVar[BankParserMeta]

    # Human-readable signal summary used in the high-confidence reason.
    signals_description: ClassVar[str] = "expected structure"

    # Number of leading metadata/header rows before data starts.
    header_rows: ClassVar[int] = 0

    # Data rows with fewer cells are structural noise (totals, footers) and
    # are skipped without an error.
    min_row_columns: ClassVar[int] = 1

    @property
    def id(self) -> str:
        return self.meta.id

    # -- detection ---------------------------------------------------------

    @abstractmethod
    def detect(self, file: SourceFile, rows: Rows) -> DetectionResult: ...

    def _detection_from_counts(self, matched: int, sampled: int) -> DetectionResult:
        """Build the standard detection result from per-row signal counts."""

        name = self.meta.id
        if sampled == 0:
            return DetectionResult(False, "none", "No valid data rows found")
        confidence = confidence_for_ratio(matched / sampled)
        if confidence == "high":
            return DetectionResult(
                True, "high", f"File structure matches {name} format ({self.signals_description})"
            )
        if confidence == "medium":
            return DetectionResult(True, "medium", f"File partially matches {name} format")
        if confidence == "low":
            return DetectionResult(True, "low", f"File may be {name} format")
        return DetectionResult(False, "none", f"File does not match {name} format")

    # -- validation --------------------------------------------------------

    @abstractmethod
    def validate(self, file: SourceFile, rows: Rows) -> ValidationResult: ...

    # -- parsing -----------------------------------------------------------

    @abstractmethod
    def parse_row(self, row: Sequence[Any]) -> ParsedTransaction:
        """Extract one non-empty data row or raise :class:`RowError`."""

    def parse(self, file: SourceFile, rows: Rows) -> ParseResult:
        """Parse every data row, collecting row-scoped errors instead of raising."""

        result = ParseResult()
        for offset, row in enumerate(rows[self.header_rows :]):
            row_num = self.header_rows + offset + 1  # 1-based, as shown in spreadsheets
            if row is None or len(row) < self.min_row_columns or is_empty_row(row):
                continue
            try:
                result.transactions.append(self.parse_row(row))
            except (ValueError, ArithmeticError) as exc:
                result.errors.append(f"Row {row_num}: {exc}")
        if not result.transactions and not result.errors:
            result.errors.append(NO_TRANSACTIONS_ERROR)
        return result


__all__ = ["NO_TRANSACTIONS_ERROR", "BankParser", "RowError", "Rows"]

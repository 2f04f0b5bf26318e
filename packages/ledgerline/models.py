"""Data contracts for ``ledgerline``.

Two families live here:

- Frozen/slotted ``dataclass`` results produced inside the package (parser
  output, detection/validation reports, engine counters). They are plain
  values with no behavior beyond small derived properties.
- ``pydantic`` models for payloads supplied by callers (bulk-import rows and
  category edits). These validate and normalize input once at the boundary so
  the service layer can trust field types and signs.

Amounts are ``Decimal`` throughout; dates are ``datetime.date`` (calendar days
with no time-of-day semantics).
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import PurePath
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Detection vocabulary
# ---------------------------------------------------------------------------

Confidence: TypeAlias = Literal["high", "medium", "low", "none"]
"""Detect-phase certainty that a file belongs to a parser's institution."""

CONFIDENCE_RANK: dict[str, int] = {"none": 0, "low": 1, "medium": 2, "high": 3}

RecategorizeMode: TypeAlias = Literal["uncategorized", "all"]

Row: TypeAlias = list[Any]
"""One decoded row: cell values as produced by the CSV/spreadsheet decoder."""


@dataclass(frozen=True, slots=True)
class SourceFile:
    """Descriptor of an uploaded file. Parsers only look at ``name``."""

    name: str
    size: int | None = None

    @property
    def extension(self) -> str:
        """Lower-cased extension including the dot (``".xlsx"``), or ``""``."""

        return PurePath(self.name).suffix.lower()


@dataclass(frozen=True, slots=True)
class BankParserMeta:
    """Static descriptor of one supported institution export format."""

    id: str
    name: str
    country: str
    supported_extensions: tuple[str, ...]
    format_description: str
    export_instructions_url: str | None = None
    # Regexes matched case-insensitively against the file name; used only to
    # break ties between parsers with equal confidence.
    filename_patterns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DetectionResult:
    detected: bool
    confidence: Confidence
    reason: str


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A transaction as extracted from one bank-file row.

    ``net_amount`` is derived (``amount_in - amount_out``). A combined row may
    carry both amounts; a simple debit or credit has one of them at zero.
    """

    date: date
    description: str
    match_field: str
    amount_out: Decimal
    amount_in: Decimal
    net_amount: Decimal = field(init=False)

    def __post_init__(self) -> None:
        if self.amount_out < 0 or self.amount_in < 0:
            raise ValueError("amount_out and amount_in must be non-negative")
        object.__setattr__(self, "net_amount", self.amount_in - self.amount_out)


@dataclass(slots=True)
class ParseResult:
    transactions: list[ParsedTransaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ParserMatch:
    """Best detection outcome across the registry for one file."""

    parser_id: str
    confidence: Confidence
    reason: str
    # True when another parser reached the same confidence tier and the file
    # name did not separate them; the caller should confirm the choice.
    ambiguous: bool = False
    alternatives: tuple[str, ...] = ()

    @property
    def auto_selectable(self) -> bool:
        """Whether the match is strong enough to use without asking the user."""

        return not self.ambiguous and CONFIDENCE_RANK[self.confidence] >= CONFIDENCE_RANK["medium"]


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BulkImportResult:
    inserted: int
    skipped: int
    total: int


@dataclass(frozen=True, slots=True)
class RecategorizeResult:
    processed: int
    updated: int
    conflicts: int


@dataclass(slots=True)
class UpdateCategoryResult:
    assigned: int = 0
    uncategorized: int = 0
    conflicts: int = 0


@dataclass(frozen=True, slots=True)
class DeleteCategoryResult:
    deleted: bool
    reassigned: int = 0


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Outcome of the full detect → validate → parse → import pipeline."""

    parser_id: str
    import_id: int
    result: BulkImportResult
    parse_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    categorization: RecategorizeResult | None = None


# ---------------------------------------------------------------------------
# Caller payloads
# ---------------------------------------------------------------------------


class TransactionIn(BaseModel):
    """A transaction submitted for (bulk) insertion.

    ``match_field`` defaults to ``description`` and ``net_amount`` to
    ``amount_in - amount_out``. ``date`` accepts a date, a datetime or an ISO
    string; any time-of-day part is dropped.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    date: dt.date
    description: str = Field(min_length=1)
    match_field: str | None = None
    amount_out: Decimal = Field(default=Decimal("0"), ge=0)
    amount_in: Decimal = Field(default=Decimal("0"), ge=0)
    net_amount: Decimal | None = None
    source: str = "Manual"
    category_id: int | None = None
    import_id: int | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _truncate_to_day(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10 and v[10] in "T ":
            return v[:10]
        return v

    @model_validator(mode="after")
    def _fill_derived(self) -> TransactionIn:
        if not self.match_field:
            self.match_field = self.description
        if self.net_amount is None:
            self.net_amount = self.amount_in - self.amount_out
        return self

    @classmethod
    def from_parsed(
        cls,
        tx: ParsedTransaction,
        *,
        source: str,
        import_id: int | None = None,
    ) -> TransactionIn:
        return cls(
            date=tx.date,
            description=tx.description,
            match_field=tx.match_field,
            amount_out=tx.amount_out,
            amount_in=tx.amount_in,
            net_amount=tx.net_amount,
            source=source,
            import_id=import_id,
        )


class CategoryUpdate(BaseModel):
    """Partial update of a category. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str | None = None
    keywords: list[str] | None = None
    order: int | None = None

    @field_validator("keywords")
    @classmethod
    def _drop_blank_keywords(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [k.strip() for k in v if k.strip()]


__all__ = [
    "CONFIDENCE_RANK",
    "BankParserMeta",
    "BulkImportResult",
    "CategoryUpdate",
    "Confidence",
    "DeleteCategoryResult",
    "DetectionResult",
    "ImportReport",
    "ParseResult",
    "ParsedTransaction",
    "ParserMatch",
    "RecategorizeMode",
    "RecategorizeResult",
    "Row",
    "SourceFile",
    "TransactionIn",
    "UpdateCategoryResult",
    "ValidationResult",
]

"""Bank export parsers.

Each supported institution has one :class:`BankParser` subclass. Use
:func:`default_registry` to get all of them, ranked by detection.
"""

from __future__ import annotations

from .amex import AmexParser
from .base import NO_TRANSACTIONS_ERROR, BankParser, RowError
from .cibc import CibcParser
from .registry import DetectionOutcome, ParserRegistry, default_registry

__all__ = [
    "NO_TRANSACTIONS_ERROR",
    "AmexParser",
    "BankParser",
    "CibcParser",
    "DetectionOutcome",
    "ParserRegistry",
    "RowError",
    "default_registry",
]

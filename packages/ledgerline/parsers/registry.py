"""Parser registry: the closed set of supported bank formats.

The registry is an ordered, append-only list of :class:`BankParser`
instances. Detection runs every parser over the same row matrix and ranks the
ones that claim the file:

1. by confidence tier (high > medium > low);
2. then by whether one of the parser's ``filename_patterns`` matches the file
   name;
3. then by registration order.

``ambiguous`` is set when more than one parser reaches the best tier and the
file name does not single one out. A parser whose ``detect`` raises is logged
and treated as not detecting the file.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from ..logging_setup import get_logger
from ..models import CONFIDENCE_RANK, DetectionResult, ParserMatch, SourceFile
from .amex import AmexParser
from .base import BankParser, Rows
from .cibc import CibcParser

logger = get_logger("ledgerline.parsers.registry")


@dataclass(frozen=True, slots=True)
class Candidate:
    parser: BankParser
    result: DetectionResult
    filename_hint: bool

    @property
    def rank(self) -> int:
        return CONFIDENCE_RANK[self.result.confidence]


@dataclass(frozen=True, slots=True)
class DetectionOutcome:
    candidates: tuple[Candidate, ...]
    ambiguous: bool = False

    @property
    def best(self) -> Candidate | None:
        return self.candidates[0] if self.candidates else None

    def to_match(self) -> ParserMatch | None:
        best = self.best
        if best is None:
            return None
        return ParserMatch(
            parser_id=best.parser.id,
            confidence=best.result.confidence,
            reason=best.result.reason,
            ambiguous=self.ambiguous,
            alternatives=tuple(c.parser.id for c in self.candidates[1:]),
        )


def filename_matches(parser: BankParser, file_name: str) -> bool:
    return any(re.search(p, file_name, re.IGNORECASE) for p in parser.meta.filename_patterns)


class ParserRegistry:
    def __init__(self, parsers: Iterable[BankParser] = ()) -> None:
        self._parsers: list[BankParser] = []
        for p in parsers:
            self.register(p)

    def register(self, parser: BankParser) -> None:
        if any(p.id == parser.id for p in self._parsers):
            raise ValueError(f"Parser already registered: {parser.id!r}")
        self._parsers.append(parser)

    def get(self, parser_id: str) -> BankParser | None:
        for p in self._parsers:
            if p.id == parser_id:
                return p
        return None

    def ids(self) -> list[str]:
        return [p.id for p in self._parsers]

    def __iter__(self) -> Iterator[BankParser]:
        return iter(self._parsers)

    def __len__(self) -> int:
        return len(self._parsers)

    def _safe_detect(self, parser: BankParser, file: SourceFile, rows: Rows) -> DetectionResult:
        try:
            return parser.detect(file, rows)
        except Exception:
            logger.exception("Parser %s raised during detection of %s", parser.id, file.name)
            return DetectionResult(False, "none", "Detection failed")

    def detect(self, file: SourceFile, rows: Rows) -> DetectionOutcome:
        """Run every parser over ``rows`` and rank the ones that claim the file."""

        scored: list[tuple[int, Candidate]] = []
        for order, parser in enumerate(self._parsers):
            result = self._safe_detect(parser, file, rows)
            logger.debug(
                "detect %s on %s: %s (%s)", parser.id, file.name, result.confidence, result.reason
            )
            if not result.detected or result.confidence == "none":
                continue
            scored.append((order, Candidate(parser, result, filename_matches(parser, file.name))))

        # Stable order: tier desc, filename hint first, then registration order
        scored.sort(key=lambda oc: (-oc[1].rank, not oc[1].filename_hint, oc[0]))
        candidates = tuple(c for _, c in scored)
        if not candidates:
            return DetectionOutcome(candidates=())

        best = candidates[0]
        tied = [c for c in candidates if c.rank == best.rank]
        ambiguous = len(tied) > 1 and (
            not best.filename_hint or sum(1 for c in tied if c.filename_hint) > 1
        )
        if ambiguous:
            logger.info(
                "Ambiguous format for %s: %s all at %s confidence",
                file.name,
                ", ".join(c.parser.id for c in tied),
                best.result.confidence,
            )
        return DetectionOutcome(candidates=candidates, ambiguous=ambiguous)


def default_registry() -> ParserRegistry:
    """Registry of every built-in bank format, in declaration order."""

    return ParserRegistry([AmexParser(), CibcParser()])


__all__ = [
    "Candidate",
    "DetectionOutcome",
    "ParserRegistry",
    "default_registry",
    "filename_matches",
]

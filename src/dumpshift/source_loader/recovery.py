"""Rewrite strategies consulted when a chunk fails to parse.

Each strategy inspects the failing chunk and the parser's error and
either returns a substitute result or None ("not applicable"). The
chunker tries them in list order; new dump quirks are handled by adding
a strategy, not by touching the retry loop.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from dumpshift.source_loader.base import BaseParser, ParseError, Statement

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    statements: list[Statement] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class RecoveryStrategy(ABC):
    """One textual fallback for a chunk the grammar rejected."""

    name: str = ""

    @abstractmethod
    def recover(self, chunk: str, error: ParseError, parser: BaseParser) -> Optional[RecoveryResult]:
        ...


# ---------------------------------------------------------------------------
# 1. Stored routines, triggers and DELIMITER blocks
# ---------------------------------------------------------------------------

_ROUTINE_ERROR = re.compile(r"\b(function|procedure|trigger|event|delimiter)\b", re.IGNORECASE)
_DELIMITER_LINE = re.compile(r"^\s*DELIMITER\s+\S+", re.IGNORECASE | re.MULTILINE)
_ROUTINE_KIND = re.compile(r"\b(PROCEDURE|FUNCTION|TRIGGER|EVENT)\b", re.IGNORECASE)


class SkipUnsupportedConstruct(RecoveryStrategy):
    """Drop procedure/function/trigger definitions and their DELIMITER fences.

    A chunk holding a single DELIMITER line is an open block: the strategy
    declines so the chunker reads on until the closing DELIMITER arrives.
    """

    name = "skip_unsupported_construct"

    def recover(self, chunk, error, parser):
        if not _ROUTINE_ERROR.search(str(error)):
            return None
        if len(_DELIMITER_LINE.findall(chunk)) == 1:
            return None
        match = _ROUTINE_KIND.search(chunk)
        label = f"create_{match.group(1).lower()}" if match else "delimiter"
        logger.debug(f"Skipping unsupported {label} block")
        return RecoveryResult(skipped=[label])


# ---------------------------------------------------------------------------
# 2. Per-tuple INSERT re-parse
# ---------------------------------------------------------------------------

_INSERT_PREFIX = re.compile(r"\bINSERT\s+(?:IGNORE\s+)?INTO\s+.*?\s*VALUES\s*", re.IGNORECASE | re.DOTALL)


def split_value_tuples(text: str) -> Optional[tuple[list[str], str]]:
    """Split ``(..),(..);rest`` into its parenthesized tuples.

    Returns the tuples and whatever follows the terminating semicolon, or
    None when the text is not a complete tuple list (unbalanced parens,
    an open quote, or no terminator yet).
    """
    tuples: list[str] = []
    depth = 0
    quote = ""
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                if i + 1 < len(text) and text[i + 1] == quote:
                    i += 2
                    continue
                quote = ""
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch == "(":
            if depth == 0:
                start = i
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return None
            if depth == 0:
                tuples.append(text[start:i + 1])
        elif depth == 0:
            if ch == ";":
                return (tuples, text[i + 1:]) if tuples else None
            if ch != "," and not ch.isspace():
                return None
        i += 1
    return None


class IsolateInsertTuples(RecoveryStrategy):
    """Re-parse a failing multi-row INSERT one value tuple at a time.

    Tuples that still fail are skipped so one malformed row does not take
    its siblings down with it.
    """

    name = "isolate_insert_tuples"

    def recover(self, chunk, error, parser):
        match = _INSERT_PREFIX.search(chunk)
        if not match:
            return None
        split = split_value_tuples(chunk[match.end():])
        if split is None:
            return None
        tuples, rest = split

        prefix = match.group(0)
        result = RecoveryResult()
        head = chunk[:match.start()]
        if head.strip():
            try:
                result.statements.extend(parser.parse(head))
            except ParseError as err:
                logger.warning(f"Skipping statement before insert: {err}")
                result.skipped.append("unparsed")
        for value in tuples:
            try:
                result.statements.extend(parser.parse(f"{prefix}{value};"))
            except ParseError as err:
                logger.warning(f"Skipping insert row {value[:80]!r}: {err}")
                result.skipped.append("insert")
        if rest.strip():
            try:
                result.statements.extend(parser.parse(rest))
            except ParseError as err:
                logger.warning(f"Skipping statement after insert: {err}")
                result.skipped.append("unparsed")
        return result


# ---------------------------------------------------------------------------
# 3. Types the grammar cannot represent
# ---------------------------------------------------------------------------

SPATIAL_TYPES = (
    "geometrycollection", "multilinestring", "multipolygon", "multipoint",
    "linestring", "polygon", "geometry", "point",
)

_SPATIAL_COLUMN = re.compile(
    r"(?<=[\w`\"])(\s+)(?:" + "|".join(SPATIAL_TYPES) + r")\b",
    re.IGNORECASE,
)
_SRID = re.compile(r"\s*(?:/\*!\d+\s*)?\bSRID\s+\d+\s*(?:\*/)?", re.IGNORECASE)


class SubstituteUnsupportedTypes(RecoveryStrategy):
    """Replace spatial column types with text and retry once."""

    name = "substitute_unsupported_types"

    def recover(self, chunk, error, parser):
        message = str(error).lower()
        hits = [t for t in SPATIAL_TYPES if t in message]
        if not hits:
            return None
        rewritten = _SRID.sub("", _SPATIAL_COLUMN.sub(r"\1text", chunk))
        if rewritten == chunk:
            return None
        try:
            statements = parser.parse(rewritten)
        except ParseError as err:
            logger.debug(f"Type substitution did not help: {err}")
            return None
        return RecoveryResult(
            statements=statements,
            notes=[f"Spatial type {hits[0]} not supported; column mapped to text"],
        )


def default_strategies() -> list[RecoveryStrategy]:
    return [SkipUnsupportedConstruct(), IsolateInsertTuples(), SubstituteUnsupportedTypes()]

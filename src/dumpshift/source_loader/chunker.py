"""Streaming statement chunker with parse recovery.

Lines are accumulated into a chunk until the chunk plausibly ends a
statement (the last line holds a ';', or the stream is exhausted), then
the whole chunk is handed to the parser. A rejected chunk goes through
the recovery strategies; when none applies, the chunker reads another
line and tries again. This handles terminators that sit inside
comments, string literals and quoted identifiers without the chunker
knowing any SQL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from dumpshift.source_loader.base import BaseParser, DumpParseError, ParseError, Statement
from dumpshift.source_loader.reader import LineReader
from dumpshift.source_loader.recovery import RecoveryResult, RecoveryStrategy, default_strategies

logger = logging.getLogger(__name__)


@dataclass
class ChunkerStats:
    """Parse-level diagnostics gathered while chunking."""

    reparsed: int = 0
    statements: int = 0
    skipped: dict[str, int] = field(default_factory=dict)
    notes: dict[str, int] = field(default_factory=dict)

    def record_recovery(self, result: RecoveryResult) -> None:
        for label in result.skipped:
            self.skipped[label] = self.skipped.get(label, 0) + 1
        for note in result.notes:
            self.notes[note] = self.notes.get(note, 0) + 1


class StatementChunker:
    """Turns a line stream into an ordered, lazy sequence of statements."""

    def __init__(
        self,
        reader: LineReader,
        parser: BaseParser,
        strategies: Optional[list[RecoveryStrategy]] = None,
        stats: Optional[ChunkerStats] = None,
    ):
        self.reader = reader
        self.parser = parser
        self.strategies = default_strategies() if strategies is None else strategies
        self.stats = stats or ChunkerStats()

    def __iter__(self) -> Iterator[Statement]:
        lines: list[str] = []
        while True:
            line = self.reader.read_line()
            if line:
                lines.append(line)
            at_end = self.reader.eof
            if not lines:
                if at_end:
                    return
                continue
            if ";" not in line and not at_end:
                continue

            chunk = "".join(lines)
            try:
                statements = self.parser.parse(chunk)
            except ParseError as err:
                result = self._recover(chunk, err)
                if result is None:
                    if at_end:
                        logger.error(
                            f"Unparsable input at end of dump (line {self.reader.line_number}): {err}"
                        )
                        raise DumpParseError(len(lines), str(err)) from err
                    self.stats.reparsed += 1
                    continue
                self.stats.record_recovery(result)
                statements = result.statements

            lines = []
            self.stats.statements += len(statements)
            yield from statements
            if at_end:
                return

    def _recover(self, chunk: str, error: ParseError) -> Optional[RecoveryResult]:
        for strategy in self.strategies:
            result = strategy.recover(chunk, error, self.parser)
            if result is not None:
                logger.debug(f"Recovered chunk with {strategy.name}")
                return result
        return None

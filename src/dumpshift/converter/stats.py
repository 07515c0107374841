"""Diagnostics gathered over a conversion run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from dumpshift.source_loader.chunker import ChunkerStats

logger = logging.getLogger(__name__)


@dataclass
class StatementStat:
    """How often statements of one kind were accepted, skipped or failed."""

    schema: int = 0
    data: int = 0
    skip: int = 0
    error: int = 0


@dataclass
class ConversionStats:
    """Counters and samples consumed by external reporting.

    Row counts are keyed by source table name: ``rows`` is filled during
    the schema pass, ``good_rows``/``bad_rows`` by the row
    converter during the data pass.
    """

    max_unexpected: int = 1000
    bad_row_sample_limit: int = 10 * 1024 * 1024

    parse: ChunkerStats = field(default_factory=ChunkerStats)
    statements: dict[str, StatementStat] = field(default_factory=dict)
    rows: dict[str, int] = field(default_factory=dict)
    good_rows: dict[str, int] = field(default_factory=dict)
    bad_rows: dict[str, int] = field(default_factory=dict)
    unexpected: dict[str, int] = field(default_factory=dict)
    bad_row_sample: list[str] = field(default_factory=list)
    bad_row_sample_bytes: int = 0

    def _stat(self, kind: str) -> StatementStat:
        return self.statements.setdefault(kind, StatementStat())

    def schema_statement(self, kind: str) -> None:
        self._stat(kind).schema += 1

    def data_statement(self, kind: str) -> None:
        self._stat(kind).data += 1

    def skip_statement(self, kind: str) -> None:
        self._stat(kind).skip += 1

    def error_statement(self, kind: str) -> None:
        self._stat(kind).error += 1

    def record_unexpected(self, message: str) -> None:
        """Count an unexpected condition; distinct messages are capped."""
        if message in self.unexpected:
            self.unexpected[message] += 1
        elif len(self.unexpected) < self.max_unexpected:
            self.unexpected[message] = 1

    def add_source_rows(self, table: str, count: int) -> None:
        self.rows[table] = self.rows.get(table, 0) + count

    def good_row(self, table: str) -> None:
        self.good_rows[table] = self.good_rows.get(table, 0) + 1

    def bad_row(self, table: str, columns: Sequence[str], values: Sequence[str]) -> None:
        """Count a rejected row and keep its raw text while the sample has room.

        The first bad row is always kept, whatever its size.
        """
        self.bad_rows[table] = self.bad_rows.get(table, 0) + 1
        line = f"table={table} cols={list(columns)} data={list(values)}"
        size = len(line.encode("utf-8", errors="surrogateescape"))
        if not self.bad_row_sample or self.bad_row_sample_bytes + size <= self.bad_row_sample_limit:
            self.bad_row_sample.append(line)
            self.bad_row_sample_bytes += size

    @property
    def reparsed(self) -> int:
        return self.parse.reparsed

    def total_bad_rows(self) -> int:
        return sum(self.bad_rows.values())

    def to_dict(self) -> dict:
        return {
            "reparsed": self.parse.reparsed,
            "parsed_statements": self.parse.statements,
            "skipped_constructs": dict(self.parse.skipped),
            "parse_notes": dict(self.parse.notes),
            "statements": {
                kind: {"schema": s.schema, "data": s.data, "skip": s.skip, "error": s.error}
                for kind, s in self.statements.items()
            },
            "rows": dict(self.rows),
            "good_rows": dict(self.good_rows),
            "bad_rows": dict(self.bad_rows),
            "unexpected": dict(self.unexpected),
            "bad_row_sample": list(self.bad_row_sample),
        }

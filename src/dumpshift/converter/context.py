"""Conversion context: the state of one run, passed explicitly to every step."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from dumpshift.config import ConversionConfig
from dumpshift.converter.stats import ConversionStats
from dumpshift.schema.issues import SchemaIssue
from dumpshift.schema.model import SourceTable, TargetTable
from dumpshift.schema.names import NameRegistry

logger = logging.getLogger(__name__)

# (table name, column names, values) for each converted row.
RowSink = Callable[[str, list[str], list[Any]], None]


class Mode(str, Enum):
    SCHEMA = "schema"
    DATA = "data"


class ConversionContext:
    """Schemas, issues, diagnostics and session settings of one conversion.

    Source and target tables share ids: ``target_schema[t.id]`` is the
    conversion of ``source_schema[t.id]``.
    """

    def __init__(self, config: Optional[ConversionConfig] = None, sink: Optional[RowSink] = None):
        self.config = config or ConversionConfig()
        self.sink = sink
        self.mode = Mode.SCHEMA
        self.source_schema: dict[str, SourceTable] = {}
        self.target_schema: dict[str, TargetTable] = {}
        self.issues: dict[str, dict[str, list[SchemaIssue]]] = {}
        self.used_names = NameRegistry()
        self.timezone_offset = self.config.default_timezone_offset
        self.stats = ConversionStats(
            max_unexpected=self.config.max_unexpected_conditions,
            bad_row_sample_limit=self.config.bad_row_sample_bytes,
        )
        self._source_ids: dict[str, str] = {}
        self._counter = 0

    def generate_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    # -- tables ---------------------------------------------------------------

    def add_source_table(self, table: SourceTable) -> None:
        self.source_schema[table.id] = table
        self._source_ids[table.name] = table.id

    def source_table_by_name(self, name: str) -> Optional[SourceTable]:
        table_id = self._source_ids.get(name)
        return self.source_schema.get(table_id) if table_id else None

    def target_table_by_name(self, name: str) -> Optional[TargetTable]:
        return next((t for t in self.target_schema.values() if t.name == name), None)

    # -- issues ---------------------------------------------------------------

    def add_issue(self, table_id: str, col_id: str, issue: SchemaIssue) -> None:
        issues = self.issues.setdefault(table_id, {}).setdefault(col_id, [])
        if issue not in issues:
            issues.append(issue)

    def remove_issues(self, table_id: str, col_id: str, issues: Iterable[SchemaIssue]) -> None:
        drop = set(issues)
        current = self.issues.get(table_id, {}).get(col_id)
        if current:
            current[:] = [i for i in current if i not in drop]

    def column_issues(self, table_id: str, col_id: str) -> list[SchemaIssue]:
        return list(self.issues.get(table_id, {}).get(col_id, []))

    # -- diagnostics ----------------------------------------------------------

    def unexpected(self, message: str) -> None:
        logger.warning(f"Unexpected condition: {message}")
        self.stats.record_unexpected(message)

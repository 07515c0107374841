"""Catalogue of conversion issues attached to target columns and tables."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class Severity(str, Enum):
    WARNING = "warning"
    NOTE = "note"
    SUGGESTION = "suggestion"
    ERROR = "error"


class SchemaIssue(str, Enum):
    """Enumerated issue codes."""

    DEFAULT_VALUE = "default_value"
    FOREIGN_KEY = "foreign_key"
    MULTI_DIMENSIONAL_ARRAY = "multi_dimensional_array"
    NO_GOOD_TYPE = "no_good_type"
    DECIMAL = "decimal"
    AUTO_INCREMENT = "auto_increment"
    DATETIME = "datetime"
    TIME = "time"
    WIDENED = "widened"
    PROMOTED_UNIQUE_KEY = "promoted_unique_key"
    SYNTHETIC_KEY_ADDED = "synthetic_key_added"
    HOTSPOT_TIMESTAMP = "hotspot_timestamp"
    HOTSPOT_AUTO_INCREMENT = "hotspot_auto_increment"
    INTERLEAVED_NOT_IN_ORDER = "interleaved_not_in_order"
    INTERLEAVED_ADD_COLUMN = "interleaved_add_column"
    INTERLEAVED_RENAME_COLUMN = "interleaved_rename_column"
    INTERLEAVED_CHANGE_COLUMN_SIZE = "interleaved_change_column_size"


@dataclass(frozen=True)
class IssueInfo:
    brief: str
    severity: Severity
    batch: bool = False


ISSUE_DB: dict[SchemaIssue, IssueInfo] = {
    SchemaIssue.DEFAULT_VALUE: IssueInfo(
        "Some columns have default values which are not supported by the target",
        Severity.WARNING, batch=True,
    ),
    SchemaIssue.FOREIGN_KEY: IssueInfo(
        "Foreign key could not be converted", Severity.WARNING,
    ),
    SchemaIssue.MULTI_DIMENSIONAL_ARRAY: IssueInfo(
        "Multi-dimensional arrays are not supported; column stored as a string",
        Severity.WARNING,
    ),
    SchemaIssue.NO_GOOD_TYPE: IssueInfo(
        "No appropriate target type; column stored as a string", Severity.WARNING,
    ),
    SchemaIssue.DECIMAL: IssueInfo(
        "Declared precision exceeds NUMERIC(38,9); values may lose precision",
        Severity.WARNING,
    ),
    SchemaIssue.AUTO_INCREMENT: IssueInfo(
        "Auto-increment is not supported; column values are copied as-is",
        Severity.WARNING,
    ),
    SchemaIssue.DATETIME: IssueInfo(
        "Datetime is mapped to TIMESTAMP and interpreted without a timezone",
        Severity.WARNING, batch=True,
    ),
    SchemaIssue.TIME: IssueInfo(
        "Time and year values are stored as strings", Severity.WARNING, batch=True,
    ),
    SchemaIssue.WIDENED: IssueInfo(
        "Numeric type widened to its 64-bit target equivalent", Severity.NOTE, batch=True,
    ),
    SchemaIssue.PROMOTED_UNIQUE_KEY: IssueInfo(
        "Unique key promoted to primary key; its columns are now NOT NULL",
        Severity.SUGGESTION,
    ),
    SchemaIssue.SYNTHETIC_KEY_ADDED: IssueInfo(
        "Table has no key; a synthetic primary key column was added",
        Severity.SUGGESTION,
    ),
    SchemaIssue.HOTSPOT_TIMESTAMP: IssueInfo(
        "Timestamp as the first primary key column may cause write hotspots",
        Severity.WARNING,
    ),
    SchemaIssue.HOTSPOT_AUTO_INCREMENT: IssueInfo(
        "Auto-increment first primary key column may cause write hotspots",
        Severity.WARNING,
    ),
    SchemaIssue.INTERLEAVED_NOT_IN_ORDER: IssueInfo(
        "Reorder primary key columns to match the parent table for interleaving",
        Severity.SUGGESTION,
    ),
    SchemaIssue.INTERLEAVED_ADD_COLUMN: IssueInfo(
        "Add the parent key column to the primary key for interleaving",
        Severity.SUGGESTION,
    ),
    SchemaIssue.INTERLEAVED_RENAME_COLUMN: IssueInfo(
        "Rename the column to match the parent key for interleaving",
        Severity.SUGGESTION,
    ),
    SchemaIssue.INTERLEAVED_CHANGE_COLUMN_SIZE: IssueInfo(
        "Change the column type or size to match the parent key for interleaving",
        Severity.SUGGESTION,
    ),
}

INTERLEAVE_ISSUES = frozenset({
    SchemaIssue.INTERLEAVED_NOT_IN_ORDER,
    SchemaIssue.INTERLEAVED_ADD_COLUMN,
    SchemaIssue.INTERLEAVED_RENAME_COLUMN,
    SchemaIssue.INTERLEAVED_CHANGE_COLUMN_SIZE,
})


def table_issue_score(column_issues: dict[str, Iterable[SchemaIssue]]) -> dict[Severity, int]:
    """Count a table's issues by severity.

    Batch issues count once per table no matter how many columns carry
    them; other issues count once per occurrence.
    """
    counts = {s: 0 for s in Severity}
    seen_batch: set[SchemaIssue] = set()
    for issues in column_issues.values():
        for issue in issues:
            info = ISSUE_DB[issue]
            if info.batch:
                if issue in seen_batch:
                    continue
                seen_batch.add(issue)
            counts[info.severity] += 1
    return counts

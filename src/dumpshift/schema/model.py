"""In-memory schema model for a conversion run.

The source side mirrors what the dump declares (names are kept verbatim,
columns are addressed by name). The target side is keyed by stable ids
that are shared with the source objects they were derived from, so a
target table or column can be renamed without losing its provenance.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

MAX_LENGTH = 9223372036854775807


class TypeName(str, Enum):
    """Scalar types supported by the target store."""

    BOOL = "BOOL"
    INT64 = "INT64"
    FLOAT64 = "FLOAT64"
    NUMERIC = "NUMERIC"
    STRING = "STRING"
    BYTES = "BYTES"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    JSON = "JSON"


# ---------------------------------------------------------------------------
# Source side
# ---------------------------------------------------------------------------


@dataclass
class SourceType:
    """A column type as declared in the dump, e.g. varchar(40) or set('a','b')."""

    name: str
    mods: list[int] = field(default_factory=list)
    array_bounds: list[int] = field(default_factory=list)
    elements: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.mods:
            return f"{self.name}({','.join(str(m) for m in self.mods)})"
        return self.name


@dataclass
class IgnoredFeatures:
    """Source column features that the target schema cannot express."""

    default: bool = False
    auto_increment: bool = False
    check: bool = False
    foreign_key: bool = False


@dataclass
class SourceColumn:
    id: str
    name: str
    type: SourceType
    not_null: bool = False
    unique: bool = False
    ignored: IgnoredFeatures = field(default_factory=IgnoredFeatures)


@dataclass
class SourceKey:
    column: str
    desc: bool = False
    order: int = 0


@dataclass
class SourceForeignKey:
    id: str
    name: str
    columns: list[str]
    refer_table: str
    refer_columns: list[str]
    on_delete: str = ""
    on_update: str = ""


@dataclass
class SourceIndex:
    id: str
    name: str
    keys: list[SourceKey]
    unique: bool = False


@dataclass
class SourceTable:
    """A table as declared in the dump; mutated in place by ALTER statements."""

    id: str
    name: str
    col_names: list[str] = field(default_factory=list)
    col_defs: dict[str, SourceColumn] = field(default_factory=dict)
    primary_keys: list[SourceKey] = field(default_factory=list)
    foreign_keys: list[SourceForeignKey] = field(default_factory=list)
    indexes: list[SourceIndex] = field(default_factory=list)

    def add_column(self, column: SourceColumn) -> None:
        if column.name not in self.col_defs:
            self.col_names.append(column.name)
        self.col_defs[column.name] = column

    def column_by_id(self, col_id: str) -> Optional[SourceColumn]:
        return next((c for c in self.col_defs.values() if c.id == col_id), None)


# ---------------------------------------------------------------------------
# Target side
# ---------------------------------------------------------------------------


@dataclass
class TargetType:
    name: TypeName
    length: Optional[int] = None
    is_array: bool = False

    def __str__(self) -> str:
        base = self.name.value
        if self.length is not None:
            base += "(MAX)" if self.length == MAX_LENGTH else f"({self.length})"
        return f"ARRAY<{base}>" if self.is_array else base


@dataclass
class TargetColumn:
    id: str
    name: str
    type: TargetType
    not_null: bool = False
    comment: str = ""


@dataclass
class TargetKey:
    col_id: str
    desc: bool = False
    order: int = 0


@dataclass
class TargetForeignKey:
    id: str
    name: str
    col_ids: list[str]
    refer_table_id: str
    refer_column_ids: list[str]
    on_delete: str = ""
    on_update: str = ""


@dataclass
class TargetIndex:
    id: str
    name: str
    keys: list[TargetKey]
    unique: bool = False


@dataclass
class SyntheticPrimaryKey:
    """Surrogate key column plus the per-table row sequence.

    The sequence is advanced under a lock so several workers may convert
    rows of the same table.
    """

    col_id: str
    sequence: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def take(self) -> int:
        """Return the current sequence value and advance it."""
        with self._lock:
            value = self.sequence
            self.sequence += 1
            return value


@dataclass
class TargetTable:
    id: str
    name: str
    col_ids: list[str] = field(default_factory=list)
    col_defs: dict[str, TargetColumn] = field(default_factory=dict)
    primary_keys: list[TargetKey] = field(default_factory=list)
    foreign_keys: list[TargetForeignKey] = field(default_factory=list)
    indexes: list[TargetIndex] = field(default_factory=list)
    parent_id: Optional[str] = None
    comment: str = ""
    synthetic_key: Optional[SyntheticPrimaryKey] = None
    interleave_fk: Optional[TargetForeignKey] = None

    def add_column(self, column: TargetColumn) -> None:
        if column.id not in self.col_defs:
            self.col_ids.append(column.id)
        self.col_defs[column.id] = column

    def column_by_name(self, name: str) -> Optional[TargetColumn]:
        return next((c for c in self.col_defs.values() if c.name == name), None)

    def pk_col_ids(self) -> list[str]:
        return [k.col_id for k in sorted(self.primary_keys, key=lambda k: k.order)]

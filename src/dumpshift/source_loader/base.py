"""Neutral statement types and the parser capability used by the chunker.

Every grammar backend turns dump text into the small statement variant
defined here, so the chunking and recovery loop never sees a
library-specific AST.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

# Textual stand-in for SQL NULL in insert rows.
NULL_SENTINEL = "\\N"


class ParseError(Exception):
    """The grammar could not accept the given text."""


class DumpParseError(Exception):
    """The dump ended with input that never parsed."""

    def __init__(self, line_count: int, detail: str = ""):
        self.line_count = line_count
        self.detail = detail
        message = f"Error parsing last {line_count} line(s) of input"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class StatementKind(str, Enum):
    CREATE_TABLE = "create_table"
    CREATE_INDEX = "create_index"
    ALTER_TABLE = "alter_table"
    INSERT = "insert"
    SET_VARIABLE = "set_variable"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Column and constraint clauses
# ---------------------------------------------------------------------------


@dataclass
class TypeSpec:
    """Column type as written: lowercase name, numeric modifiers, set/enum members."""

    name: str
    mods: list[int] = field(default_factory=list)
    elements: list[str] = field(default_factory=list)


@dataclass
class ColumnSpec:
    name: str
    type: Optional[TypeSpec]
    not_null: bool = False
    primary_key: bool = False
    unique: bool = False
    auto_increment: bool = False
    has_default: bool = False
    has_check: bool = False
    references: Optional[ForeignKeySpec] = None


@dataclass
class KeyPart:
    column: str
    desc: bool = False


@dataclass
class PrimaryKeySpec:
    keys: list[KeyPart]
    name: str = ""


@dataclass
class ForeignKeySpec:
    columns: list[str]
    refer_table: str
    refer_columns: list[str]
    name: str = ""
    on_delete: str = ""
    on_update: str = ""


@dataclass
class IndexSpec:
    keys: list[KeyPart]
    name: str = ""
    unique: bool = False


@dataclass
class CheckSpec:
    name: str = ""


@dataclass
class ModifyColumnSpec:
    column: ColumnSpec


@dataclass
class UnsupportedAlterSpec:
    text: str


Constraint = Union[PrimaryKeySpec, ForeignKeySpec, IndexSpec, CheckSpec]
AlterSpec = Union[PrimaryKeySpec, ForeignKeySpec, IndexSpec, CheckSpec, ModifyColumnSpec, UnsupportedAlterSpec]


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass
class CreateTable:
    table: str
    columns: list[ColumnSpec] = field(default_factory=list)
    constraints: list[Constraint] = field(default_factory=list)
    kind: StatementKind = StatementKind.CREATE_TABLE


@dataclass
class CreateIndex:
    table: str
    index: IndexSpec
    kind: StatementKind = StatementKind.CREATE_INDEX


@dataclass
class AlterTable:
    table: str
    specs: list[AlterSpec] = field(default_factory=list)
    kind: StatementKind = StatementKind.ALTER_TABLE


@dataclass
class Insert:
    """An INSERT with literal rows; NULL values are ``NULL_SENTINEL``."""

    table: str
    columns: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    kind: StatementKind = StatementKind.INSERT


@dataclass
class SetVariable:
    """``SET name = value``; value is None when it is not a plain literal."""

    name: str
    value: Optional[str] = None
    value_shape: str = "literal"
    kind: StatementKind = StatementKind.SET_VARIABLE


@dataclass
class Other:
    """Any statement outside the schema/data vocabulary."""

    label: str
    kind: StatementKind = StatementKind.OTHER


Statement = Union[CreateTable, CreateIndex, AlterTable, Insert, SetVariable, Other]


class BaseParser(ABC):
    """Grammar capability consumed by the statement chunker."""

    @abstractmethod
    def parse(self, text: str) -> list[Statement]:
        """Parse text holding zero or more complete statements.

        Raises ParseError when the text is not acceptable as a whole.
        """
        ...

"""Dump reading: line reader, recovering statement chunker and grammar backends."""

from dumpshift.source_loader.base import (
    NULL_SENTINEL,
    AlterTable,
    BaseParser,
    ColumnSpec,
    CreateIndex,
    CreateTable,
    DumpParseError,
    ForeignKeySpec,
    IndexSpec,
    Insert,
    Other,
    ParseError,
    PrimaryKeySpec,
    SetVariable,
    Statement,
    StatementKind,
    TypeSpec,
)
from dumpshift.source_loader.chunker import ChunkerStats, StatementChunker
from dumpshift.source_loader.mysql_parser import MySQLDumpParser
from dumpshift.source_loader.reader import LineReader
from dumpshift.source_loader.recovery import (
    IsolateInsertTuples,
    RecoveryResult,
    RecoveryStrategy,
    SkipUnsupportedConstruct,
    SubstituteUnsupportedTypes,
    default_strategies,
)

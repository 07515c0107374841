"""End-to-end conversion driver.

Runs the two passes over a dump:
  Schema pass → finalize schema (types, keys, hotspots, interleaving) → Data pass

The schema pass must see the whole dump before any row is converted, so
the dump is opened twice through a caller-supplied stream factory.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Callable, Optional, Union

from dumpshift.config import ConversionConfig
from dumpshift.converter.context import ConversionContext, Mode, RowSink
from dumpshift.converter.interleave import interleave_all
from dumpshift.converter.key_resolver import detect_hotspots, resolve_primary_keys
from dumpshift.converter.row_converter import process_insert
from dumpshift.converter.schema_builder import SchemaBuilder
from dumpshift.converter.target_builder import build_target_schema
from dumpshift.source_loader.base import BaseParser, DumpParseError, Insert
from dumpshift.source_loader.chunker import StatementChunker
from dumpshift.source_loader.mysql_parser import MySQLDumpParser
from dumpshift.source_loader.reader import LineReader

logger = logging.getLogger(__name__)

StreamFactory = Callable[[], Union[IO[str], IO[bytes]]]


class ConversionStatus(str, Enum):
    """Conversion run status."""

    PENDING = "pending"
    SCHEMA = "schema"
    DATA = "data"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class PassResult:
    """Result of one pass over the dump."""

    name: str
    status: str  # "success" or "failed"
    statements: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class ConversionResult:
    """Complete result of a conversion run."""

    status: ConversionStatus
    tables: int = 0
    good_rows: int = 0
    bad_rows: int = 0
    total_duration_seconds: float = 0.0
    passes: list[PassResult] = field(default_factory=list)
    stats: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to serializable dictionary."""
        return {
            "status": self.status.value,
            "tables": self.tables,
            "good_rows": self.good_rows,
            "bad_rows": self.bad_rows,
            "total_duration_seconds": round(self.total_duration_seconds, 1),
            "passes": [
                {
                    "name": p.name,
                    "status": p.status,
                    "statements": p.statements,
                    "duration_seconds": round(p.duration_seconds, 1),
                    "error": p.error,
                }
                for p in self.passes
            ],
            "stats": self.stats,
            "error": self.error,
        }


def convert_schema(ctx: ConversionContext, reader: LineReader, parser: Optional[BaseParser] = None) -> int:
    """Schema pass: ingest schema statements, count rows, then finalize the target schema."""
    ctx.mode = Mode.SCHEMA
    builder = SchemaBuilder(ctx)
    chunker = StatementChunker(reader, parser or MySQLDumpParser(), stats=ctx.stats.parse)
    count = 0
    for statement in chunker:
        count += 1
        if isinstance(statement, Insert):
            ctx.stats.add_source_rows(statement.table, len(statement.rows))
        else:
            builder.process(statement)
    finalize_schema(ctx)
    return count


def finalize_schema(ctx: ConversionContext) -> None:
    build_target_schema(ctx)
    resolve_primary_keys(ctx)
    detect_hotspots(ctx)
    if ctx.config.interleave_tables:
        interleave_all(ctx)


def convert_data(ctx: ConversionContext, reader: LineReader, parser: Optional[BaseParser] = None) -> int:
    """Data pass: feed every INSERT row through the row converter."""
    ctx.mode = Mode.DATA
    chunker = StatementChunker(reader, parser or MySQLDumpParser())
    count = 0
    for statement in chunker:
        count += 1
        if isinstance(statement, Insert):
            process_insert(ctx, statement)
    return count


class ConversionRunner:
    """Runs a full conversion of one dump.

    Flow:
    1. Schema pass over a fresh stream
    2. Finalize target schema
    3. Data pass over a second fresh stream, rows go to the sink
    """

    def __init__(
        self,
        config: Optional[ConversionConfig] = None,
        parser: Optional[BaseParser] = None,
    ):
        self.config = config or ConversionConfig()
        self.parser = parser or MySQLDumpParser()

    def run(
        self,
        open_stream: StreamFactory,
        sink: Optional[RowSink] = None,
        on_status_change: Optional[Callable[[ConversionStatus, str], None]] = None,
    ) -> tuple[ConversionContext, ConversionResult]:
        """Execute both passes.

        Args:
            open_stream: Returns a new stream positioned at the start of the dump.
            sink: Receives (table, columns, values) for each converted row.
            on_status_change: Optional callback for status updates.

        Returns:
            The conversion context (schemas, issues) and a ConversionResult.
        """
        start_time = time.time()
        ctx = ConversionContext(self.config, sink)
        result = ConversionResult(status=ConversionStatus.PENDING)

        def update_status(status: ConversionStatus, message: str = ""):
            result.status = status
            logger.info(f"Conversion [{status.value}]: {message}")
            if on_status_change:
                on_status_change(status, message)

        errors = self.config.validate()
        if errors:
            result.status = ConversionStatus.FAILED
            result.error = "; ".join(errors)
            return ctx, result

        for name, status, step in (
            ("schema", ConversionStatus.SCHEMA, convert_schema),
            ("data", ConversionStatus.DATA, convert_data),
        ):
            update_status(status, f"Reading dump for the {name} pass")
            pass_start = time.time()
            stream = open_stream()
            try:
                statements = step(ctx, LineReader(stream), self.parser)
            except DumpParseError as err:
                logger.error(f"{name} pass failed: {err}")
                result.passes.append(PassResult(
                    name=name, status="failed",
                    duration_seconds=time.time() - pass_start, error=str(err),
                ))
                result.status = ConversionStatus.FAILED
                result.error = str(err)
                break
            finally:
                stream.close()
            result.passes.append(PassResult(
                name=name, status="success", statements=statements,
                duration_seconds=time.time() - pass_start,
            ))
        else:
            update_status(ConversionStatus.COMPLETE, f"{len(ctx.target_schema)} table(s) converted")

        result.tables = len(ctx.target_schema)
        result.good_rows = sum(ctx.stats.good_rows.values())
        result.bad_rows = ctx.stats.total_bad_rows()
        result.stats = ctx.stats.to_dict()
        result.total_duration_seconds = time.time() - start_time
        return ctx, result

"""Row conversion: textual source values → typed target values.

Values come in as strings, with SQL NULL spelled ``NULL_SENTINEL``.
NULL columns are left out of the output row entirely. A value that
fails to parse rejects the whole row; the row is counted and sampled,
never raised.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Sequence

from dumpshift.converter.context import ConversionContext
from dumpshift.converter.key_resolver import next_synthetic_value
from dumpshift.schema.model import SourceTable, TargetTable, TargetType, TypeName
from dumpshift.source_loader.base import NULL_SENTINEL, Insert

logger = logging.getLogger(__name__)

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

_TRUE = {"1", "t", "true"}
_FALSE = {"0", "f", "false"}


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"Invalid boolean {value!r}")


def parse_bytes(value: str) -> bytes:
    return value.encode("utf-8", errors="surrogateescape")


def _plain_number(value: str) -> str:
    text = value.strip()
    if "_" in text:
        raise ValueError(f"Invalid number {value!r}")
    return text


def parse_int64(value: str) -> int:
    result = int(_plain_number(value))
    if not INT64_MIN <= result <= INT64_MAX:
        raise ValueError(f"Integer {value!r} out of INT64 range")
    return result


def parse_float64(value: str) -> float:
    result = float(_plain_number(value))
    if not math.isfinite(result):
        raise ValueError(f"Non-finite float {value!r}")
    return result


def parse_numeric(value: str) -> Decimal:
    try:
        result = Decimal(_plain_number(value))
    except InvalidOperation as err:
        raise ValueError(f"Invalid decimal {value!r}") from err
    if not result.is_finite():
        raise ValueError(f"Non-finite decimal {value!r}")
    return result


def parse_date(value: str) -> date:
    return date.fromisoformat(value.strip())


def parse_timestamp(value: str, source_type: str, offset: str) -> datetime:
    """Parse ``YYYY-MM-DD HH:MM:SS[.ffffff]``.

    A MySQL ``timestamp`` is an instant: the session offset is attached
    and the result is normalized to UTC. Any other source type (e.g.
    ``datetime``) is wall-clock time and stays naive.
    """
    text = value.strip().replace(" ", "T", 1)
    if source_type == "timestamp":
        return datetime.fromisoformat(text + offset).astimezone(timezone.utc)
    return datetime.fromisoformat(text)


def parse_string_array(value: str) -> list[Optional[str]]:
    """Split a SET value ``a,b,c`` into its members."""
    if value == "":
        return []
    members: list[Optional[str]] = []
    for member in value.split(","):
        if member in (NULL_SENTINEL, "NULL"):
            members.append(None)
        elif len(member) >= 2 and member[0] == member[-1] == '"':
            members.append(member[1:-1].replace('\\"', '"').replace("\\\\", "\\"))
        else:
            members.append(member)
    return members


# One parser per target type; TIMESTAMP needs the source type and offset
# and is handled in convert_value.
SCALAR_PARSERS: dict[TypeName, Callable[[str], Any]] = {
    TypeName.BOOL: parse_bool,
    TypeName.BYTES: parse_bytes,
    TypeName.DATE: parse_date,
    TypeName.FLOAT64: parse_float64,
    TypeName.INT64: parse_int64,
    TypeName.NUMERIC: parse_numeric,
    TypeName.STRING: lambda v: v,
    TypeName.JSON: lambda v: v,
}


def convert_value(value: str, target: TargetType, source_type: str, offset: str) -> Any:
    """Convert one non-NULL value; raises ValueError when it does not parse."""
    if target.is_array:
        if target.name != TypeName.STRING:
            raise ValueError(f"Unsupported array type {target}")
        return parse_string_array(value)
    if target.name == TypeName.TIMESTAMP:
        return parse_timestamp(value, source_type, offset)
    return SCALAR_PARSERS[target.name](value)


def convert_row(
    ctx: ConversionContext,
    source: SourceTable,
    target: TargetTable,
    columns: Sequence[str],
    values: Sequence[str],
) -> tuple[list[str], list[Any]]:
    """Convert a row of source values; raises ValueError on the first bad value."""
    if len(columns) != len(values):
        raise ValueError(f"{len(values)} value(s) for {len(columns)} column(s)")
    out_columns: list[str] = []
    out_values: list[Any] = []
    for name, value in zip(columns, values):
        column = source.col_defs.get(name)
        if column is None:
            raise ValueError(f"Unknown column {name}")
        if value == NULL_SENTINEL:
            continue
        target_column = target.col_defs[column.id]
        try:
            converted = convert_value(value, target_column.type, column.type.name, ctx.timezone_offset)
        except ValueError as err:
            raise ValueError(f"Column {name}: {err}") from err
        out_columns.append(target_column.name)
        out_values.append(converted)
    return out_columns, out_values


def process_data_row(
    ctx: ConversionContext, table_name: str, columns: Sequence[str], values: Sequence[str]
) -> bool:
    """Convert one source row and hand it to the sink.

    An empty ``columns`` means the table's declared column order.
    Returns False when the row was rejected.
    """
    source = ctx.source_table_by_name(table_name)
    if source is None or source.id not in ctx.target_schema:
        ctx.unexpected(f"Data for unknown table {table_name}")
        ctx.stats.bad_row(table_name, columns, values)
        return False
    target = ctx.target_schema[source.id]
    columns = list(columns) or list(source.col_names)

    try:
        out_columns, out_values = convert_row(ctx, source, target, columns, values)
    except ValueError as err:
        logger.debug(f"Bad row for {target.name}: {err}")
        ctx.stats.bad_row(source.name, columns, values)
        return False

    if target.synthetic_key is not None:
        out_columns.append(target.col_defs[target.synthetic_key.col_id].name)
        out_values.append(next_synthetic_value(target))
    ctx.stats.good_row(source.name)
    if ctx.sink is not None:
        ctx.sink(target.name, out_columns, out_values)
    return True


def process_insert(ctx: ConversionContext, statement: Insert) -> int:
    """Convert every row of an INSERT; returns the number of good rows."""
    good = 0
    for row in statement.rows:
        if process_data_row(ctx, statement.table, statement.columns, row):
            good += 1
    ctx.stats.data_statement("insert")
    return good

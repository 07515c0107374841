"""Primary key resolution: unique-key promotion, synthetic keys and hotspots.

The target store is range partitioned on the primary key, so a table
without one gets a synthetic INT64 key whose values are the bit-reversed
row sequence. Consecutive rows then land far apart in the key space.
"""

from __future__ import annotations

import logging
from typing import Optional

from dumpshift.converter.context import ConversionContext
from dumpshift.schema.issues import SchemaIssue
from dumpshift.schema.model import (
    SourceKey,
    SyntheticPrimaryKey,
    TargetColumn,
    TargetKey,
    TargetTable,
    TargetType,
    TypeName,
)

logger = logging.getLogger(__name__)

_UINT64_MASK = (1 << 64) - 1


def bit_reverse_64(value: int) -> int:
    """Reverse the 64 bits of ``value`` and return them as a signed int64."""
    reversed_bits = int(format(value & _UINT64_MASK, "064b")[::-1], 2)
    if reversed_bits >= 1 << 63:
        reversed_bits -= 1 << 64
    return reversed_bits


def resolve_primary_keys(ctx: ConversionContext) -> None:
    """Give every target table exactly one primary key."""
    for table in ctx.target_schema.values():
        if table.primary_keys:
            continue
        if not promote_unique_key(ctx, table):
            add_synthetic_key(ctx, table)


def promote_unique_key(ctx: ConversionContext, table: TargetTable) -> bool:
    """Use the first unique index, or else the first unique column, as the key."""
    source = ctx.source_schema[table.id]
    keys: Optional[list[SourceKey]] = None
    promoted_index = next((i for i in source.indexes if i.unique), None)
    if promoted_index is not None:
        keys = promoted_index.keys
    else:
        unique_column = next((n for n in source.col_names if source.col_defs[n].unique), None)
        if unique_column is not None:
            keys = [SourceKey(unique_column, order=1)]
    if keys is None:
        return False

    table.primary_keys = []
    for order, key in enumerate(keys, start=1):
        col_id = source.col_defs[key.column].id
        table.primary_keys.append(TargetKey(col_id, desc=key.desc, order=order))
        table.col_defs[col_id].not_null = True
        ctx.add_issue(table.id, col_id, SchemaIssue.PROMOTED_UNIQUE_KEY)

    if promoted_index is not None:
        redundant = next((i for i in table.indexes if i.id == promoted_index.id), None)
        if redundant is not None:
            table.indexes.remove(redundant)
            ctx.used_names.release(redundant.name)
    logger.info(f"Promoted unique key {[k.column for k in keys]} to primary key of {table.name}")
    return True


def add_synthetic_key(ctx: ConversionContext, table: TargetTable) -> TargetColumn:
    """Add an INT64 synthetic key column named after the configured base.

    Probes ``base``, then ``base0``, ``base1``, ... until no existing
    column of the table uses the name.
    """
    base = ctx.config.synthetic_key_base
    taken = {c.name.lower() for c in table.col_defs.values()}
    name = base
    suffix = 0
    while name.lower() in taken:
        name = f"{base}{suffix}"
        suffix += 1

    column = TargetColumn(
        id=ctx.generate_id("c"),
        name=name,
        type=TargetType(TypeName.INT64),
        not_null=True,
        comment="Synthetic primary key",
    )
    table.add_column(column)
    table.primary_keys = [TargetKey(column.id, order=1)]
    table.synthetic_key = SyntheticPrimaryKey(column.id)
    ctx.add_issue(table.id, column.id, SchemaIssue.SYNTHETIC_KEY_ADDED)
    logger.info(f"Added synthetic primary key {name} to {table.name}")
    return column


def next_synthetic_value(table: TargetTable) -> int:
    """Bit-reversed value of the table's row sequence, advancing it by one."""
    if table.synthetic_key is None:
        raise ValueError(f"Table {table.name} has no synthetic key")
    return bit_reverse_64(table.synthetic_key.take())


def detect_hotspots(ctx: ConversionContext) -> None:
    """Flag first key columns whose values grow monotonically."""
    for table in ctx.target_schema.values():
        if table.synthetic_key is not None or not table.primary_keys:
            continue
        col_id = table.pk_col_ids()[0]
        column = table.col_defs[col_id]
        source_column = ctx.source_schema[table.id].column_by_id(col_id)
        if column.type.name == TypeName.TIMESTAMP:
            ctx.add_issue(table.id, col_id, SchemaIssue.HOTSPOT_TIMESTAMP)
        if source_column is not None and source_column.ignored.auto_increment:
            ctx.add_issue(table.id, col_id, SchemaIssue.HOTSPOT_AUTO_INCREMENT)

"""Builds the target schema from the completed source schema."""

from __future__ import annotations

import logging
from typing import Optional

from dumpshift.converter.context import ConversionContext
from dumpshift.schema.issues import SchemaIssue
from dumpshift.schema.model import (
    SourceForeignKey,
    SourceIndex,
    SourceTable,
    TargetColumn,
    TargetForeignKey,
    TargetIndex,
    TargetKey,
    TargetTable,
)
from dumpshift.schema.names import NameRegistry
from dumpshift.schema.type_mapper import to_target_type

logger = logging.getLogger(__name__)


def build_target_schema(ctx: ConversionContext) -> None:
    """Convert every source table, then resolve cross-table references."""
    for source in ctx.source_schema.values():
        ctx.target_schema[source.id] = build_target_table(ctx, source)
    for source in ctx.source_schema.values():
        target = ctx.target_schema[source.id]
        for fk in source.foreign_keys:
            converted = convert_foreign_key(ctx, source, fk)
            if converted is not None:
                target.foreign_keys.append(converted)
        for index in source.indexes:
            target.indexes.append(convert_index(ctx, source, index))
    logger.info(f"Converted {len(ctx.target_schema)} table(s) to the target schema")


def build_target_table(ctx: ConversionContext, source: SourceTable) -> TargetTable:
    table = TargetTable(
        id=source.id,
        name=ctx.used_names.unique_name(source.name),
        comment=f"Source table: {source.name}",
    )
    column_names = NameRegistry()
    for name in source.col_names:
        column = source.col_defs[name]
        target_type, issues = to_target_type(column.type)
        if column.ignored.default:
            issues.append(SchemaIssue.DEFAULT_VALUE)
        if column.ignored.auto_increment:
            issues.append(SchemaIssue.AUTO_INCREMENT)
        table.add_column(TargetColumn(
            id=column.id,
            name=column_names.unique_name(name),
            type=target_type,
            not_null=column.not_null,
            comment=f"From: {name} {column.type}",
        ))
        for issue in issues:
            ctx.add_issue(table.id, column.id, issue)

    table.primary_keys = [
        TargetKey(source.col_defs[k.column].id, desc=k.desc, order=k.order)
        for k in source.primary_keys
    ]
    return table


def convert_foreign_key(
    ctx: ConversionContext, source: SourceTable, fk: SourceForeignKey
) -> Optional[TargetForeignKey]:
    """Resolve a source foreign key against the converted tables by id.

    Returns None (and records why) when the referenced table or columns
    are not part of the dump.
    """
    parent = ctx.source_table_by_name(fk.refer_table)
    if parent is None or parent.id not in ctx.target_schema:
        ctx.unexpected(f"Foreign key on {source.name} references unknown table {fk.refer_table}")
        _flag_foreign_key(ctx, source, fk)
        return None

    refer_columns = fk.refer_columns or [k.column for k in parent.primary_keys]
    if len(refer_columns) != len(fk.columns) or any(c not in parent.col_defs for c in refer_columns):
        ctx.unexpected(
            f"Foreign key on {source.name} references unknown columns {refer_columns} of {parent.name}"
        )
        _flag_foreign_key(ctx, source, fk)
        return None

    return TargetForeignKey(
        id=fk.id,
        name=ctx.used_names.unique_name(fk.name) if fk.name else "",
        col_ids=[source.col_defs[c].id for c in fk.columns],
        refer_table_id=parent.id,
        refer_column_ids=[parent.col_defs[c].id for c in refer_columns],
        on_delete=fk.on_delete,
        on_update=fk.on_update,
    )


def _flag_foreign_key(ctx: ConversionContext, source: SourceTable, fk: SourceForeignKey) -> None:
    for column in fk.columns:
        ctx.add_issue(source.id, source.col_defs[column].id, SchemaIssue.FOREIGN_KEY)


def convert_index(ctx: ConversionContext, source: SourceTable, index: SourceIndex) -> TargetIndex:
    name = index.name or f"idx_{source.name}_{'_'.join(k.column for k in index.keys)}"
    return TargetIndex(
        id=index.id,
        name=ctx.used_names.unique_name(name),
        keys=[TargetKey(source.col_defs[k.column].id, desc=k.desc, order=k.order) for k in index.keys],
        unique=index.unique,
    )

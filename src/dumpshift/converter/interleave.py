"""Interleave analysis: can a child table be stored inside its FK parent?

A child can be interleaved when the parent's primary key is a prefix of
the child's primary key, reached through one of the child's foreign
keys, with matching names, types and sizes, in the same order. When the
match is partial the analyzer attaches a suggestion issue to the child
column that needs fixing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from dumpshift.converter.context import ConversionContext
from dumpshift.schema.issues import INTERLEAVE_ISSUES, SchemaIssue
from dumpshift.schema.model import TargetColumn, TargetForeignKey, TargetTable

logger = logging.getLogger(__name__)


@dataclass
class InterleaveStatus:
    possible: bool = False
    parent: str = ""
    comment: str = ""


def _same_shape(parent_col: TargetColumn, child_col: TargetColumn) -> bool:
    return (
        parent_col.name == child_col.name
        and parent_col.type.name == child_col.type.name
        and parent_col.type.length == child_col.type.length
    )


def _is_ancestor(ctx: ConversionContext, table_id: str, of: TargetTable) -> bool:
    current = of
    while current.parent_id:
        if current.parent_id == table_id:
            return True
        current = ctx.target_schema[current.parent_id]
    return False


def analyze_foreign_key(
    ctx: ConversionContext, child_id: str, fk: TargetForeignKey, update: bool = False
) -> InterleaveStatus:
    """Check (and with ``update`` commit) interleaving the child under fk's parent."""
    child = ctx.target_schema[child_id]
    parent = ctx.target_schema.get(fk.refer_table_id)
    if parent is None:
        return InterleaveStatus(comment="Parent table not found")
    if child.synthetic_key is not None:
        return InterleaveStatus(comment="Has synthetic pk")
    if parent.synthetic_key is not None:
        return InterleaveStatus(comment="Parent has synthetic pk")
    if parent.id == child.id or _is_ancestor(ctx, child.id, parent):
        return InterleaveStatus(comment="Would create an interleave cycle")

    parent_pk = parent.pk_col_ids()
    if not parent_pk or any(col_id not in fk.refer_column_ids for col_id in parent_pk):
        _clear_interleave_issues(ctx, child.id, fk.col_ids)
        return InterleaveStatus(comment="No valid prefix")

    pairs = []
    for col_id in parent_pk:
        child_col_id = fk.col_ids[fk.refer_column_ids.index(col_id)]
        pairs.append((parent.col_defs[col_id], child.col_defs[child_col_id]))

    child_pk = child.pk_col_ids()
    diff = [(p, c) for p, c in pairs if c.id not in child_pk or not _same_shape(p, c)]
    if diff:
        _suggest_fixes(ctx, child, diff, child_pk)
        return InterleaveStatus(comment="Primary key does not match the parent key")

    for position, (_, child_col) in enumerate(pairs):
        if child_pk.index(child_col.id) != position:
            _set_interleave_issue(ctx, child.id, child_col.id, SchemaIssue.INTERLEAVED_NOT_IN_ORDER)
            return InterleaveStatus(comment="Primary key columns are not in the parent's order")

    if update and child.parent_id is None:
        _commit(ctx, child, parent, fk, child_pk)
    return InterleaveStatus(possible=True, parent=parent.id, comment="Interleaving possible")


def find_interleave_parent(ctx: ConversionContext, table_id: str, update: bool = False) -> InterleaveStatus:
    """Try the table's foreign keys in declaration order; the first match wins."""
    table = ctx.target_schema[table_id]
    if table.synthetic_key is not None:
        return InterleaveStatus(comment="Has synthetic pk")
    status = InterleaveStatus(comment="No foreign keys")
    for fk in list(table.foreign_keys):
        status = analyze_foreign_key(ctx, table_id, fk, update)
        if status.possible:
            return status
    return status


def interleave_all(ctx: ConversionContext) -> int:
    """Commit interleaving for every table where it is possible."""
    count = 0
    for table_id in list(ctx.target_schema):
        if find_interleave_parent(ctx, table_id, update=True).possible:
            count += 1
    logger.info(f"Interleaved {count} table(s)")
    return count


def remove_interleave(ctx: ConversionContext, table_id: str) -> bool:
    """Undo a committed interleave: restore the foreign key and clear the parent."""
    table = ctx.target_schema[table_id]
    if table.parent_id is None:
        return False
    removed = table.interleave_fk
    if removed is not None:
        if removed.name:
            removed = replace(removed, name=ctx.used_names.unique_name(removed.name))
        order = [fk.id for fk in ctx.source_schema[table_id].foreign_keys]
        position = sum(1 for fk in table.foreign_keys if order.index(fk.id) < order.index(removed.id))
        table.foreign_keys.insert(position, removed)
    logger.info(f"Removed interleaving of {table.name} in {ctx.target_schema[table.parent_id].name}")
    table.parent_id = None
    table.interleave_fk = None
    return True


def _commit(
    ctx: ConversionContext,
    child: TargetTable,
    parent: TargetTable,
    fk: TargetForeignKey,
    child_pk: list[str],
) -> None:
    child.parent_id = parent.id
    child.interleave_fk = fk
    child.foreign_keys = [f for f in child.foreign_keys if f.id != fk.id]
    if fk.name:
        ctx.used_names.release(fk.name)
    _clear_interleave_issues(ctx, child.id, child_pk)
    logger.info(f"Interleaved {child.name} in {parent.name}")


def _suggest_fixes(
    ctx: ConversionContext,
    child: TargetTable,
    diff: list[tuple[TargetColumn, TargetColumn]],
    child_pk: list[str],
) -> None:
    change_size, rename, add = [], [], []
    for parent_col, child_col in diff:
        if child_col.id not in child_pk:
            add.append(child_col)
        elif child_col.name == parent_col.name:
            change_size.append(child_col)
        else:
            rename.append(child_col)

    if change_size:
        issue, columns = SchemaIssue.INTERLEAVED_CHANGE_COLUMN_SIZE, change_size
    elif rename:
        issue, columns = SchemaIssue.INTERLEAVED_RENAME_COLUMN, rename
    else:
        issue, columns = SchemaIssue.INTERLEAVED_ADD_COLUMN, add
    for column in columns:
        _set_interleave_issue(ctx, child.id, column.id, issue)


def _set_interleave_issue(ctx: ConversionContext, table_id: str, col_id: str, issue: SchemaIssue) -> None:
    ctx.remove_issues(table_id, col_id, INTERLEAVE_ISSUES)
    ctx.add_issue(table_id, col_id, issue)


def _clear_interleave_issues(ctx: ConversionContext, table_id: str, col_ids: list[str]) -> None:
    for col_id in col_ids:
        ctx.remove_issues(table_id, col_id, INTERLEAVE_ISSUES)

"""Folds parsed schema statements into the source schema.

Anomalies (a missing name, an unresolved type, a second primary key)
are recorded as unexpected conditions and the offending statement or
column is skipped; ingestion of the rest of the dump continues.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from dumpshift.converter.context import ConversionContext
from dumpshift.schema.model import (
    IgnoredFeatures,
    SourceColumn,
    SourceForeignKey,
    SourceIndex,
    SourceKey,
    SourceTable,
    SourceType,
)
from dumpshift.schema.type_mapper import check_modifier_count
from dumpshift.source_loader.base import (
    AlterTable,
    CheckSpec,
    ColumnSpec,
    Constraint,
    CreateIndex,
    CreateTable,
    ForeignKeySpec,
    IndexSpec,
    KeyPart,
    ModifyColumnSpec,
    Other,
    PrimaryKeySpec,
    SetVariable,
    Statement,
    UnsupportedAlterSpec,
)

logger = logging.getLogger(__name__)

_OFFSET = re.compile(r"^([+-])(\d{1,2}):(\d{2})$")


class SchemaBuilder:
    """Applies CREATE/ALTER/SET statements to a conversion context."""

    def __init__(self, ctx: ConversionContext):
        self.ctx = ctx

    def process(self, statement: Statement) -> None:
        if isinstance(statement, CreateTable):
            self.process_create_table(statement)
        elif isinstance(statement, CreateIndex):
            self.process_create_index(statement)
        elif isinstance(statement, AlterTable):
            self.process_alter_table(statement)
        elif isinstance(statement, SetVariable):
            self.process_set_variable(statement)
        elif isinstance(statement, Other):
            self.ctx.stats.skip_statement(statement.label)
        else:
            self.ctx.stats.skip_statement(statement.kind.value)

    # -- CREATE ---------------------------------------------------------------

    def process_create_table(self, statement: CreateTable) -> None:
        ctx = self.ctx
        if not statement.table:
            ctx.unexpected("CREATE TABLE without a table name")
            ctx.stats.error_statement("create_table")
            return
        if ctx.source_table_by_name(statement.table):
            ctx.unexpected(f"Table {statement.table} is created twice; keeping the first definition")
            ctx.stats.skip_statement("create_table")
            return

        table = SourceTable(id=ctx.generate_id("t"), name=statement.table)
        for spec in statement.columns:
            column = self._column(table, spec)
            if column is None:
                continue
            table.add_column(column)
            if spec.primary_key:
                self._set_primary_key(table, [KeyPart(spec.name)])
            if spec.references is not None:
                self._add_foreign_key(table, spec.references)
        for constraint in statement.constraints:
            self._apply_constraint(table, constraint)

        ctx.add_source_table(table)
        ctx.stats.schema_statement("create_table")
        logger.debug(f"Created table {table.name} with {len(table.col_names)} column(s)")

    def _column(self, table: SourceTable, spec: ColumnSpec) -> Optional[SourceColumn]:
        if not spec.name:
            self.ctx.unexpected(f"Column without a name in table {table.name}")
            return None
        if spec.type is None or not spec.type.name:
            self.ctx.unexpected(f"Unresolved type for column {spec.name} in table {table.name}")
            return None

        message = check_modifier_count(spec.type.name, spec.type.mods)
        if message:
            self.ctx.unexpected(message)
        array_bounds = [len(spec.type.elements)] if spec.type.name == "set" else []
        return SourceColumn(
            id=self.ctx.generate_id("c"),
            name=spec.name,
            type=SourceType(spec.type.name, list(spec.type.mods), array_bounds, list(spec.type.elements)),
            not_null=spec.not_null or spec.primary_key,
            unique=spec.unique,
            ignored=IgnoredFeatures(
                default=spec.has_default,
                auto_increment=spec.auto_increment,
                check=spec.has_check,
                foreign_key=spec.references is not None,
            ),
        )

    def process_create_index(self, statement: CreateIndex) -> None:
        table = self.ctx.source_table_by_name(statement.table)
        if table is None:
            logger.warning(f"CREATE INDEX on unknown table {statement.table}; skipping")
            self.ctx.stats.skip_statement("create_index")
            return
        self._add_index(table, statement.index)
        self.ctx.stats.schema_statement("create_index")

    # -- ALTER ----------------------------------------------------------------

    def process_alter_table(self, statement: AlterTable) -> None:
        ctx = self.ctx
        table = ctx.source_table_by_name(statement.table)
        if table is None:
            logger.warning(f"ALTER TABLE on unknown table {statement.table}; skipping")
            ctx.stats.skip_statement("alter_table")
            return

        applied = False
        for spec in statement.specs:
            if isinstance(spec, ModifyColumnSpec):
                applied = self._modify_column(table, spec.column) or applied
            elif isinstance(spec, UnsupportedAlterSpec):
                logger.debug(f"Ignoring ALTER TABLE {table.name} action {spec.text}")
            else:
                self._apply_constraint(table, spec)
                applied = True

        if applied:
            ctx.stats.schema_statement("alter_table")
        else:
            ctx.stats.skip_statement("alter_table")

    def _modify_column(self, table: SourceTable, spec: ColumnSpec) -> bool:
        existing = table.col_defs.get(spec.name)
        if existing is None:
            self.ctx.unexpected(f"MODIFY COLUMN on unknown column {spec.name} in table {table.name}")
            return False
        replacement = self._column(table, spec)
        if replacement is None:
            return False
        replacement.id = existing.id
        replacement.not_null = replacement.not_null or any(k.column == spec.name for k in table.primary_keys)
        replacement.ignored.foreign_key = replacement.ignored.foreign_key or existing.ignored.foreign_key
        table.col_defs[spec.name] = replacement
        return True

    # -- constraints ----------------------------------------------------------

    def _apply_constraint(self, table: SourceTable, constraint: Constraint) -> None:
        if isinstance(constraint, PrimaryKeySpec):
            self._set_primary_key(table, constraint.keys)
        elif isinstance(constraint, ForeignKeySpec):
            self._add_foreign_key(table, constraint)
        elif isinstance(constraint, IndexSpec):
            self._add_index(table, constraint)
        elif isinstance(constraint, CheckSpec):
            logger.debug(f"Dropping CHECK constraint {constraint.name} on {table.name}")

    def _known_keys(self, table: SourceTable, keys: list[KeyPart]) -> list[KeyPart]:
        known = []
        for key in keys:
            if key.column in table.col_defs:
                known.append(key)
            else:
                self.ctx.unexpected(f"Key column {key.column} not found in table {table.name}")
        return known

    def _set_primary_key(self, table: SourceTable, keys: list[KeyPart]) -> None:
        keys = self._known_keys(table, keys)
        if not keys:
            return
        if table.primary_keys:
            self.ctx.unexpected(f"Multiple primary keys found for table {table.name}")
        table.primary_keys = [
            SourceKey(k.column, desc=k.desc, order=i) for i, k in enumerate(keys, start=1)
        ]
        for key in keys:
            table.col_defs[key.column].not_null = True

    def _add_foreign_key(self, table: SourceTable, spec: ForeignKeySpec) -> None:
        missing = [c for c in spec.columns if c not in table.col_defs]
        if missing:
            self.ctx.unexpected(f"Foreign key columns {missing} not found in table {table.name}")
            return
        table.foreign_keys.append(SourceForeignKey(
            id=self.ctx.generate_id("f"),
            name=spec.name,
            columns=list(spec.columns),
            refer_table=spec.refer_table,
            refer_columns=list(spec.refer_columns),
            on_delete=spec.on_delete,
            on_update=spec.on_update,
        ))
        for column in spec.columns:
            table.col_defs[column].ignored.foreign_key = True

    def _add_index(self, table: SourceTable, spec: IndexSpec) -> None:
        keys = self._known_keys(table, spec.keys)
        if not keys:
            return
        table.indexes.append(SourceIndex(
            id=self.ctx.generate_id("i"),
            name=spec.name,
            keys=[SourceKey(k.column, desc=k.desc, order=i) for i, k in enumerate(keys, start=1)],
            unique=spec.unique,
        ))

    # -- SET ------------------------------------------------------------------

    def process_set_variable(self, statement: SetVariable) -> None:
        ctx = self.ctx
        if statement.name.upper() != "TIME_ZONE":
            ctx.stats.skip_statement("set_variable")
            return
        if statement.value is None:
            # e.g. SET TIME_ZONE=@OLD_TIME_ZONE at the end of a dump.
            logger.debug(f"Ignoring TIME_ZONE assignment from a {statement.value_shape} expression")
            ctx.stats.skip_statement("set_time_zone")
            return

        match = _OFFSET.match(statement.value.strip())
        if not match:
            ctx.unexpected(f"Unsupported TIME_ZONE value {statement.value!r}")
            ctx.stats.error_statement("set_time_zone")
            return
        sign, hours, minutes = match.groups()
        ctx.timezone_offset = f"{sign}{int(hours):02d}:{minutes}"
        ctx.stats.schema_statement("set_time_zone")
        logger.info(f"Session timezone offset set to {ctx.timezone_offset}")

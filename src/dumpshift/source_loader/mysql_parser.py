"""MySQL dump grammar backed by sqlglot.

The chunk is tokenized once to find statement boundaries, then each
statement is parsed with the MySQL dialect and folded into the neutral
statement types from ``base``. Statements that only matter to the
server session (LOCK TABLES, DROP TABLE, ...) are passed through as
``Other`` when sqlglot cannot read them, and so are ALTER TABLE forms
it cannot read. CREATE TABLE, CREATE INDEX and INSERT statements must
parse or the whole chunk is rejected.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator, Optional

from sqlglot import exp
from sqlglot.dialects.dialect import Dialect
from sqlglot.errors import SqlglotError
from sqlglot.tokens import Token, TokenType

from dumpshift.source_loader.base import (
    NULL_SENTINEL,
    AlterTable,
    BaseParser,
    CheckSpec,
    ColumnSpec,
    Constraint,
    CreateIndex,
    CreateTable,
    ForeignKeySpec,
    IndexSpec,
    Insert,
    KeyPart,
    ModifyColumnSpec,
    Other,
    ParseError,
    PrimaryKeySpec,
    SetVariable,
    Statement,
    TypeSpec,
    UnsupportedAlterSpec,
)
from dumpshift.source_loader.recovery import SPATIAL_TYPES

logger = logging.getLogger(__name__)

# /*!40101 SET ... */ : versioned comments that MySQL executes.
_CONDITIONAL_COMMENT = re.compile(r"/\*!\d*\s?(.*?)\*/", re.DOTALL)
_DELIMITER = re.compile(r"^\s*DELIMITER\s", re.IGNORECASE | re.MULTILINE)
_ROUTINE = re.compile(
    r"^\s*CREATE\s+(?:OR\s+REPLACE\s+)?(?:DEFINER\s*=\s*\S+\s+)?(?:AGGREGATE\s+)?"
    r"(PROCEDURE|FUNCTION|TRIGGER|EVENT)\b",
    re.IGNORECASE | re.MULTILINE,
)
_SPATIAL_TYPE = re.compile(
    r"(?<=[\w`\"])\s+(" + "|".join(SPATIAL_TYPES) + r")\b",
    re.IGNORECASE,
)
_MODIFY_COLUMN = re.compile(
    r"^\s*ALTER\s+TABLE\s+(\S+)\s+MODIFY\s+(?:COLUMN\s+)?(.+?)\s*;?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_ON_ACTION = re.compile(r"ON\s+(DELETE|UPDATE)\s+(SET\s+NULL|SET\s+DEFAULT|NO\s+ACTION|\w+)", re.IGNORECASE)

# Statements whose parse failure must reject the chunk.
_STRICT_HEADS = (
    "CREATE TABLE",
    "CREATE TEMPORARY TABLE",
    "CREATE INDEX",
    "CREATE UNIQUE INDEX",
    "INSERT",
)
_SCHEMA_HEADS = ("CREATE TABLE", "CREATE TEMPORARY TABLE", "ALTER TABLE")

# sqlglot type names that differ from the MySQL spelling.
_TYPE_ALIASES = {
    "UTINYINT": "tinyint",
    "USMALLINT": "smallint",
    "UMEDIUMINT": "mediumint",
    "UINT": "int",
    "UBIGINT": "bigint",
    "UDECIMAL": "decimal",
    "UDOUBLE": "double",
    "BOOLEAN": "bool",
    "NCHAR": "char",
    "NVARCHAR": "varchar",
    "TIMESTAMPTZ": "timestamp",
    "TIMESTAMPLTZ": "timestamp",
}

_ALTER_TYPES = tuple(getattr(exp, name) for name in ("Alter", "AlterTable") if hasattr(exp, name))
_CONSTRAINT_TYPES = (
    exp.PrimaryKey,
    exp.ForeignKey,
    exp.UniqueColumnConstraint,
    exp.IndexColumnConstraint,
    exp.CheckColumnConstraint,
)


def expand_conditional_comments(text: str) -> str:
    return _CONDITIONAL_COMMENT.sub(lambda m: m.group(1), text)


def _describe(err: SqlglotError) -> str:
    errors = getattr(err, "errors", None)
    if errors:
        first = errors[0]
        return f"{first.get('description')} (line {first.get('line')}, col {first.get('col')})"
    # Tokenizer messages quote the input; keep them out of the error text.
    return "Error tokenizing input: unterminated string, comment or identifier"


def _split_statements(tokens: list[Token]) -> Iterator[tuple[list[Token], bool]]:
    group: list[Token] = []
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            if group:
                yield group, True
            group = []
        else:
            group.append(token)
    if group:
        yield group, False


def _ident(node: Optional[exp.Expression]) -> str:
    while isinstance(node, (exp.Ordered, exp.Paren)):
        node = node.this
    if node is None:
        return ""
    if isinstance(node, exp.Identifier):
        return node.this
    return node.name


def _key_parts(nodes: list[exp.Expression]) -> list[KeyPart]:
    return [
        KeyPart(_ident(n), desc=isinstance(n, exp.Ordered) and bool(n.args.get("desc")))
        for n in nodes
    ]


def _table_name(table: exp.Expression) -> str:
    if isinstance(table, exp.Schema):
        table = table.this
    if not isinstance(table, exp.Table):
        return ""
    return ".".join(part for part in (table.db, table.name) if part)


def _iter_constraints(node: exp.Expression, name: str = "") -> Iterator[tuple[str, exp.Expression]]:
    if isinstance(node, exp.Constraint):
        for child in node.expressions:
            yield from _iter_constraints(child, node.name)
    elif isinstance(node, _CONSTRAINT_TYPES):
        yield name, node
    elif isinstance(node, exp.ColumnDef):
        return
    else:
        if isinstance(node, exp.AddConstraint) and isinstance(node.args.get("this"), exp.Identifier):
            name = node.args["this"].name
        for child in node.iter_expressions():
            yield from _iter_constraints(child, name)


class MySQLDumpParser(BaseParser):
    """Parses mysqldump output into neutral statements."""

    def __init__(self) -> None:
        self._dialect = Dialect.get_or_raise("mysql")

    def parse(self, text: str) -> list[Statement]:
        text = expand_conditional_comments(text)
        self._reject_unsupported(text)
        try:
            tokens = self._dialect.tokenize(text)
        except SqlglotError as err:
            raise ParseError(_describe(err)) from err

        statements: list[Statement] = []
        for group, terminated in _split_statements(tokens):
            sql = text[group[0].start:group[-1].end + 1]
            head = " ".join(t.text.upper() for t in group[:3])
            strict = not terminated or head.startswith(_STRICT_HEADS)
            statements.extend(self._parse_statement(sql, head, strict))
        return statements

    def _reject_unsupported(self, text: str) -> None:
        if _DELIMITER.search(text):
            raise ParseError("DELIMITER statements are not supported")
        routine = _ROUTINE.search(text)
        if routine:
            raise ParseError(f"CREATE {routine.group(1).upper()} statements are not supported")

    def _parse_statement(self, sql: str, head: str, strict: bool) -> list[Statement]:
        if head.startswith(_SCHEMA_HEADS):
            spatial = _SPATIAL_TYPE.search(sql)
            if spatial:
                raise ParseError(f"Unsupported column type '{spatial.group(1).lower()}'")
        modify = _MODIFY_COLUMN.match(sql) if head.startswith("ALTER TABLE") else None
        try:
            if modify:
                return [self._modify_column(*modify.groups())]
            nodes = self._dialect.parse(sql)
        except SqlglotError as err:
            if strict:
                raise ParseError(_describe(err)) from err
            logger.debug(f"Passing through unparsed statement: {head}")
            label = "alter_table" if head.startswith("ALTER TABLE") else head.split()[0].lower()
            return [Other(label)]

        statements: list[Statement] = []
        for node in nodes:
            if node is not None:
                statements.extend(self._convert(node))
        return statements

    def _convert(self, node: exp.Expression) -> list[Statement]:
        if isinstance(node, exp.Create):
            kind = str(node.args.get("kind") or "").upper()
            if kind == "TABLE" and isinstance(node.this, exp.Schema):
                return [self._create_table(node)]
            if kind == "INDEX":
                return [self._create_index(node)]
            return [Other(f"create_{kind.lower()}")]
        if _ALTER_TYPES and isinstance(node, _ALTER_TYPES):
            return [self._alter_table(node)]
        if isinstance(node, exp.Insert):
            return [self._insert(node)]
        if isinstance(node, exp.Set):
            return self._set(node)
        if isinstance(node, exp.Command):
            return [Other(str(node.this).lower())]
        return [Other(node.key)]

    # -- schema -------------------------------------------------------------

    def _create_table(self, node: exp.Create) -> CreateTable:
        schema = node.this
        statement = CreateTable(table=_table_name(schema))
        for item in schema.expressions:
            if isinstance(item, exp.ColumnDef):
                statement.columns.append(self._column(item))
            else:
                statement.constraints.extend(self._constraints(item))
        return statement

    def _column(self, node: exp.ColumnDef) -> ColumnSpec:
        spec = ColumnSpec(name=node.name, type=self._type(node.args.get("kind")))
        for constraint in node.args.get("constraints") or []:
            kind = constraint.args.get("kind")
            if isinstance(kind, exp.NotNullColumnConstraint):
                spec.not_null = not kind.args.get("allow_null")
            elif isinstance(kind, exp.PrimaryKeyColumnConstraint):
                spec.primary_key = True
            elif isinstance(kind, exp.UniqueColumnConstraint):
                spec.unique = True
            elif isinstance(kind, exp.DefaultColumnConstraint):
                spec.has_default = True
            elif isinstance(kind, exp.AutoIncrementColumnConstraint):
                spec.auto_increment = True
            elif isinstance(kind, exp.CheckColumnConstraint):
                spec.has_check = True
            elif isinstance(kind, exp.Reference):
                spec.references = self._reference(kind, [spec.name])
        return spec

    def _type(self, dtype: Optional[exp.Expression]) -> Optional[TypeSpec]:
        if not isinstance(dtype, exp.DataType):
            return None
        type_key = dtype.this.name
        if type_key == "USERDEFINED":
            name = str(dtype.args.get("kind") or "").lower()
        else:
            name = _TYPE_ALIASES.get(type_key, type_key.lower())

        spec = TypeSpec(name)
        for param in dtype.expressions:
            value = param.this if isinstance(param, exp.DataTypeParam) else param
            if not isinstance(value, exp.Literal):
                continue
            if value.is_string:
                spec.elements.append(value.this)
            elif value.this.isdigit():
                spec.mods.append(int(value.this))
        return spec

    def _constraints(self, node: exp.Expression) -> list[Constraint]:
        specs: list[Constraint] = []
        for name, constraint in _iter_constraints(node):
            if isinstance(constraint, exp.PrimaryKey):
                specs.append(PrimaryKeySpec(_key_parts(constraint.expressions), name))
            elif isinstance(constraint, exp.ForeignKey):
                specs.append(self._foreign_key(constraint, name))
            elif isinstance(constraint, (exp.UniqueColumnConstraint, exp.IndexColumnConstraint)):
                specs.append(self._index(constraint, name))
            elif isinstance(constraint, exp.CheckColumnConstraint):
                specs.append(CheckSpec(name))
        return specs

    def _index(self, node: exp.Expression, name: str) -> IndexSpec:
        target = node.this if isinstance(node.this, exp.Schema) else node
        if not name:
            name = _ident(target.this) if isinstance(target, exp.Schema) else _ident(node.this)
        return IndexSpec(
            keys=_key_parts(target.expressions),
            name=name,
            unique=isinstance(node, exp.UniqueColumnConstraint),
        )

    def _foreign_key(self, node: exp.ForeignKey, name: str) -> ForeignKeySpec:
        columns = [_ident(e) for e in node.expressions]
        spec = self._reference(node.args.get("reference"), columns, name)
        spec.on_delete = str(node.args.get("delete") or spec.on_delete).upper()
        spec.on_update = str(node.args.get("update") or spec.on_update).upper()
        return spec

    def _reference(self, ref: Optional[exp.Expression], columns: list[str], name: str = "") -> ForeignKeySpec:
        if ref is None:
            raise ParseError(f"Foreign key on {columns} has no REFERENCES clause")
        target = ref.this
        refer_columns = [_ident(e) for e in target.expressions] if isinstance(target, exp.Schema) else []
        spec = ForeignKeySpec(columns, _table_name(target), refer_columns, name)
        for option in ref.args.get("options") or []:
            for action, value in _ON_ACTION.findall(str(option)):
                if action.upper() == "DELETE":
                    spec.on_delete = " ".join(value.upper().split())
                else:
                    spec.on_update = " ".join(value.upper().split())
        return spec

    def _create_index(self, node: exp.Create) -> CreateIndex:
        index = node.this
        params = index.args.get("params")
        columns = index.args.get("columns") or (params.args.get("columns") if params else None) or []
        unique = bool(node.args.get("unique") or index.args.get("unique"))
        return CreateIndex(
            table=_table_name(index.args.get("table")),
            index=IndexSpec(keys=_key_parts(columns), name=_ident(index.this), unique=unique),
        )

    def _alter_table(self, node: exp.Expression) -> AlterTable:
        statement = AlterTable(table=_table_name(node.this))
        for action in node.args.get("actions") or []:
            constraints = [] if isinstance(action, exp.ColumnDef) else self._constraints(action)
            if constraints:
                statement.specs.extend(constraints)
            else:
                statement.specs.append(UnsupportedAlterSpec(action.key))
        return statement

    def _modify_column(self, table_sql: str, column_sql: str) -> AlterTable:
        created = self._dialect.parse(f"CREATE TABLE {table_sql} ({column_sql})")[0]
        table = self._create_table(created)
        return AlterTable(table=table.table, specs=[ModifyColumnSpec(c) for c in table.columns])

    # -- data ---------------------------------------------------------------

    def _insert(self, node: exp.Insert) -> Insert:
        target = node.this
        columns: list[str] = []
        if isinstance(target, exp.Schema):
            columns = [_ident(e) for e in target.expressions]
        values = node.expression
        if not isinstance(values, exp.Values):
            raise ParseError("INSERT without a VALUES list is not supported")

        statement = Insert(table=_table_name(target), columns=columns)
        width = len(columns) or None
        for number, row in enumerate(values.expressions, start=1):
            items = row.expressions if isinstance(row, exp.Tuple) else [row]
            rendered = [self._value(item, number) for item in items]
            if width is None:
                width = len(rendered)
            elif len(rendered) != width:
                raise ParseError(f"Column count doesn't match value count at row {number}")
            statement.rows.append(rendered)
        return statement

    def _value(self, node: exp.Expression, row: int) -> str:
        if isinstance(node, exp.Null):
            return NULL_SENTINEL
        if isinstance(node, exp.Literal):
            return node.this
        if isinstance(node, exp.Boolean):
            return "1" if node.this else "0"
        if isinstance(node, exp.Neg) and isinstance(node.this, exp.Literal) and not node.this.is_string:
            return "-" + node.this.this
        if isinstance(node, exp.Introducer):
            return self._value(node.expression, row)
        if isinstance(node, exp.HexString):
            digits = node.this if len(node.this) % 2 == 0 else "0" + node.this
            return bytes.fromhex(digits).decode("utf-8", errors="surrogateescape")
        if isinstance(node, exp.BitString):
            width = max(1, (len(node.this) + 7) // 8)
            raw = int(node.this or "0", 2).to_bytes(width, "big")
            return raw.decode("utf-8", errors="surrogateescape")
        raise ParseError(f"Unsupported value expression '{node.key}' in INSERT row {row}")

    # -- session ------------------------------------------------------------

    def _set(self, node: exp.Set) -> list[Statement]:
        statements: list[Statement] = []
        for item in node.expressions:
            assignment = item.this if isinstance(item, exp.SetItem) else item
            if not isinstance(assignment, (exp.EQ, exp.PropertyEQ)):
                kind = str(item.args.get("kind") or item.name or "").upper()
                statements.append(SetVariable(kind, None, "statement"))
                continue
            left, right = assignment.this, assignment.expression
            name = left.name if left is not None else ""
            if isinstance(left, exp.Parameter):
                name = "@" + name
            if isinstance(right, exp.Literal):
                statements.append(SetVariable(name, right.this))
            else:
                shape = right.key if right is not None else "none"
                statements.append(SetVariable(name, None, shape))
        return statements

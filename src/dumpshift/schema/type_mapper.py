"""Source → target type mapping for MySQL column types.

``map_type`` is a pure function of the type id and its modifiers: it
never fails, unknown ids fall back to STRING(MAX) with a NO_GOOD_TYPE
issue.
"""

from __future__ import annotations

from typing import Optional, Sequence

from dumpshift.schema.issues import SchemaIssue
from dumpshift.schema.model import MAX_LENGTH, SourceType, TargetType, TypeName

# NUMERIC(38, 9) is the widest decimal the target accepts.
NUMERIC_PRECISION = 38
NUMERIC_SCALE = 9

_INT_TYPES = {"smallint", "mediumint", "int", "integer"}
_STRING_TYPES = {"varchar", "char"}
_TEXT_TYPES = {"text", "tinytext", "mediumtext", "longtext"}
_BYTES_TYPES = {"binary", "varbinary", "blob", "tinyblob", "mediumblob", "longblob"}

# Maximum number of declared modifiers per type id. Types absent here
# take none.
EXPECTED_MODIFIERS: dict[str, int] = {
    "tinyint": 1, "smallint": 1, "mediumint": 1, "int": 1, "integer": 1, "bigint": 1,
    "float": 2, "double": 2, "decimal": 2, "numeric": 2,
    "bit": 1, "char": 1, "varchar": 1, "binary": 1, "varbinary": 1,
    "text": 1, "blob": 1,
    "datetime": 1, "timestamp": 1, "time": 1, "year": 1,
}


def map_type(type_id: str, mods: Sequence[int] = ()) -> tuple[TargetType, list[SchemaIssue]]:
    """Map a scalar source type to its target type plus any issues."""
    type_id = type_id.lower()

    if type_id in ("bool", "boolean"):
        return TargetType(TypeName.BOOL), []
    if type_id == "tinyint":
        if list(mods) == [1]:
            return TargetType(TypeName.BOOL), []
        return TargetType(TypeName.INT64), [SchemaIssue.WIDENED]
    if type_id in _INT_TYPES:
        return TargetType(TypeName.INT64), [SchemaIssue.WIDENED]
    if type_id == "bigint":
        return TargetType(TypeName.INT64), []
    if type_id in ("double", "real"):
        return TargetType(TypeName.FLOAT64), []
    if type_id == "float":
        return TargetType(TypeName.FLOAT64), [SchemaIssue.WIDENED]
    if type_id in ("decimal", "numeric"):
        return TargetType(TypeName.NUMERIC), _decimal_issues(mods)
    if type_id == "bit":
        return TargetType(TypeName.BYTES, MAX_LENGTH), []
    if type_id in _STRING_TYPES:
        length = mods[0] if mods else MAX_LENGTH
        return TargetType(TypeName.STRING, length), []
    if type_id in _TEXT_TYPES or type_id in ("enum", "set"):
        return TargetType(TypeName.STRING, MAX_LENGTH), []
    if type_id == "json":
        return TargetType(TypeName.JSON), []
    if type_id in _BYTES_TYPES:
        return TargetType(TypeName.BYTES, MAX_LENGTH), []
    if type_id == "date":
        return TargetType(TypeName.DATE), []
    if type_id == "datetime":
        return TargetType(TypeName.TIMESTAMP), [SchemaIssue.DATETIME]
    if type_id == "timestamp":
        return TargetType(TypeName.TIMESTAMP), []
    if type_id in ("time", "year"):
        return TargetType(TypeName.STRING, MAX_LENGTH), [SchemaIssue.TIME]
    return TargetType(TypeName.STRING, MAX_LENGTH), [SchemaIssue.NO_GOOD_TYPE]


def _decimal_issues(mods: Sequence[int]) -> list[SchemaIssue]:
    if not mods:
        return []
    precision = mods[0]
    scale = mods[1] if len(mods) > 1 else 0
    if precision - scale > NUMERIC_PRECISION - NUMERIC_SCALE or scale > NUMERIC_SCALE:
        return [SchemaIssue.DECIMAL]
    return []


def to_target_type(source: SourceType) -> tuple[TargetType, list[SchemaIssue]]:
    """Map a full source type, including array bounds."""
    if len(source.array_bounds) > 1:
        return TargetType(TypeName.STRING, MAX_LENGTH), [SchemaIssue.MULTI_DIMENSIONAL_ARRAY]
    target, issues = map_type(source.name, source.mods)
    if len(source.array_bounds) == 1:
        target = TargetType(target.name, target.length, is_array=True)
    return target, issues


def check_modifier_count(type_id: str, mods: Sequence[int]) -> Optional[str]:
    """Return a diagnostic if more modifiers were declared than the type takes."""
    expected = EXPECTED_MODIFIERS.get(type_id.lower(), 0)
    if len(mods) > expected:
        return f"Unexpected number of modifiers for type {type_id}: got {len(mods)}, expected at most {expected}"
    return None

"""Schema model, issue catalogue, name sanitization and type mapping."""

from dumpshift.schema.issues import (
    INTERLEAVE_ISSUES,
    ISSUE_DB,
    IssueInfo,
    SchemaIssue,
    Severity,
    table_issue_score,
)
from dumpshift.schema.model import (
    MAX_LENGTH,
    IgnoredFeatures,
    SourceColumn,
    SourceForeignKey,
    SourceIndex,
    SourceKey,
    SourceTable,
    SourceType,
    SyntheticPrimaryKey,
    TargetColumn,
    TargetForeignKey,
    TargetIndex,
    TargetKey,
    TargetTable,
    TargetType,
    TypeName,
)
from dumpshift.schema.names import NameRegistry, sanitize_name
from dumpshift.schema.type_mapper import check_modifier_count, map_type, to_target_type

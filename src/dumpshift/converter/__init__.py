"""Source → target conversion: context, schema building, keys, interleaving, rows."""

from dumpshift.converter.context import ConversionContext, Mode, RowSink
from dumpshift.converter.interleave import (
    InterleaveStatus,
    analyze_foreign_key,
    find_interleave_parent,
    interleave_all,
    remove_interleave,
)
from dumpshift.converter.key_resolver import (
    add_synthetic_key,
    bit_reverse_64,
    detect_hotspots,
    next_synthetic_value,
    promote_unique_key,
    resolve_primary_keys,
)
from dumpshift.converter.row_converter import (
    convert_row,
    convert_value,
    process_data_row,
    process_insert,
)
from dumpshift.converter.schema_builder import SchemaBuilder
from dumpshift.converter.stats import ConversionStats, StatementStat
from dumpshift.converter.target_builder import build_target_schema

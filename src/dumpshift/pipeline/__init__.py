"""Conversion driver."""

from dumpshift.pipeline.runner import (
    ConversionResult,
    ConversionRunner,
    ConversionStatus,
    PassResult,
    convert_data,
    convert_schema,
    finalize_schema,
)

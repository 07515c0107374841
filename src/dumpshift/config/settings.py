"""Configuration for a dump conversion run."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Union

import yaml

_OFFSET = re.compile(r"[+-](?:[01]\d|2[0-3]):[0-5]\d")

SUPPORTED_DIALECTS = ("mysql",)


@dataclass
class ConversionConfig:
    """Settings for one conversion.

    Reads from environment variables with the DUMPSHIFT_ prefix, from a
    YAML document, or accepts explicit values. The config travels on the
    conversion context; nothing reads it from module state.
    """

    # Source
    source_dialect: str = "mysql"
    default_timezone_offset: str = "+00:00"

    # Schema conversion
    synthetic_key_base: str = "synth_id"
    interleave_tables: bool = False

    # Diagnostics bounds
    bad_row_sample_bytes: int = 10 * 1024 * 1024
    max_unexpected_conditions: int = 1000

    @classmethod
    def from_env(cls) -> ConversionConfig:
        """Load configuration from environment variables."""
        return cls(
            source_dialect=os.getenv("DUMPSHIFT_SOURCE_DIALECT", "mysql"),
            default_timezone_offset=os.getenv("DUMPSHIFT_TIMEZONE_OFFSET", "+00:00"),
            synthetic_key_base=os.getenv("DUMPSHIFT_SYNTHETIC_KEY_BASE", "synth_id"),
            interleave_tables=os.getenv("DUMPSHIFT_INTERLEAVE_TABLES", "false").lower()
            in ("1", "true", "yes"),
            bad_row_sample_bytes=int(
                os.getenv("DUMPSHIFT_BAD_ROW_SAMPLE_BYTES", str(10 * 1024 * 1024))
            ),
            max_unexpected_conditions=int(
                os.getenv("DUMPSHIFT_MAX_UNEXPECTED_CONDITIONS", "1000")
            ),
        )

    @classmethod
    def from_yaml(cls, source: Union[str, Path]) -> ConversionConfig:
        """Load configuration from YAML text, or from a file when given a Path."""
        text = source.read_text() if isinstance(source, Path) else source
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("Conversion config must be a YAML mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def validate(self) -> list[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []
        if self.source_dialect not in SUPPORTED_DIALECTS:
            errors.append(f"Unsupported source dialect: {self.source_dialect}")
        if not self.synthetic_key_base:
            errors.append("synthetic_key_base must not be empty")
        if self.bad_row_sample_bytes < 0:
            errors.append("bad_row_sample_bytes must be non-negative")
        if self.max_unexpected_conditions < 1:
            errors.append("max_unexpected_conditions must be at least 1")
        offset = self.default_timezone_offset
        if not _OFFSET.fullmatch(offset):
            errors.append(f"Invalid timezone offset: {offset}")
        return errors

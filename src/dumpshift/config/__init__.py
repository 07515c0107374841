"""Conversion configuration."""

from dumpshift.config.settings import SUPPORTED_DIALECTS, ConversionConfig

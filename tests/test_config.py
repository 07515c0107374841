"""Tests for ConversionConfig loading and validation."""

import pytest

from dumpshift.config import ConversionConfig


class TestConversionConfig:

    def test_defaults(self):
        config = ConversionConfig()
        assert config.source_dialect == "mysql"
        assert config.default_timezone_offset == "+00:00"
        assert config.synthetic_key_base == "synth_id"
        assert config.interleave_tables is False
        assert config.validate() == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DUMPSHIFT_TIMEZONE_OFFSET", "-07:00")
        monkeypatch.setenv("DUMPSHIFT_SYNTHETIC_KEY_BASE", "rowid")
        monkeypatch.setenv("DUMPSHIFT_INTERLEAVE_TABLES", "True")
        monkeypatch.setenv("DUMPSHIFT_BAD_ROW_SAMPLE_BYTES", "2048")
        config = ConversionConfig.from_env()
        assert config.default_timezone_offset == "-07:00"
        assert config.synthetic_key_base == "rowid"
        assert config.interleave_tables is True
        assert config.bad_row_sample_bytes == 2048
        assert config.max_unexpected_conditions == 1000

    def test_from_env_defaults(self, monkeypatch):
        for name in ("DUMPSHIFT_SOURCE_DIALECT", "DUMPSHIFT_INTERLEAVE_TABLES"):
            monkeypatch.delenv(name, raising=False)
        config = ConversionConfig.from_env()
        assert config.source_dialect == "mysql"
        assert config.interleave_tables is False

    def test_from_yaml_text(self):
        config = ConversionConfig.from_yaml(
            "interleave_tables: true\n"
            "default_timezone_offset: '+05:30'\n"
            "max_unexpected_conditions: 10\n"
        )
        assert config.interleave_tables is True
        assert config.default_timezone_offset == "+05:30"
        assert config.max_unexpected_conditions == 10
        assert config.synthetic_key_base == "synth_id"

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "convert.yaml"
        path.write_text("synthetic_key_base: surrogate\n")
        assert ConversionConfig.from_yaml(path).synthetic_key_base == "surrogate"

    def test_from_yaml_empty(self):
        assert ConversionConfig.from_yaml("") == ConversionConfig()

    def test_from_yaml_unknown_key(self):
        with pytest.raises(ValueError, match="interleave"):
            ConversionConfig.from_yaml("interleave: true\n")

    def test_from_yaml_not_a_mapping(self):
        with pytest.raises(ValueError):
            ConversionConfig.from_yaml("- a\n- b\n")

    @pytest.mark.parametrize("kwargs,fragment", [
        ({"source_dialect": "postgres"}, "dialect"),
        ({"synthetic_key_base": ""}, "synthetic_key_base"),
        ({"bad_row_sample_bytes": -1}, "bad_row_sample_bytes"),
        ({"max_unexpected_conditions": 0}, "max_unexpected_conditions"),
        ({"default_timezone_offset": "UTC"}, "timezone"),
        ({"default_timezone_offset": "+ab:cd"}, "timezone"),
        ({"default_timezone_offset": "+25:00"}, "timezone"),
        ({"default_timezone_offset": "+05:30\n"}, "timezone"),
    ])
    def test_validate(self, kwargs, fragment):
        errors = ConversionConfig(**kwargs).validate()
        assert len(errors) == 1
        assert fragment in errors[0]

"""Tests for settings loading."""

import pytest

from dbexplorer.config import load_settings
from dbexplorer.config.loader import CONFIG_ENV_VAR
from dbexplorer.core.exceptions import ErrorCodes, ValidationError


class TestLoadSettings:
    """Test YAML and environment based settings loading."""

    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        settings = load_settings()

        assert settings.default_query_timeout_ms == 30000

    def test_load_from_file(self, config_file, temp_dir):
        settings = load_settings(config_file)

        assert settings.data_dir == temp_dir / "data"
        assert settings.default_query_timeout_ms == 15000
        assert settings.monitoring.top_queries == 3
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "text"

    def test_file_from_environment(self, monkeypatch, config_file):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config_file))

        assert load_settings().default_query_timeout_ms == 15000

    def test_overrides_win(self, config_file):
        settings = load_settings(config_file, default_query_timeout_ms=1000)

        assert settings.default_query_timeout_ms == 1000

    def test_missing_file(self, temp_dir):
        with pytest.raises(ValidationError) as exc_info:
            load_settings(temp_dir / "absent.yaml")

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID

    def test_empty_file_uses_defaults(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")

        assert load_settings(path).monitoring.top_queries == 5

    def test_non_mapping_rejected(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValidationError, match="mapping"):
            load_settings(path)

    def test_invalid_values_rejected(self, temp_dir):
        path = temp_dir / "bad.yaml"
        path.write_text("default_query_timeout_ms: -5\n")

        with pytest.raises(ValidationError) as exc_info:
            load_settings(path)

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID

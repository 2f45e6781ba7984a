"""Tests for configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from dbexplorer.config.models import (
    DEFAULT_PORTS,
    AppSettings,
    ConnectionProfile,
    LoggingConfig,
    MonitoringConfig,
)


class TestConnectionProfile:
    """Test connection profile parsing and serialization."""

    def test_wire_names_accepted(self, sample_profile_data):
        profile = ConnectionProfile(**sample_profile_data)

        assert profile.ssl_mode == "disable"
        assert profile.additional_params == {"charset": "utf8mb4"}
        assert profile.plain_password == "secret123"

    def test_snake_case_names_accepted(self):
        profile = ConnectionProfile(type="postgresql", ssl_mode="require", query_timeout=900)

        assert profile.uses_tls
        assert profile.query_timeout == 900

    @pytest.mark.parametrize("engine", sorted(DEFAULT_PORTS))
    def test_default_port_and_host(self, engine):
        profile = ConnectionProfile(type=engine)

        assert profile.port == DEFAULT_PORTS[engine]
        assert profile.host == "localhost"

    def test_sqlite_has_no_network_defaults(self):
        profile = ConnectionProfile(type="sqlite", database="/tmp/app.db")

        assert profile.port is None
        assert profile.host is None
        assert profile.endpoint == "/tmp/app.db"

    @pytest.mark.parametrize(
        "alias, engine",
        [("Postgres", "postgresql"), ("sqlserver", "mssql"), ("MONGO", "mongodb")],
    )
    def test_engine_aliases(self, alias, engine):
        assert ConnectionProfile(type=alias).type == engine

    def test_unknown_engine_rejected(self):
        with pytest.raises(PydanticValidationError):
            ConnectionProfile(type="db2")

    def test_blank_values_normalized(self):
        profile = ConnectionProfile(type="mysql", host="  ", port="", password="")

        assert profile.host == "localhost"
        assert profile.port == 3306
        assert profile.password is None

    def test_port_out_of_range(self):
        with pytest.raises(PydanticValidationError):
            ConnectionProfile(type="mysql", port=70000)

    def test_timeout_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            ConnectionProfile(type="mysql", timeout=0)

    def test_to_wire_redacts_password(self, mysql_profile):
        data = mysql_profile.to_wire(include_password=False)

        assert data["password"] is None
        assert data["hasPassword"] is True
        assert data["sslMode"] == "disable"
        assert data["additionalParams"] == {"charset": "utf8mb4"}
        assert "ssl_mode" not in data

    def test_to_wire_with_password(self, mysql_profile):
        assert mysql_profile.to_wire(include_password=True)["password"] == "secret123"

    def test_password_hidden_from_repr(self, mysql_profile):
        assert "secret123" not in repr(mysql_profile)

    def test_environment_references_kept_verbatim(self, monkeypatch):
        monkeypatch.setenv("DB_PASS", "leaked")

        profile = ConnectionProfile(type="mysql", password="${DB_PASS}")

        assert profile.plain_password == "${DB_PASS}"


class TestAppSettings:
    """Test application settings."""

    def test_connections_dir_derived(self, tmp_path):
        settings = AppSettings(data_dir=tmp_path)

        assert settings.connections_dir == tmp_path / "connections"

    def test_environment_variables_resolved(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DBX_HOME", str(tmp_path))

        settings = AppSettings(data_dir="${DBX_HOME}/data")

        assert settings.data_dir == Path(f"{tmp_path}/data")

    def test_passphrase_from_environment(self, monkeypatch):
        monkeypatch.setenv("DBEXPLORER_PASSPHRASE", "from-env")

        assert AppSettings().encryption_passphrase.get_secret_value() == "from-env"

    def test_empty_passphrase_rejected(self):
        with pytest.raises(PydanticValidationError):
            AppSettings(encryption_passphrase="")

    def test_passphrase_masked_in_dict(self, settings):
        assert settings.to_dict()["encryption_passphrase"] == "***MASKED***"

    def test_nested_defaults(self):
        settings = AppSettings()

        assert settings.default_query_timeout_ms == 30000
        assert settings.monitoring == MonitoringConfig()
        assert settings.logging.level == "INFO"

    def test_top_queries_bounds(self):
        with pytest.raises(PydanticValidationError):
            MonitoringConfig(top_queries=0)

    def test_logging_level_case_insensitive(self):
        assert LoggingConfig(level="warning").level == "WARNING"

"""Tests for the adapter registry and factory."""

import pytest

from dbexplorer.config.models import ConnectionProfile
from dbexplorer.core.exceptions import ErrorCodes, ValidationError
from dbexplorer.database import BUILTIN_ADAPTERS, get_supported_engines
from dbexplorer.database.factory import AdapterFactory
from dbexplorer.database.registry import AdapterRegistry, get_global_registry


class TestAdapterRegistry:
    """Test adapter registration and lookup."""

    def test_builtin_engines_registered(self):
        assert sorted(get_supported_engines()) == sorted(BUILTIN_ADAPTERS)

    def test_global_registry_maps_builtin_classes(self):
        registry = get_global_registry()

        for engine, adapter_class in BUILTIN_ADAPTERS.items():
            assert registry.get_adapter_class(engine) is adapter_class
            assert adapter_class.engine == engine

    def test_register_and_list(self, fake_adapter_class):
        registry = AdapterRegistry()
        registry.register_adapter("mysql", fake_adapter_class, "in-memory")

        assert registry.is_engine_supported("mysql")
        assert registry.list_adapters()["mysql"]["description"] == "in-memory"
        assert registry.list_adapters()["mysql"]["label"] == "Fake"

    def test_rejects_non_adapter(self):
        registry = AdapterRegistry()

        with pytest.raises(ValidationError) as exc_info:
            registry.register_adapter("mysql", dict)

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID

    def test_unknown_engine(self):
        with pytest.raises(ValidationError) as exc_info:
            AdapterRegistry().get_adapter_class("db2")

        assert exc_info.value.code == ErrorCodes.UNSUPPORTED_ENGINE
        assert "db2" in exc_info.value.message

    def test_unregister(self, fake_adapter_class):
        registry = AdapterRegistry()
        registry.register_adapter("mysql", fake_adapter_class)

        registry.unregister_adapter("mysql")

        assert registry.get_available_engines() == []
        with pytest.raises(ValidationError):
            registry.unregister_adapter("mysql")


class TestAdapterFactory:
    """Test profile validation and adapter construction."""

    def test_create_adapter(self, fake_factory, mysql_profile, fake_adapter_class):
        adapter = fake_factory.create_adapter(mysql_profile)

        assert isinstance(adapter, fake_adapter_class)
        assert adapter.profile is mysql_profile
        assert not adapter.is_connected

    def test_sqlite_requires_path(self):
        profile = ConnectionProfile(type="sqlite")

        with pytest.raises(ValidationError, match="database file path"):
            AdapterFactory().validate_profile(profile)

    def test_unregistered_engine(self, fake_factory):
        with pytest.raises(ValidationError) as exc_info:
            fake_factory.create_adapter(ConnectionProfile(type="oracle"))

        assert exc_info.value.code == ErrorCodes.UNSUPPORTED_ENGINE

    def test_create_from_dict(self, fake_factory, sample_profile_data):
        adapter = fake_factory.create_adapter_from_dict(sample_profile_data)

        assert adapter.profile.host == "db.internal"

    def test_create_from_invalid_dict(self, fake_factory):
        with pytest.raises(ValidationError) as exc_info:
            fake_factory.create_adapter_from_dict({"type": "mysql", "port": "abc"})

        assert exc_info.value.code == ErrorCodes.PROFILE_INVALID

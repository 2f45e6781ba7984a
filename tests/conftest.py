"""Pytest configuration and shared fixtures.

This module provides pytest configuration and shared fixtures for all tests
in the DB Explorer test suite.
"""

import asyncio
import sqlite3
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
import structlog

from dbexplorer.config.models import AppSettings, ConnectionProfile
from dbexplorer.core.exceptions import ConnectionError, ErrorCodes
from dbexplorer.database.base import EngineAdapter, ExecutionOutcome
from dbexplorer.database.connections import ConnectionRegistry
from dbexplorer.database.factory import AdapterFactory
from dbexplorer.database.models import ColumnDescriptor, PlanReport
from dbexplorer.database.registry import AdapterRegistry
from dbexplorer.security import CredentialVault
from dbexplorer.storage import ProfileStore


def configure_test_logging() -> None:
    """Route structlog events into a capture processor so tests stay quiet."""
    structlog.configure(
        processors=[structlog.testing.LogCapture()],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.testing.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )


configure_test_logging()

TEST_PASSPHRASE = "test-passphrase-not-for-production"


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Factory tests reconfigure structlog globally; start every test from the quiet setup."""
    configure_test_logging()
    yield


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def mock_logger():
    """Mock structured logger for testing."""
    logger = MagicMock()
    logger.bind.return_value = logger
    return logger


@pytest.fixture
def settings(temp_dir: Path) -> AppSettings:
    """Application settings rooted in a temporary data directory."""
    return AppSettings(data_dir=temp_dir, encryption_passphrase=TEST_PASSPHRASE)


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault.from_passphrase(TEST_PASSPHRASE)


@pytest.fixture
def store(settings: AppSettings) -> ProfileStore:
    return ProfileStore(settings.connections_dir)


@pytest_asyncio.fixture
async def connections(store: ProfileStore, vault: CredentialVault):
    """Connection registry over a temporary store; live handles closed afterwards."""
    registry = ConnectionRegistry(store, vault)
    yield registry
    await registry.close_all()


@pytest.fixture
def sqlite_db(temp_dir: Path) -> Path:
    """A small SQLite database with a table, a view and a few rows."""
    path = temp_dir / "sample.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name VARCHAR(40) NOT NULL,
                balance DECIMAL(10,2) DEFAULT 0,
                active INTEGER DEFAULT 1
            );
            CREATE TABLE tags (label TEXT, user_id INTEGER, PRIMARY KEY (label, user_id));
            CREATE VIEW active_users AS SELECT id, name FROM users WHERE active = 1;
            INSERT INTO users (name, balance, active) VALUES ('alice', 10.5, 1);
            INSERT INTO users (name, balance, active) VALUES ('bob', 0, 0);
            INSERT INTO users (name, balance, active) VALUES ('carol', 99.25, 1);
            """
        )
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def sqlite_profile(sqlite_db: Path) -> ConnectionProfile:
    return ConnectionProfile(id="sqlite01", name="Sample", type="sqlite", database=str(sqlite_db))


@pytest.fixture
def sample_profile_data() -> dict:
    """Wire-format MySQL profile as the UI sends it."""
    return {
        "name": "Orders DB",
        "type": "mysql",
        "host": "db.internal",
        "database": "orders",
        "username": "app",
        "password": "secret123",
        "timeout": 3000,
        "sslMode": "disable",
        "additionalParams": {"charset": "utf8mb4"},
    }


@pytest.fixture
def mysql_profile(sample_profile_data: dict) -> ConnectionProfile:
    return ConnectionProfile(id="mysql01", **sample_profile_data)


@pytest.fixture
def config_file(temp_dir: Path) -> Path:
    """Create temporary settings file."""
    import yaml

    config_path = temp_dir / "settings.yaml"
    with open(config_path, "w") as f:
        yaml.dump(
            {
                "data_dir": str(temp_dir / "data"),
                "default_query_timeout_ms": 15000,
                "monitoring": {"top_queries": 3},
                "logging": {"level": "debug", "format": "text"},
            },
            f,
        )
    return config_path


class FakeAdapter(EngineAdapter):
    """In-memory adapter driven by the statement text it receives.

    ``SELECT ...`` returns two rows, ``slow`` sleeps past any test timeout,
    ``boom`` fails like a syntax error and ``drop link`` like a lost session.
    Everything else reports three affected rows.
    """

    engine = "mysql"
    engine_label = "Fake"
    supported_kinds = ("tables", "views")

    opened = 0
    closed = 0
    connect_delay = 0.0
    connect_error = None

    async def _open_handle(self):
        type(self).opened += 1
        await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        return {"open": True}

    async def _close_handle(self, handle):
        type(self).closed += 1
        handle["open"] = False

    async def _query(self, handle, sql, params=None):
        return ["value"], [(1,)]

    async def _execute(self, handle, text):
        if text == "slow":
            await asyncio.sleep(5)
        if text == "boom":
            raise RuntimeError("syntax error near 'boom'")
        if text == "drop link":
            raise ConnectionResetError("server closed the connection")
        if text.upper().startswith("SELECT"):
            return ExecutionOutcome(columns=["id", "name"], rows=[(1, "alice"), (2, "bob")])
        return ExecutionOutcome(row_count=3)

    async def _list_objects(self, handle, kind):
        return [f"{kind}_one", f"{kind}_two"]

    async def _describe_columns(self, handle, table_name):
        if table_name != "users":
            return []
        return [
            ColumnDescriptor("id", "int", nullable=False, is_primary_key=True, is_auto_increment=True),
            ColumnDescriptor("name", "varchar", char_max_length=40),
        ]

    async def _estimated_plan(self, handle, text):
        return PlanReport("Fake", text, "SCAN users", ["Full scan on users."])

    def translate_query_error(self, exc, operation):
        if isinstance(exc, ConnectionResetError):
            return ConnectionError(str(exc), code=ErrorCodes.CONNECTION_CLOSED, cause=exc)
        return super().translate_query_error(exc, operation)


@pytest.fixture
def fake_adapter_class():
    """A fresh FakeAdapter subclass, so counters start at zero for every test."""
    return type("FakeAdapter", (FakeAdapter,), {"opened": 0, "closed": 0})


@pytest.fixture
def fake_factory(fake_adapter_class) -> AdapterFactory:
    """Factory that builds FakeAdapter for mysql profiles."""
    registry = AdapterRegistry()
    registry.register_adapter("mysql", fake_adapter_class)
    return AdapterFactory(registry)


@pytest_asyncio.fixture
async def fake_connections(store: ProfileStore, vault: CredentialVault, fake_factory: AdapterFactory):
    """Connection registry whose mysql profiles are served by FakeAdapter."""
    registry = ConnectionRegistry(store, vault, factory=fake_factory)
    yield registry
    await registry.close_all()


# Pytest markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower, real dependencies)"
    )
    config.addinivalue_line(
        "markers", "database: marks tests touching a database file or driver"
    )


# Auto-mark tests based on their location
def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    tests_root = Path(__file__).parent
    for item in items:
        try:
            test_path = Path(item.fspath).relative_to(tests_root)
        except ValueError:
            continue

        if test_path.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif test_path.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)

        if "database" in test_path.parts or "adapters" in test_path.parts:
            item.add_marker(pytest.mark.database)

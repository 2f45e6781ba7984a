"""
DB Explorer database layer.

Engine adapters, the adapter registry and factory, the live handle pool and
the connection registry that ties stored profiles to live sessions.

Supported engines:
- MySQL/MariaDB (aiomysql)
- PostgreSQL (asyncpg)
- Microsoft SQL Server (aioodbc)
- SQLite (aiosqlite)
- Oracle Database (oracledb)
- MongoDB (pymongo asyncio client)
"""

from typing import List

from .adapters import (
    BUILTIN_ADAPTERS,
    MongoDBAdapter,
    MSSQLAdapter,
    MySQLAdapter,
    OracleAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
)
from .base import EngineAdapter, ExecutionOutcome
from .connections import ConnectionRegistry, new_profile_id
from .factory import AdapterFactory
from .models import (
    METRIC_DEFAULTS,
    OBJECT_KINDS,
    TREND_SOURCES,
    ColumnDescriptor,
    ColumnListing,
    ConnectionTestResult,
    MetricProbe,
    MonitoringSnapshot,
    ObjectListing,
    PlanReport,
    QueryResult,
    TextResult,
    Trend,
)
from .pool import HandlePool, PooledHandle
from .registry import AdapterRegistry, get_global_registry, register_adapter

__all__ = [
    # Models
    "QueryResult",
    "ColumnDescriptor",
    "ColumnListing",
    "ConnectionTestResult",
    "ObjectListing",
    "TextResult",
    "PlanReport",
    "MetricProbe",
    "MonitoringSnapshot",
    "Trend",
    "METRIC_DEFAULTS",
    "TREND_SOURCES",
    "OBJECT_KINDS",

    # Core classes
    "EngineAdapter",
    "ExecutionOutcome",
    "AdapterRegistry",
    "AdapterFactory",
    "HandlePool",
    "PooledHandle",
    "ConnectionRegistry",
    "new_profile_id",

    # Adapters
    "MySQLAdapter",
    "PostgreSQLAdapter",
    "MSSQLAdapter",
    "SQLiteAdapter",
    "OracleAdapter",
    "MongoDBAdapter",

    # Registry helpers
    "get_global_registry",
    "register_adapter",
    "get_supported_engines",
]


def get_supported_engines() -> List[str]:
    """Get the engine types with a registered adapter."""
    return get_global_registry().get_available_engines()


def _register_builtin_adapters() -> None:
    registry = get_global_registry()
    for engine, adapter_class in BUILTIN_ADAPTERS.items():
        if not registry.is_engine_supported(engine):
            registry.register_adapter(engine, adapter_class)


_register_builtin_adapters()

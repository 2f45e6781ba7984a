"""Built-in engine adapters, one module per engine."""

from .mongodb import MongoDBAdapter
from .mssql import MSSQLAdapter
from .mysql import MySQLAdapter
from .oracle import OracleAdapter
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter

BUILTIN_ADAPTERS = {
    "mysql": MySQLAdapter,
    "postgresql": PostgreSQLAdapter,
    "mssql": MSSQLAdapter,
    "sqlite": SQLiteAdapter,
    "oracle": OracleAdapter,
    "mongodb": MongoDBAdapter,
}

__all__ = [
    "BUILTIN_ADAPTERS",
    "MongoDBAdapter",
    "MSSQLAdapter",
    "MySQLAdapter",
    "OracleAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
]

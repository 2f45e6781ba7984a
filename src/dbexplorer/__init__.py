"""DB Explorer - multi-engine query and metadata layer.

DB Explorer keeps encrypted connection profiles for MySQL, PostgreSQL,
SQL Server, SQLite, Oracle and MongoDB and serves schema browsing, ad-hoc
queries, estimated plans and monitoring snapshots through one operation
table.

Modules:
    core: Exceptions, component base classes and utilities
    config: Connection profile and application settings models
    logging: Structured logging
    security: Credential encryption
    storage: Profile record store
    database: Engine adapters, registry and live handle pool
    services: Query, schema, monitoring and plan services
    api: Request dispatcher and stdio transport

Example:
    >>> from dbexplorer.api import RequestDispatcher
    >>> from dbexplorer.config import load_settings
    >>>
    >>> dispatcher = RequestDispatcher.from_settings(load_settings())
    >>> saved = await dispatcher.dispatch(
    ...     "save-connection", {"name": "local", "type": "sqlite", "database": "app.db"}
    ... )
    >>> await dispatcher.dispatch("list-database-objects", {"id": saved["id"], "kind": "tables"})
"""

from . import config, core, logging

__version__ = "1.0.0"
__title__ = "DB Explorer"
__description__ = "Multi-engine database query and metadata layer"
__license__ = "MIT"

__all__ = [
    "core",
    "config",
    "logging",
    "__version__",
    "__title__",
    "__description__",
    "__license__",
]

"""DB Explorer core: exception taxonomy, component base classes and utilities."""

from .exceptions import (
    AuthenticationError,
    ConnectionError,
    ConnectionTimeoutError,
    DBExplorerError,
    DecryptionError,
    ErrorCodes,
    QueryExecutionError,
    QueryTimeoutError,
    StorageError,
    UnsupportedOperationError,
    ValidationError,
    create_error_from_exception,
)
from .utils import (
    FormatUtils,
    ValidationUtils,
    coalesce,
    dedupe_names,
    safe_cast,
    safe_ratio,
)
from .base import AsyncComponent, BaseComponent

__all__ = [
    # Exceptions
    "DBExplorerError",
    "ValidationError",
    "ConnectionError",
    "AuthenticationError",
    "ConnectionTimeoutError",
    "DecryptionError",
    "QueryExecutionError",
    "QueryTimeoutError",
    "UnsupportedOperationError",
    "StorageError",
    "ErrorCodes",
    "create_error_from_exception",
    # Base classes
    "BaseComponent",
    "AsyncComponent",
    # Utilities
    "ValidationUtils",
    "FormatUtils",
    "safe_cast",
    "safe_ratio",
    "coalesce",
    "dedupe_names",
]

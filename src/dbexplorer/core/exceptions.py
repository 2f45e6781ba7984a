"""DB Explorer exception hierarchy.

Every failure inside the core is raised as one of the exceptions below and
converted to a failure value at the service or dispatcher boundary. Native
driver exceptions never cross the adapter boundary unwrapped.

Classes:
    DBExplorerError: Base exception for all DB Explorer operations
    ValidationError: Malformed request payload or profile
    ConnectionError: Native connect failures (auth, network, timeout)
    DecryptionError: Stored credential cannot be decrypted
    QueryExecutionError: Native query failures
    UnsupportedOperationError: Operation has no meaning for the engine
    StorageError: Profile record store failures

Example:
    >>> try:
    ...     await adapter.connect()
    ... except ConnectionError as e:
    ...     logger.error("Connection failed", error_code=e.code, context=e.context)
"""

from typing import Any, Dict, Optional


class DBExplorerError(Exception):
    """Base exception for all DB Explorer operations.

    Attributes:
        message: Human-readable description, usually carrying the native driver text
        code: Error code for categorization (see ErrorCodes)
        context: Additional context information about the error
        cause: Original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"context={self.context!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class ValidationError(DBExplorerError):
    """Malformed request payload, profile or settings.

    Reported immediately; the requested operation is not attempted.
    """


class ConnectionError(DBExplorerError):
    """Native connect failure.

    The message carries the driver's own error text so it can be shown
    to the user verbatim.
    """


class AuthenticationError(ConnectionError):
    """Credentials were rejected by the server."""


class ConnectionTimeoutError(ConnectionError):
    """The profile's connect timeout elapsed before a session was established."""


class DecryptionError(DBExplorerError):
    """Stored password cannot be decrypted.

    Raised for a corrupted record or a key mismatch. Callers treat it as
    "credential unavailable" rather than a fatal condition.
    """


class QueryExecutionError(DBExplorerError):
    """Native query failure (syntax, permissions, constraint violation)."""


class QueryTimeoutError(QueryExecutionError):
    """The query or plan request exceeded its timeout."""


class UnsupportedOperationError(DBExplorerError):
    """The requested operation is meaningless for the engine.

    Only raised where an empty result would not be a meaningful answer.
    """


class StorageError(DBExplorerError):
    """Profile record could not be read from or written to disk."""


class ErrorCodes:
    """Common error codes for DB Explorer exceptions."""

    # Validation
    PAYLOAD_INVALID = "PAYLOAD_INVALID"
    PROFILE_INVALID = "PROFILE_INVALID"
    CONFIG_INVALID = "CONFIG_INVALID"
    UNSUPPORTED_ENGINE = "UNSUPPORTED_ENGINE"
    UNKNOWN_OPERATION = "UNKNOWN_OPERATION"

    # Connection
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    CONNECTION_CLOSED = "CONNECTION_CLOSED"
    AUTH_FAILED = "AUTH_FAILED"
    DATABASE_NOT_FOUND = "DATABASE_NOT_FOUND"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"

    # Credentials and storage
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    STORAGE_FAILED = "STORAGE_FAILED"

    # Execution
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    QUERY_TIMEOUT = "QUERY_TIMEOUT"
    METADATA_EXTRACTION_FAILED = "METADATA_EXTRACTION_FAILED"
    PLAN_UNAVAILABLE = "PLAN_UNAVAILABLE"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"

    # Lifecycle
    INIT_FAILED = "INIT_FAILED"
    CLEANUP_FAILED = "CLEANUP_FAILED"


def create_error_from_exception(
    exc: BaseException,
    message: Optional[str] = None,
    code: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> DBExplorerError:
    """Create a DB Explorer exception from a generic exception.

    DB Explorer exceptions are returned unchanged so that an error raised
    deep inside an adapter keeps its original kind and code.

    Args:
        exc: Original exception to convert
        message: Override message (uses the original text if not provided)
        code: Error code to assign
        context: Additional context information

    Returns:
        Appropriate DBExplorerError subclass instance

    Example:
        >>> try:
        ...     await conn.execute(text)
        ... except Exception as e:
        ...     raise create_error_from_exception(
        ...         e, code=ErrorCodes.QUERY_EXECUTION_FAILED
        ...     ) from e
    """
    if isinstance(exc, DBExplorerError):
        return exc

    error_message = message or str(exc) or exc.__class__.__name__

    exception_mapping = {
        ConnectionRefusedError: ConnectionError,
        ConnectionResetError: ConnectionError,
        TimeoutError: ConnectionTimeoutError,
        FileNotFoundError: StorageError,
        PermissionError: StorageError,
        ValueError: ValidationError,
        TypeError: ValidationError,
        NotImplementedError: UnsupportedOperationError,
    }

    exception_class = DBExplorerError
    for source_type, target_type in exception_mapping.items():
        if isinstance(exc, source_type):
            exception_class = target_type
            break

    return exception_class(
        error_message,
        code=code,
        context=context or {},
        cause=exc,
    )

"""Unit tests for DB Explorer exception hierarchy.

This module tests the exception classes and error handling utilities
to ensure proper error reporting and context management.
"""

import pytest

from dbexplorer.core.exceptions import (
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


class TestDBExplorerError:
    """Test base DB Explorer exception class."""

    def test_basic_exception_creation(self):
        exc = DBExplorerError("Test error message")

        assert str(exc) == "DBExplorerError: Test error message"
        assert exc.message == "Test error message"
        assert exc.code == "DBExplorerError"
        assert exc.context == {}
        assert exc.cause is None

    def test_exception_with_custom_code(self):
        exc = DBExplorerError("Test error", code=ErrorCodes.QUERY_EXECUTION_FAILED)

        assert exc.code == "QUERY_EXECUTION_FAILED"
        assert str(exc) == "QUERY_EXECUTION_FAILED: Test error"

    def test_exception_with_context_and_cause(self):
        original_error = ValueError("Original error")
        exc = DBExplorerError(
            "Wrapped error",
            context={"profile_id": "3f9a", "operation": "connect"},
            cause=original_error,
        )

        assert exc.context["profile_id"] == "3f9a"
        assert exc.cause is original_error

    def test_to_dict(self):
        exc = QueryExecutionError(
            "syntax error at or near SELEC",
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
            context={"engine": "postgresql"},
            cause=RuntimeError("native"),
        )

        data = exc.to_dict()

        assert data == {
            "error_type": "QueryExecutionError",
            "message": "syntax error at or near SELEC",
            "code": "QUERY_EXECUTION_FAILED",
            "context": {"engine": "postgresql"},
            "cause": "native",
        }


class TestExceptionHierarchy:
    """Test the taxonomy relationships callers rely on."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ValidationError,
            ConnectionError,
            DecryptionError,
            QueryExecutionError,
            UnsupportedOperationError,
            StorageError,
        ],
    )
    def test_all_kinds_extend_base(self, exc_class):
        assert issubclass(exc_class, DBExplorerError)

    def test_connection_subkinds(self):
        assert issubclass(AuthenticationError, ConnectionError)
        assert issubclass(ConnectionTimeoutError, ConnectionError)

    def test_query_timeout_is_query_error(self):
        assert issubclass(QueryTimeoutError, QueryExecutionError)

    def test_connection_error_shadows_builtin_only_in_module(self):
        import builtins

        assert ConnectionError is not builtins.ConnectionError


class TestCreateErrorFromException:
    """Test mapping of generic exceptions to the taxonomy."""

    def test_dbexplorer_errors_pass_through(self):
        original = AuthenticationError("Access denied", code=ErrorCodes.AUTH_FAILED)

        assert create_error_from_exception(original) is original

    @pytest.mark.parametrize(
        "source, expected",
        [
            (ConnectionRefusedError("refused"), ConnectionError),
            (TimeoutError("slow"), ConnectionTimeoutError),
            (FileNotFoundError("gone"), StorageError),
            (ValueError("bad"), ValidationError),
            (NotImplementedError("nope"), UnsupportedOperationError),
            (RuntimeError("other"), DBExplorerError),
        ],
    )
    def test_mapping(self, source, expected):
        error = create_error_from_exception(source, code="X")

        assert type(error) is expected
        assert error.cause is source
        assert error.code == "X"

    def test_message_override(self):
        error = create_error_from_exception(KeyError("k"), message="lookup failed")
        assert error.message == "lookup failed"

    def test_empty_message_uses_class_name(self):
        error = create_error_from_exception(RuntimeError())
        assert error.message == "RuntimeError"

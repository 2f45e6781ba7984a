"""Structured logging implementation for DB Explorer.

Classes:
    LogContext: Task-local context shared by all loggers
    StructuredLogger: Main structured logging interface

Example:
    >>> logger = StructuredLogger("dbexplorer.services.query")
    >>> with logger.context(profile_id="3f9a", operation="execute-query"):
    ...     logger.info("Query dispatched", engine="mysql")
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Generator, Optional

import structlog

_log_context: ContextVar[Dict[str, Any]] = ContextVar("dbexplorer_log_context", default={})


class LogContext:
    """Context values attached to every log event of the current task.

    Stored in a ContextVar, so concurrently running requests each see
    their own values.
    """

    def set(self, key: str, value: Any) -> None:
        current = dict(_log_context.get())
        current[key] = value
        _log_context.set(current)

    def get(self, key: str, default: Any = None) -> Any:
        return _log_context.get().get(key, default)

    def get_all(self) -> Dict[str, Any]:
        return dict(_log_context.get())

    def update(self, values: Dict[str, Any]) -> None:
        current = dict(_log_context.get())
        current.update(values)
        _log_context.set(current)

    def replace(self, values: Dict[str, Any]) -> None:
        _log_context.set(dict(values))

    def clear(self) -> None:
        _log_context.set({})


class StructuredLogger:
    """Structured logger with context management and correlation ids.

    Wraps a structlog logger. Each call merges, in order: task context,
    values bound with ``bind``, and the call's own keyword arguments.

    Example:
        >>> logger = StructuredLogger("dbexplorer.registry")
        >>> logger.bind(profile_id="3f9a").warning("Record skipped", reason="malformed")
    """

    def __init__(
        self,
        name: str,
        *,
        level: str = "INFO",
        enable_correlation: bool = True,
        bound: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.name = name
        self._enable_correlation = enable_correlation
        self._bound: Dict[str, Any] = dict(bound or {})
        self._context = LogContext()
        self._logger = structlog.get_logger(name)
        self._stdlib_logger = logging.getLogger(name)
        self._stdlib_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def _prepare_event_dict(self, **kwargs: Any) -> Dict[str, Any]:
        event_dict: Dict[str, Any] = {}
        event_dict.update(self._context.get_all())
        if self._enable_correlation:
            event_dict["correlation_id"] = self.ensure_correlation_id()
        event_dict.update(self._bound)
        event_dict.update(kwargs)
        return event_dict

    def ensure_correlation_id(self) -> str:
        correlation_id = self._context.get("correlation_id")
        if not correlation_id:
            correlation_id = uuid.uuid4().hex
            self._context.set("correlation_id", correlation_id)
        return correlation_id

    def set_correlation_id(self, correlation_id: str) -> None:
        if self._enable_correlation:
            self._context.set("correlation_id", correlation_id)

    def get_correlation_id(self) -> Optional[str]:
        if not self._enable_correlation:
            return None
        return self._context.get("correlation_id")

    @contextmanager
    def context(self, **context_data: Any) -> Generator[None, None, None]:
        """Add context values for the duration of the block.

        Example:
            >>> with logger.context(profile_id="3f9a"):
            ...     logger.info("Opening handle")
        """
        previous = self._context.get_all()
        self._context.update(context_data)
        try:
            yield
        finally:
            self._context.replace(previous)

    def bind(self, **context_data: Any) -> "StructuredLogger":
        """Return a new logger that always includes ``context_data``."""
        merged = dict(self._bound)
        merged.update(context_data)
        return StructuredLogger(
            self.name,
            level=self.get_level(),
            enable_correlation=self._enable_correlation,
            bound=merged,
        )

    def set_level(self, level: str) -> None:
        log_level = getattr(logging, level.upper(), None)
        if not isinstance(log_level, int):
            raise ValueError(f"Unknown log level: {level}")
        self._stdlib_logger.setLevel(log_level)

    def get_level(self) -> str:
        return logging.getLevelName(self._stdlib_logger.getEffectiveLevel())

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **self._prepare_event_dict(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **self._prepare_event_dict(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **self._prepare_event_dict(**kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **self._prepare_event_dict(**kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._logger.error(message, exc_info=True, **self._prepare_event_dict(**kwargs))

    def get_context(self) -> Dict[str, Any]:
        context = self._context.get_all()
        context.update(self._bound)
        return context

    def __repr__(self) -> str:
        return (
            f"StructuredLogger("
            f"name={self.name!r}, "
            f"level={self.get_level()!r}, "
            f"correlation={self._enable_correlation})"
        )

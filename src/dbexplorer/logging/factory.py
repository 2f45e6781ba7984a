"""Logger factory and configuration for DB Explorer.

Classes:
    LoggerConfig: Settings applied by the factory
    LoggerFactory: Logger creation and logging-system configuration

Functions:
    get_logger: Get a cached StructuredLogger
    get_performance_logger: Get a cached PerformanceLogger

Log output goes to stderr. stdout is reserved for the JSON-lines
request transport.

Example:
    >>> from dbexplorer.logging import get_factory, get_logger
    >>> get_factory().configure_from_config(settings.logging)
    >>> logger = get_logger(__name__)
    >>> logger.info("Dispatcher ready", operations=12)
"""

import logging
import logging.handlers
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from .performance import PerformanceLogger
from .structured import StructuredLogger


@dataclass
class LoggerConfig:
    level: str = "INFO"
    format: str = "json"
    console_output: bool = True
    file_path: Optional[str] = None
    max_file_size: int = 10485760
    backup_count: int = 5
    correlation_ids: bool = True


class LoggerFactory:
    """Creates loggers and configures stdlib logging plus structlog.

    Example:
        >>> factory = LoggerFactory()
        >>> factory.configure_from_config(settings.logging)
        >>> logger = factory.get_logger("dbexplorer.api")
    """

    def __init__(self, config: Optional[LoggerConfig] = None) -> None:
        self.config = config or LoggerConfig()
        self.initialized = False
        self._loggers: Dict[str, StructuredLogger] = {}
        self._performance_loggers: Dict[str, PerformanceLogger] = {}

    def configure_from_config(self, logging_config: Any) -> None:
        """Configure from a ``LoggingConfig`` model (or anything with the same attributes)."""
        file_path = getattr(logging_config, "file_path", None)
        self.config = LoggerConfig(
            level=logging_config.level,
            format=logging_config.format,
            console_output=logging_config.console_output,
            file_path=str(file_path) if file_path else None,
            max_file_size=logging_config.max_file_size,
            backup_count=logging_config.backup_count,
        )
        self._reconfigure()

    def configure_from_dict(self, config_dict: Dict[str, Any]) -> None:
        for key, value in config_dict.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
        self._reconfigure()

    def _reconfigure(self) -> None:
        self.initialized = False
        self._configure_logging_system()
        for logger in self._loggers.values():
            logger.set_level(self.config.level)

    def _configure_logging_system(self) -> None:
        if self.initialized:
            return
        self._configure_stdlib_logging()
        self._configure_structlog()
        self.initialized = True

    def _configure_stdlib_logging(self) -> None:
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        if self.config.console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(console_handler)

        if self.config.file_path:
            file_path = Path(self.config.file_path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(file_path),
                maxBytes=self.config.max_file_size,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(file_handler)

    def _configure_structlog(self) -> None:
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.config.format.lower() == "json":
            processors.append(structlog.processors.JSONRenderer(default=str))
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str, *, level: Optional[str] = None) -> StructuredLogger:
        cache_key = f"{name}_{level}"
        if cache_key not in self._loggers:
            self._loggers[cache_key] = StructuredLogger(
                name,
                level=level or self.config.level,
                enable_correlation=self.config.correlation_ids,
            )
        return self._loggers[cache_key]

    def get_performance_logger(self, name: str, *, auto_log: bool = True) -> PerformanceLogger:
        cache_key = f"{name}_{auto_log}"
        if cache_key not in self._performance_loggers:
            self._performance_loggers[cache_key] = PerformanceLogger(
                name,
                auto_log=auto_log,
                logger=self.get_logger(f"perf.{name}"),
            )
        return self._performance_loggers[cache_key]

    def shutdown(self) -> None:
        self._loggers.clear()
        self._performance_loggers.clear()
        logging.shutdown()
        self.initialized = False

    def __repr__(self) -> str:
        return (
            f"LoggerFactory("
            f"level={self.config.level!r}, "
            f"format={self.config.format!r}, "
            f"initialized={self.initialized})"
        )


_global_factory = LoggerFactory()


def get_logger(name: str, *, level: Optional[str] = None) -> StructuredLogger:
    """Get or create a structured logger using the global factory.

    Loggers obtained before the factory is configured keep working; structlog
    resolves its configuration lazily on first use.
    """
    return _global_factory.get_logger(name, level=level)


def get_performance_logger(name: str, *, auto_log: bool = True) -> PerformanceLogger:
    """Get or create a performance logger using the global factory.

    Example:
        >>> perf_logger = get_performance_logger("adapter.postgresql")
        >>> with perf_logger.measure("execute_query"):
        ...     await connection.fetch(text)
    """
    return _global_factory.get_performance_logger(name, auto_log=auto_log)


def get_factory() -> LoggerFactory:
    return _global_factory


def shutdown_logging() -> None:
    _global_factory.shutdown()

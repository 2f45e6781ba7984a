"""DB Explorer structured logging.

Example:
    >>> from dbexplorer.logging import get_logger, get_performance_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Handle opened", profile_id="3f9a", engine="postgresql")
    >>>
    >>> perf_logger = get_performance_logger("adapter.postgresql")
    >>> with perf_logger.measure("execute_query"):
    ...     pass
"""

from .factory import (
    LoggerConfig,
    LoggerFactory,
    get_factory,
    get_logger,
    get_performance_logger,
    shutdown_logging,
)
from .performance import PerformanceLogger, PerformanceMetrics, TimingContext, TimingMetrics
from .structured import LogContext, StructuredLogger

__all__ = [
    "LoggerConfig",
    "LoggerFactory",
    "get_factory",
    "get_logger",
    "get_performance_logger",
    "shutdown_logging",
    "PerformanceLogger",
    "PerformanceMetrics",
    "TimingContext",
    "TimingMetrics",
    "StructuredLogger",
    "LogContext",
]

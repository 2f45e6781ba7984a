"""Performance logging for DB Explorer operations.

Classes:
    TimingMetrics: One timing measurement
    PerformanceMetrics: Aggregated measurements for one operation
    TimingContext: Context manager timing a block
    PerformanceLogger: Main performance logging interface

Example:
    >>> perf_logger = PerformanceLogger("adapter.mysql")
    >>> with perf_logger.measure("execute_query", profile_id="3f9a") as timer:
    ...     rows = await cursor.fetchall()
    >>> timer.duration_ms
    12.4
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

from .structured import StructuredLogger


@dataclass
class TimingMetrics:
    """A single timing measurement."""

    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        self.end_time = time.perf_counter()
        self.duration = self.end_time - self.start_time
        self.success = success
        self.error = error

    @property
    def duration_ms(self) -> Optional[float]:
        return self.duration * 1000 if self.duration is not None else None

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None


@dataclass
class PerformanceMetrics:
    """Aggregated timings for one operation name."""

    operation: str
    total_calls: int = 0
    failed_calls: int = 0
    total_duration: float = 0.0
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None

    def add_timing(self, timing: TimingMetrics) -> None:
        if timing.duration is None:
            return
        self.total_calls += 1
        if not timing.success:
            self.failed_calls += 1
        self.total_duration += timing.duration
        if self.min_duration is None or timing.duration < self.min_duration:
            self.min_duration = timing.duration
        if self.max_duration is None or timing.duration > self.max_duration:
            self.max_duration = timing.duration

    @property
    def avg_duration(self) -> Optional[float]:
        if self.total_calls == 0:
            return None
        return self.total_duration / self.total_calls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "total_calls": self.total_calls,
            "failed_calls": self.failed_calls,
            "total_duration": self.total_duration,
            "min_duration": self.min_duration,
            "max_duration": self.max_duration,
            "avg_duration": self.avg_duration,
        }


class TimingContext:
    """Times a block and records whether it raised.

    Example:
        >>> with TimingContext("describe_columns") as timer:
        ...     columns = await adapter.describe_columns("users")
        >>> timer.duration_ms
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        metadata: Optional[Dict[str, Any]] = None,
        auto_log: bool = True,
    ) -> None:
        self.operation = operation
        self.logger = logger
        self.metadata = metadata or {}
        self.auto_log = auto_log
        self.timing: Optional[TimingMetrics] = None

    @property
    def duration(self) -> Optional[float]:
        if self.timing is None:
            return None
        if self.timing.duration is not None:
            return self.timing.duration
        return time.perf_counter() - self.timing.start_time

    @property
    def duration_ms(self) -> Optional[float]:
        duration = self.duration
        return duration * 1000 if duration is not None else None

    def __enter__(self) -> "TimingContext":
        self.timing = TimingMetrics(
            operation=self.operation,
            start_time=time.perf_counter(),
            metadata=dict(self.metadata),
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.timing is None:
            return
        failed = exc_type is not None
        self.timing.complete(success=not failed, error=str(exc_val) if failed else None)

        if self.auto_log and self.logger is not None:
            if failed:
                self.logger.warning(
                    "Operation failed",
                    operation=self.operation,
                    duration_ms=self.timing.duration_ms,
                    error=self.timing.error,
                    **self.metadata,
                )
            else:
                self.logger.debug(
                    "Operation completed",
                    operation=self.operation,
                    duration_ms=self.timing.duration_ms,
                    **self.metadata,
                )


class PerformanceLogger:
    """Times operations and keeps per-operation aggregates."""

    def __init__(
        self,
        name: str,
        *,
        auto_log: bool = True,
        track_metrics: bool = True,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.name = name
        self.auto_log = auto_log
        self.track_metrics = track_metrics
        self.logger = logger or StructuredLogger(f"perf.{name}")
        self._metrics: Dict[str, PerformanceMetrics] = {}

    @contextmanager
    def measure(self, operation: str, **metadata: Any) -> Generator[TimingContext, None, None]:
        timer = TimingContext(operation, self.logger, metadata, self.auto_log)
        try:
            with timer:
                yield timer
        finally:
            if self.track_metrics and timer.timing is not None:
                self._metrics.setdefault(operation, PerformanceMetrics(operation)).add_timing(
                    timer.timing
                )

    def get_metrics(self, operation: Optional[str] = None) -> Dict[str, Any]:
        if operation is not None:
            metrics = self._metrics.get(operation)
            return metrics.to_dict() if metrics else {}
        return {name: m.to_dict() for name, m in self._metrics.items()}

    def reset_metrics(self) -> None:
        self._metrics.clear()

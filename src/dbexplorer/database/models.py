"""Result and metadata models shared by every engine adapter."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..core.utils import dedupe_names

OBJECT_KINDS = ("tables", "views", "procedures", "functions")


@dataclass
class QueryResult:
    """Uniform query result envelope.

    Every record in ``data`` carries exactly the keys in ``columns``. An
    empty ``columns`` list means the statement returned no result set.
    """

    success: bool
    data: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    row_count: int = 0
    execution_time: float = 0.0
    error: Optional[str] = None

    @classmethod
    def from_rows(
        cls,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        execution_time: float,
    ) -> "QueryResult":
        """Build a result-set envelope from positional rows.

        Duplicate column labels (``SELECT a.id, b.id``) are made unique so
        that no value is lost when rows become mappings.
        """
        labels = dedupe_names([str(c) for c in columns])
        data = [dict(zip(labels, row)) for row in rows]
        return cls(
            success=True,
            data=data,
            columns=labels,
            row_count=len(data),
            execution_time=execution_time,
        )

    @classmethod
    def affected(cls, row_count: Optional[int], execution_time: float) -> "QueryResult":
        """Build the envelope for a statement without a result set."""
        return cls(
            success=True,
            row_count=max(row_count or 0, 0),
            execution_time=execution_time,
        )

    @classmethod
    def failure(cls, error: str, execution_time: float = 0.0) -> "QueryResult":
        return cls(success=False, error=error, execution_time=execution_time)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error, "executionTime": self.execution_time}
        return {
            "success": True,
            "data": self.data,
            "columns": self.columns,
            "rowCount": self.row_count,
            "executionTime": self.execution_time,
        }


@dataclass
class ColumnDescriptor:
    """Schema metadata for one table column."""

    name: str
    type: str
    nullable: bool = True
    default_value: Optional[Any] = None
    char_max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    is_primary_key: bool = False
    is_auto_increment: bool = False
    is_identity: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "defaultValue": self.default_value,
            "charMaxLength": self.char_max_length,
            "numericPrecision": self.numeric_precision,
            "numericScale": self.numeric_scale,
            "isPrimaryKey": self.is_primary_key,
            "isAutoIncrement": self.is_auto_increment,
            "isIdentity": self.is_identity,
        }


@dataclass
class ConnectionTestResult:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


@dataclass
class ObjectListing:
    objects: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"objects": [{"name": name} for name in self.objects]}
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ColumnListing:
    columns: List[ColumnDescriptor] = field(default_factory=list)
    database_type: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "columns": [c.to_dict() for c in self.columns],
            "databaseType": self.database_type,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class TextResult:
    """A text payload (plan report or DDL script) or an error."""

    key: str
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {self.key: self.text}


@dataclass
class PlanReport:
    """Human-readable estimated-plan report.

    Example:
        >>> PlanReport("SQLite", "SELECT 1", "| detail |", ["No table scans."]).render()
    """

    engine_label: str
    query: str
    body: str
    analysis: List[str] = field(default_factory=list)

    def render(self) -> str:
        lines = [
            f"{self.engine_label} Estimated Execution Plan for query:",
            self.query.strip(),
            "",
            "Execution Plan:",
            self.body.rstrip() or "No execution plan data returned.",
        ]
        if self.analysis:
            lines.extend(["", "Plan Analysis:"])
            lines.extend(f"- {item}" for item in self.analysis)
        return "\n".join(lines)


# Monitoring

METRIC_DEFAULTS: Dict[str, Any] = {
    "connections.active": 0,
    "queries.perSec": 0,
    "queries.avgResponseTime": 0,
    "resources.cpu": 0,
    "resources.memory": 0,
    "cache.hitRatio": 0,
    "topQueries": [],
    "dbSize.current": 0,
    "locks.waiting": 0,
    "locks.deadlocks": 0,
    "transactions.committed": 0,
    "transactions.rolledBack": 0,
    "bufferPool.usage": 0,
    "slowQueries.count": 0,
    "replication.lag": 0,
    "tableScans.rate": 0,
}

# trend field -> metric it follows
TREND_SOURCES: Dict[str, str] = {
    "connections.trend": "connections.active",
    "queries.trend": "queries.perSec",
    "queries.responseTrend": "queries.avgResponseTime",
    "cache.trend": "cache.hitRatio",
    "dbSize.trend": "dbSize.current",
    "locks.trend": "locks.waiting",
    "transactions.trend": "transactions.committed",
    "bufferPool.trend": "bufferPool.usage",
    "slowQueries.trend": "slowQueries.count",
}


@dataclass(frozen=True)
class MetricProbe:
    """One independently guarded monitoring probe.

    Attributes:
        metric: Metric name (a key of METRIC_DEFAULTS)
        probe: Coroutine function called as ``probe(adapter, handle)`` with the adapter
            and its native handle, returning the value
        fallback: Optional producer of a replacement value when the probe fails
            and no previous value is cached
    """

    metric: str
    probe: Callable[[Any, Any], Awaitable[Any]]
    fallback: Optional[Callable[[], Any]] = None


@dataclass
class Trend:
    value: float = 0
    percent: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "percent": self.percent}


@dataclass
class MonitoringSnapshot:
    """Point-in-time operational metrics for one profile.

    ``values`` always holds every key of METRIC_DEFAULTS and ``trends`` every
    key of TREND_SOURCES; ``degraded`` names the metrics whose probe failed.
    """

    database_type: str
    values: Dict[str, Any]
    trends: Dict[str, Trend]
    degraded: List[str] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def get(self, metric: str) -> Any:
        return self.values[metric]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, value in self.values.items():
            _set_path(result, name, value)
        for name, trend in self.trends.items():
            _set_path(result, name, trend.to_dict())
        result["timestamp"] = self.timestamp
        result["databaseType"] = self.database_type
        result["degraded"] = list(self.degraded)
        return result


def _set_path(target: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    node = target
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value

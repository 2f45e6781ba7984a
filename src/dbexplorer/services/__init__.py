"""Profile-scoped services the request dispatcher routes to."""

from .base import ProfileService
from .connection import ConnectionService
from .monitoring import MonitoringCollector, compute_trends
from .plans import PlanEstimator
from .query import QueryExecutionService
from .schema import SchemaIntrospectionService

__all__ = [
    "ProfileService",
    "ConnectionService",
    "QueryExecutionService",
    "SchemaIntrospectionService",
    "MonitoringCollector",
    "PlanEstimator",
    "compute_trends",
]

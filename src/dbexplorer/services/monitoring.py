"""Operational monitoring snapshots with per-probe degradation."""

import copy
from typing import Any, Dict, Optional

from ..config.models import AppSettings
from ..core.utils import safe_ratio
from ..database.connections import ConnectionRegistry
from ..database.models import (
    METRIC_DEFAULTS,
    TREND_SOURCES,
    MetricProbe,
    MonitoringSnapshot,
    Trend,
)
from .base import ProfileService


class MonitoringCollector(ProfileService):
    """Collects a fully populated ``MonitoringSnapshot`` for a profile.

    Each adapter declares an ordered battery of ``MetricProbe`` entries.
    Probes for the same metric form a fallback chain: the first one that
    succeeds wins. When every probe for a metric fails, the value from the
    previous snapshot of the same profile is reused, then the probe's own
    fallback, then the metric default. Probe failures are logged, never
    raised; ``snapshot`` only raises when no live handle can be obtained.
    """

    service_name = "monitoring"

    def __init__(
        self, connections: ConnectionRegistry, settings: Optional[AppSettings] = None
    ) -> None:
        super().__init__(connections, settings)
        self._previous: Dict[str, Dict[str, Any]] = {}
        connections.add_close_listener(self.forget)

    def forget(self, profile_id: str) -> None:
        """Drop cached values so the next snapshot starts without trends."""
        self._previous.pop(profile_id, None)

    async def snapshot(self, profile_id: Optional[str]) -> MonitoringSnapshot:
        """Collect metrics for ``profile_id``.

        Raises:
            DBExplorerError: Only if the profile is unknown or cannot connect
        """
        adapter = await self.open_adapter(profile_id)
        adapter.top_queries_limit = self.settings.monitoring.top_queries
        probe_timeout = self.settings.monitoring.probe_timeout_ms / 1000.0
        previous = self._previous.get(profile_id, {})

        values: Dict[str, Any] = copy.deepcopy(METRIC_DEFAULTS)
        resolved = set()
        failed: Dict[str, MetricProbe] = {}

        with self.perf_logger.measure("snapshot", engine=adapter.engine):
            for probe in adapter.monitoring_probes():
                if probe.metric in resolved:
                    continue
                if not adapter.is_connected:
                    # the session broke mid-battery; the pool reopens it next time
                    failed[probe.metric] = probe
                    continue
                try:
                    value = await adapter.run_probe(probe, timeout=probe_timeout)
                except Exception as e:
                    failed[probe.metric] = probe
                    self.logger.warning(
                        "Metric probe failed",
                        metric=probe.metric,
                        profile_id=profile_id,
                        engine=adapter.engine,
                        error=getattr(e, "message", None) or str(e),
                    )
                    continue
                values[probe.metric] = value
                resolved.add(probe.metric)
                failed.pop(probe.metric, None)

        degraded = []
        for metric, probe in failed.items():
            if metric in previous:
                values[metric] = previous[metric]
            elif probe.fallback is not None:
                values[metric] = probe.fallback()
            degraded.append(metric)

        trends = compute_trends(values, previous)
        self._previous[profile_id] = copy.deepcopy(values)

        if degraded:
            self.logger.info(
                "Monitoring snapshot degraded", profile_id=profile_id, degraded=degraded
            )
        return MonitoringSnapshot(
            database_type=adapter.engine,
            values=values,
            trends=trends,
            degraded=sorted(degraded),
        )


def compute_trends(values: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, Trend]:
    """Delta and percent change of each trended metric against the last snapshot."""
    trends = {}
    for trend_name, metric in TREND_SOURCES.items():
        current = values.get(metric)
        before = previous.get(metric)
        if not _is_number(current) or not _is_number(before):
            trends[trend_name] = Trend()
            continue
        delta = current - before
        trends[trend_name] = Trend(
            value=round(delta, 2), percent=round(safe_ratio(delta, before, scale=100), 2)
        )
    return trends


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

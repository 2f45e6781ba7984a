"""Tests for MonitoringCollector."""

import pytest

from dbexplorer.core.exceptions import ConnectionError
from dbexplorer.database.models import METRIC_DEFAULTS, TREND_SOURCES, MetricProbe
from dbexplorer.services import MonitoringCollector
from dbexplorer.services.monitoring import compute_trends


class ProbeScript:
    """Probe values keyed by metric; an exception instance makes the probe raise."""

    def __init__(self, **values):
        self.values = values
        self.calls = []

    def probe(self, metric):
        async def run(adapter, handle):
            self.calls.append(metric)
            value = self.values[metric]
            if isinstance(value, BaseException):
                raise value
            return value

        return run


@pytest.fixture
def script():
    return ProbeScript(
        **{
            "connections.active": 10,
            "queries.perSec": LookupError("pg_stat_statements missing"),
            "queries.perSec.fallback": 7.5,
            "cache.hitRatio": 98.2,
            "topQueries": RuntimeError("permission denied"),
        }
    )


@pytest.fixture
def adapter_class(fake_adapter_class, script):
    fake_adapter_class.PROBES = (
        MetricProbe("connections.active", script.probe("connections.active")),
        MetricProbe("queries.perSec", script.probe("queries.perSec")),
        MetricProbe("queries.perSec", script.probe("queries.perSec.fallback")),
        MetricProbe("cache.hitRatio", script.probe("cache.hitRatio")),
        MetricProbe("topQueries", script.probe("topQueries"), fallback=list),
    )
    return fake_adapter_class


@pytest.fixture
def collector(fake_connections, settings):
    return MonitoringCollector(fake_connections, settings)


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_every_metric_is_present(self, collector, saved_id, adapter_class):
        snapshot = await collector.snapshot(saved_id)

        assert set(snapshot.values) == set(METRIC_DEFAULTS)
        assert set(snapshot.trends) == set(TREND_SOURCES)
        assert snapshot.database_type == "mysql"

    @pytest.mark.asyncio
    async def test_fallback_chain_stops_at_first_success(
        self, collector, saved_id, adapter_class, script
    ):
        snapshot = await collector.snapshot(saved_id)

        assert snapshot.get("queries.perSec") == 7.5
        assert "queries.perSec" not in snapshot.degraded
        assert script.calls.count("queries.perSec") == 1

    @pytest.mark.asyncio
    async def test_failed_probe_degrades_only_its_metric(self, collector, saved_id, adapter_class):
        snapshot = await collector.snapshot(saved_id)

        assert snapshot.degraded == ["topQueries"]
        assert snapshot.get("topQueries") == []
        assert snapshot.get("connections.active") == 10
        assert snapshot.get("cache.hitRatio") == 98.2

    @pytest.mark.asyncio
    async def test_previous_value_is_reused(self, collector, saved_id, adapter_class, script):
        await collector.snapshot(saved_id)
        script.values["cache.hitRatio"] = LookupError("gone")

        snapshot = await collector.snapshot(saved_id)

        assert snapshot.get("cache.hitRatio") == 98.2
        assert snapshot.degraded == ["cache.hitRatio", "topQueries"]

    @pytest.mark.asyncio
    async def test_trends_follow_previous_snapshot(
        self, collector, saved_id, adapter_class, script
    ):
        first = await collector.snapshot(saved_id)
        script.values["connections.active"] = 15

        second = await collector.snapshot(saved_id)

        assert first.trends["connections.trend"].to_dict() == {"value": 0, "percent": 0}
        assert second.trends["connections.trend"].to_dict() == {"value": 5, "percent": 50.0}
        assert second.to_dict()["connections"] == {
            "active": 15,
            "trend": {"value": 5, "percent": 50.0},
        }

    @pytest.mark.asyncio
    async def test_top_queries_limit_from_settings(
        self, collector, saved_id, adapter_class, fake_connections, settings
    ):
        await collector.snapshot(saved_id)

        adapter = await fake_connections.open_by_id(saved_id)
        assert adapter.top_queries_limit == settings.monitoring.top_queries

    @pytest.mark.asyncio
    async def test_broken_session_skips_remaining_probes(
        self, collector, saved_id, adapter_class, script, fake_adapter_class
    ):
        script.values["connections.active"] = ConnectionResetError("server closed the connection")

        snapshot = await collector.snapshot(saved_id)

        assert script.calls == ["connections.active"]
        assert snapshot.degraded == sorted(
            ["connections.active", "queries.perSec", "cache.hitRatio", "topQueries"]
        )
        assert snapshot.get("connections.active") == 0

        script.values["connections.active"] = 3
        recovered = await collector.snapshot(saved_id)
        assert recovered.get("connections.active") == 3
        assert fake_adapter_class.opened == 2

    @pytest.mark.asyncio
    async def test_closing_the_handle_forgets_history(
        self, collector, saved_id, adapter_class, script, fake_connections
    ):
        await collector.snapshot(saved_id)
        await fake_connections.close_handle(saved_id)
        script.values["connections.active"] = 40

        snapshot = await collector.snapshot(saved_id)

        assert snapshot.trends["connections.trend"].value == 0

    @pytest.mark.asyncio
    async def test_unknown_profile_raises(self, collector):
        with pytest.raises(ConnectionError) as exc_info:
            await collector.snapshot("missing")

        assert exc_info.value.message == "Connection not found"


class TestComputeTrends:
    def test_percent_change(self):
        trends = compute_trends({"queries.perSec": 30.0}, {"queries.perSec": 20.0})

        assert trends["queries.trend"].to_dict() == {"value": 10.0, "percent": 50.0}

    def test_previous_zero_gives_zero_percent(self):
        trends = compute_trends({"locks.waiting": 4}, {"locks.waiting": 0})

        assert trends["locks.trend"].to_dict() == {"value": 4, "percent": 0}

    def test_non_numeric_values(self):
        trends = compute_trends({"dbSize.current": None}, {"dbSize.current": 1.0})

        assert trends["dbSize.trend"].to_dict() == {"value": 0, "percent": 0}

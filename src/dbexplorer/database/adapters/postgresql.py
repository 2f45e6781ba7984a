"""PostgreSQL adapter built on asyncpg."""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg

from ...core.exceptions import (
    AuthenticationError,
    ConnectionError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
)
from ...core.utils import FormatUtils, safe_cast, safe_ratio
from ..base import (
    EngineAdapter,
    ExecutionOutcome,
    _native_message,
    as_bool,
    as_int,
    ssl_context_for,
)
from ..ddl import PostgreSQLScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

_PLAN_COST = re.compile(r"cost=([\d.]+)\.\.([\d.]+) rows=(\d+)")
_SEQ_SCAN = re.compile(r"Seq Scan on (\S+)")
_STATUS_COUNT = re.compile(r"(\d+)$")

_UPTIME_SQL = "EXTRACT(EPOCH FROM now() - pg_postmaster_start_time())"
_DB_STATS_SQL = "FROM pg_stat_database WHERE datname = current_database()"


async def _active_connections(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle, "SELECT count(*) FROM pg_stat_activity WHERE state = 'active'"
    )
    return safe_cast(value, int, default=0)


async def _statement_calls_per_second(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    value = await adapter._scalar(
        handle, f"SELECT sum(calls) / NULLIF({_UPTIME_SQL}, 0) FROM pg_stat_statements"
    )
    return round(safe_cast(value, float, default=0.0), 2)


async def _transactions_per_second(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    _, rows = await adapter._query(
        handle, f"SELECT xact_commit + xact_rollback, {_UPTIME_SQL} {_DB_STATS_SQL}"
    )
    if not rows:
        return 0
    return round(safe_ratio(rows[0][0], rows[0][1]), 2)


async def _avg_response_time(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    value = await adapter._scalar(handle, "SELECT avg(mean_exec_time) FROM pg_stat_statements")
    return round(safe_cast(value, float, default=0.0), 3)


async def _avg_response_time_legacy(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    # pg_stat_statements before PostgreSQL 13 names the column mean_time
    value = await adapter._scalar(handle, "SELECT avg(mean_time) FROM pg_stat_statements")
    return round(safe_cast(value, float, default=0.0), 3)


async def _slow_queries(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle, "SELECT count(*) FROM pg_stat_statements WHERE mean_exec_time > 100"
    )
    return safe_cast(value, int, default=0)


async def _database_size(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    size = await adapter._scalar(handle, "SELECT pg_database_size(current_database())")
    return FormatUtils.bytes_to_gb(safe_cast(size, float, default=0.0))


async def _cache_hit_ratio(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    _, rows = await adapter._query(handle, f"SELECT blks_hit, blks_read {_DB_STATS_SQL}")
    if not rows:
        return 0
    hits, reads = (safe_cast(v, int, default=0) for v in rows[0])
    return round(safe_ratio(hits, hits + reads, scale=100), 2)


async def _lock_waits(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(handle, "SELECT count(*) FROM pg_locks WHERE NOT granted")
    return safe_cast(value, int, default=0)


async def _deadlocks(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(handle, f"SELECT deadlocks {_DB_STATS_SQL}")
    return safe_cast(value, int, default=0)


async def _commits(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(handle, f"SELECT xact_commit {_DB_STATS_SQL}")
    return safe_cast(value, int, default=0)


async def _rollbacks(adapter: "PostgreSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(handle, f"SELECT xact_rollback {_DB_STATS_SQL}")
    return safe_cast(value, int, default=0)


async def _table_scan_rate(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    _, rows = await adapter._query(
        handle, f"SELECT COALESCE(sum(seq_scan), 0), {_UPTIME_SQL} FROM pg_stat_user_tables"
    )
    if not rows:
        return 0
    return round(safe_ratio(rows[0][0], rows[0][1]), 2)


async def _top_statements(adapter: "PostgreSQLAdapter", handle: Any) -> List[Dict[str, Any]]:
    _, rows = await adapter._query(
        handle,
        "SELECT query, calls FROM pg_stat_statements ORDER BY calls DESC LIMIT $1",
        (adapter.top_queries_limit,),
    )
    return [{"query": query, "count": safe_cast(calls, int, default=0)} for query, calls in rows]


async def _top_running(adapter: "PostgreSQLAdapter", handle: Any) -> List[Dict[str, Any]]:
    _, rows = await adapter._query(
        handle,
        "SELECT query, count(*) FROM pg_stat_activity "
        "WHERE state = 'active' AND query <> '' GROUP BY query ORDER BY count(*) DESC LIMIT $1",
        (adapter.top_queries_limit,),
    )
    return [{"query": query, "count": safe_cast(n, int, default=0)} for query, n in rows]


async def _replication_lag(adapter: "PostgreSQLAdapter", handle: Any) -> float:
    value = await adapter._scalar(
        handle,
        "SELECT CASE WHEN pg_is_in_recovery() "
        "THEN COALESCE(EXTRACT(EPOCH FROM now() - pg_last_xact_replay_timestamp()), 0) "
        "ELSE 0 END",
    )
    return round(safe_cast(value, float, default=0.0), 2)


class PostgreSQLAdapter(EngineAdapter):
    """Adapter for PostgreSQL servers.

    Catalog listings are scoped to the session's current schema. Statement
    statistics come from ``pg_stat_statements`` when the extension is
    installed; the probes fall back to ``pg_stat_database`` and
    ``pg_stat_activity`` otherwise.
    """

    engine = "postgresql"
    engine_label = "PostgreSQL"
    component_name = "PostgreSQLAdapter"
    script_builder_class = PostgreSQLScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _active_connections),
        MetricProbe("queries.perSec", _statement_calls_per_second),
        MetricProbe("queries.perSec", _transactions_per_second),
        MetricProbe("queries.avgResponseTime", _avg_response_time),
        MetricProbe("queries.avgResponseTime", _avg_response_time_legacy),
        MetricProbe("slowQueries.count", _slow_queries),
        MetricProbe("dbSize.current", _database_size),
        MetricProbe("cache.hitRatio", _cache_hit_ratio),
        MetricProbe("locks.waiting", _lock_waits),
        MetricProbe("locks.deadlocks", _deadlocks),
        MetricProbe("transactions.committed", _commits),
        MetricProbe("transactions.rolledBack", _rollbacks),
        MetricProbe("tableScans.rate", _table_scan_rate),
        MetricProbe("topQueries", _top_statements),
        MetricProbe("topQueries", _top_running, fallback=list),
        MetricProbe("replication.lag", _replication_lag),
    )

    async def _open_handle(self) -> asyncpg.Connection:
        profile = self.profile
        ssl: Any = None
        if profile.ssl_ca or profile.ssl_cert:
            ssl = ssl_context_for(profile)
        elif profile.ssl_mode:
            ssl = profile.ssl_mode
        return await asyncpg.connect(
            host=profile.host,
            port=profile.port,
            user=profile.username,
            password=profile.plain_password,
            database=profile.database,
            timeout=profile.connect_timeout_seconds,
            ssl=ssl,
            server_settings=profile.additional_params.get("serverSettings") or None,
        )

    async def _close_handle(self, handle: asyncpg.Connection) -> None:
        try:
            await handle.close(timeout=self.profile.connect_timeout_seconds)
        except Exception:
            handle.terminate()
            raise

    async def _query(
        self, handle: asyncpg.Connection, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        statement = await handle.prepare(sql)
        columns = [attribute.name for attribute in statement.get_attributes()]
        records = await statement.fetch(*(params or ()))
        return columns, [tuple(record.values()) for record in records]

    async def _execute(self, handle: asyncpg.Connection, text: str) -> ExecutionOutcome:
        statement = await handle.prepare(text)
        attributes = statement.get_attributes()
        records = await statement.fetch()
        if attributes:
            return ExecutionOutcome(
                columns=[attribute.name for attribute in attributes],
                rows=[tuple(record.values()) for record in records],
            )
        return ExecutionOutcome(row_count=_affected_rows(statement.get_statusmsg()))

    async def _list_objects(self, handle: asyncpg.Connection, kind: str) -> List[str]:
        queries = {
            "tables": (
                "SELECT tablename FROM pg_tables "
                "WHERE schemaname = current_schema() ORDER BY tablename"
            ),
            "views": (
                "SELECT viewname FROM pg_views "
                "WHERE schemaname = current_schema() ORDER BY viewname"
            ),
            "procedures": (
                "SELECT p.proname FROM pg_proc p "
                "JOIN pg_namespace n ON p.pronamespace = n.oid "
                "WHERE n.nspname = current_schema() AND p.prokind = 'p' ORDER BY p.proname"
            ),
            "functions": (
                "SELECT routine_name FROM information_schema.routines "
                "WHERE routine_schema = current_schema() AND routine_type = 'FUNCTION' "
                "ORDER BY routine_name"
            ),
        }
        _, rows = await self._query(handle, queries[kind])
        return [row[0] for row in rows]

    async def _describe_columns(
        self, handle: asyncpg.Connection, table_name: str
    ) -> List[ColumnDescriptor]:
        _, rows = await self._query(
            handle,
            """
            SELECT c.column_name, c.data_type, c.is_nullable, c.column_default,
                   c.character_maximum_length, c.numeric_precision, c.numeric_scale,
                   c.is_identity,
                   EXISTS (
                       SELECT 1
                       FROM information_schema.table_constraints tc
                       JOIN information_schema.key_column_usage kcu
                         ON tc.constraint_name = kcu.constraint_name
                        AND tc.table_schema = kcu.table_schema
                       WHERE tc.constraint_type = 'PRIMARY KEY'
                         AND tc.table_schema = c.table_schema
                         AND tc.table_name = c.table_name
                         AND kcu.column_name = c.column_name
                   ) AS is_primary_key
            FROM information_schema.columns c
            WHERE c.table_schema = current_schema() AND c.table_name = $1
            ORDER BY c.ordinal_position
            """,
            (table_name,),
        )
        columns = []
        for name, data_type, nullable, default, length, precision, scale, identity, pk in rows:
            serial = isinstance(default, str) and default.startswith("nextval(")
            columns.append(
                ColumnDescriptor(
                    name=name,
                    type=data_type,
                    nullable=nullable == "YES",
                    default_value=default,
                    char_max_length=as_int(length),
                    numeric_precision=as_int(precision),
                    numeric_scale=as_int(scale),
                    is_primary_key=bool(pk),
                    is_auto_increment=serial,
                    is_identity=as_bool(identity),
                )
            )
        return columns

    async def _estimated_plan(self, handle: asyncpg.Connection, text: str) -> PlanReport:
        _, rows = await self._query(handle, f"EXPLAIN {text}")
        lines = [str(row[0]) for row in rows]
        analysis = []
        if lines:
            cost = _PLAN_COST.search(lines[0])
            if cost:
                analysis.append(
                    f"Estimated total cost {cost.group(2)} for about {cost.group(3)} rows"
                )
        seq_scans = [m.group(1) for line in lines for m in [_SEQ_SCAN.search(line)] if m]
        if seq_scans:
            analysis.append(
                "Sequential scan on: " + ", ".join(seq_scans) + " (an index may help)"
            )
        else:
            analysis.append("No sequential scans")
        body = "\n".join(f"  {line}" for line in lines)
        return PlanReport(self.engine_label, text, body, analysis)

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        context = {"endpoint": self.profile.endpoint, "sqlstate": getattr(exc, "sqlstate", None)}
        message = _native_message(exc)
        if isinstance(
            exc, (asyncpg.InvalidPasswordError, asyncpg.InvalidAuthorizationSpecificationError)
        ):
            return AuthenticationError(
                message, code=ErrorCodes.AUTH_FAILED, context=context, cause=exc
            )
        if isinstance(exc, asyncpg.InvalidCatalogNameError):
            return ConnectionError(
                message, code=ErrorCodes.DATABASE_NOT_FOUND, context=context, cause=exc
            )
        return ConnectionError(
            message, code=ErrorCodes.CONNECTION_REFUSED, context=context, cause=exc
        )

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        context = {"operation": operation, "sqlstate": getattr(exc, "sqlstate", None)}
        message = _native_message(exc)
        if isinstance(exc, asyncpg.ConnectionDoesNotExistError) or (
            isinstance(exc, asyncpg.InterfaceError) and "closed" in message
        ):
            return ConnectionError(
                message, code=ErrorCodes.CONNECTION_CLOSED, context=context, cause=exc
            )
        if isinstance(exc, asyncpg.InsufficientPrivilegeError):
            return QueryExecutionError(
                message, code=ErrorCodes.INSUFFICIENT_PERMISSIONS, context=context, cause=exc
            )
        return QueryExecutionError(
            message, code=ErrorCodes.QUERY_EXECUTION_FAILED, context=context, cause=exc
        )


def _affected_rows(status: Optional[str]) -> int:
    """Read the row count from a command tag such as ``INSERT 0 3`` or ``UPDATE 2``."""
    match = _STATUS_COUNT.search(status or "")
    return int(match.group(1)) if match else 0

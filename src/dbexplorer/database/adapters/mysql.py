"""MySQL/MariaDB adapter built on aiomysql."""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiomysql

from ...core.exceptions import (
    AuthenticationError,
    ConnectionError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
)
from ...core.utils import FormatUtils, safe_cast, safe_ratio
from ..base import EngineAdapter, ExecutionOutcome, as_bool, as_int, ssl_context_for
from ..ddl import MySQLScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

AUTH_ERRORS = (1044, 1045, 1698)
UNKNOWN_DATABASE = 1049
CONNECTION_LOST = (2006, 2013, 2055)
PERMISSION_ERRORS = (1142, 1143, 1227, 1370)

# additionalParams keys forwarded to aiomysql.connect, with their converters
CONNECT_OPTIONS = {
    "charset": str,
    "unix_socket": str,
    "init_command": str,
    "sql_mode": str,
    "read_default_file": str,
    "read_default_group": str,
    "program_name": str,
    "server_public_key": str,
    "auth_plugin": str,
    "client_flag": as_int,
    "local_infile": as_bool,
    "use_unicode": as_bool,
}


def connect_options(params: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the aiomysql.connect keywords out of a profile's additionalParams.

    Keys may be snake_case or camelCase (``initCommand``); unknown keys are ignored.
    """
    options = {}
    for key, value in params.items():
        name = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", str(key)).lower()
        convert = CONNECT_OPTIONS.get(name)
        if convert is not None and value is not None:
            options[name] = convert(value)
    options.setdefault("charset", "utf8mb4")
    return options


async def _status(adapter: "MySQLAdapter", handle: Any, *names: str) -> Dict[str, int]:
    placeholders = ", ".join(["%s"] * len(names))
    _, rows = await adapter._query(
        handle, f"SHOW GLOBAL STATUS WHERE Variable_name IN ({placeholders})", names
    )
    values = {str(name): safe_cast(value, int, default=0) for name, value in rows}
    missing = [n for n in names if n not in values]
    if missing:
        raise LookupError(f"Status variables unavailable: {', '.join(missing)}")
    return values


async def _threads_connected(adapter: "MySQLAdapter", handle: Any) -> int:
    return (await _status(adapter, handle, "Threads_connected"))["Threads_connected"]


async def _queries_per_second(adapter: "MySQLAdapter", handle: Any) -> float:
    status = await _status(adapter, handle, "Questions", "Uptime")
    return round(safe_ratio(status["Questions"], status["Uptime"]), 2)


async def _slow_queries(adapter: "MySQLAdapter", handle: Any) -> int:
    return (await _status(adapter, handle, "Slow_queries"))["Slow_queries"]


async def _avg_response_time(adapter: "MySQLAdapter", handle: Any) -> float:
    # timer columns are in picoseconds
    value = await adapter._scalar(
        handle,
        "SELECT AVG_TIMER_WAIT / 1000000000 FROM "
        "performance_schema.events_statements_summary_global_by_event_name "
        "WHERE EVENT_NAME = 'statement/sql/select'",
    )
    return round(safe_cast(value, float, default=0.0), 3)


async def _database_size(adapter: "MySQLAdapter", handle: Any) -> float:
    size = await adapter._scalar(
        handle,
        "SELECT COALESCE(SUM(data_length + index_length), 0) FROM information_schema.tables "
        "WHERE table_schema = DATABASE()",
    )
    return FormatUtils.bytes_to_gb(safe_cast(size, float, default=0.0))


async def _buffer_pool_usage(adapter: "MySQLAdapter", handle: Any) -> float:
    status = await _status(
        adapter, handle, "Innodb_buffer_pool_pages_data", "Innodb_buffer_pool_pages_total"
    )
    return round(
        safe_ratio(
            status["Innodb_buffer_pool_pages_data"],
            status["Innodb_buffer_pool_pages_total"],
            scale=100,
        ),
        2,
    )


async def _cache_hit_ratio(adapter: "MySQLAdapter", handle: Any) -> float:
    status = await _status(
        adapter, handle, "Innodb_buffer_pool_reads", "Innodb_buffer_pool_read_requests"
    )
    requests = status["Innodb_buffer_pool_read_requests"]
    if not requests:
        return 0
    misses = safe_ratio(status["Innodb_buffer_pool_reads"], requests, scale=100)
    return round(100 - misses, 2)


async def _lock_waits(adapter: "MySQLAdapter", handle: Any) -> int:
    return (await _status(adapter, handle, "Innodb_row_lock_current_waits"))[
        "Innodb_row_lock_current_waits"
    ]


async def _deadlocks(adapter: "MySQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle,
        "SELECT `count` FROM information_schema.innodb_metrics WHERE name = 'lock_deadlocks'",
    )
    return safe_cast(value, int, default=0)


async def _commits(adapter: "MySQLAdapter", handle: Any) -> int:
    return (await _status(adapter, handle, "Com_commit"))["Com_commit"]


async def _rollbacks(adapter: "MySQLAdapter", handle: Any) -> int:
    return (await _status(adapter, handle, "Com_rollback"))["Com_rollback"]


async def _table_scan_rate(adapter: "MySQLAdapter", handle: Any) -> float:
    status = await _status(adapter, handle, "Select_scan", "Uptime")
    return round(safe_ratio(status["Select_scan"], status["Uptime"]), 2)


async def _top_queries_by_digest(adapter: "MySQLAdapter", handle: Any) -> List[Dict[str, Any]]:
    _, rows = await adapter._query(
        handle,
        "SELECT DIGEST_TEXT, COUNT_STAR "
        "FROM performance_schema.events_statements_summary_by_digest "
        "WHERE DIGEST_TEXT IS NOT NULL ORDER BY COUNT_STAR DESC LIMIT %s",
        (adapter.top_queries_limit,),
    )
    return [{"query": text, "count": safe_cast(count, int, default=0)} for text, count in rows]


async def _top_queries_from_processlist(
    adapter: "MySQLAdapter", handle: Any
) -> List[Dict[str, Any]]:
    columns, rows = await adapter._query(handle, "SHOW PROCESSLIST")
    info = columns.index("Info")
    running = [row[info] for row in rows if row[info]]
    return [{"query": text, "count": 1} for text in running[: adapter.top_queries_limit]]


async def _replication_lag(adapter: "MySQLAdapter", handle: Any) -> int:
    try:
        columns, rows = await adapter._query(handle, "SHOW REPLICA STATUS")
    except Exception:
        # servers before 8.0.22 only know the old spelling
        columns, rows = await adapter._query(handle, "SHOW SLAVE STATUS")
    if not rows:
        return 0
    for name in ("Seconds_Behind_Source", "Seconds_Behind_Master"):
        if name in columns:
            return safe_cast(rows[0][columns.index(name)], int, default=0)
    return 0


class MySQLAdapter(EngineAdapter):
    """Adapter for MySQL and MariaDB servers."""

    engine = "mysql"
    engine_label = "MySQL"
    component_name = "MySQLAdapter"
    script_builder_class = MySQLScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _threads_connected),
        MetricProbe("queries.perSec", _queries_per_second),
        MetricProbe("queries.avgResponseTime", _avg_response_time),
        MetricProbe("slowQueries.count", _slow_queries),
        MetricProbe("dbSize.current", _database_size),
        MetricProbe("bufferPool.usage", _buffer_pool_usage),
        MetricProbe("cache.hitRatio", _cache_hit_ratio),
        MetricProbe("locks.waiting", _lock_waits),
        MetricProbe("locks.deadlocks", _deadlocks),
        MetricProbe("transactions.committed", _commits),
        MetricProbe("transactions.rolledBack", _rollbacks),
        MetricProbe("tableScans.rate", _table_scan_rate),
        MetricProbe("topQueries", _top_queries_by_digest),
        MetricProbe("topQueries", _top_queries_from_processlist, fallback=list),
        MetricProbe("replication.lag", _replication_lag),
    )

    async def _open_handle(self) -> aiomysql.Connection:
        profile = self.profile
        options = connect_options(profile.additional_params)
        return await aiomysql.connect(
            host=profile.host,
            port=profile.port,
            user=profile.username or "",
            password=profile.plain_password or "",
            db=profile.database,
            connect_timeout=profile.connect_timeout_seconds,
            ssl=ssl_context_for(profile),
            autocommit=True,
            **options,
        )

    async def _close_handle(self, handle: aiomysql.Connection) -> None:
        try:
            await handle.ensure_closed()
        finally:
            handle.close()

    async def _query(
        self, handle: aiomysql.Connection, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        async with handle.cursor() as cursor:
            await cursor.execute(sql, tuple(params) if params else None)
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description or ()]
        return columns, list(rows)

    async def _execute(self, handle: aiomysql.Connection, text: str) -> ExecutionOutcome:
        async with handle.cursor() as cursor:
            await cursor.execute(text)
            if cursor.description:
                rows = await cursor.fetchall()
                return ExecutionOutcome(
                    columns=[d[0] for d in cursor.description], rows=list(rows)
                )
            return ExecutionOutcome(row_count=cursor.rowcount)

    async def _list_objects(self, handle: aiomysql.Connection, kind: str) -> List[str]:
        if kind in ("tables", "views"):
            table_type = "BASE TABLE" if kind == "tables" else "VIEW"
            sql = (
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = DATABASE() AND table_type = %s ORDER BY table_name"
            )
            _, rows = await self._query(handle, sql, (table_type,))
        else:
            routine_type = "PROCEDURE" if kind == "procedures" else "FUNCTION"
            sql = (
                "SELECT routine_name FROM information_schema.routines "
                "WHERE routine_schema = DATABASE() AND routine_type = %s ORDER BY routine_name"
            )
            _, rows = await self._query(handle, sql, (routine_type,))
        return [row[0] for row in rows]

    async def _describe_columns(
        self, handle: aiomysql.Connection, table_name: str
    ) -> List[ColumnDescriptor]:
        _, rows = await self._query(
            handle,
            "SELECT column_name, data_type, is_nullable, column_default, "
            "character_maximum_length, numeric_precision, numeric_scale, column_key, extra "
            "FROM information_schema.columns "
            "WHERE table_schema = DATABASE() AND table_name = %s ORDER BY ordinal_position",
            (table_name,),
        )
        columns = []
        for name, data_type, nullable, default, length, precision, scale, key, extra in rows:
            auto = "auto_increment" in (extra or "").lower()
            columns.append(
                ColumnDescriptor(
                    name=name,
                    type=data_type,
                    nullable=nullable == "YES",
                    default_value=default,
                    char_max_length=as_int(length),
                    numeric_precision=as_int(precision),
                    numeric_scale=as_int(scale),
                    is_primary_key=key == "PRI",
                    is_auto_increment=auto,
                    is_identity=auto,
                )
            )
        return columns

    async def _estimated_plan(self, handle: aiomysql.Connection, text: str) -> PlanReport:
        columns, rows = await self._query(handle, f"EXPLAIN {text}")
        analysis = []
        if "rows" in columns:
            index = columns.index("rows")
            total = sum(safe_cast(row[index], int, default=0) for row in rows)
            analysis.append(f"The query will examine approximately {total} rows")
        if "type" in columns and "table" in columns:
            type_index, table_index = columns.index("type"), columns.index("table")
            full_scans = [str(row[table_index]) for row in rows if row[type_index] == "ALL"]
            if full_scans:
                analysis.append("Full table scan (type ALL) on: " + ", ".join(full_scans))
        analysis.append("The key column shows which index each step uses")
        return PlanReport(
            self.engine_label, text, FormatUtils.render_table(columns, rows), analysis
        )

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        code, message = _mysql_error(exc)
        context = {"endpoint": self.profile.endpoint, "mysql_errno": code}
        if code in AUTH_ERRORS:
            return AuthenticationError(
                message, code=ErrorCodes.AUTH_FAILED, context=context, cause=exc
            )
        error_code = (
            ErrorCodes.DATABASE_NOT_FOUND
            if code == UNKNOWN_DATABASE
            else ErrorCodes.CONNECTION_REFUSED
        )
        return ConnectionError(message, code=error_code, context=context, cause=exc)

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        code, message = _mysql_error(exc)
        context = {"operation": operation, "mysql_errno": code}
        if code in CONNECTION_LOST:
            return ConnectionError(
                message, code=ErrorCodes.CONNECTION_CLOSED, context=context, cause=exc
            )
        error_code = (
            ErrorCodes.INSUFFICIENT_PERMISSIONS
            if code in PERMISSION_ERRORS
            else ErrorCodes.QUERY_EXECUTION_FAILED
        )
        return QueryExecutionError(message, code=error_code, context=context, cause=exc)


def _mysql_error(exc: Exception) -> Tuple[Optional[int], str]:
    """Split a PyMySQL ``(errno, message)`` error into its parts."""
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return args[0], str(args[1])
    return None, str(exc).strip() or exc.__class__.__name__

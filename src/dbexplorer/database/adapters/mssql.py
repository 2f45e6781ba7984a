"""Microsoft SQL Server adapter built on aioodbc."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...core.exceptions import (
    AuthenticationError,
    ConnectionError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
)
from ...core.utils import FormatUtils, safe_cast, safe_ratio
from ..base import EngineAdapter, ExecutionOutcome, as_bool, as_int
from ..ddl import MSSQLScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"

# SQLSTATE classes reported by the ODBC driver
AUTH_STATES = ("28000",)
TIMEOUT_STATES = ("HYT00", "HYT01")
LINK_FAILURE_STATES = ("08S01", "08003")
PERMISSION_MARKERS = ("permission was denied", "VIEW SERVER STATE")

PLAN_COLUMNS = (
    "StmtText",
    "PhysicalOp",
    "LogicalOp",
    "EstimateRows",
    "EstimateIO",
    "EstimateCPU",
    "TotalSubtreeCost",
)
SCAN_OPERATORS = ("Table Scan", "Clustered Index Scan", "Index Scan")


async def _odbc_connect(dsn: str, **kwargs: Any) -> Any:
    """Open an aioodbc connection.

    The import is deferred because pyodbc needs the system ODBC library,
    which only hosts that talk to SQL Server have installed.
    """
    import aioodbc

    return await aioodbc.connect(dsn=dsn, **kwargs)


def _odbc_value(value: Any) -> str:
    text = str(value)
    if any(ch in text for ch in ";{}") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


async def _counter(adapter: "MSSQLAdapter", handle: Any, name: str) -> int:
    value = await adapter._scalar(
        handle,
        "SELECT cntr_value FROM sys.dm_os_performance_counters "
        "WHERE counter_name = ? AND instance_name IN ('_Total', '')",
        (name,),
    )
    if value is None:
        raise LookupError(f"Performance counter unavailable: {name}")
    return safe_cast(value, int, default=0)


async def _uptime_seconds(adapter: "MSSQLAdapter", handle: Any) -> float:
    value = await adapter._scalar(
        handle,
        "SELECT DATEDIFF(SECOND, sqlserver_start_time, SYSDATETIME()) FROM sys.dm_os_sys_info",
    )
    return safe_cast(value, float, default=0.0)


async def _active_sessions(adapter: "MSSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle,
        "SELECT COUNT(*) FROM sys.dm_exec_sessions "
        "WHERE is_user_process = 1 AND status = 'running'",
    )
    return safe_cast(value, int, default=0)


async def _queries_per_second(adapter: "MSSQLAdapter", handle: Any) -> float:
    total = await adapter._scalar(
        handle, "SELECT SUM(execution_count) FROM sys.dm_exec_query_stats"
    )
    uptime = await _uptime_seconds(adapter, handle)
    return round(safe_ratio(total, uptime), 2)


async def _avg_response_time(adapter: "MSSQLAdapter", handle: Any) -> float:
    # elapsed times are in microseconds
    value = await adapter._scalar(
        handle,
        "SELECT AVG(CAST(total_elapsed_time AS FLOAT) / execution_count) / 1000.0 "
        "FROM sys.dm_exec_query_stats WHERE execution_count > 0",
    )
    return round(safe_cast(value, float, default=0.0), 3)


async def _slow_queries(adapter: "MSSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle,
        "SELECT COUNT(*) FROM sys.dm_exec_query_stats "
        "WHERE execution_count > 0 AND total_elapsed_time / execution_count > 100000",
    )
    return safe_cast(value, int, default=0)


async def _database_size(adapter: "MSSQLAdapter", handle: Any) -> float:
    # size is counted in 8 KiB pages
    pages = await adapter._scalar(
        handle, "SELECT SUM(CAST(size AS BIGINT)) FROM sys.database_files"
    )
    return FormatUtils.bytes_to_gb(safe_cast(pages, float, default=0.0) * 8192)


async def _cache_hit_ratio(adapter: "MSSQLAdapter", handle: Any) -> float:
    _, rows = await adapter._query(
        handle,
        "SELECT counter_name, cntr_value FROM sys.dm_os_performance_counters "
        "WHERE object_name LIKE '%Buffer Manager%' "
        "AND counter_name IN ('Buffer cache hit ratio', 'Buffer cache hit ratio base')",
    )
    values = {str(name).strip(): value for name, value in rows}
    return round(
        safe_ratio(
            values.get("Buffer cache hit ratio"),
            values.get("Buffer cache hit ratio base"),
            scale=100,
        ),
        2,
    )


async def _memory_usage(adapter: "MSSQLAdapter", handle: Any) -> float:
    value = await adapter._scalar(
        handle, "SELECT memory_utilization_percentage FROM sys.dm_os_process_memory"
    )
    return safe_cast(value, float, default=0.0)


async def _lock_waits(adapter: "MSSQLAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle, "SELECT COUNT(*) FROM sys.dm_os_waiting_tasks WHERE wait_type LIKE 'LCK%'"
    )
    return safe_cast(value, int, default=0)


async def _deadlocks(adapter: "MSSQLAdapter", handle: Any) -> int:
    return await _counter(adapter, handle, "Number of Deadlocks/sec")


async def _transactions(adapter: "MSSQLAdapter", handle: Any) -> int:
    # cumulative counter despite the /sec name
    return await _counter(adapter, handle, "Transactions/sec")


async def _table_scan_rate(adapter: "MSSQLAdapter", handle: Any) -> float:
    scans = await _counter(adapter, handle, "Full Scans/sec")
    uptime = await _uptime_seconds(adapter, handle)
    return round(safe_ratio(scans, uptime), 2)


async def _top_queries(adapter: "MSSQLAdapter", handle: Any) -> List[Dict[str, Any]]:
    _, rows = await adapter._query(
        handle,
        "SELECT TOP (?) "
        "SUBSTRING(st.text, (qs.statement_start_offset / 2) + 1, "
        "((CASE qs.statement_end_offset WHEN -1 THEN DATALENGTH(st.text) "
        "ELSE qs.statement_end_offset END - qs.statement_start_offset) / 2) + 1), "
        "qs.execution_count "
        "FROM sys.dm_exec_query_stats qs "
        "CROSS APPLY sys.dm_exec_sql_text(qs.sql_handle) st "
        "ORDER BY qs.execution_count DESC",
        (adapter.top_queries_limit,),
    )
    return [{"query": text, "count": safe_cast(count, int, default=0)} for text, count in rows]


class MSSQLAdapter(EngineAdapter):
    """Adapter for Microsoft SQL Server over ODBC.

    The ODBC driver name defaults to ``ODBC Driver 18 for SQL Server`` and
    can be changed with ``additionalParams.driver``. Any other additional
    parameter is appended to the connection string as-is.
    """

    engine = "mssql"
    engine_label = "SQL Server"
    component_name = "MSSQLAdapter"
    script_builder_class = MSSQLScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _active_sessions),
        MetricProbe("queries.perSec", _queries_per_second),
        MetricProbe("queries.avgResponseTime", _avg_response_time),
        MetricProbe("slowQueries.count", _slow_queries),
        MetricProbe("dbSize.current", _database_size),
        MetricProbe("cache.hitRatio", _cache_hit_ratio),
        MetricProbe("resources.memory", _memory_usage),
        MetricProbe("locks.waiting", _lock_waits),
        MetricProbe("locks.deadlocks", _deadlocks),
        MetricProbe("transactions.committed", _transactions),
        MetricProbe("tableScans.rate", _table_scan_rate),
        MetricProbe("topQueries", _top_queries, fallback=list),
    )

    def connection_string(self) -> str:
        profile = self.profile
        options = dict(profile.additional_params)
        parts = {
            "DRIVER": "{" + str(options.pop("driver", DEFAULT_DRIVER)) + "}",
            "SERVER": f"{profile.host},{profile.port}",
        }
        if profile.database:
            parts["DATABASE"] = _odbc_value(profile.database)
        if profile.username:
            parts["UID"] = _odbc_value(profile.username)
            parts["PWD"] = _odbc_value(profile.plain_password or "")
        else:
            parts["Trusted_Connection"] = "yes"
        parts["Encrypt"] = "yes" if profile.uses_tls else "no"
        parts["TrustServerCertificate"] = "no" if profile.verifies_certificate else "yes"
        for key, value in options.items():
            parts[str(key)] = _odbc_value(value)
        return ";".join(f"{key}={value}" for key, value in parts.items())

    async def _open_handle(self) -> Any:
        return await _odbc_connect(
            self.connection_string(),
            autocommit=True,
            timeout=max(1, int(self.profile.connect_timeout_seconds)),
        )

    async def _close_handle(self, handle: Any) -> None:
        await handle.close()

    async def _query(
        self, handle: Any, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        async with handle.cursor() as cursor:
            await cursor.execute(sql, *(params or ()))
            if cursor.description is None:
                return [], []
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description]
        return columns, [tuple(row) for row in rows]

    async def _execute(self, handle: Any, text: str) -> ExecutionOutcome:
        async with handle.cursor() as cursor:
            await cursor.execute(text)
            if cursor.description:
                rows = await cursor.fetchall()
                return ExecutionOutcome(
                    columns=[d[0] for d in cursor.description],
                    rows=[tuple(row) for row in rows],
                )
            return ExecutionOutcome(row_count=cursor.rowcount)

    async def _list_objects(self, handle: Any, kind: str) -> List[str]:
        queries = {
            "tables": "SELECT name FROM sys.tables WHERE type = 'U' ORDER BY name",
            "views": "SELECT name FROM sys.views ORDER BY name",
            "procedures": "SELECT name FROM sys.procedures ORDER BY name",
            "functions": (
                "SELECT name FROM sys.objects WHERE type IN ('FN', 'IF', 'TF') ORDER BY name"
            ),
        }
        _, rows = await self._query(handle, queries[kind])
        return [row[0] for row in rows]

    async def _describe_columns(self, handle: Any, table_name: str) -> List[ColumnDescriptor]:
        _, rows = await self._query(
            handle,
            """
            SELECT c.COLUMN_NAME, c.DATA_TYPE, c.IS_NULLABLE, c.COLUMN_DEFAULT,
                   c.CHARACTER_MAXIMUM_LENGTH, c.NUMERIC_PRECISION, c.NUMERIC_SCALE,
                   COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                                  c.COLUMN_NAME, 'IsIdentity'),
                   CASE WHEN EXISTS (
                       SELECT 1
                       FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
                       JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
                         ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                        AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
                       WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
                         AND tc.TABLE_SCHEMA = c.TABLE_SCHEMA
                         AND tc.TABLE_NAME = c.TABLE_NAME
                         AND kcu.COLUMN_NAME = c.COLUMN_NAME
                   ) THEN 1 ELSE 0 END
            FROM INFORMATION_SCHEMA.COLUMNS c
            WHERE c.TABLE_NAME = ?
            ORDER BY c.ORDINAL_POSITION
            """,
            (table_name,),
        )
        columns = []
        for name, data_type, nullable, default, length, precision, scale, identity, pk in rows:
            is_identity = as_bool(identity)
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
                    is_auto_increment=is_identity,
                    is_identity=is_identity,
                )
            )
        return columns

    async def _estimated_plan(self, handle: Any, text: str) -> PlanReport:
        async with handle.cursor() as cursor:
            await cursor.execute("SET SHOWPLAN_ALL ON")
            try:
                await cursor.execute(text)
                rows = await cursor.fetchall() if cursor.description else []
                columns = [d[0] for d in cursor.description or ()]
            finally:
                await cursor.execute("SET SHOWPLAN_ALL OFF")

        shown = [c for c in PLAN_COLUMNS if c in columns]
        indexes = [columns.index(c) for c in shown]
        table_rows = [[row[i] for i in indexes] for row in rows]

        analysis = []
        if "TotalSubtreeCost" in columns and rows:
            cost = rows[0][columns.index("TotalSubtreeCost")]
            analysis.append(
                f"Estimated subtree cost of the statement: {FormatUtils.format_cell(cost)}"
            )
        if "PhysicalOp" in columns:
            op_index = columns.index("PhysicalOp")
            scans = [str(row[op_index]) for row in rows if row[op_index] in SCAN_OPERATORS]
            if scans:
                operators = ", ".join(sorted(set(scans)))
                analysis.append(f"{len(scans)} scan operator(s): {operators}")
            else:
                analysis.append("No table or index scans; the plan uses seeks")
        analysis.append("EstimateRows shows the estimated number of rows per operator")

        body = FormatUtils.render_table(shown, table_rows) if shown else ""
        return PlanReport(self.engine_label, text, body, analysis)

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        state, message = _odbc_error(exc)
        context = {"endpoint": self.profile.endpoint, "sqlstate": state}
        if state in AUTH_STATES:
            return AuthenticationError(
                message, code=ErrorCodes.AUTH_FAILED, context=context, cause=exc
            )
        code = (
            ErrorCodes.CONNECTION_TIMEOUT
            if state in TIMEOUT_STATES
            else ErrorCodes.CONNECTION_REFUSED
        )
        return ConnectionError(message, code=code, context=context, cause=exc)

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        state, message = _odbc_error(exc)
        context = {"operation": operation, "sqlstate": state}
        if state in LINK_FAILURE_STATES:
            return ConnectionError(
                message, code=ErrorCodes.CONNECTION_CLOSED, context=context, cause=exc
            )
        if any(marker in message for marker in PERMISSION_MARKERS):
            return QueryExecutionError(
                message, code=ErrorCodes.INSUFFICIENT_PERMISSIONS, context=context, cause=exc
            )
        return QueryExecutionError(
            message, code=ErrorCodes.QUERY_EXECUTION_FAILED, context=context, cause=exc
        )


def _odbc_error(exc: Exception) -> Tuple[Optional[str], str]:
    """Split a pyodbc ``(sqlstate, message)`` error into its parts."""
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], str):
        return args[0], str(args[1])
    return None, str(exc).strip() or exc.__class__.__name__

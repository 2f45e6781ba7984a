"""Oracle Database adapter built on python-oracledb (thin mode, asyncio)."""

import secrets
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import oracledb

from ...core.exceptions import (
    AuthenticationError,
    ConnectionError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
)
from ...core.utils import FormatUtils, safe_cast, safe_ratio
from ..base import EngineAdapter, ExecutionOutcome, as_bool, as_int
from ..ddl import OracleScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

AUTH_CODES = ("ORA-01017", "ORA-28000", "ORA-28001", "ORA-01045")
SERVICE_CODES = ("ORA-12514", "ORA-12505", "DPY-6001", "DPY-6003")
CLOSED_CODES = ("DPY-1001", "DPY-4011", "ORA-03113", "ORA-03114", "ORA-03135")
PERMISSION_CODES = ("ORA-01031", "ORA-00942", "ORA-01039")

Params = Union[Sequence[Any], Mapping[str, Any], None]


async def _sysstat(adapter: "OracleAdapter", handle: Any, *names: str) -> Dict[str, float]:
    binds = {f"n{i}": name for i, name in enumerate(names)}
    placeholders = ", ".join(f":{key}" for key in binds)
    _, rows = await adapter._query(
        handle, f"SELECT name, value FROM v$sysstat WHERE name IN ({placeholders})", binds
    )
    values = {str(name): safe_cast(value, float, default=0.0) for name, value in rows}
    missing = [n for n in names if n not in values]
    if missing:
        raise LookupError(f"Statistics unavailable: {', '.join(missing)}")
    return values


async def _uptime_seconds(adapter: "OracleAdapter", handle: Any) -> float:
    value = await adapter._scalar(
        handle, "SELECT (SYSDATE - startup_time) * 86400 FROM v$instance"
    )
    return safe_cast(value, float, default=0.0)


async def _active_sessions(adapter: "OracleAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle, "SELECT COUNT(*) FROM v$session WHERE status = 'ACTIVE' AND type = 'USER'"
    )
    return safe_cast(value, int, default=0)


async def _executions_per_second(adapter: "OracleAdapter", handle: Any) -> float:
    stats = await _sysstat(adapter, handle, "execute count")
    return round(safe_ratio(stats["execute count"], await _uptime_seconds(adapter, handle)), 2)


async def _avg_response_time(adapter: "OracleAdapter", handle: Any) -> float:
    # elapsed_time is in microseconds
    value = await adapter._scalar(
        handle,
        "SELECT AVG(elapsed_time / executions) / 1000 FROM v$sqlarea WHERE executions > 0",
    )
    return round(safe_cast(value, float, default=0.0), 3)


async def _slow_queries(adapter: "OracleAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle,
        "SELECT COUNT(*) FROM v$sqlarea "
        "WHERE executions > 0 AND elapsed_time / executions > 100000",
    )
    return safe_cast(value, int, default=0)


async def _schema_size(adapter: "OracleAdapter", handle: Any) -> float:
    size = await adapter._scalar(handle, "SELECT NVL(SUM(bytes), 0) FROM user_segments")
    return FormatUtils.bytes_to_gb(safe_cast(size, float, default=0.0))


async def _cache_hit_ratio(adapter: "OracleAdapter", handle: Any) -> float:
    stats = await _sysstat(
        adapter, handle, "physical reads", "db block gets", "consistent gets"
    )
    logical = stats["db block gets"] + stats["consistent gets"]
    if not logical:
        return 0
    return round(100 - safe_ratio(stats["physical reads"], logical, scale=100), 2)


async def _blocked_sessions(adapter: "OracleAdapter", handle: Any) -> int:
    value = await adapter._scalar(
        handle, "SELECT COUNT(*) FROM v$session WHERE blocking_session IS NOT NULL"
    )
    return safe_cast(value, int, default=0)


async def _deadlocks(adapter: "OracleAdapter", handle: Any) -> int:
    stats = await _sysstat(adapter, handle, "enqueue deadlocks")
    return int(stats["enqueue deadlocks"])


async def _commits(adapter: "OracleAdapter", handle: Any) -> int:
    return int((await _sysstat(adapter, handle, "user commits"))["user commits"])


async def _rollbacks(adapter: "OracleAdapter", handle: Any) -> int:
    return int((await _sysstat(adapter, handle, "user rollbacks"))["user rollbacks"])


async def _table_scan_rate(adapter: "OracleAdapter", handle: Any) -> float:
    stats = await _sysstat(adapter, handle, "table scans (long tables)")
    uptime = await _uptime_seconds(adapter, handle)
    return round(safe_ratio(stats["table scans (long tables)"], uptime), 2)


async def _top_queries(adapter: "OracleAdapter", handle: Any) -> List[Dict[str, Any]]:
    _, rows = await adapter._query(
        handle,
        "SELECT sql_text, executions FROM v$sqlarea "
        "ORDER BY executions DESC FETCH FIRST :n ROWS ONLY",
        {"n": adapter.top_queries_limit},
    )
    return [{"query": text, "count": safe_cast(n, int, default=0)} for text, n in rows]


class OracleAdapter(EngineAdapter):
    """Adapter for Oracle Database.

    ``database`` is the service name. Listings and column metadata are read
    from the ``USER_*`` dictionary views, so they cover the connecting
    user's schema. Most monitoring probes need ``SELECT_CATALOG_ROLE``.
    """

    engine = "oracle"
    engine_label = "Oracle"
    component_name = "OracleAdapter"
    script_builder_class = OracleScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _active_sessions),
        MetricProbe("queries.perSec", _executions_per_second),
        MetricProbe("queries.avgResponseTime", _avg_response_time),
        MetricProbe("slowQueries.count", _slow_queries),
        MetricProbe("dbSize.current", _schema_size),
        MetricProbe("cache.hitRatio", _cache_hit_ratio),
        MetricProbe("locks.waiting", _blocked_sessions),
        MetricProbe("locks.deadlocks", _deadlocks),
        MetricProbe("transactions.committed", _commits),
        MetricProbe("transactions.rolledBack", _rollbacks),
        MetricProbe("tableScans.rate", _table_scan_rate),
        MetricProbe("topQueries", _top_queries, fallback=list),
    )

    async def _open_handle(self) -> Any:
        profile = self.profile
        return await oracledb.connect_async(
            user=profile.username,
            password=profile.plain_password,
            host=profile.host,
            port=profile.port,
            service_name=profile.database,
            protocol="tcps" if profile.uses_tls else "tcp",
            ssl_server_dn_match=profile.ssl_mode == "verify-full",
            tcp_connect_timeout=profile.connect_timeout_seconds,
        )

    async def _close_handle(self, handle: Any) -> None:
        await handle.close()

    async def _ping(self, handle: Any) -> None:
        await self._query(handle, "SELECT 1 FROM DUAL")

    async def _query(
        self, handle: Any, sql: str, params: Params = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        with handle.cursor() as cursor:
            await cursor.execute(sql, params if params is not None else [])
            if cursor.description is None:
                return [], []
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description]
        return columns, list(rows)

    async def _execute(self, handle: Any, text: str) -> ExecutionOutcome:
        with handle.cursor() as cursor:
            await cursor.execute(text)
            if cursor.description:
                rows = await cursor.fetchall()
                return ExecutionOutcome(
                    columns=[d[0] for d in cursor.description], rows=list(rows)
                )
            row_count = cursor.rowcount
        await handle.commit()
        return ExecutionOutcome(row_count=row_count)

    async def _list_objects(self, handle: Any, kind: str) -> List[str]:
        queries = {
            "tables": "SELECT table_name FROM user_tables ORDER BY table_name",
            "views": "SELECT view_name FROM user_views ORDER BY view_name",
            "procedures": (
                "SELECT object_name FROM user_procedures "
                "WHERE object_type = 'PROCEDURE' ORDER BY object_name"
            ),
            "functions": (
                "SELECT object_name FROM user_objects "
                "WHERE object_type = 'FUNCTION' ORDER BY object_name"
            ),
        }
        _, rows = await self._query(handle, queries[kind])
        return [row[0] for row in rows]

    async def _describe_columns(self, handle: Any, table_name: str) -> List[ColumnDescriptor]:
        # unquoted identifiers are stored upper-case
        _, rows = await self._query(
            handle,
            """
            SELECT c.column_name, c.data_type, c.nullable, c.data_default,
                   c.char_length, c.data_precision, c.data_scale, c.identity_column,
                   CASE WHEN EXISTS (
                       SELECT 1
                       FROM user_constraints uc
                       JOIN user_cons_columns ucc ON uc.constraint_name = ucc.constraint_name
                       WHERE uc.constraint_type = 'P'
                         AND uc.table_name = c.table_name
                         AND ucc.column_name = c.column_name
                   ) THEN 1 ELSE 0 END
            FROM user_tab_columns c
            WHERE c.table_name = (
                SELECT MIN(table_name) KEEP (DENSE_RANK FIRST ORDER BY
                       CASE WHEN table_name = :name THEN 0 ELSE 1 END)
                FROM user_tab_columns
                WHERE table_name IN (:name, UPPER(:name))
            )
            ORDER BY c.column_id
            """,
            {"name": table_name},
        )
        columns = []
        for name, data_type, nullable, default, length, precision, scale, identity, pk in rows:
            is_identity = as_bool(identity)
            if isinstance(default, str):
                default = default.strip() or None
            columns.append(
                ColumnDescriptor(
                    name=name,
                    type=data_type,
                    nullable=nullable == "Y",
                    default_value=None if is_identity else default,
                    char_max_length=as_int(length) or None,
                    numeric_precision=as_int(precision),
                    numeric_scale=as_int(scale),
                    is_primary_key=bool(pk),
                    is_auto_increment=is_identity,
                    is_identity=is_identity,
                )
            )
        return columns

    async def _estimated_plan(self, handle: Any, text: str) -> PlanReport:
        # generated locally from hex digits, so safe to inline as a literal
        statement_id = f"dbx_{secrets.token_hex(8)}"
        with handle.cursor() as cursor:
            await cursor.execute(f"EXPLAIN PLAN SET STATEMENT_ID = '{statement_id}' FOR {text}")
        try:
            _, rows = await self._query(
                handle,
                """
                SELECT LPAD(' ', 2 * (LEVEL - 1)) || operation
                       || NVL2(options, ' ' || options, '')
                       || NVL2(object_name, ' ' || object_name, ''),
                       cost, cardinality
                FROM plan_table
                START WITH id = 0 AND statement_id = :sid
                CONNECT BY PRIOR id = parent_id AND statement_id = :sid
                ORDER SIBLINGS BY position
                """,
                {"sid": statement_id},
            )
        finally:
            with handle.cursor() as cursor:
                await cursor.execute(
                    "DELETE FROM plan_table WHERE statement_id = :sid", {"sid": statement_id}
                )
            await handle.commit()

        analysis = []
        if rows:
            analysis.append(
                f"Estimated cost {FormatUtils.format_cell(rows[0][1])} "
                f"for about {FormatUtils.format_cell(rows[0][2])} rows"
            )
        steps = [str(row[0]).strip() for row in rows]
        full_scans = [s for s in steps if s.startswith("TABLE ACCESS FULL")]
        if full_scans:
            analysis.append("Full table access: " + "; ".join(full_scans))
        index_steps = [s for s in steps if s.startswith("INDEX")]
        if index_steps:
            analysis.append(f"{len(index_steps)} step(s) use an index")
        analysis.append("Indentation shows parent/child steps of the plan tree")

        body = FormatUtils.render_table(["Operation", "Cost", "Rows"], rows)
        return PlanReport(self.engine_label, text, body, analysis)

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        code, message = _oracle_error(exc)
        context = {"endpoint": self.profile.endpoint, "oracle_code": code}
        if code in AUTH_CODES:
            return AuthenticationError(
                message, code=ErrorCodes.AUTH_FAILED, context=context, cause=exc
            )
        error_code = (
            ErrorCodes.DATABASE_NOT_FOUND if code in SERVICE_CODES else ErrorCodes.CONNECTION_REFUSED
        )
        return ConnectionError(message, code=error_code, context=context, cause=exc)

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        code, message = _oracle_error(exc)
        context = {"operation": operation, "oracle_code": code}
        if code in CLOSED_CODES:
            return ConnectionError(
                message, code=ErrorCodes.CONNECTION_CLOSED, context=context, cause=exc
            )
        error_code = (
            ErrorCodes.INSUFFICIENT_PERMISSIONS
            if code in PERMISSION_CODES
            else ErrorCodes.QUERY_EXECUTION_FAILED
        )
        return QueryExecutionError(message, code=error_code, context=context, cause=exc)


def _oracle_error(exc: Exception) -> Tuple[Optional[str], str]:
    """Return the ``ORA-``/``DPY-`` code and message of an oracledb error."""
    if isinstance(exc, oracledb.Error) and exc.args:
        error = exc.args[0]
        code = getattr(error, "full_code", None)
        message = getattr(error, "message", None) or str(error)
        return code, str(message).strip()
    return None, str(exc).strip() or exc.__class__.__name__

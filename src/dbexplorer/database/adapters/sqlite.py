"""SQLite adapter built on aiosqlite."""

import re
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import aiosqlite

from ...core.exceptions import ConnectionError, DBExplorerError, ErrorCodes, QueryExecutionError
from ...core.utils import FormatUtils
from ..base import EngineAdapter, ExecutionOutcome, _native_message, as_bool
from ..ddl import SQLiteScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

_TYPE_ARGS = re.compile(r"^\s*([^(]+?)\s*\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)\s*$")
MEMORY_DATABASE = ":memory:"


async def _open_connections(adapter: "SQLiteAdapter", handle: aiosqlite.Connection) -> int:
    # an embedded engine has exactly the one session this adapter holds
    return 1


async def _database_size(adapter: "SQLiteAdapter", handle: aiosqlite.Connection) -> float:
    page_count = await adapter._scalar(handle, "PRAGMA page_count")
    page_size = await adapter._scalar(handle, "PRAGMA page_size")
    return FormatUtils.bytes_to_gb((page_count or 0) * (page_size or 0))


async def _cache_usage(adapter: "SQLiteAdapter", handle: aiosqlite.Connection) -> float:
    """Share of the page cache the database file would fill, in percent."""
    page_count = await adapter._scalar(handle, "PRAGMA page_count") or 0
    cache_size = await adapter._scalar(handle, "PRAGMA cache_size") or 0
    if cache_size < 0:
        # negative cache_size is a budget in KiB rather than pages
        page_size = await adapter._scalar(handle, "PRAGMA page_size") or 4096
        cache_size = -cache_size * 1024 // page_size
    if not cache_size:
        return 0
    return round(min(page_count / cache_size, 1.0) * 100, 2)


class SQLiteAdapter(EngineAdapter):
    """Adapter for SQLite database files.

    Host and port are ignored; ``database`` is the file path. The file must
    already exist so that a typo never silently creates an empty database.
    SQLite has no stored procedures or functions, so those kinds list empty.
    """

    engine = "sqlite"
    engine_label = "SQLite"
    component_name = "SQLiteAdapter"
    supported_kinds = ("tables", "views")
    script_builder_class = SQLiteScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _open_connections),
        MetricProbe("dbSize.current", _database_size),
        MetricProbe("bufferPool.usage", _cache_usage),
    )

    @property
    def database_path(self) -> str:
        return self.profile.database or ""

    async def _open_handle(self) -> aiosqlite.Connection:
        path = self.database_path
        if path != MEMORY_DATABASE and not Path(path).expanduser().is_file():
            raise ConnectionError(
                f"SQLite database file not found: {path}",
                code=ErrorCodes.DATABASE_NOT_FOUND,
                context={"database_path": path},
            )
        target = path if path == MEMORY_DATABASE else str(Path(path).expanduser())
        connection = await aiosqlite.connect(target, timeout=self.profile.connect_timeout_seconds)
        try:
            await connection.execute("PRAGMA foreign_keys = ON")
        except BaseException:
            await connection.close()
            raise
        return connection

    async def _close_handle(self, handle: aiosqlite.Connection) -> None:
        await handle.close()

    async def _query(
        self, handle: aiosqlite.Connection, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        async with handle.execute(sql, tuple(params or ())) as cursor:
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description or ()]
        return columns, list(rows)

    async def _execute(self, handle: aiosqlite.Connection, text: str) -> ExecutionOutcome:
        async with handle.execute(text) as cursor:
            if cursor.description:
                rows = await cursor.fetchall()
                return ExecutionOutcome(
                    columns=[d[0] for d in cursor.description], rows=list(rows)
                )
            row_count = cursor.rowcount
        await handle.commit()
        return ExecutionOutcome(row_count=row_count)

    async def _list_objects(self, handle: aiosqlite.Connection, kind: str) -> List[str]:
        object_type = "table" if kind == "tables" else "view"
        _, rows = await self._query(
            handle,
            "SELECT name FROM sqlite_master "
            "WHERE type = ? AND name NOT LIKE 'sqlite_%' ORDER BY name",
            (object_type,),
        )
        return [row[0] for row in rows]

    async def _describe_columns(
        self, handle: aiosqlite.Connection, table_name: str
    ) -> List[ColumnDescriptor]:
        _, rows = await self._query(
            handle,
            "SELECT name, type, \"notnull\", dflt_value, pk FROM pragma_table_info(?)",
            (table_name,),
        )
        if not rows:
            return []

        create_sql = await self._scalar(
            handle, "SELECT sql FROM sqlite_master WHERE name = ?", (table_name,)
        )
        has_autoincrement = "AUTOINCREMENT" in (create_sql or "").upper()
        key_count = sum(1 for row in rows if row[4])

        columns = []
        for name, declared, notnull, default, pk in rows:
            declared = declared or ""
            base_type, length, scale = _split_type(declared)
            # a lone INTEGER PRIMARY KEY aliases the rowid and is assigned automatically
            rowid_alias = bool(pk) and key_count == 1 and base_type.upper() == "INTEGER"
            is_decimal = base_type.lower() in ("decimal", "numeric")
            columns.append(
                ColumnDescriptor(
                    name=name,
                    type=base_type or declared,
                    nullable=not as_bool(notnull) and not pk,
                    default_value=default,
                    char_max_length=None if is_decimal else length,
                    numeric_precision=length if is_decimal else None,
                    numeric_scale=scale if is_decimal else None,
                    is_primary_key=bool(pk),
                    is_auto_increment=rowid_alias and has_autoincrement,
                    is_identity=rowid_alias,
                )
            )
        return columns

    async def _estimated_plan(self, handle: aiosqlite.Connection, text: str) -> PlanReport:
        columns, rows = await self._query(handle, f"EXPLAIN QUERY PLAN {text}")
        details = [str(row[-1]) for row in rows]
        scans = [d for d in details if d.startswith("SCAN")]
        searches = [d for d in details if d.startswith("SEARCH")]

        analysis = []
        if scans:
            analysis.append("Full table scans: " + "; ".join(scans))
        else:
            analysis.append("No full table scans")
        if searches:
            analysis.append(f"{len(searches)} step(s) use an index (SEARCH)")
        if any("TEMP B-TREE" in d for d in details):
            analysis.append("A temporary b-tree is built for ORDER BY, GROUP BY or DISTINCT")

        return PlanReport(
            self.engine_label,
            text,
            FormatUtils.render_table(columns, rows),
            analysis,
        )

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        return ConnectionError(
            _native_message(exc),
            code=ErrorCodes.DATABASE_NOT_FOUND
            if isinstance(exc, sqlite3.OperationalError)
            else ErrorCodes.CONNECTION_REFUSED,
            context={"database_path": self.database_path},
            cause=exc,
        )

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        if isinstance(exc, (sqlite3.ProgrammingError, ValueError)) and "closed" in str(exc):
            return ConnectionError(
                _native_message(exc),
                code=ErrorCodes.CONNECTION_CLOSED,
                context={"operation": operation},
                cause=exc,
            )
        return QueryExecutionError(
            _native_message(exc),
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
            context={"operation": operation, "engine": self.engine},
            cause=exc,
        )


def _split_type(declared: str) -> Tuple[str, Optional[int], Optional[int]]:
    """Split ``VARCHAR(40)`` or ``DECIMAL(10,2)`` into name and arguments."""
    match = _TYPE_ARGS.match(declared)
    if not match:
        return declared.strip(), None, None
    scale = match.group(3)
    return match.group(1), int(match.group(2)), int(scale) if scale is not None else None

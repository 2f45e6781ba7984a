"""MongoDB adapter built on PyMongo's asyncio client.

MongoDB has no SQL surface, so statement text is a database command written
as (extended) JSON, for example ``{"find": "users", "filter": {"age": {"$gt": 30}}}``.
Collections stand in for tables and views; column metadata is inferred from
a sample of documents.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bson import Binary, Decimal128, ObjectId, json_util
from pymongo import AsyncMongoClient
from pymongo.errors import (
    AutoReconnect,
    ConfigurationError,
    ConnectionFailure,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from ...core.exceptions import (
    AuthenticationError,
    ConnectionError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
)
from ...core.utils import FormatUtils, safe_cast, safe_ratio
from ..base import EngineAdapter, ExecutionOutcome
from ..ddl import MongoDBScriptBuilder
from ..models import ColumnDescriptor, MetricProbe, PlanReport

SAMPLE_SIZE = 10
STATUS_TTL_SECONDS = 1.0
CURSOR_COMMANDS = ("find", "aggregate", "listCollections", "listIndexes")
WRITE_COMMANDS = ("insert", "update", "delete", "findAndModify", "findandmodify")
AUTH_FAILURE_CODES = (13, 18)
UNAUTHORIZED_CODES = (13, 8000)
COMMAND_EXAMPLE = '{"find": "<collection>", "filter": {}}'
_INT32_MAX = 2**31 - 1
PIPELINE_STAGE = re.compile(r"\$(match|group|sort|project|lookup|unwind|limit|skip|facet|count)\b")


@dataclass
class MongoHandle:
    """Client plus the database the profile points at."""

    client: AsyncMongoClient
    db: Any
    status: Optional[Dict[str, Any]] = None
    status_at: float = 0.0


async def _server_status(adapter: "MongoDBAdapter", handle: MongoHandle) -> Dict[str, Any]:
    # several probes read the same document within one snapshot
    now = time.monotonic()
    if handle.status is None or now - handle.status_at > STATUS_TTL_SECONDS:
        handle.status = await handle.client.admin.command("serverStatus")
        handle.status_at = now
    return handle.status


def _path(document: Mapping[str, Any], dotted: str) -> Any:
    node: Any = document
    for part in dotted.split("."):
        if not isinstance(node, Mapping) or part not in node:
            raise LookupError(f"serverStatus has no {dotted}")
        node = node[part]
    return node


async def _current_connections(adapter: "MongoDBAdapter", handle: MongoHandle) -> int:
    status = await _server_status(adapter, handle)
    return safe_cast(_path(status, "connections.current"), int, default=0)


async def _operations_per_second(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    status = await _server_status(adapter, handle)
    counters = _path(status, "opcounters")
    total = sum(safe_cast(v, float, default=0.0) for v in counters.values())
    return round(safe_ratio(total, status.get("uptime")), 2)


async def _avg_latency(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    latencies = _path(await _server_status(adapter, handle), "opLatencies")
    micros = sum(safe_cast(v.get("latency"), float, default=0.0) for v in latencies.values())
    ops = sum(safe_cast(v.get("ops"), float, default=0.0) for v in latencies.values())
    return round(safe_ratio(micros, ops) / 1000, 3)


async def _memory_usage(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    resident_mb = _path(await _server_status(adapter, handle), "mem.resident")
    host = await handle.client.admin.command("hostInfo")
    return round(safe_ratio(resident_mb, _path(host, "system.memSizeMB"), scale=100), 2)


async def _cache_hit_ratio(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    cache = _path(await _server_status(adapter, handle), "wiredTiger.cache")
    requested = safe_cast(cache.get("pages requested from the cache"), float, default=0.0)
    if not requested:
        return 0
    read_in = safe_cast(cache.get("pages read into cache"), float, default=0.0)
    return round(100 - safe_ratio(read_in, requested, scale=100), 2)


async def _cache_usage(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    cache = _path(await _server_status(adapter, handle), "wiredTiger.cache")
    return round(
        safe_ratio(
            cache.get("bytes currently in the cache"),
            cache.get("maximum bytes configured"),
            scale=100,
        ),
        2,
    )


async def _database_size(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    stats = await handle.db.command("dbStats")
    size = safe_cast(stats.get("storageSize"), float, default=0.0)
    size += safe_cast(stats.get("indexSize"), float, default=0.0)
    return FormatUtils.bytes_to_gb(size)


async def _queued_operations(adapter: "MongoDBAdapter", handle: MongoHandle) -> int:
    status = await _server_status(adapter, handle)
    return safe_cast(_path(status, "globalLock.currentQueue.total"), int, default=0)


async def _committed(adapter: "MongoDBAdapter", handle: MongoHandle) -> int:
    status = await _server_status(adapter, handle)
    return safe_cast(_path(status, "transactions.totalCommitted"), int, default=0)


async def _aborted(adapter: "MongoDBAdapter", handle: MongoHandle) -> int:
    status = await _server_status(adapter, handle)
    return safe_cast(_path(status, "transactions.totalAborted"), int, default=0)


async def _collection_scan_rate(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    status = await _server_status(adapter, handle)
    scans = _path(status, "metrics.queryExecutor.collectionScans.total")
    return round(safe_ratio(scans, status.get("uptime")), 2)


async def _slow_operations(adapter: "MongoDBAdapter", handle: MongoHandle) -> int:
    # needs the profiler enabled on this database
    return await handle.db["system.profile"].count_documents({"millis": {"$gt": 100}})


async def _top_profiled(adapter: "MongoDBAdapter", handle: MongoHandle) -> List[Dict[str, Any]]:
    cursor = await handle.db["system.profile"].aggregate(
        [
            {"$group": {"_id": {"op": "$op", "ns": "$ns"}, "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": adapter.top_queries_limit},
        ]
    )
    groups = await cursor.to_list()
    if not groups:
        raise LookupError("Profiler collection is empty")
    return [
        {"query": f"{g['_id'].get('op')} {g['_id'].get('ns')}", "count": g["count"]}
        for g in groups
    ]


async def _top_running(adapter: "MongoDBAdapter", handle: MongoHandle) -> List[Dict[str, Any]]:
    reply = await handle.client.admin.command({"currentOp": True, "active": True})
    ops = [op for op in reply.get("inprog", []) if op.get("command")]
    ops.sort(key=lambda op: op.get("secs_running", 0), reverse=True)
    return [
        {"query": json_util.dumps(op["command"]), "count": 1}
        for op in ops[: adapter.top_queries_limit]
    ]


async def _replication_lag(adapter: "MongoDBAdapter", handle: MongoHandle) -> float:
    status = await handle.client.admin.command("replSetGetStatus")
    members = status.get("members", [])
    primary = next((m for m in members if m.get("stateStr") == "PRIMARY"), None)
    me = next((m for m in members if m.get("self")), None)
    if primary is None or me is None:
        return 0
    return max((primary["optimeDate"] - me["optimeDate"]).total_seconds(), 0)


def _zero() -> int:
    return 0


class MongoDBAdapter(EngineAdapter):
    """Adapter for MongoDB servers and replica sets.

    ``additionalParams.uri`` takes precedence over host and port when
    present. ``additionalParams.authSource`` defaults to ``admin``.
    """

    engine = "mongodb"
    engine_label = "MongoDB"
    component_name = "MongoDBAdapter"
    supported_kinds = ("tables", "views")
    script_builder_class = MongoDBScriptBuilder
    PROBES = (
        MetricProbe("connections.active", _current_connections),
        MetricProbe("queries.perSec", _operations_per_second),
        MetricProbe("queries.avgResponseTime", _avg_latency),
        MetricProbe("resources.memory", _memory_usage),
        MetricProbe("cache.hitRatio", _cache_hit_ratio),
        MetricProbe("bufferPool.usage", _cache_usage),
        MetricProbe("dbSize.current", _database_size),
        MetricProbe("locks.waiting", _queued_operations),
        MetricProbe("transactions.committed", _committed),
        MetricProbe("transactions.rolledBack", _aborted),
        MetricProbe("tableScans.rate", _collection_scan_rate),
        MetricProbe("slowQueries.count", _slow_operations),
        MetricProbe("topQueries", _top_profiled),
        MetricProbe("topQueries", _top_running, fallback=list),
        MetricProbe("replication.lag", _replication_lag, fallback=_zero),
    )

    @property
    def database_name(self) -> str:
        return self.profile.database or "test"

    def client_options(self) -> Dict[str, Any]:
        profile = self.profile
        timeout_ms = profile.timeout
        options: Dict[str, Any] = {
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
        }
        if profile.username:
            options["username"] = profile.username
            options["password"] = profile.plain_password
            options["authSource"] = profile.additional_params.get("authSource", "admin")
        if profile.uses_tls:
            options["tls"] = True
            options["tlsAllowInvalidCertificates"] = not profile.verifies_certificate
            options["tlsAllowInvalidHostnames"] = profile.ssl_mode != "verify-full"
            if profile.ssl_ca:
                options["tlsCAFile"] = profile.ssl_ca
            if profile.ssl_cert:
                options["tlsCertificateKeyFile"] = profile.ssl_cert
        return options

    async def _open_handle(self) -> MongoHandle:
        uri = self.profile.additional_params.get("uri")
        if uri:
            client: AsyncMongoClient = AsyncMongoClient(uri, **self.client_options())
        else:
            client = AsyncMongoClient(
                self.profile.host, self.profile.port, **self.client_options()
            )
        try:
            # the client connects lazily; ping forces server selection and auth
            await client.admin.command("ping")
        except BaseException:
            await client.close()
            raise
        return MongoHandle(client=client, db=client[self.database_name])

    async def _close_handle(self, handle: MongoHandle) -> None:
        await handle.client.close()

    async def _ping(self, handle: MongoHandle) -> None:
        await handle.client.admin.command("ping")

    async def _query(
        self, handle: MongoHandle, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        outcome = await self._run_command(handle, _parse_command(sql))
        return outcome.columns or [], outcome.rows

    async def _execute(self, handle: MongoHandle, text: str) -> ExecutionOutcome:
        return await self._run_command(handle, _parse_command(text))

    async def _run_command(self, handle: MongoHandle, document: Dict[str, Any]) -> ExecutionOutcome:
        name = next(iter(document))
        if name in CURSOR_COMMANDS:
            if name == "aggregate":
                document.setdefault("cursor", {})
            cursor = await handle.db.cursor_command(document)
            return _documents_outcome(await cursor.to_list())

        reply = await handle.db.command(document)
        if name in WRITE_COMMANDS:
            # findAndModify reports its count under lastErrorObject
            affected = reply.get("n", reply.get("lastErrorObject", {}).get("n"))
            return ExecutionOutcome(row_count=safe_cast(affected, int, default=0))
        return _documents_outcome([reply])

    async def _list_objects(self, handle: MongoHandle, kind: str) -> List[str]:
        object_type = "collection" if kind == "tables" else "view"
        names = await handle.db.list_collection_names(filter={"type": object_type})
        return sorted(n for n in names if not n.startswith("system."))

    async def _describe_columns(self, handle: MongoHandle, table_name: str) -> List[ColumnDescriptor]:
        documents = await handle.db[table_name].find({}).limit(SAMPLE_SIZE).to_list()
        return infer_columns(documents)

    async def _estimated_plan(self, handle: MongoHandle, text: str) -> PlanReport:
        try:
            document = _parse_command(text)
            reply = await handle.db.command(
                {"explain": document, "verbosity": "queryPlanner"}
            )
        except (QueryExecutionError, OperationFailure) as e:
            self.logger.debug("Explain unavailable, using heuristic plan", error=str(e))
            return self._heuristic_plan(text)

        planner = _find_query_planner(reply)
        if planner is None:
            body = json_util.dumps(reply, indent=2)
            return PlanReport(self.engine_label, text, body, ["Explain returned no query planner"])

        winning = planner.get("winningPlan", {})
        # newer servers wrap the classic plan in queryPlan
        winning = winning.get("queryPlan", winning)
        lines = _plan_tree(winning)
        stages = [line.strip().split(" ", 1)[0] for line in lines]
        analysis = []
        if "COLLSCAN" in stages:
            analysis.append("Full collection scan (COLLSCAN)")
        if "IXSCAN" in stages:
            analysis.append("Index scan (IXSCAN) used")
        rejected = len(planner.get("rejectedPlans", []))
        if rejected:
            analysis.append(f"{rejected} alternative plan(s) rejected")
        if planner.get("namespace"):
            analysis.append(f"Namespace: {planner['namespace']}")
        return PlanReport(self.engine_label, text, "\n".join(lines), analysis)

    def _heuristic_plan(self, text: str) -> PlanReport:
        lowered = text.lower()
        if "aggregate" in lowered:
            stages = list(dict.fromkeys(PIPELINE_STAGE.findall(text)))
            body = "AGGREGATION PIPELINE\n" + "\n".join(f"  ${s}" for s in stages)
            analysis = [f"{len(stages)} pipeline stage(s) detected"]
        elif "find" in lowered:
            body = "COLLSCAN"
            analysis = ["A find without a usable index scans the whole collection"]
        else:
            body = "COMMAND EXECUTION"
            analysis = ["Commands run directly without a query plan"]
        analysis.append("Plan estimated from the command text; explain was not available")
        return PlanReport(self.engine_label, text, body, analysis)

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        context = {"endpoint": self.profile.endpoint}
        if isinstance(exc, OperationFailure) and exc.code in AUTH_FAILURE_CODES:
            return AuthenticationError(
                _mongo_message(exc), code=ErrorCodes.AUTH_FAILED, context=context, cause=exc
            )
        if isinstance(exc, ServerSelectionTimeoutError):
            return ConnectionError(
                _mongo_message(exc), code=ErrorCodes.CONNECTION_TIMEOUT, context=context, cause=exc
            )
        if isinstance(exc, ConfigurationError):
            return ConnectionError(
                _mongo_message(exc), code=ErrorCodes.PROFILE_INVALID, context=context, cause=exc
            )
        return ConnectionError(
            _mongo_message(exc), code=ErrorCodes.CONNECTION_REFUSED, context=context, cause=exc
        )

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        context = {"operation": operation}
        if isinstance(exc, (AutoReconnect, ConnectionFailure)):
            return ConnectionError(
                _mongo_message(exc), code=ErrorCodes.CONNECTION_CLOSED, context=context, cause=exc
            )
        code = ErrorCodes.QUERY_EXECUTION_FAILED
        if isinstance(exc, OperationFailure) and exc.code in UNAUTHORIZED_CODES:
            code = ErrorCodes.INSUFFICIENT_PERMISSIONS
        return QueryExecutionError(_mongo_message(exc), code=code, context=context, cause=exc)


def _parse_command(text: str) -> Dict[str, Any]:
    try:
        document = json_util.loads(text)
    except (ValueError, TypeError) as e:
        raise QueryExecutionError(
            f"MongoDB queries must be a JSON command document, e.g. {COMMAND_EXAMPLE}",
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
            cause=e,
        ) from e
    if not isinstance(document, dict) or not document:
        raise QueryExecutionError(
            f"MongoDB queries must be a JSON command document, e.g. {COMMAND_EXAMPLE}",
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
        )
    return document


def _documents_outcome(documents: Sequence[Mapping[str, Any]]) -> ExecutionOutcome:
    columns: List[str] = []
    for document in documents:
        for key in document:
            if key not in columns:
                columns.append(key)
    rows = [[document.get(c) for c in columns] for document in documents]
    return ExecutionOutcome(columns=columns, rows=rows)


def bson_type_name(value: Any) -> str:
    """Name a Python value by the BSON type it round-trips as."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "int" if -_INT32_MAX - 1 <= value <= _INT32_MAX else "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, (Decimal128, Decimal)):
        return "decimal"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, ObjectId):
        return "objectId"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, (bytes, Binary)):
        return "binData"
    return type(value).__name__


def infer_columns(documents: Sequence[Mapping[str, Any]]) -> List[ColumnDescriptor]:
    """Infer one descriptor per field seen across ``documents``.

    A field is ``null`` if it was never seen with a value, its single
    observed type if all documents agree, and ``mixed`` otherwise. Missing
    fields do not count as a disagreement.
    """
    observed: Dict[str, set] = {}
    for document in documents:
        for key, value in document.items():
            types = observed.setdefault(key, set())
            if value is not None:
                types.add(bson_type_name(value))

    columns = []
    for name, types in observed.items():
        if not types:
            inferred = "null"
        elif len(types) == 1:
            inferred = next(iter(types))
        else:
            inferred = "mixed"
        columns.append(
            ColumnDescriptor(
                name=name,
                type=inferred,
                nullable=True,
                is_primary_key=name == "_id",
            )
        )
    return columns


def _find_query_planner(reply: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    if "queryPlanner" in reply:
        return reply["queryPlanner"]
    for stage in reply.get("stages", []):
        cursor_stage = stage.get("$cursor") if isinstance(stage, Mapping) else None
        if cursor_stage and "queryPlanner" in cursor_stage:
            return cursor_stage["queryPlanner"]
    return None


def _plan_tree(stage: Mapping[str, Any], depth: int = 0) -> List[str]:
    label = str(stage.get("stage", "UNKNOWN"))
    details = []
    if stage.get("indexName"):
        details.append(f"index={stage['indexName']}")
    if stage.get("direction"):
        details.append(f"direction={stage['direction']}")
    if stage.get("filter"):
        details.append(f"filter={json_util.dumps(stage['filter'])}")
    line = "  " * depth + label
    if details:
        line += " (" + ", ".join(details) + ")"

    lines = [line]
    children = list(stage.get("inputStages", []))
    if "inputStage" in stage:
        children.insert(0, stage["inputStage"])
    for child in children:
        lines.extend(_plan_tree(child, depth + 1))
    return lines


def _mongo_message(exc: BaseException) -> str:
    if isinstance(exc, OperationFailure) and exc.details:
        message = exc.details.get("errmsg")
        if message:
            return str(message)
    if isinstance(exc, PyMongoError):
        return str(exc).split(", full error:")[0].strip() or exc.__class__.__name__
    return str(exc).strip() or exc.__class__.__name__

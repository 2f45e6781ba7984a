"""Engine adapter base class.

An ``EngineAdapter`` instance is bound to one connection profile and owns one
engine-native session once connected. Engine subclasses implement the
``_open_handle``/``_close_handle`` pair plus the ``_query``, ``_execute``,
``_list_objects``, ``_describe_columns`` and ``_estimated_plan`` hooks; this
class supplies the uniform public surface, timeouts, error translation and
timing around them.
"""

import asyncio
import functools
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, List, Optional, Sequence, Tuple, Type

from ..config.models import ConnectionProfile
from ..core.base import AsyncComponent
from ..core.exceptions import (
    ConnectionError,
    ConnectionTimeoutError,
    DBExplorerError,
    ErrorCodes,
    QueryExecutionError,
    QueryTimeoutError,
    ValidationError,
)
from ..logging import get_logger, get_performance_logger
from .ddl import TableScriptBuilder
from .models import (
    OBJECT_KINDS,
    ColumnDescriptor,
    ConnectionTestResult,
    MetricProbe,
    PlanReport,
    QueryResult,
)


@dataclass
class ExecutionOutcome:
    """Raw outcome of one statement, before it becomes a QueryResult.

    ``columns`` is None when the statement produced no result set.
    """

    columns: Optional[List[str]] = None
    rows: List[Sequence[Any]] = field(default_factory=list)
    row_count: Optional[int] = None


class EngineAdapter(AsyncComponent[ConnectionProfile], ABC):
    """Common capability surface implemented once per engine.

    Calls that touch the native handle are serialized per adapter, because
    a single driver connection cannot interleave statements. Adapters for
    different profiles never share a lock.
    """

    engine: ClassVar[str] = "unknown"
    engine_label: ClassVar[str] = "Unknown"
    component_name: ClassVar[str] = "EngineAdapter"
    supported_kinds: ClassVar[Tuple[str, ...]] = OBJECT_KINDS
    script_builder_class: ClassVar[Type[TableScriptBuilder]] = TableScriptBuilder
    PROBES: ClassVar[Tuple[MetricProbe, ...]] = ()

    def __init__(self, profile: ConnectionProfile) -> None:
        super().__init__(profile)
        self.logger = get_logger(f"dbexplorer.adapter.{self.engine}").bind(
            **profile.log_fields()
        )
        self.perf_logger = get_performance_logger(f"adapter.{self.engine}")
        self._handle: Any = None
        self._broken = False
        self._io_lock = asyncio.Lock()
        self.top_queries_limit = 5

    @property
    def profile(self) -> ConnectionProfile:
        return self.config

    @property
    def is_connected(self) -> bool:
        return self.is_initialized and self._handle is not None and not self._broken

    @property
    def handle(self) -> Any:
        if self._handle is None or self._broken:
            raise ConnectionError(
                f"{self.engine_label} connection is not open",
                code=ErrorCodes.CONNECTION_CLOSED,
                context={"profile_id": self.profile.id},
            )
        return self._handle

    # Lifecycle

    async def connect(self) -> None:
        await self.initialize()

    async def disconnect(self) -> None:
        """Close the session once any in-flight call on it has finished."""
        async with self._io_lock:
            await self.cleanup()

    async def _async_initialize(self) -> None:
        timeout = self.profile.connect_timeout_seconds
        self.logger.info("Opening connection", endpoint=self.profile.endpoint)
        try:
            self._handle = await asyncio.wait_for(self._open_handle(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionTimeoutError(
                f"Connection to {self.profile.endpoint} timed out after {self.profile.timeout} ms",
                code=ErrorCodes.CONNECTION_TIMEOUT,
                context={"endpoint": self.profile.endpoint, "timeout_ms": self.profile.timeout},
                cause=e,
            ) from e
        except DBExplorerError:
            raise
        except Exception as e:
            error = self.translate_connect_error(e)
            self.logger.warning("Connection failed", error=error.message, code=error.code)
            raise error from e
        self._broken = False
        self.logger.info("Connection opened", endpoint=self.profile.endpoint)

    async def _async_cleanup(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self._close_handle(handle)
        except Exception as e:
            self.logger.warning("Error while closing connection", error=str(e))
        else:
            self.logger.info("Connection closed")

    # Public capability surface

    async def test_connection(self) -> ConnectionTestResult:
        """Open a short-lived session, round-trip once, and close it.

        The session is released on every path, including failures.
        """
        try:
            async with self.managed_lifecycle():
                await self._call("ping", self._ping)
        except DBExplorerError as e:
            return ConnectionTestResult(False, f"Connection test failed: {e.message}")
        except Exception as e:
            self.logger.exception("Unexpected error during connection test")
            return ConnectionTestResult(False, f"Connection test failed: {e}")

        name = self.profile.name or self.profile.endpoint
        return ConnectionTestResult(
            True, f"Successfully connected to {name} ({self.profile.endpoint})"
        )

    async def list_objects(self, kind: str) -> List[str]:
        """List object names of ``kind``; empty for kinds the engine lacks."""
        if kind not in OBJECT_KINDS:
            raise ValidationError(
                f"Unknown object kind: {kind!r}",
                code=ErrorCodes.PAYLOAD_INVALID,
                context={"kind": kind, "allowed": list(OBJECT_KINDS)},
            )
        if kind not in self.supported_kinds:
            return []
        return await self._call("list_objects", self._list_objects, kind)

    async def describe_columns(self, table_name: str) -> List[ColumnDescriptor]:
        if not table_name or not table_name.strip():
            raise ValidationError("Table name is required", code=ErrorCodes.PAYLOAD_INVALID)
        return await self._call("describe_columns", self._describe_columns, table_name.strip())

    async def execute_query(self, text: str, *, timeout: Optional[float] = None) -> QueryResult:
        """Run ``text`` verbatim and shape the outcome into the result envelope.

        Args:
            text: Statement text, passed to the driver unmodified
            timeout: Seconds before the call is abandoned

        Raises:
            QueryExecutionError: Driver rejected the statement, or it timed out
            ConnectionError: The handle is not open
        """
        with self.perf_logger.measure("execute_query", engine=self.engine) as timer:
            outcome = await self._call("execute_query", self._execute, text, timeout=timeout)

        elapsed = round(timer.duration_ms or 0.0, 3)
        if outcome.columns:
            return QueryResult.from_rows(outcome.columns, outcome.rows, elapsed)
        return QueryResult.affected(outcome.row_count, elapsed)

    async def estimated_plan(self, text: str, *, timeout: Optional[float] = None) -> str:
        if not text or not text.strip():
            raise ValidationError("Query text is required", code=ErrorCodes.PAYLOAD_INVALID)
        with self.perf_logger.measure("estimated_plan", engine=self.engine):
            report = await self._call("estimated_plan", self._estimated_plan, text, timeout=timeout)
        return report.render()

    async def generate_create_script(self, table_name: str) -> str:
        columns = await self.describe_columns(table_name)
        if not columns:
            raise QueryExecutionError(
                f"Table {table_name!r} not found or has no columns",
                code=ErrorCodes.METADATA_EXTRACTION_FAILED,
                context={"table": table_name},
            )
        return self.script_builder_class().render(table_name, columns)

    def monitoring_probes(self) -> Sequence[MetricProbe]:
        return self.PROBES

    async def run_probe(self, probe: MetricProbe, *, timeout: Optional[float] = None) -> Any:
        return await self._call(
            f"probe:{probe.metric}", functools.partial(probe.probe, self), timeout=timeout
        )

    # Native call plumbing

    async def _call(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        handle = self.handle
        async with self._io_lock:
            try:
                if timeout is not None:
                    return await asyncio.wait_for(func(handle, *args), timeout=timeout)
                return await func(handle, *args)
            except asyncio.TimeoutError as e:
                # an interrupted statement leaves the session in an unknown state
                self._broken = True
                limit = f"the {timeout:g} s timeout" if timeout is not None else "the driver timeout"
                raise QueryTimeoutError(
                    f"{operation} exceeded {limit}",
                    code=ErrorCodes.QUERY_TIMEOUT,
                    context={"operation": operation, "timeout_s": timeout},
                    cause=e,
                ) from e
            except DBExplorerError:
                raise
            except Exception as e:
                error = self.translate_query_error(e, operation)
                if isinstance(error, ConnectionError):
                    self._broken = True
                raise error from e

    def translate_connect_error(self, exc: Exception) -> ConnectionError:
        """Map a native connect exception. Subclasses refine the error code."""
        return ConnectionError(
            _native_message(exc),
            code=ErrorCodes.CONNECTION_REFUSED,
            context={"endpoint": self.profile.endpoint, "engine": self.engine},
            cause=exc,
        )

    def translate_query_error(self, exc: Exception, operation: str) -> DBExplorerError:
        """Map a native statement exception. Subclasses refine the error code."""
        return QueryExecutionError(
            _native_message(exc),
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
            context={"operation": operation, "engine": self.engine},
            cause=exc,
        )

    async def _scalar(self, handle: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        _, rows = await self._query(handle, sql, params)
        if not rows or not rows[0]:
            return None
        return rows[0][0]

    async def _ping(self, handle: Any) -> None:
        await self._query(handle, "SELECT 1 AS test")

    # Engine hooks

    @abstractmethod
    async def _open_handle(self) -> Any:
        """Open and return the engine-native session."""

    @abstractmethod
    async def _close_handle(self, handle: Any) -> None:
        """Close the engine-native session."""

    @abstractmethod
    async def _query(
        self, handle: Any, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Tuple[List[str], List[Sequence[Any]]]:
        """Run a catalog query and return ``(column_names, rows)``."""

    @abstractmethod
    async def _execute(self, handle: Any, text: str) -> ExecutionOutcome:
        """Run user text verbatim."""

    @abstractmethod
    async def _list_objects(self, handle: Any, kind: str) -> List[str]:
        """Return object names for a supported kind."""

    @abstractmethod
    async def _describe_columns(self, handle: Any, table_name: str) -> List[ColumnDescriptor]:
        """Return column descriptors for a table."""

    @abstractmethod
    async def _estimated_plan(self, handle: Any, text: str) -> PlanReport:
        """Return the engine's estimated plan for ``text``."""


def _native_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


def as_bool(value: Any) -> bool:
    """Interpret catalog flag values such as 'YES', 'Y', 1 or True."""
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "Y", "TRUE", "1")
    return bool(value)


def as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def ssl_context_for(profile: ConnectionProfile) -> Optional[ssl.SSLContext]:
    """Build a client TLS context from the profile's ssl fields.

    Returns None when the profile does not ask for TLS. ``require`` encrypts
    without verifying the server; ``verify-ca``/``verify-full`` verify it,
    and only ``verify-full`` checks the host name.
    """
    if not profile.uses_tls:
        return None
    context = ssl.create_default_context(cafile=profile.ssl_ca)
    if profile.ssl_mode != "verify-full":
        context.check_hostname = False
    if not profile.verifies_certificate:
        context.verify_mode = ssl.CERT_NONE
    if profile.ssl_cert:
        context.load_cert_chain(profile.ssl_cert, keyfile=profile.ssl_key)
    return context

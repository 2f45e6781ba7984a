"""Operation table mapping request names to services.

``RequestDispatcher.dispatch`` is the single entry point a UI collaborator
talks to. Every operation returns a plain JSON-ready value; failures are
values too, shaped per operation, and no exception escapes ``dispatch``.
"""

import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config.models import AppSettings, ConnectionProfile
from ..core.exceptions import DBExplorerError, ErrorCodes, ValidationError
from ..database.connections import ConnectionRegistry
from ..database.models import QueryResult
from ..logging import get_logger, get_performance_logger
from ..security import CredentialVault
from ..services import (
    ConnectionService,
    MonitoringCollector,
    PlanEstimator,
    QueryExecutionService,
    SchemaIntrospectionService,
)
from ..storage import ProfileStore
from .requests import IdPayload, ObjectsPayload, StatementPayload, TablePayload

P = TypeVar("P", bound=BaseModel)
Handler = Callable[[Any], Awaitable[Any]]
FailureShape = Callable[[str], Any]


def _error(message: str) -> Dict[str, Any]:
    return {"error": message}


def _test_failure(message: str) -> Dict[str, Any]:
    return {"success": False, "message": f"Connection test failed: {message}"}


class RequestDispatcher:
    """Routes ``(operation, payload)`` requests to the services.

    Example:
        >>> dispatcher = RequestDispatcher.from_settings(load_settings())
        >>> await dispatcher.dispatch("execute-query", {"id": profile_id, "text": "SELECT 1"})
        {'success': True, 'data': [{'1': 1}], 'columns': ['1'], 'rowCount': 1, ...}
    """

    def __init__(
        self, connections: ConnectionRegistry, settings: Optional[AppSettings] = None
    ) -> None:
        self.settings = settings or AppSettings()
        self.connections = connections
        self.logger = get_logger("dbexplorer.api.dispatcher")
        self.perf_logger = get_performance_logger("api.dispatcher")

        self.connection_service = ConnectionService(connections, self.settings)
        self.queries = QueryExecutionService(connections, self.settings)
        self.schema = SchemaIntrospectionService(connections, self.settings)
        self.monitoring = MonitoringCollector(connections, self.settings)
        self.plans = PlanEstimator(connections, self.settings)

        self._operations: Dict[str, Tuple[Handler, FailureShape]] = {
            "save-connection": (self._save_connection, _error),
            "list-connections": (self._list_connections, _error),
            "get-connection-details": (self._get_connection_details, lambda message: None),
            "delete-connection": (self._delete_connection, _error),
            "test-connection": (self._test_connection, _test_failure),
            "list-database-objects": (
                self._list_database_objects,
                lambda message: {"objects": [], "error": message},
            ),
            "get-table-schema": (
                self._get_table_schema,
                lambda message: {"columns": [], "error": message},
            ),
            "execute-query": (
                self._execute_query,
                lambda message: QueryResult.failure(message).to_dict(),
            ),
            "get-monitoring-snapshot": (self._get_monitoring_snapshot, _error),
            "get-estimated-plan": (self._get_estimated_plan, _error),
            "connect": (self._connect, lambda message: {"success": False, "message": message}),
            "disconnect": (self._disconnect, lambda message: {"success": False, "error": message}),
            "generate-create-script": (self._generate_create_script, _error),
        }

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RequestDispatcher":
        """Wire the vault, record store and registry from application settings."""
        vault = CredentialVault.from_passphrase(settings.encryption_passphrase.get_secret_value())
        store = ProfileStore(Path(settings.connections_dir))
        return cls(ConnectionRegistry(store, vault), settings)

    @property
    def operations(self) -> List[str]:
        return list(self._operations)

    async def dispatch(self, operation: str, payload: Any = None) -> Any:
        """Run one operation and return its response value."""
        entry = self._operations.get(operation) if isinstance(operation, str) else None
        if entry is None:
            self.logger.warning("Unknown operation requested", operation=operation)
            return {
                "error": f"Unknown operation: {operation}",
                "code": ErrorCodes.UNKNOWN_OPERATION,
            }

        handler, failure = entry
        with self.logger.context(operation=operation, correlation_id=uuid.uuid4().hex):
            try:
                with self.perf_logger.measure(operation):
                    return await handler(payload)
            except DBExplorerError as e:
                self.logger.warning("Operation failed", error=e.message, error_code=e.code)
                return failure(e.message)
            except Exception as e:
                self.logger.exception("Unexpected error while handling request")
                return failure(str(e) or e.__class__.__name__)

    async def close(self) -> None:
        await self.connections.close_all()

    # Payload parsing

    @staticmethod
    def _parse(model: Type[P], payload: Any) -> P:
        if isinstance(payload, str):
            # bare id, as sent by callers that pass the connection id alone
            payload = {"id": payload}
        try:
            return model.model_validate(payload or {})
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid request payload: {_describe_errors(e)}",
                code=ErrorCodes.PAYLOAD_INVALID,
                cause=e,
            ) from e

    @staticmethod
    def _profile(payload: Any) -> ConnectionProfile:
        if not isinstance(payload, dict):
            raise ValidationError(
                "Connection profile must be an object", code=ErrorCodes.PAYLOAD_INVALID
            )
        data = {k: v for k, v in payload.items() if k != "hasPassword"}
        try:
            return ConnectionProfile.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid connection profile: {_describe_errors(e)}",
                code=ErrorCodes.PROFILE_INVALID,
                cause=e,
            ) from e

    # Catalog operations

    async def _save_connection(self, payload: Any) -> Dict[str, Any]:
        profile = self._profile(payload)
        self.connections.factory.validate_profile(profile)
        return {"id": await self.connections.save(profile)}

    async def _list_connections(self, payload: Any) -> List[Dict[str, Any]]:
        profiles = await self.connections.list()
        return [profile.to_wire(include_password=False) for profile in profiles]

    async def _get_connection_details(self, payload: Any) -> Optional[Dict[str, Any]]:
        request = self._parse(IdPayload, payload)
        profile = await self.connections.get(request.id)
        return profile.to_wire(include_password=True) if profile is not None else None

    async def _delete_connection(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(IdPayload, payload)
        if not await self.connections.delete(request.id):
            return {"error": "Connection not found"}
        return {"id": request.id}

    # Live operations

    async def _test_connection(self, payload: Any) -> Dict[str, Any]:
        if isinstance(payload, dict) and "type" in payload:
            profile = self._profile(payload)
            if profile.password is None and profile.id:
                # an edited, saved profile keeps its stored password unless a new one is given
                stored = await self.connections.get(profile.id)
                if stored is not None and stored.password is not None:
                    profile = profile.model_copy(update={"password": stored.password})
            result = await self.connection_service.test(profile)
        else:
            request = self._parse(IdPayload, payload)
            result = await self.connection_service.test_saved(request.id)
        return result.to_dict()

    async def _connect(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(IdPayload, payload)
        return (await self.connection_service.connect(request.id)).to_dict()

    async def _disconnect(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(IdPayload, payload)
        was_connected = await self.connection_service.disconnect(request.id)
        return {"success": True, "wasConnected": was_connected}

    async def _list_database_objects(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(ObjectsPayload, payload)
        return (await self.schema.list_objects(request.id, request.kind)).to_dict()

    async def _get_table_schema(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(TablePayload, payload)
        return (await self.schema.describe_columns(request.id, request.table_name)).to_dict()

    async def _generate_create_script(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(TablePayload, payload)
        return (await self.schema.generate_create_script(request.id, request.table_name)).to_dict()

    async def _execute_query(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(StatementPayload, payload)
        result = await self.queries.execute(request.id, request.text, timeout_ms=request.timeout)
        return result.to_dict()

    async def _get_monitoring_snapshot(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(IdPayload, payload)
        return (await self.monitoring.snapshot(request.id)).to_dict()

    async def _get_estimated_plan(self, payload: Any) -> Dict[str, Any]:
        request = self._parse(StatementPayload, payload)
        report = await self.plans.estimate(request.id, request.text, timeout_ms=request.timeout)
        return report.to_dict()


def _describe_errors(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "payload"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)

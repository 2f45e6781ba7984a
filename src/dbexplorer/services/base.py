"""Shared plumbing for the profile-scoped services."""

from typing import ClassVar, Optional

from ..config.models import AppSettings
from ..core.exceptions import DBExplorerError, ErrorCodes, ValidationError
from ..core.utils import coalesce
from ..database.base import EngineAdapter
from ..database.connections import ConnectionRegistry
from ..logging import get_logger, get_performance_logger


class ProfileService:
    """Base for services that resolve a profile id to a live adapter.

    Subclasses call only the ``EngineAdapter`` surface and never branch on
    the engine type.
    """

    service_name: ClassVar[str] = "service"

    def __init__(
        self, connections: ConnectionRegistry, settings: Optional[AppSettings] = None
    ) -> None:
        self.connections = connections
        self.settings = settings or AppSettings()
        self.logger = get_logger(f"dbexplorer.services.{self.service_name}")
        self.perf_logger = get_performance_logger(f"services.{self.service_name}")

    async def open_adapter(self, profile_id: Optional[str]) -> EngineAdapter:
        """Resolve ``profile_id`` and return its connected adapter.

        Raises:
            ValidationError: If no id was given
            ConnectionError: If the profile does not exist or cannot connect
        """
        if not profile_id:
            raise ValidationError("Connection id is required", code=ErrorCodes.PAYLOAD_INVALID)
        profile = await self.connections.require(profile_id)
        return await self.connections.get_or_open_handle(profile)

    def timeout_seconds(self, adapter: EngineAdapter, timeout_ms: Optional[int] = None) -> float:
        """Pick the statement timeout: request, then profile, then application default."""
        milliseconds = coalesce(
            timeout_ms, adapter.profile.query_timeout, self.settings.default_query_timeout_ms
        )
        return milliseconds / 1000.0

    def failure_message(self, exc: Exception, operation: str, profile_id: Optional[str]) -> str:
        """Log a failed operation and return the text to hand back to the caller."""
        if isinstance(exc, DBExplorerError):
            self.logger.warning(
                f"{operation} failed",
                profile_id=profile_id,
                error=exc.message,
                error_code=exc.code,
            )
            return exc.message
        self.logger.exception(f"Unexpected error during {operation}", profile_id=profile_id)
        return str(exc) or exc.__class__.__name__

"""Connection testing and explicit connect/disconnect."""

from typing import Optional

from ..config.models import ConnectionProfile
from ..core.exceptions import DBExplorerError
from ..database.models import ConnectionTestResult
from .base import ProfileService


class ConnectionService(ProfileService):
    service_name = "connection"

    async def test(self, profile: ConnectionProfile) -> ConnectionTestResult:
        """Test ``profile`` on a throwaway session that never enters the pool.

        Works for unsaved profiles too. The session is closed on every path.
        """
        try:
            adapter = self.connections.create_adapter(profile)
        except DBExplorerError as e:
            return ConnectionTestResult(False, f"Connection test failed: {e.message}")

        result = await adapter.test_connection()
        self.logger.info(
            "Connection tested", success=result.success, **profile.log_fields()
        )
        return result

    async def test_saved(self, profile_id: str) -> ConnectionTestResult:
        try:
            profile = await self.connections.require(profile_id)
        except DBExplorerError as e:
            return ConnectionTestResult(False, e.message)
        return await self.test(profile)

    async def connect(self, profile_id: Optional[str]) -> ConnectionTestResult:
        """Open and cache the live handle ahead of first use."""
        try:
            adapter = await self.open_adapter(profile_id)
        except Exception as e:
            return ConnectionTestResult(False, self.failure_message(e, "connect", profile_id))
        name = adapter.profile.name or adapter.profile.endpoint
        return ConnectionTestResult(True, f"Connected to {name} ({adapter.profile.endpoint})")

    async def disconnect(self, profile_id: str) -> bool:
        """Close the live handle. Returns whether one was open."""
        closed = await self.connections.close_handle(profile_id)
        self.logger.info("Disconnected", profile_id=profile_id, was_open=closed)
        return closed

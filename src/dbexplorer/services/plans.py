"""Estimated execution plans."""

from typing import Optional

from ..database.models import TextResult
from .base import ProfileService


class PlanEstimator(ProfileService):
    service_name = "plans"

    async def estimate(
        self, profile_id: Optional[str], text: str, *, timeout_ms: Optional[int] = None
    ) -> TextResult:
        """Return the engine's estimated plan report, or an error. Never retried."""
        try:
            adapter = await self.open_adapter(profile_id)
            report = await adapter.estimated_plan(
                text, timeout=self.timeout_seconds(adapter, timeout_ms)
            )
        except Exception as e:
            return TextResult("plan", error=self.failure_message(e, "estimated_plan", profile_id))
        return TextResult("plan", report)

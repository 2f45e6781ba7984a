"""Ad-hoc query execution."""

import time
from typing import Optional

from ..core.exceptions import ErrorCodes, ValidationError
from ..database.models import QueryResult
from .base import ProfileService


class QueryExecutionService(ProfileService):
    """Runs statement text against a saved profile.

    ``execute`` never raises: every failure, including an unknown profile id
    or a timeout, comes back as a ``QueryResult`` with ``success`` False.
    """

    service_name = "query"

    async def execute(
        self, profile_id: Optional[str], text: Optional[str], *, timeout_ms: Optional[int] = None
    ) -> QueryResult:
        """Execute ``text`` verbatim on the profile's live handle.

        Args:
            profile_id: Saved profile id
            text: Statement text, passed to the engine unmodified
            timeout_ms: Optional per-call timeout in milliseconds

        Returns:
            The result envelope; on failure ``error`` holds the native message
        """
        started = time.perf_counter()
        try:
            if not text or not text.strip():
                raise ValidationError("Query text is required", code=ErrorCodes.PAYLOAD_INVALID)
            adapter = await self.open_adapter(profile_id)
            result = await adapter.execute_query(
                text, timeout=self.timeout_seconds(adapter, timeout_ms)
            )
        except Exception as e:
            elapsed = round((time.perf_counter() - started) * 1000, 3)
            return QueryResult.failure(self.failure_message(e, "execute_query", profile_id), elapsed)

        self.logger.info(
            "Query executed",
            profile_id=profile_id,
            row_count=result.row_count,
            column_count=len(result.columns),
            execution_time_ms=result.execution_time,
        )
        return result

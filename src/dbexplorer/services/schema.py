"""Schema browsing: object listings, column metadata and CREATE scripts."""

from typing import Optional

from ..database.models import ColumnListing, ObjectListing, TextResult
from .base import ProfileService


class SchemaIntrospectionService(ProfileService):
    """Lists schema objects and describes tables for a saved profile.

    Every method returns a value object carrying either the result or an
    ``error`` message; none of them raise.
    """

    service_name = "schema"

    async def list_objects(self, profile_id: Optional[str], kind: str) -> ObjectListing:
        try:
            adapter = await self.open_adapter(profile_id)
            names = await adapter.list_objects(kind)
        except Exception as e:
            return ObjectListing(error=self.failure_message(e, "list_objects", profile_id))

        self.logger.debug("Objects listed", profile_id=profile_id, kind=kind, count=len(names))
        return ObjectListing(objects=names)

    async def describe_columns(self, profile_id: Optional[str], table_name: str) -> ColumnListing:
        database_type = None
        try:
            adapter = await self.open_adapter(profile_id)
            database_type = adapter.engine
            with self.perf_logger.measure("describe_columns", engine=adapter.engine):
                columns = await adapter.describe_columns(table_name)
        except Exception as e:
            return ColumnListing(
                database_type=database_type,
                error=self.failure_message(e, "describe_columns", profile_id),
            )
        return ColumnListing(columns=columns, database_type=database_type)

    async def generate_create_script(self, profile_id: Optional[str], table_name: str) -> TextResult:
        """Render a CREATE statement for an existing table in the engine's dialect."""
        try:
            adapter = await self.open_adapter(profile_id)
            script = await adapter.generate_create_script(table_name)
        except Exception as e:
            return TextResult(
                "script", error=self.failure_message(e, "generate_create_script", profile_id)
            )
        return TextResult("script", script)

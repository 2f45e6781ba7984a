"""Engine adapter factory."""

from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config.models import ConnectionProfile
from ..core.exceptions import ErrorCodes, ValidationError
from ..logging import get_logger
from .base import EngineAdapter
from .registry import AdapterRegistry, get_global_registry


class AdapterFactory:
    """Creates unconnected adapters for connection profiles.

    Validates the profile against what its engine needs before the adapter
    is built, so an unusable profile is reported without touching the
    network.
    """

    def __init__(self, registry: Optional[AdapterRegistry] = None) -> None:
        self.logger = get_logger("dbexplorer.database.factory")
        self._registry = registry or get_global_registry()

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    def create_adapter(self, profile: ConnectionProfile) -> EngineAdapter:
        """Create an adapter bound to ``profile``.

        Raises:
            ValidationError: If the engine is unsupported or the profile
                lacks a field the engine requires
        """
        self.validate_profile(profile)
        adapter_class = self._registry.get_adapter_class(profile.type)
        adapter = adapter_class(profile)
        self.logger.debug(
            "Engine adapter created",
            adapter_class=adapter_class.__name__,
            **profile.log_fields(),
        )
        return adapter

    def create_adapter_from_dict(self, data: Dict[str, Any]) -> EngineAdapter:
        try:
            profile = ConnectionProfile.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid connection profile: {e}",
                code=ErrorCodes.PROFILE_INVALID,
                cause=e,
            ) from e
        return self.create_adapter(profile)

    def validate_profile(self, profile: ConnectionProfile) -> None:
        """Check engine-specific required fields.

        Raises:
            ValidationError: Describing the first missing or invalid field
        """
        if not self._registry.is_engine_supported(profile.type):
            raise ValidationError(
                f"Unsupported database type: {profile.type}",
                code=ErrorCodes.UNSUPPORTED_ENGINE,
                context={
                    "engine": profile.type,
                    "available_engines": self._registry.get_available_engines(),
                },
            )

        if profile.type == "sqlite":
            if not profile.database:
                raise ValidationError(
                    "SQLite connections require a database file path",
                    code=ErrorCodes.PROFILE_INVALID,
                    context={"field": "database", "engine": profile.type},
                )
            return

        if not profile.host:
            raise ValidationError(
                "Connection profile missing required field: host",
                code=ErrorCodes.PROFILE_INVALID,
                context={"field": "host", "engine": profile.type},
            )

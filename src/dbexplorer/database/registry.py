"""Engine adapter registry.

Maps a profile's engine type to the ``EngineAdapter`` subclass implementing
it. The six built-in adapters are registered by ``dbexplorer.database`` on
import; services only ever look adapters up here and never branch on the
engine type themselves.
"""

from typing import Dict, List, Optional, Type

from ..core.exceptions import ErrorCodes, ValidationError
from ..logging import get_logger
from .base import EngineAdapter


class AdapterRegistry:
    """Registry of engine adapter classes keyed by engine type."""

    def __init__(self) -> None:
        self.logger = get_logger("dbexplorer.database.registry")
        self._adapters: Dict[str, Type[EngineAdapter]] = {}
        self._metadata: Dict[str, Dict[str, str]] = {}

    def register_adapter(
        self,
        engine: str,
        adapter_class: Type[EngineAdapter],
        description: Optional[str] = None,
    ) -> None:
        """Register an adapter class for an engine type.

        Args:
            engine: Engine type identifier (e.g. 'postgresql', 'mysql')
            adapter_class: EngineAdapter subclass
            description: Optional description of the adapter

        Raises:
            ValidationError: If the class is not an EngineAdapter
        """
        if not isinstance(adapter_class, type) or not issubclass(adapter_class, EngineAdapter):
            name = getattr(adapter_class, "__name__", repr(adapter_class))
            raise ValidationError(
                f"Adapter class {name} must extend EngineAdapter",
                code=ErrorCodes.CONFIG_INVALID,
                context={"engine": engine, "class": name},
            )

        if engine in self._adapters:
            self.logger.warning(
                "Overriding existing adapter registration",
                engine=engine,
                existing_class=self._adapters[engine].__name__,
                new_class=adapter_class.__name__,
            )

        self._adapters[engine] = adapter_class
        self._metadata[engine] = {
            "class_name": adapter_class.__name__,
            "label": adapter_class.engine_label,
            "description": description or f"{adapter_class.engine_label} adapter",
            "version": adapter_class.version,
        }
        self.logger.debug(
            "Engine adapter registered", engine=engine, class_name=adapter_class.__name__
        )

    def get_adapter_class(self, engine: str) -> Type[EngineAdapter]:
        """Get the adapter class for an engine type.

        Raises:
            ValidationError: If no adapter is registered for the engine
        """
        try:
            return self._adapters[engine]
        except KeyError:
            raise ValidationError(
                f"Unsupported database type: {engine}",
                code=ErrorCodes.UNSUPPORTED_ENGINE,
                context={"engine": engine, "available_engines": self.get_available_engines()},
            ) from None

    def is_engine_supported(self, engine: str) -> bool:
        return engine in self._adapters

    def get_available_engines(self) -> List[str]:
        return list(self._adapters)

    def list_adapters(self) -> Dict[str, Dict[str, str]]:
        return {engine: meta.copy() for engine, meta in self._metadata.items()}

    def unregister_adapter(self, engine: str) -> None:
        if engine not in self._adapters:
            raise ValidationError(
                f"Cannot unregister unknown engine: {engine}",
                code=ErrorCodes.UNSUPPORTED_ENGINE,
                context={"engine": engine},
            )
        del self._adapters[engine]
        del self._metadata[engine]
        self.logger.info("Engine adapter unregistered", engine=engine)


_global_registry: Optional[AdapterRegistry] = None


def get_global_registry() -> AdapterRegistry:
    """Get the process-wide adapter registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = AdapterRegistry()
    return _global_registry


def register_adapter(
    engine: str, adapter_class: Type[EngineAdapter], description: Optional[str] = None
) -> None:
    """Register an adapter with the global registry."""
    get_global_registry().register_adapter(engine, adapter_class, description)

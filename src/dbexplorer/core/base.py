"""Base classes for DB Explorer components.

Classes:
    BaseComponent: Generic base class for configured components
    AsyncComponent: Base class for components owning async resources

Example:
    >>> class SQLiteAdapter(AsyncComponent[ConnectionProfile]):
    ...     async def _async_initialize(self) -> None:
    ...         self._handle = await aiosqlite.connect(self.config.database)
    ...
    ...     async def _async_cleanup(self) -> None:
    ...         await self._handle.close()
"""

import asyncio
import time
from abc import ABC
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, ClassVar, Dict, Generic, TypeVar

from ..logging import get_logger
from .exceptions import DBExplorerError, ErrorCodes, ValidationError

T = TypeVar("T")


class BaseComponent(Generic[T], ABC):
    """Base class for DB Explorer components.

    Holds the component configuration, creation time and a logger named
    after the concrete class.

    Type Parameters:
        T: Type of configuration object this component accepts
    """

    component_name: ClassVar[str] = "BaseComponent"
    version: ClassVar[str] = "1.0.0"

    def __init__(self, config: T) -> None:
        if config is None:
            raise ValidationError(
                "Configuration cannot be None",
                code=ErrorCodes.CONFIG_INVALID,
                context={"component": self.component_name},
            )

        self._config: T = config
        self._initialized: bool = False
        self._creation_time: float = time.time()
        self._logger = get_logger(f"dbexplorer.{self.component_name}")

    @property
    def config(self) -> T:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def uptime(self) -> float:
        """Seconds since the component was created."""
        return time.time() - self._creation_time

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "component": self.component_name,
            "version": self.version,
            "initialized": self._initialized,
            "uptime_seconds": self.uptime,
            "status": "healthy" if self._initialized else "not_initialized",
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.component_name!r}, "
            f"initialized={self._initialized}, "
            f"uptime={self.uptime:.2f}s)"
        )


class AsyncComponent(BaseComponent[T]):
    """Base class for components that open and release async resources.

    ``initialize`` and ``cleanup`` are idempotent and serialized by their own
    locks. If ``_async_initialize`` fails, ``_async_cleanup`` runs before the
    error propagates so a half-opened resource is never left behind.
    """

    def __init__(self, config: T) -> None:
        super().__init__(config)
        self._initialization_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize component resources.

        Raises:
            DBExplorerError: The subclass error unchanged, or an INIT_FAILED
                wrapper around any other exception
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            self._logger.debug("Initializing component", component=self.component_name)

            try:
                await self._async_initialize()
            except BaseException as e:
                await self._release_partial()
                if isinstance(e, DBExplorerError) or not isinstance(e, Exception):
                    raise
                raise DBExplorerError(
                    f"Failed to initialize {self.component_name}: {e}",
                    code=ErrorCodes.INIT_FAILED,
                    context={"component": self.component_name},
                    cause=e,
                ) from e

            self._initialized = True
            self._logger.debug("Component initialized", component=self.component_name)

    async def cleanup(self) -> None:
        """Release component resources. Safe to call more than once."""
        async with self._cleanup_lock:
            if not self._initialized:
                return

            try:
                await self._async_cleanup()
            finally:
                self._initialized = False
                self._logger.debug("Component cleaned up", component=self.component_name)

    async def _release_partial(self) -> None:
        try:
            await self._async_cleanup()
        except Exception as cleanup_error:
            self._logger.warning(
                "Cleanup after failed initialization raised",
                component=self.component_name,
                error=str(cleanup_error),
            )

    @asynccontextmanager
    async def managed_lifecycle(self) -> AsyncGenerator["AsyncComponent[T]", None]:
        """Initialize on entry and clean up on every exit path.

        Example:
            >>> async with adapter.managed_lifecycle():
            ...     await adapter.ping()
        """
        await self.initialize()
        try:
            yield self
        finally:
            await self.cleanup()

    async def _async_initialize(self) -> None:
        """Open resources. Override in subclasses."""

    async def _async_cleanup(self) -> None:
        """Release resources. Override in subclasses."""

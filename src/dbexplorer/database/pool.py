"""Live handle pool.

Holds at most one connected adapter per profile id. Opening is serialized per
id, so concurrent requests for the same profile share a single connect call;
requests for different profiles never wait on each other.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..logging import get_logger, get_performance_logger
from .base import EngineAdapter


@dataclass
class PooledHandle:
    """A connected adapter plus usage metadata."""

    adapter: EngineAdapter
    created_at: datetime = field(default_factory=datetime.now)
    last_used: datetime = field(default_factory=datetime.now)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = datetime.now()
        self.use_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.adapter.engine,
            "connected": self.adapter.is_connected,
            "created_at": self.created_at.isoformat(),
            "last_used": self.last_used.isoformat(),
            "use_count": self.use_count,
        }


class HandlePool:
    """Process-wide cache of live handles keyed by profile id.

    The raw mapping is never exposed; callers go through ``get_or_open``,
    ``close`` and ``close_all``.
    """

    def __init__(self) -> None:
        self.logger = get_logger("dbexplorer.database.pool")
        self.perf_logger = get_performance_logger("database.pool")
        self._entries: Dict[str, PooledHandle] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._stats = {
            "total_opened": 0,
            "total_reused": 0,
            "total_reopened": 0,
            "total_closed": 0,
            "open_failures": 0,
        }

    @asynccontextmanager
    async def _locked(self, profile_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``profile_id``; the lock is dropped once unused and uncached."""
        # no await point between lookup and count, so two tasks never create different locks
        lock = self._locks.setdefault(profile_id, asyncio.Lock())
        self._lock_users[profile_id] = self._lock_users.get(profile_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[profile_id] -= 1
            if not self._lock_users[profile_id] and profile_id not in self._entries:
                del self._lock_users[profile_id]
                del self._locks[profile_id]

    async def get_or_open(
        self, profile_id: str, create: Callable[[], EngineAdapter]
    ) -> EngineAdapter:
        """Return the connected adapter for ``profile_id``, opening it if needed.

        Args:
            profile_id: Key of the handle
            create: Builds a fresh, unconnected adapter; only called when no
                usable handle is cached

        Raises:
            ConnectionError: If the adapter fails to connect; nothing is cached
        """
        async with self._locked(profile_id):
            entry = self._entries.get(profile_id)
            if entry is not None:
                if entry.adapter.is_connected:
                    entry.mark_used()
                    self._stats["total_reused"] += 1
                    return entry.adapter

                # a timed-out or dropped session is replaced rather than reused
                self.logger.info("Reopening broken handle", profile_id=profile_id)
                del self._entries[profile_id]
                self._stats["total_reopened"] += 1
                await self._close_adapter(profile_id, entry.adapter)

            adapter = create()
            try:
                with self.perf_logger.measure("open_handle", engine=adapter.engine):
                    await adapter.connect()
            except Exception:
                self._stats["open_failures"] += 1
                raise

            entry = PooledHandle(adapter)
            entry.mark_used()
            self._entries[profile_id] = entry
            self._stats["total_opened"] += 1
            self.logger.debug("Handle cached", profile_id=profile_id, engine=adapter.engine)
            return adapter

    def peek(self, profile_id: str) -> Optional[EngineAdapter]:
        """Return the cached adapter without opening one."""
        entry = self._entries.get(profile_id)
        return entry.adapter if entry is not None else None

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def close(self, profile_id: str) -> bool:
        """Close and evict the handle for ``profile_id``. Returns whether one was cached."""
        async with self._locked(profile_id):
            entry = self._entries.pop(profile_id, None)
            if entry is None:
                return False
            await self._close_adapter(profile_id, entry.adapter)
            return True

    async def close_all(self) -> None:
        for profile_id in list(self._entries):
            await self.close(profile_id)

    async def _close_adapter(self, profile_id: str, adapter: EngineAdapter) -> None:
        try:
            await adapter.disconnect()
        except Exception as e:
            self.logger.warning("Error closing handle", profile_id=profile_id, error=str(e))
        self._stats["total_closed"] += 1

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "open_handles": len(self._entries)}

    def describe(self) -> List[Dict[str, Any]]:
        return [{"profile_id": pid, **entry.to_dict()} for pid, entry in self._entries.items()]

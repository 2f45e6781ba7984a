"""Connection profile catalog and live handle access.

``ConnectionRegistry`` is the only component that reads or writes profile
records. Passwords cross it in plaintext on the way in and out and are
sealed by the ``CredentialVault`` before anything reaches disk.
"""

import secrets
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config.models import ConnectionProfile
from ..core.exceptions import (
    ConnectionError,
    DecryptionError,
    ErrorCodes,
    ValidationError,
)
from ..logging import get_logger
from ..security import CredentialVault
from ..storage import ProfileStore
from .base import EngineAdapter
from .factory import AdapterFactory
from .pool import HandlePool


def new_profile_id() -> str:
    """Generate an opaque 32 hex character profile id."""
    return secrets.token_hex(16)


class ConnectionRegistry:
    """Catalog of saved connection profiles plus their live handles.

    Example:
        >>> registry = ConnectionRegistry(ProfileStore(path), vault)
        >>> profile_id = await registry.save(ConnectionProfile(type="sqlite", database="app.db"))
        >>> adapter = await registry.get_or_open_handle(await registry.get(profile_id))
    """

    def __init__(
        self,
        store: ProfileStore,
        vault: CredentialVault,
        factory: Optional[AdapterFactory] = None,
        pool: Optional[HandlePool] = None,
    ) -> None:
        self.logger = get_logger("dbexplorer.database.connections")
        self.store = store
        self.vault = vault
        self.factory = factory or AdapterFactory()
        self.pool = pool or HandlePool()
        self._close_listeners: List[Callable[[str], None]] = []

    def add_close_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(profile_id)`` whenever a profile's handle is discarded."""
        self._close_listeners.append(listener)

    # Catalog

    async def save(self, profile: ConnectionProfile) -> str:
        """Persist ``profile``, assigning an id if it has none.

        Saving an existing id replaces that record entirely and closes its
        live handle, so the next use connects with the new settings.

        Returns:
            The profile id
        """
        profile_id = profile.id or new_profile_id()
        record = profile.to_dict(mask_secrets=False, by_alias=True)
        record["id"] = profile_id
        record.pop("password", None)
        if profile.plain_password is not None:
            record["password"] = self.vault.seal(profile.plain_password)

        replaced = self.store.exists(profile_id)
        self.store.write(profile_id, record)
        if replaced:
            await self.discard(profile_id)

        self.logger.info(
            "Connection profile saved",
            profile_id=profile_id,
            profile_name=profile.name,
            engine=profile.type,
            replaced=replaced,
        )
        return profile_id

    async def list(self) -> List[ConnectionProfile]:
        """Return every readable profile, in directory order.

        A record whose password cannot be decrypted is still listed, without
        a password. Records that do not parse as profiles are skipped.
        """
        profiles = []
        for record_id, record in self.store.iter_records():
            try:
                profiles.append(self._from_record(record_id, record))
            except ValidationError as e:
                self.logger.warning(
                    "Skipping invalid connection record", profile_id=record_id, error=e.message
                )
        return profiles

    async def get(self, profile_id: str) -> Optional[ConnectionProfile]:
        """Read and decrypt one profile, or None if no record exists."""
        record = self.store.read(profile_id)
        if record is None:
            return None
        return self._from_record(profile_id, record)

    async def require(self, profile_id: str) -> ConnectionProfile:
        """Like ``get`` but raises when the profile does not exist.

        Raises:
            ConnectionError: With code PROFILE_NOT_FOUND
        """
        profile = await self.get(profile_id)
        if profile is None:
            raise ConnectionError(
                "Connection not found",
                code=ErrorCodes.PROFILE_NOT_FOUND,
                context={"profile_id": profile_id},
            )
        return profile

    async def delete(self, profile_id: str) -> bool:
        """Remove the record and close its live handle. Returns whether a record existed."""
        existed = self.store.delete(profile_id)
        await self.discard(profile_id)
        if existed:
            self.logger.info("Connection profile deleted", profile_id=profile_id)
        return existed

    def _from_record(self, record_id: str, record: Dict[str, Any]) -> ConnectionProfile:
        data = dict(record)
        data["id"] = record_id
        sealed = data.pop("password", None)
        if sealed is not None:
            try:
                data["password"] = self.vault.unseal(sealed)
            except DecryptionError as e:
                # credential unavailable; the profile itself is still usable
                self.logger.warning(
                    "Stored password could not be decrypted",
                    profile_id=record_id,
                    error=e.message,
                )
        try:
            return ConnectionProfile.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid connection record {record_id}: {e.error_count()} validation error(s)",
                code=ErrorCodes.PROFILE_INVALID,
                context={"profile_id": record_id},
                cause=e,
            ) from e

    # Live handles

    async def get_or_open_handle(self, profile: ConnectionProfile) -> EngineAdapter:
        """Return the connected adapter for a saved profile, opening it once.

        Raises:
            ValidationError: If the profile has no id or cannot be served
            ConnectionError: Carrying the native message when connect fails
        """
        if not profile.id:
            raise ValidationError(
                "Only saved connections can hold a live handle",
                code=ErrorCodes.PAYLOAD_INVALID,
            )
        return await self.pool.get_or_open(
            profile.id, lambda: self.factory.create_adapter(profile)
        )

    async def open_by_id(self, profile_id: str) -> EngineAdapter:
        profile = await self.require(profile_id)
        return await self.get_or_open_handle(profile)

    def create_adapter(self, profile: ConnectionProfile) -> EngineAdapter:
        """Build an unconnected adapter outside the pool, e.g. for a connection test."""
        return self.factory.create_adapter(profile)

    def has_handle(self, profile_id: str) -> bool:
        return profile_id in self.pool

    async def close_handle(self, profile_id: str) -> bool:
        """Close the live handle for ``profile_id``. Returns whether one was open."""
        return await self.discard(profile_id)

    async def discard(self, profile_id: str) -> bool:
        closed = await self.pool.close(profile_id)
        for listener in self._close_listeners:
            listener(profile_id)
        return closed

    async def close_all(self) -> None:
        await self.pool.close_all()
        self.logger.info("All live handles closed")

"""On-disk store of connection profile records.

One JSON file per profile, named ``<id>.json``. Writes go to a temporary file
in the same directory and are moved into place with ``os.replace``, so a
reader never observes a half-written record. Concurrent writers to the same
id resolve as last writer wins.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from ..core.exceptions import ErrorCodes, StorageError, ValidationError
from ..core.utils import ValidationUtils
from ..logging import get_logger

RECORD_SUFFIX = ".json"


class ProfileStore:
    """Directory-backed record store keyed by profile id.

    Example:
        >>> store = ProfileStore(Path("~/.dbexplorer/connections").expanduser())
        >>> store.write("3f9a", {"id": "3f9a", "name": "Local", "type": "sqlite"})
        >>> store.read("3f9a")["name"]
        'Local'
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)
        self.logger = get_logger("dbexplorer.storage")

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create connections directory {self.directory}: {e}",
                code=ErrorCodes.STORAGE_FAILED,
                cause=e,
            ) from e

    def path_for(self, record_id: str) -> Path:
        if not ValidationUtils.validate_identifier(record_id):
            raise ValidationError(
                f"Invalid connection id: {record_id!r}",
                code=ErrorCodes.PAYLOAD_INVALID,
                context={"id": record_id},
            )
        return self.directory / f"{record_id}{RECORD_SUFFIX}"

    def write(self, record_id: str, record: Dict[str, Any]) -> None:
        """Write a record, replacing any existing one with the same id."""
        target = self.path_for(record_id)
        self._ensure_directory()

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{record_id}.", suffix=".tmp", dir=str(self.directory)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, default=str)
            os.replace(tmp_name, target)
        except (OSError, TypeError, ValueError) as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(
                f"Failed to write connection record {record_id}: {e}",
                code=ErrorCodes.STORAGE_FAILED,
                context={"id": record_id},
                cause=e,
            ) from e

        self.logger.debug("Connection record written", profile_id=record_id)

    def read(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Read one record.

        Returns:
            The record, or None if no record exists for the id

        Raises:
            StorageError: If the record exists but is not a JSON object
        """
        path = self.path_for(record_id)
        try:
            return self._load(path)
        except FileNotFoundError:
            return None

    def _load(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise
        except (OSError, ValueError) as e:
            raise StorageError(
                f"Malformed connection record {path.name}: {e}",
                code=ErrorCodes.STORAGE_FAILED,
                context={"path": str(path)},
                cause=e,
            ) from e

        if not isinstance(data, dict):
            raise StorageError(
                f"Malformed connection record {path.name}: not an object",
                code=ErrorCodes.STORAGE_FAILED,
                context={"path": str(path)},
            )
        return data

    def iter_records(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Yield ``(id, record)`` for every readable record in directory order.

        Malformed records are skipped with a warning.
        """
        if not self.directory.is_dir():
            return

        for path in self.directory.iterdir():
            if path.suffix != RECORD_SUFFIX or path.name.startswith("."):
                continue
            try:
                record = self._load(path)
            except FileNotFoundError:
                continue
            except StorageError as e:
                self.logger.warning(
                    "Skipping malformed connection record",
                    path=str(path),
                    error=e.message,
                )
                continue
            yield path.stem, record

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns whether one existed."""
        path = self.path_for(record_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to delete connection record {record_id}: {e}",
                code=ErrorCodes.STORAGE_FAILED,
                context={"id": record_id},
                cause=e,
            ) from e
        self.logger.debug("Connection record deleted", profile_id=record_id)
        return True

    def exists(self, record_id: str) -> bool:
        return self.path_for(record_id).is_file()

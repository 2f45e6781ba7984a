"""Settings loading from YAML files and the environment."""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ErrorCodes, ValidationError
from .models import AppSettings

CONFIG_ENV_VAR = "DBEXPLORER_CONFIG"


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> AppSettings:
    """Load application settings.

    The YAML file named by ``path`` (or the ``DBEXPLORER_CONFIG`` environment
    variable) is read when given; keyword overrides win over file values.

    Args:
        path: YAML settings file
        **overrides: Top-level setting values

    Returns:
        Validated AppSettings

    Raises:
        ValidationError: If the file is unreadable, not a mapping, or invalid

    Example:
        >>> settings = load_settings("~/.dbexplorer/settings.yaml", default_query_timeout_ms=60000)
    """
    data: Dict[str, Any] = {}
    source = path or os.getenv(CONFIG_ENV_VAR)

    if source:
        config_path = Path(source).expanduser()
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(
                f"Cannot read settings file {config_path}: {e}",
                code=ErrorCodes.CONFIG_INVALID,
                context={"path": str(config_path)},
                cause=e,
            ) from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValidationError(
                f"Settings file must contain a mapping: {config_path}",
                code=ErrorCodes.CONFIG_INVALID,
                context={"path": str(config_path)},
            )
        data.update(loaded)

    data.update(overrides)

    try:
        return AppSettings(**data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid settings: {e}",
            code=ErrorCodes.CONFIG_INVALID,
            cause=e,
        ) from e

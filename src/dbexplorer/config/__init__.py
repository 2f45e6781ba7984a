"""DB Explorer configuration models and settings loading."""

from .loader import load_settings
from .models import (
    DEFAULT_PORTS,
    SUPPORTED_ENGINES,
    AppSettings,
    BaseConfig,
    ConnectionProfile,
    EngineType,
    LoggingConfig,
    MonitoringConfig,
)

__all__ = [
    "BaseConfig",
    "ConnectionProfile",
    "EngineType",
    "SUPPORTED_ENGINES",
    "DEFAULT_PORTS",
    "MonitoringConfig",
    "LoggingConfig",
    "AppSettings",
    "load_settings",
]

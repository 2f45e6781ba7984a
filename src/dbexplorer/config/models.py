"""Configuration models for DB Explorer.

Classes:
    BaseConfig: Base configuration class
    ConnectionProfile: A stored, user-named database connection configuration
    MonitoringConfig: Monitoring snapshot settings
    LoggingConfig: Logging configuration
    AppSettings: Application-wide settings

Example:
    >>> profile = ConnectionProfile(
    ...     name="Local MySQL",
    ...     type="mysql",
    ...     host="localhost",
    ...     database="shop",
    ...     username="root",
    ...     password="secret123",
    ... )
    >>> profile.port
    3306
"""

import os
import re
from pathlib import Path
from typing import Any, ClassVar, Dict, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

EngineType = Literal["mysql", "postgresql", "mssql", "sqlite", "oracle", "mongodb"]
SSLMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]

SUPPORTED_ENGINES = get_args(EngineType)

DEFAULT_PORTS: Dict[str, int] = {
    "mysql": 3306,
    "postgresql": 5432,
    "mssql": 1433,
    "oracle": 1521,
    "mongodb": 27017,
}

DEFAULT_PASSPHRASE = "dbexplorer-local-key"
REDACTED = None

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


class BaseConfig(BaseModel):
    """Base configuration class with common functionality.

    String values of the form ``${VAR}`` or ``${VAR:default}`` are resolved
    from the environment unless a subclass turns ``resolve_env`` off.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    resolve_env: ClassVar[bool] = True

    @model_validator(mode="before")
    @classmethod
    def resolve_environment_variables(cls, values: Any) -> Any:
        if not cls.resolve_env or not isinstance(values, dict):
            return values

        def replace_env_var(match: "re.Match[str]") -> str:
            var_spec = match.group(1)
            var_name, _, default = var_spec.partition(":")
            return os.getenv(var_name, default)

        def resolve_value(value: Any) -> Any:
            if isinstance(value, str):
                return _ENV_PATTERN.sub(replace_env_var, value)
            if isinstance(value, dict):
                return {k: resolve_value(v) for k, v in value.items()}
            if isinstance(value, list):
                return [resolve_value(item) for item in value]
            return value

        return {key: resolve_value(value) for key, value in values.items()}

    def to_dict(self, *, mask_secrets: bool = True, by_alias: bool = False) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary.

        Args:
            mask_secrets: Replace secret values with a mask instead of revealing them
            by_alias: Use wire (alias) field names

        Returns:
            Dictionary representation of the configuration
        """
        data = self.model_dump(by_alias=by_alias)

        def convert(value: Any) -> Any:
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            if isinstance(value, list):
                return [convert(item) for item in value]
            if isinstance(value, SecretStr):
                return "***MASKED***" if mask_secrets else value.get_secret_value()
            if isinstance(value, Path):
                return str(value)
            return value

        return convert(data)


class ConnectionProfile(BaseConfig):
    """A stored, user-named configuration for reaching one database.

    Wire names are camelCase (``sslMode``, ``additionalParams``,
    ``queryTimeout``); Python attribute names are snake_case. Either form is
    accepted on input.

    Attributes:
        id: Opaque unique identifier, assigned by the registry on first save
        name: Display name
        type: Engine type
        host: Server host (ignored for sqlite)
        port: Server port, defaulted per engine when absent
        database: Database name, or the file path for sqlite
        username: Login name
        password: Plaintext password, only held in memory
        timeout: Connect timeout in milliseconds
        query_timeout: Query/plan timeout in milliseconds
        ssl_mode: TLS negotiation mode
        additional_params: Engine-specific extra options
        description: Free-form notes
    """

    resolve_env: ClassVar[bool] = False

    id: Optional[str] = Field(None, description="Profile identifier")
    name: str = Field("", description="Display name")
    type: EngineType = Field(..., description="Database engine type")
    host: Optional[str] = Field(None, description="Server host")
    port: Optional[int] = Field(None, description="Server port")
    database: Optional[str] = Field(None, description="Database name or sqlite file path")
    username: Optional[str] = Field(None, description="Login name")
    password: Optional[SecretStr] = Field(None, description="Plaintext password")
    timeout: int = Field(5000, gt=0, description="Connect timeout in milliseconds")
    query_timeout: Optional[int] = Field(
        None, gt=0, alias="queryTimeout", description="Query timeout in milliseconds"
    )
    ssl_mode: Optional[SSLMode] = Field(None, alias="sslMode", description="TLS mode")
    ssl_ca: Optional[str] = Field(None, alias="sslCa", description="CA bundle path")
    ssl_cert: Optional[str] = Field(None, alias="sslCert", description="Client certificate path")
    ssl_key: Optional[str] = Field(None, alias="sslKey", description="Client key path")
    additional_params: Dict[str, Any] = Field(
        default_factory=dict, alias="additionalParams", description="Extra engine options"
    )
    description: Optional[str] = Field(None, description="Notes")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.strip().lower()
            return {"postgres": "postgresql", "sqlserver": "mssql", "mongo": "mongodb"}.get(
                lowered, lowered
            )
        return v

    @field_validator("host", "database", "username", mode="before")
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("port", mode="before")
    @classmethod
    def blank_port_is_default(cls, v: Any) -> Any:
        if v == "" or v == 0:
            return None
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 65535:
            raise ValueError(f"Port out of range: {v}")
        return v

    @field_validator("password", mode="before")
    @classmethod
    def empty_password_is_none(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    @model_validator(mode="after")
    def apply_engine_defaults(self) -> "ConnectionProfile":
        if self.type == "sqlite":
            return self
        if self.port is None:
            # object.__setattr__ skips validate_assignment re-running this validator
            object.__setattr__(self, "port", DEFAULT_PORTS[self.type])
        if self.host is None:
            object.__setattr__(self, "host", "localhost")
        return self

    @property
    def plain_password(self) -> Optional[str]:
        return self.password.get_secret_value() if self.password is not None else None

    @property
    def connect_timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    @property
    def uses_tls(self) -> bool:
        return self.ssl_mode in ("require", "verify-ca", "verify-full")

    @property
    def verifies_certificate(self) -> bool:
        return self.ssl_mode in ("verify-ca", "verify-full")

    @property
    def endpoint(self) -> str:
        if self.type == "sqlite":
            return self.database or ""
        return f"{self.host}:{self.port}"

    def to_wire(self, *, include_password: bool) -> Dict[str, Any]:
        """Serialize with camelCase keys for the request/response boundary.

        Args:
            include_password: Emit the plaintext password; otherwise the
                password is redacted and ``hasPassword`` tells whether one exists
        """
        data = self.to_dict(mask_secrets=False, by_alias=True)
        data["hasPassword"] = self.password is not None
        if not include_password:
            data["password"] = REDACTED
        return data

    def log_fields(self) -> Dict[str, Any]:
        return {"profile_id": self.id, "profile_name": self.name, "engine": self.type}


class MonitoringConfig(BaseConfig):
    """Monitoring snapshot settings."""

    top_queries: int = Field(5, ge=1, le=50, description="Top queries to report")
    probe_timeout_ms: int = Field(5000, gt=0, description="Timeout for a single metric probe")


class LoggingConfig(BaseConfig):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )
    format: Literal["json", "text"] = Field("json", description="Log format")
    file_path: Optional[Path] = Field(None, description="Log file path")
    max_file_size: int = Field(10485760, gt=0, description="Max file size in bytes (10MB)")
    backup_count: int = Field(5, ge=0, description="Number of backup files")
    console_output: bool = Field(True, description="Enable console output")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("file_path", mode="before")
    @classmethod
    def expand_file_path(cls, v: Any) -> Any:
        if isinstance(v, str) and v:
            return Path(v).expanduser()
        return v


def _default_passphrase() -> SecretStr:
    return SecretStr(os.getenv("DBEXPLORER_PASSPHRASE", DEFAULT_PASSPHRASE))


class AppSettings(BaseConfig):
    """Application-wide settings.

    Example:
        >>> settings = AppSettings(data_dir="/tmp/dbx")
        >>> settings.connections_dir
        PosixPath('/tmp/dbx/connections')
    """

    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".dbexplorer", description="Application data directory"
    )
    connections_dir: Optional[Path] = Field(None, description="Profile record directory")
    encryption_passphrase: SecretStr = Field(
        default_factory=_default_passphrase, description="Passphrase the vault key is derived from"
    )
    default_query_timeout_ms: int = Field(30000, gt=0, description="Query timeout fallback")
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("data_dir", "connections_dir", mode="before")
    @classmethod
    def expand_user(cls, v: Any) -> Any:
        if isinstance(v, str) and v:
            return Path(v).expanduser()
        return v

    @field_validator("encryption_passphrase")
    @classmethod
    def validate_passphrase(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("Encryption passphrase cannot be empty")
        return v

    @model_validator(mode="after")
    def derive_connections_dir(self) -> "AppSettings":
        if self.connections_dir is None:
            object.__setattr__(self, "connections_dir", self.data_dir / "connections")
        return self

# pyright: reportAny=false, reportExplicitAny=false
"""Configuration models.

This module defines the typed configuration objects used by the supervisor:
- LogLevel / LogFormat: logging enums
- LoggingConfig: logging sink settings
- ServiceConfiguration: one validated discovery source
- SupervisorSettings: process-wide supervisor settings
"""

from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ovpnsvc.exceptions import ConfigurationError

from . import _defaults


class LogLevel(StrEnum):
    """Log level threshold values."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold. None defers to OVPNSVC_LOG_LEVEL, then INFO.
        format: Log output format.
        file: Path to log file (empty logs to the console).
        max_bytes: Rotate the log file at this size. Requires backup_count.
        backup_count: Number of rotated files to keep. Requires max_bytes.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel | None = None
    format: LogFormat = LogFormat.TEXT
    file: str = ""
    max_bytes: int | None = None
    backup_count: int | None = None


def parse_log_append(value: object) -> bool:
    """Parse the log append flag as stored by discovery sources.

    Strings must start with ``0`` or ``1``. Booleans and the integers 0/1
    are accepted as-is.

    Raises:
        ValueError: If the flag is not 0 or 1.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return value == 1
    if isinstance(value, str) and value[:1] in ("0", "1"):
        return value[0] == "1"
    msg = "Log file append flag must be 1 or 0"
    raise ValueError(msg)


class ServiceConfiguration(BaseModel):
    """Settings read from one discovery source.

    Shared read-only by every child supervisor created from it.

    Attributes:
        exe_path: Path to the OpenVPN executable launched by the helper.
        config_dir: Directory holding the tunnel configuration files.
        config_ext: Configuration file extension, always with a leading dot.
        log_dir: Directory receiving one log file per tunnel.
        log_append: Whether OpenVPN appends to existing log files.
        source: Name of the discovery source these values came from.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    exe_path: Path
    config_dir: Path
    config_ext: str
    log_dir: Path
    log_append: bool = False
    source: str = ""

    @field_validator("config_dir", mode="before")
    @classmethod
    def _require_config_dir(cls, value: Any) -> Any:
        if not str(value).strip():
            msg = "config directory must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("config_ext", mode="before")
    @classmethod
    def _normalize_extension(cls, value: Any) -> Any:
        ext = str(value).strip()
        if not ext.lstrip("."):
            msg = "config extension must not be empty"
            raise ValueError(msg)
        return ext if ext.startswith(".") else f".{ext}"

    @field_validator("log_append", mode="before")
    @classmethod
    def _parse_log_append(cls, value: Any) -> bool:
        return parse_log_append(value)

    @classmethod
    def from_values(cls, values: Mapping[str, object], *, source: str = "") -> Self:
        """Build a configuration from raw discovery values.

        The value names follow the OpenVPN registry layout: ``exe_path``,
        ``autostart_config_dir``, ``config_ext``, ``log_dir`` and
        ``log_append``.

        Args:
            values: Raw values read from a discovery source.
            source: Name of the discovery source, used in error messages.

        Returns:
            The validated configuration.

        Raises:
            ConfigurationError: If a value is missing or invalid.
        """
        for key in _defaults.REGISTRY_VALUE_NAMES:
            if values.get(key) is None:
                msg = f"Discovery values are incomplete for {source or 'source'}: missing {key}"
                raise ConfigurationError(msg, source=source, key=key)

        try:
            return cls(
                exe_path=values["exe_path"],
                config_dir=values["autostart_config_dir"],
                config_ext=values["config_ext"],
                log_dir=values["log_dir"],
                log_append=values["log_append"],
                source=source,
            )
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"])
            msg = f"Invalid discovery value for {source or 'source'}: {key}: {first['msg']}"
            raise ConfigurationError(msg, source=source, key=key) from e


class SupervisorSettings(BaseModel):
    """Process-wide supervisor settings.

    Attributes:
        pipe_name: Name of the helper's Windows named pipe.
        socket_path: Path of the helper's Unix domain socket on POSIX.
        connect_timeout: Seconds to wait for the helper channel to open.
        response_timeout: Seconds to wait for the helper's reply.
        poll_interval: Seconds between process liveness checks.
        restart_delay: Seconds to wait before restarting an exited process.
        signal_dir: Directory for POSIX exit signal files. Uses the user
            runtime directory if None.
        use_registry: Read discovery sources from the Windows registry.
        logging: Logging sink settings.
        sources: Raw discovery tables from the settings file.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    pipe_name: str = _defaults.PIPE_NAME
    socket_path: Path = Path(_defaults.SOCKET_PATH)
    connect_timeout: float = Field(default=_defaults.CONNECT_TIMEOUT, gt=0)
    response_timeout: float = Field(default=_defaults.RESPONSE_TIMEOUT, gt=0)
    poll_interval: float = Field(default=_defaults.POLL_INTERVAL, gt=0)
    restart_delay: float = Field(default=_defaults.RESTART_DELAY, ge=0)
    signal_dir: Path | None = None
    use_registry: bool = True
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sources: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, path: Path | None = None) -> Self:
        """Build settings from a parsed settings document.

        The document layout is a ``[supervisor]`` table, a ``[logging]``
        table and any number of ``[[sources]]`` tables.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        values: dict[str, Any] = dict(data.get("supervisor", {}))
        if "logging" in data:
            values["logging"] = data["logging"]
        if "sources" in data:
            values["sources"] = tuple(data["sources"])

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"])
            msg = f"Invalid setting {key}: {first['msg']}"
            raise ConfigurationError(msg, key=key, path=path) from e

# pyright: reportAny=false
"""Settings file loading."""

import tomllib
from pathlib import Path
from typing import Any

import platformdirs

from ovpnsvc.exceptions import ConfigurationError

from . import _defaults
from ._models import SupervisorSettings


def get_settings_path() -> Path:
    r"""Get the platform-specific settings file path.

    - Linux: ``/etc/xdg/ovpnsvc/config.toml``
    - macOS: ``/Library/Application Support/ovpnsvc/config.toml``
    - Windows: ``%PROGRAMDATA%\ovpnsvc\config.toml``

    The path is returned regardless of whether the file exists.
    """
    return platformdirs.site_config_path(_defaults.APP_NAME) / _defaults.SETTINGS_FILE_NAME


def get_signal_dir() -> Path:
    """Get the default directory for POSIX exit signal files."""
    return platformdirs.user_runtime_path(_defaults.APP_NAME)


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file cannot be parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse settings file {path}: {e}"
        raise ConfigurationError(msg, path=path) from e


def load_settings(path: Path | None = None) -> SupervisorSettings:
    """Load supervisor settings.

    An explicit path must exist. Without one, the platform settings file is
    used when present and built-in defaults otherwise.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigurationError: If the file cannot be parsed or validated.
    """
    if path is None:
        path = get_settings_path()
        if not path.is_file():
            return SupervisorSettings()

    return SupervisorSettings.from_dict(read_toml_file(path), path=path)

"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes
- Console utilities for error handling
- Settings loading with CLI error reporting
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Never

from ovpnsvc.config import ConfigurationError, load_settings

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from ovpnsvc.config import SupervisorSettings

__all__ = [
    "ExitCode",
    "exit_with_error",
    "get_error_console",
    "load_settings_or_exit",
]


class ExitCode(IntEnum):
    """Standard exit codes for ovpnsvc CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    NOT_FOUND = 3
    INTERNAL_ERROR = 5


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr."""
    from rich.console import Console  # noqa: PLC0415

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(code)


def load_settings_or_exit(
    config: Path | None,
    *,
    no_registry: bool = False,
) -> SupervisorSettings:
    """Load settings, exiting with an error message on failure.

    Args:
        config: Explicit settings file, or None for the platform default.
        no_registry: Disable registry discovery regardless of settings.
    """
    try:
        settings = load_settings(config)
    except FileNotFoundError:
        exit_with_error(f"Settings file not found: {config}", ExitCode.NOT_FOUND)
    except ConfigurationError as e:
        exit_with_error(str(e), ExitCode.CONFIG_ERROR)

    if no_registry:
        settings = settings.model_copy(update={"use_registry": False})
    return settings

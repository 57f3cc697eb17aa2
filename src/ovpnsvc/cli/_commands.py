# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""ovpnsvc commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

from cyclopts import Parameter

from ovpnsvc import __version__

from ._shared import ExitCode, exit_with_error, load_settings_or_exit

if TYPE_CHECKING:
    from cyclopts import App

ConfigOption = Annotated[
    Path | None,
    Parameter(name="--config", help="Path to the settings file"),
]
NoRegistryOption = Annotated[
    bool,
    Parameter(name="--no-registry", help="Ignore OpenVPN registry settings"),
]


def run(*, config: ConfigOption = None, no_registry: NoRegistryOption = False) -> None:
    """Start every discovered tunnel and supervise it until SIGINT/SIGTERM."""
    import anyio  # noqa: PLC0415

    from ovpnsvc.config import ConfigurationError, collect_sources  # noqa: PLC0415
    from ovpnsvc.supervisor import SupervisorRegistry  # noqa: PLC0415
    from ovpnsvc.utils import create_service_logger  # noqa: PLC0415

    settings = load_settings_or_exit(config, no_registry=no_registry)
    logger = create_service_logger(settings.logging)
    registry = SupervisorRegistry(settings, logger=logger)

    try:
        anyio.run(registry.run, collect_sources(settings))
    except ConfigurationError as e:
        exit_with_error(str(e), ExitCode.CONFIG_ERROR)


def list_tunnels(*, config: ConfigOption = None, no_registry: NoRegistryOption = False) -> None:
    """List the tunnel config files that would be supervised."""
    from rich.console import Console  # noqa: PLC0415
    from rich.table import Table  # noqa: PLC0415

    from ovpnsvc.config import (  # noqa: PLC0415
        ConfigurationError,
        collect_sources,
        discover_configurations,
        enumerate_config_files,
    )
    from ovpnsvc.supervisor import derive_log_file  # noqa: PLC0415
    from ovpnsvc.utils import create_service_logger  # noqa: PLC0415

    settings = load_settings_or_exit(config, no_registry=no_registry)
    logger = create_service_logger(settings.logging)

    try:
        configurations = discover_configurations(collect_sources(settings), logger=logger)
    except ConfigurationError as e:
        exit_with_error(str(e), ExitCode.CONFIG_ERROR)

    table = Table(title="OpenVPN tunnels")
    table.add_column("Source")
    table.add_column("Config file")
    table.add_column("Log file")
    table.add_column("Log mode")

    for service_config in configurations:
        try:
            config_files = enumerate_config_files(service_config)
        except ConfigurationError as e:
            logger.error("config_dir_unreadable", source=service_config.source, error=str(e))
            continue
        for config_file in config_files:
            table.add_row(
                service_config.source,
                str(config_file),
                str(derive_log_file(service_config, config_file)),
                "append" if service_config.log_append else "truncate",
            )

    Console().print(table)


def version() -> None:
    """Print the ovpnsvc version."""
    print(__version__)  # noqa: T201


def register_commands(app: App) -> None:
    app.command(run, name="run")
    app.command(list_tunnels, name="list")
    app.command(version, name="version")

"""Registry coordinating every supervised tunnel.

This module provides the SupervisorRegistry class that turns discovery
sources into ChildSupervisors, starts them and broadcasts shutdown.
"""

from __future__ import annotations

import os
import signal
from types import MappingProxyType
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from ovpnsvc.config import (
    ConfigurationError,
    SupervisorSettings,
    discover_configurations,
    enumerate_config_files,
)
from ovpnsvc.utils import create_service_logger

from ._child import ChildSupervisor
from ._ipc import HelperClient
from ._signal import default_signaller

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

    from ovpnsvc.config import DiscoverySource, ServiceConfiguration

    from ._signal import ExitSignaller


@final
class SupervisorRegistry:
    """Owns the ChildSupervisors of every discovered tunnel.

    Children are keyed by config file path. start_all() and stop_all() are
    the only operations that change the collection or fan out to children.
    Errors from one child are logged and never affect its siblings.
    """

    __slots__ = (
        "_children",
        "_client",
        "_logger",
        "_settings",
        "_shutdown_event",
        "_signal_scope",
        "_signaller",
        "_supervisor_pid",
        "_task_group",
    )

    def __init__(  # noqa: PLR0913
        self,
        settings: SupervisorSettings | None = None,
        *,
        client: HelperClient | None = None,
        signaller: ExitSignaller | None = None,
        logger: FilteringBoundLogger | None = None,
        task_group: anyio.abc.TaskGroup | None = None,
        supervisor_pid: int | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            settings: Supervisor settings. Defaults apply if None.
            client: Helper client. Built from settings if None.
            signaller: Exit signal mechanism. Platform default if None.
            logger: Logger. Built from the logging settings if None.
            task_group: Task group for child tasks. run() provides one if None.
            supervisor_pid: PID used in exit signal names. Defaults to the
                current process.
        """
        self._settings = settings or SupervisorSettings()
        self._logger = logger or create_service_logger(self._settings.logging)
        self._client = client or HelperClient.from_settings(self._settings, logger=self._logger)
        self._signaller = signaller or default_signaller(self._settings)
        self._task_group = task_group
        self._supervisor_pid = supervisor_pid if supervisor_pid is not None else os.getpid()
        self._children: dict[Path, ChildSupervisor] = {}
        self._shutdown_event: anyio.Event | None = None
        self._signal_scope: anyio.CancelScope | None = None

    @property
    def children(self) -> Mapping[Path, ChildSupervisor]:
        """Return a read-only view of the supervised tunnels."""
        return MappingProxyType(self._children)

    def get_child(self, config_file: Path) -> ChildSupervisor:
        """Get the supervisor for a config file.

        Raises:
            KeyError: If the config file is not supervised.
        """
        return self._children[config_file]

    def _create_child(self, config: ServiceConfiguration, config_file: Path) -> ChildSupervisor:
        if self._task_group is None:
            msg = "SupervisorRegistry needs a task group; use run() or pass task_group"
            raise RuntimeError(msg)
        return ChildSupervisor(
            config,
            config_file,
            task_group=self._task_group,
            client=self._client,
            signaller=self._signaller,
            logger=self._logger,
            poll_interval=self._settings.poll_interval,
            restart_delay=self._settings.restart_delay,
            supervisor_pid=self._supervisor_pid,
        )

    async def start_all(self, sources: Iterable[DiscoverySource]) -> None:
        """Discover tunnel configs and start one child per config file.

        Args:
            sources: Discovery sources in precedence order.

        Raises:
            ConfigurationError: If no discovery source was supplied at all.
        """
        try:
            configurations = discover_configurations(sources, logger=self._logger)
        except ConfigurationError as e:
            self._logger.error("discovery_failed", error=str(e))
            raise

        await self._start_configurations(configurations)

    async def _start_configurations(self, configurations: Iterable[ServiceConfiguration]) -> None:
        for config in configurations:
            try:
                config_files = enumerate_config_files(config)
            except ConfigurationError as e:
                self._logger.error("config_dir_unreadable", source=config.source, error=str(e))
                continue

            for config_file in config_files:
                if self._shutdown_event is not None and self._shutdown_event.is_set():
                    return
                if config_file in self._children:
                    continue
                try:
                    child = self._create_child(config, config_file)
                    self._children[config_file] = child
                    _ = await child.start()
                except Exception as e:  # noqa: BLE001
                    self._logger.error(
                        "child_start_error",
                        config_file=str(config_file),
                        error=str(e),
                        error_type=type(e).__name__,
                    )

        self._logger.info("children_started", count=len(self._children))

    def stop_all(self) -> None:
        """Signal every child to exit.

        Does not wait for the OpenVPN processes to exit.
        """
        self._logger.info("stopping_children", count=len(self._children))
        for config_file, child in self._children.items():
            try:
                child.stop()
            except Exception as e:  # noqa: BLE001
                self._logger.error(
                    "child_stop_error",
                    config_file=str(config_file),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def run(
        self,
        sources: Iterable[DiscoverySource],
        *,
        handle_signals: bool = True,
    ) -> None:
        """Supervise every discovered tunnel until shutdown.

        Blocks until SIGINT/SIGTERM arrives or shutdown() is called, then
        signals every child and returns once monitor and restart tasks have
        wound down.

        Args:
            sources: Discovery sources in precedence order.
            handle_signals: Install SIGINT/SIGTERM handlers.

        Raises:
            ConfigurationError: If no discovery source was supplied at all.
        """
        try:
            configurations = discover_configurations(sources, logger=self._logger)
        except ConfigurationError as e:
            self._logger.error("discovery_failed", error=str(e))
            raise

        self._shutdown_event = anyio.Event()

        async with anyio.create_task_group() as tg:
            self._task_group = tg

            if handle_signals:
                self._signal_scope = anyio.CancelScope()
                tg.start_soon(self._handle_signals, self._signal_scope)

            await self._start_configurations(configurations)
            await self._shutdown_event.wait()

            self.stop_all()
            if self._signal_scope is not None:
                self._signal_scope.cancel()

        self._task_group = None
        self._signal_scope = None
        self._logger.info("supervisor_stopped")

    async def _handle_signals(self, scope: anyio.CancelScope) -> None:
        with scope:
            try:
                with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
                    async for signum in signals:
                        self._logger.info("shutdown_signal", signal=signal.Signals(signum).name)
                        self.shutdown()
                        break
            except NotImplementedError:
                # Not supported by the asyncio backend on Windows
                self._logger.debug("signal_handling_unavailable")

    def shutdown(self) -> None:
        """Trigger shutdown of a running run() call."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def get_status(self) -> dict[str, dict[str, object]]:
        """Return status summaries keyed by config file path."""
        return {
            str(config_file): child.get_status()
            for config_file, child in self._children.items()
        }

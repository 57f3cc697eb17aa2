"""Supervisor for a single OpenVPN tunnel.

This module provides the ChildSupervisor class that launches one OpenVPN
process through the privileged helper, polls it for exit, restarts it after a
fixed delay and asks it to exit gracefully on shutdown.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from ovpnsvc.config import _defaults
from ovpnsvc.exceptions import OvpnServiceError, SignalCreationError
from ovpnsvc.utils import get_timestamp

from ._ipc import build_command_line
from ._models import ChildState, ChildStatus, StartupRequest
from ._process import has_exited, resolve_process

if TYPE_CHECKING:
    from pathlib import Path

    import psutil
    from structlog.typing import FilteringBoundLogger

    from ovpnsvc.config import ServiceConfiguration

    from ._ipc import HelperClient
    from ._signal import ExitSignaller


def derive_exit_event(config_file: Path, supervisor_pid: int | None = None) -> str:
    """Return the exit signal name for a tunnel.

    The name is ``<config file name>_<supervisor pid>``, which keeps it
    unique per machine while the supervisor runs.
    """
    pid = supervisor_pid if supervisor_pid is not None else os.getpid()
    return f"{config_file.name}_{pid}"


def derive_log_file(config: ServiceConfiguration, config_file: Path) -> Path:
    """Return the OpenVPN log file for a tunnel.

    The log is named after the config file with its extension replaced by
    ``.log``, inside the configured log directory.
    """
    name = config_file.name
    if name.endswith(config.config_ext):
        name = name[: -len(config.config_ext)]
    return config.log_dir / f"{name}.log"


@final
class ChildSupervisor:
    """Supervises one OpenVPN process defined by one config file.

    Each successful start begins a new generation with its own monitor cancel
    scope. The scope is handed to the monitor task by value, so stopping a
    stale generation can never cancel a newer monitor.

    Attributes:
        config: Shared discovery configuration.
        config_file: Tunnel configuration file.
        exit_event: Name of the exit signal watched by the OpenVPN process.
        log_file: Log file passed to OpenVPN.
        status: Mutable runtime status.
    """

    __slots__ = (
        "_client",
        "_generation",
        "_logger",
        "_monitor_scope",
        "_poll_interval",
        "_process",
        "_restart_delay",
        "_restart_scope",
        "_signalled_generation",
        "_signaller",
        "_start_lock",
        "_stop_requested",
        "_task_group",
        "config",
        "config_file",
        "exit_event",
        "log_file",
        "status",
    )

    def __init__(  # noqa: PLR0913
        self,
        config: ServiceConfiguration,
        config_file: Path,
        *,
        task_group: anyio.abc.TaskGroup,
        client: HelperClient,
        signaller: ExitSignaller,
        logger: FilteringBoundLogger,
        poll_interval: float = _defaults.POLL_INTERVAL,
        restart_delay: float = _defaults.RESTART_DELAY,
        supervisor_pid: int | None = None,
    ) -> None:
        """Initialize the child supervisor.

        Args:
            config: Discovery configuration the config file belongs to.
            config_file: Path to the tunnel's config file.
            task_group: Task group that runs monitor and restart tasks.
            client: Client for the privileged helper.
            signaller: Exit signal mechanism.
            logger: Logger; the config file is bound to every entry.
            poll_interval: Seconds between liveness checks.
            restart_delay: Seconds between an unexpected exit and the restart.
            supervisor_pid: PID used in the exit signal name. Defaults to the
                current process.
        """
        self.config = config
        self.config_file = config_file
        self.exit_event = derive_exit_event(config_file, supervisor_pid)
        self.log_file = derive_log_file(config, config_file)
        self.status = ChildStatus()

        self._task_group = task_group
        self._client = client
        self._signaller = signaller
        self._logger = logger.bind(config_file=str(config_file))
        self._poll_interval = poll_interval
        self._restart_delay = restart_delay

        self._process: psutil.Process | None = None
        self._monitor_scope: anyio.CancelScope | None = None
        self._restart_scope: anyio.CancelScope | None = None
        self._generation = 0
        self._signalled_generation: int | None = None
        self._stop_requested = False
        self._start_lock = anyio.Lock()

    @property
    def name(self) -> str:
        return self.config_file.name

    @property
    def state(self) -> ChildState:
        return self.status.state

    @property
    def pid(self) -> int | None:
        return self.status.pid

    @property
    def process(self) -> psutil.Process | None:
        """Return the handle of the current OpenVPN process, if any."""
        return self._process

    @property
    def generation(self) -> int:
        """Return the number of successful starts so far."""
        return self._generation

    @property
    def restart_pending(self) -> bool:
        return self._restart_scope is not None

    @property
    def command_line(self) -> str:
        return build_command_line(
            log_file=self.log_file,
            config_file=self.config_file,
            exit_event=self.exit_event,
            log_append=self.config.log_append,
        )

    async def start(self) -> bool:
        """Start the OpenVPN process for this tunnel.

        Clears an earlier stop request. Does nothing if the process is
        already running. Failures are logged and leave the child in the
        FAILED state without a retry.

        Returns:
            True if a process is running after the call, False otherwise.
        """
        self._stop_requested = False
        return await self._start()

    async def _start(self) -> bool:
        async with self._start_lock:
            if self._process is not None and not has_exited(self._process):
                if self.status.state == ChildState.RUNNING:
                    return True
                self._logger.warning(
                    "previous_process_still_running",
                    pid=self._process.pid,
                )
                return False

            if self._stop_requested:
                return False

            self.status.state = ChildState.STARTING
            request = StartupRequest(
                config_dir=str(self.config.config_dir),
                command_line=self.command_line,
            )

            try:
                self._signaller.clear(self.exit_event)
                self._logger.info("helper_request", channel=self._client.transport.channel)
                response = await self._client.request_startup(request)
                process = resolve_process(response.pid)
            except OvpnServiceError as e:
                self._process = None
                self.status.pid = None
                self.status.last_error = e
                self.status.state = ChildState.FAILED
                self._logger.error(
                    "start_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False

            self._process = process
            self._generation += 1
            generation = self._generation
            self.status.pid = process.pid
            self.status.started_at = get_timestamp()
            self.status.last_error = None
            self.status.state = ChildState.RUNNING

            if self._stop_requested:
                # stop() ran while the helper was launching the process
                self._signal_exit(process, generation)
                self.status.state = ChildState.STOPPED
                return True

            scope = anyio.CancelScope()
            self._monitor_scope = scope
            self._task_group.start_soon(self._monitor, process, scope, generation)
            self._logger.info("monitoring_started", pid=process.pid)
            return True

    async def _monitor(
        self,
        process: psutil.Process,
        scope: anyio.CancelScope,
        generation: int,
    ) -> None:
        """Poll the process until it exits or the scope is cancelled."""
        self._logger.debug("polling_started", pid=process.pid)

        with scope:
            while not has_exited(process):
                await anyio.sleep(self._poll_interval)

        if scope.cancel_called:
            self._logger.info("monitoring_cancelled", pid=process.pid)
            return

        if generation != self._generation:
            return

        self._logger.warning("process_exited", pid=process.pid)
        self._process = None
        self._monitor_scope = None
        self.status.pid = None
        self.status.stopped_at = get_timestamp()
        self.status.state = ChildState.EXIT_DETECTED
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if self._restart_scope is not None:
            return

        scope = anyio.CancelScope()
        self._restart_scope = scope
        self.status.restart_count += 1
        self.status.state = ChildState.RESTART_SCHEDULED
        self._logger.info(
            "restart_scheduled",
            delay=self._restart_delay,
            restart_count=self.status.restart_count,
        )
        self._task_group.start_soon(self._restart_after_delay, scope)

    async def _restart_after_delay(self, scope: anyio.CancelScope) -> None:
        with scope:
            await anyio.sleep(self._restart_delay)

        if self._restart_scope is scope:
            self._restart_scope = None

        if scope.cancel_called:
            self._logger.debug("restart_cancelled")
            return

        _ = await self._start()

    def stop(self) -> None:
        """Ask the OpenVPN process to exit and stop supervising it.

        Cancels a pending restart, sets the exit signal if the process is
        still alive and cancels monitoring. Signal failures are logged and
        never raised. Does not wait for the process to exit.
        """
        self._stop_requested = True

        if self._restart_scope is not None:
            self._restart_scope.cancel()
            self._restart_scope = None
            self._logger.info("pending_restart_cancelled")

        process = self._process
        if process is not None and not has_exited(process):
            self._signal_exit(process, self._generation)

        if self._monitor_scope is not None:
            self._monitor_scope.cancel()
            self._monitor_scope = None

        if self.status.state != ChildState.STOPPED:
            self.status.state = ChildState.STOPPED
            self.status.stopped_at = get_timestamp()

    def _signal_exit(self, process: psutil.Process, generation: int) -> None:
        if self._signalled_generation == generation:
            return

        self._logger.info("signalling_exit", pid=process.pid, exit_event=self.exit_event)
        try:
            self._signaller.set(self.exit_event)
        except SignalCreationError as e:
            self._logger.error(
                "exit_signal_failed",
                exit_event=self.exit_event,
                error=str(e),
            )
            return
        self._signalled_generation = generation

    def get_status(self) -> dict[str, object]:
        """Return a status summary for this tunnel."""
        return {
            "state": self.status.state.value,
            "pid": self.status.pid,
            "restart_count": self.status.restart_count,
            "started_at": self.status.started_at,
            "stopped_at": self.status.stopped_at,
            "exit_event": self.exit_event,
            "log_file": str(self.log_file),
            "last_error": str(self.status.last_error) if self.status.last_error else None,
        }

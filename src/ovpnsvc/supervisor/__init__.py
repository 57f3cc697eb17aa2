"""Supervisor package for OpenVPN tunnel processes.

Tunnel processes are launched by the privileged OpenVPN interactive service,
polled for exit, restarted after a fixed delay and asked to exit through a
named exit signal on shutdown.

Key Components:
    - HelperClient: Startup request/response exchange with the helper
    - StartupRequest / StartupResponse: Helper wire messages
    - ExitSignaller: Named exit signal mechanism
    - ChildSupervisor: Single tunnel lifecycle manager
    - SupervisorRegistry: Multi-tunnel coordinator

Example:
    >>> from ovpnsvc.config import collect_sources, load_settings
    >>> from ovpnsvc.supervisor import SupervisorRegistry
    >>> settings = load_settings()
    >>> registry = SupervisorRegistry(settings)
    >>> await registry.run(collect_sources(settings))  # Blocks until shutdown
"""

from ._child import ChildSupervisor, derive_exit_event, derive_log_file
from ._ipc import (
    HelperClient,
    HelperTransport,
    NamedPipeTransport,
    UnixSocketTransport,
    build_command_line,
    default_transport,
)
from ._models import ChildState, ChildStatus, StartupRequest, StartupResponse
from ._process import has_exited, resolve_process
from ._registry import SupervisorRegistry
from ._signal import (
    ExitSignaller,
    FileExitSignaller,
    Win32EventSignaller,
    default_signaller,
    validate_signal_name,
)

__all__ = [
    "ChildState",
    "ChildStatus",
    "ChildSupervisor",
    "ExitSignaller",
    "FileExitSignaller",
    "HelperClient",
    "HelperTransport",
    "NamedPipeTransport",
    "StartupRequest",
    "StartupResponse",
    "SupervisorRegistry",
    "UnixSocketTransport",
    "Win32EventSignaller",
    "build_command_line",
    "default_signaller",
    "default_transport",
    "derive_exit_event",
    "derive_log_file",
    "has_exited",
    "resolve_process",
    "validate_signal_name",
]

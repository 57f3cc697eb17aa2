"""Named exit signals.

OpenVPN started with ``--service <name> 0`` waits on a named event and
shuts down gracefully once it is set. On Windows the signal is a named
manual-reset event. On other platforms it is a marker file named after the
signal in a runtime directory.
"""

from __future__ import annotations

import sys
from functools import cache
from typing import TYPE_CHECKING, Protocol, final, runtime_checkable

from ovpnsvc.config import get_signal_dir
from ovpnsvc.exceptions import SignalCreationError

if TYPE_CHECKING:
    from pathlib import Path

    from ovpnsvc.config import SupervisorSettings

_FORBIDDEN_CHARACTERS = ("/", "\\", "\0")


@runtime_checkable
class ExitSignaller(Protocol):
    """Sets and clears named exit signals."""

    def set(self, name: str) -> None:
        """Set the named signal, creating it if needed.

        Raises:
            SignalCreationError: If the signal cannot be created or set.
        """
        ...

    def clear(self, name: str) -> None:
        """Clear a previously set signal so a new process is not stopped by it.

        Raises:
            SignalCreationError: If the signal cannot be cleared.
        """
        ...


def validate_signal_name(name: str) -> None:
    """Reject names that cannot name an exit signal.

    Raises:
        SignalCreationError: If the name is empty or holds a path separator
            or NUL character.
    """
    if not name:
        msg = "Exit signal name must not be empty"
        raise SignalCreationError(msg, name=name)
    if any(char in name for char in _FORBIDDEN_CHARACTERS):
        msg = f"Exit signal name {name!r} must not contain path separators or NUL"
        raise SignalCreationError(msg, name=name)


@cache
def _kernel32():  # noqa: ANN202
    import ctypes  # noqa: PLC0415
    from ctypes import wintypes  # noqa: PLC0415

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # pyright: ignore[reportAttributeAccessIssue]
    kernel32.CreateEventW.argtypes = (
        wintypes.LPVOID,
        wintypes.BOOL,
        wintypes.BOOL,
        wintypes.LPCWSTR,
    )
    kernel32.CreateEventW.restype = wintypes.HANDLE
    kernel32.SetEvent.argtypes = (wintypes.HANDLE,)
    kernel32.SetEvent.restype = wintypes.BOOL
    kernel32.CloseHandle.argtypes = (wintypes.HANDLE,)
    kernel32.CloseHandle.restype = wintypes.BOOL
    return kernel32


@final
class Win32EventSignaller:
    """Exit signals backed by named Windows events."""

    __slots__ = ()

    def set(self, name: str) -> None:
        import ctypes  # noqa: PLC0415

        validate_signal_name(name)
        kernel32 = _kernel32()

        # Manual reset, initially not signalled
        handle = kernel32.CreateEventW(None, True, False, name)
        if not handle:
            error = ctypes.WinError(ctypes.get_last_error())  # pyright: ignore[reportAttributeAccessIssue]
            msg = f"Cannot create exit event named {name!r}: {error}"
            raise SignalCreationError(msg, name=name, cause=error)
        try:
            if not kernel32.SetEvent(handle):
                error = ctypes.WinError(ctypes.get_last_error())  # pyright: ignore[reportAttributeAccessIssue]
                msg = f"Cannot set exit event named {name!r}: {error}"
                raise SignalCreationError(msg, name=name, cause=error)
        finally:
            kernel32.CloseHandle(handle)

    def clear(self, name: str) -> None:
        # The event disappears once OpenVPN closes its handle.
        validate_signal_name(name)


@final
class FileExitSignaller:
    """Exit signals backed by marker files in a runtime directory."""

    __slots__ = ("_directory",)

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        """Return the marker file path for a signal name."""
        validate_signal_name(name)
        return self._directory / name

    def is_set(self, name: str) -> bool:
        return self.path_for(name).exists()

    def set(self, name: str) -> None:
        path = self.path_for(name)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.touch()
        except OSError as e:
            msg = f"Cannot create exit signal file {path}: {e}"
            raise SignalCreationError(msg, name=name, cause=e) from e

    def clear(self, name: str) -> None:
        path = self.path_for(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            msg = f"Cannot remove exit signal file {path}: {e}"
            raise SignalCreationError(msg, name=name, cause=e) from e


def default_signaller(settings: SupervisorSettings) -> ExitSignaller:
    """Return the exit signal mechanism for the current platform."""
    if sys.platform == "win32":
        return Win32EventSignaller()
    return FileExitSignaller(settings.signal_dir or get_signal_dir())

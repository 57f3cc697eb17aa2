"""Process handles for launched OpenVPN processes."""

import psutil

from ovpnsvc.exceptions import ProcessResolutionFailed


def resolve_process(pid: int) -> psutil.Process:
    """Return a handle for the process the helper launched.

    Raises:
        ProcessResolutionFailed: If no such process exists, e.g. because it
            already exited.
    """
    try:
        return psutil.Process(pid)
    except psutil.NoSuchProcess as e:
        msg = f"No process with PID {pid}; it may have exited already"
        raise ProcessResolutionFailed(msg, pid=pid) from e
    except psutil.AccessDenied as e:
        msg = f"Access denied opening process with PID {pid}"
        raise ProcessResolutionFailed(msg, pid=pid) from e


def has_exited(process: psutil.Process) -> bool:
    """Check whether a process has exited.

    Zombies count as exited. A process that can no longer be queried because
    it is gone counts as exited.
    """
    try:
        return not process.is_running() or process.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.AccessDenied:
        return False

"""Data models for the supervisor system.

This module defines the core data types for tunnel supervision:
- ChildState: Lifecycle states of a supervised tunnel
- ChildStatus: Mutable runtime status
- StartupRequest: Message sent to the privileged helper
- StartupResponse: Reply received from the privileged helper
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Final, Self

from ovpnsvc.exceptions import ApplyFailed, ProtocolError

ENCODING: Final = "utf-16-le"
"""Text encoding of every message exchanged with the helper."""


class ChildState(StrEnum):
    """Tunnel lifecycle states.

    - IDLE: Created, never started
    - STARTING: Handshake with the helper in progress
    - RUNNING: Process is alive and monitored
    - EXIT_DETECTED: Process exited on its own
    - RESTART_SCHEDULED: Waiting for the restart delay to elapse
    - STOPPED: Stop was requested; no further restarts
    - FAILED: The last start attempt failed; no automatic retry
    """

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    EXIT_DETECTED = "exit_detected"
    RESTART_SCHEDULED = "restart_scheduled"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(slots=True)
class ChildStatus:
    """Mutable runtime status of a supervised tunnel.

    Attributes:
        state: Current lifecycle state.
        pid: Process ID of the running OpenVPN process, if any.
        restart_count: Number of restarts scheduled after unexpected exits.
        started_at: ISO 8601 timestamp of the last successful start.
        stopped_at: ISO 8601 timestamp of the last exit or stop.
        last_error: The error from the last failed start attempt.
    """

    state: ChildState = ChildState.IDLE
    pid: int | None = None
    restart_count: int = 0
    started_at: str | None = None
    stopped_at: str | None = None
    last_error: Exception | None = None


@dataclass(frozen=True, slots=True)
class StartupRequest:
    """Startup information for one OpenVPN process.

    Encoded as three NUL-terminated UTF-16 fields: working directory,
    command line options and password.

    Attributes:
        config_dir: Working directory for the OpenVPN process.
        command_line: OpenVPN command line options.
        password: Credential passed to the helper, currently always empty.
    """

    config_dir: str
    command_line: str
    password: str = ""

    def encode(self) -> bytes:
        """Encode the request as a single helper message."""
        return f"{self.config_dir}\0{self.command_line}\0{self.password}\0".encode(ENCODING)

    @classmethod
    def decode(cls, data: bytes) -> Self:
        """Decode a helper message produced by encode().

        Raises:
            ProtocolError: If the message does not hold three fields.
        """
        try:
            text = data.decode(ENCODING)
        except UnicodeDecodeError as e:
            msg = f"Startup request is not valid UTF-16: {e}"
            raise ProtocolError(msg) from e

        fields = text.split("\0")
        if len(fields) != 4 or fields[3]:  # noqa: PLR2004
            msg = "Startup request must hold exactly three NUL-terminated fields"
            raise ProtocolError(msg, response=text)
        return cls(config_dir=fields[0], command_line=fields[1], password=fields[2])


@dataclass(frozen=True, slots=True)
class StartupResponse:
    """Helper reply to a startup request.

    Attributes:
        status: Status code, 0 on success.
        pid: Process ID of the launched OpenVPN process.
    """

    status: int
    pid: int

    @classmethod
    def parse(cls, text: str) -> Self:
        """Parse the helper reply.

        The first line holds a hexadecimal status code. When it is 0 the
        second line holds the hexadecimal process ID; otherwise the remaining
        lines describe the error.

        Raises:
            ProtocolError: If the reply is empty, short or malformed.
            ApplyFailed: If the helper reported a non-zero status.
        """
        lines = [line.strip() for line in text.splitlines()]
        if not lines or not lines[0]:
            msg = "Empty response from helper"
            raise ProtocolError(msg, response=text)

        status = _parse_hex(lines[0], "status", text)
        if status != 0:
            detail = " ".join(line for line in lines[1:] if line)
            msg = f"Helper failed to start OpenVPN: status 0x{status:08x}"
            if detail:
                msg = f"{msg}: {detail}"
            raise ApplyFailed(msg, status=status, detail=detail)

        if len(lines) < 2 or not lines[1]:  # noqa: PLR2004
            msg = "Helper response is missing the process ID"
            raise ProtocolError(msg, response=text)

        pid = _parse_hex(lines[1], "process ID", text)
        if pid <= 0:
            msg = f"Helper reported an invalid process ID: {pid}"
            raise ProtocolError(msg, response=text)
        return cls(status=status, pid=pid)


def _parse_hex(value: str, what: str, response: str) -> int:
    try:
        return int(value, 16)
    except ValueError as e:
        msg = f"Helper sent a malformed {what}: {value!r}"
        raise ProtocolError(msg, response=response) from e

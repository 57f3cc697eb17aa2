"""Client side of the privileged helper protocol.

The helper (the OpenVPN interactive service) launches OpenVPN on our behalf.
One connection carries exactly one exchange:

1. The client writes a single startup request message
   (``config_dir\\0options\\0password\\0`` in UTF-16).
2. The helper answers with two newline-terminated UTF-16 lines: a hex status
   code and, on success, the hex process ID of the new OpenVPN process.

The connection is closed right after the reply is read.
"""

from __future__ import annotations

import sys
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol, TypeVar, final, runtime_checkable

import anyio
import anyio.abc
import anyio.to_thread

from ovpnsvc.config import _defaults
from ovpnsvc.exceptions import ConnectionTimeout, ProtocolError

from ._models import ENCODING, StartupRequest, StartupResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from ovpnsvc.config import SupervisorSettings

T = TypeVar("T")

_RECEIVE_SIZE = 4096
_RESPONSE_LINES = 2


def build_command_line(
    *,
    log_file: Path | str,
    config_file: Path | str,
    exit_event: str,
    log_append: bool,
) -> str:
    """Build the OpenVPN options passed through the helper.

    Args:
        log_file: Log file for the OpenVPN process.
        config_file: Tunnel configuration file.
        exit_event: Name of the exit signal the process watches.
        log_append: Append to the log file instead of truncating it.

    Returns:
        The option string, e.g.
        ``--log "x.log" --config "x.ovpn" --service "x.ovpn_42" 0 ...``.
    """
    log_option = "--log-append" if log_append else "--log"
    return (
        f'{log_option} "{log_file}" --config "{config_file}" '
        f'--service "{exit_event}" 0 --pull-filter ignore route-method'
    )


@runtime_checkable
class HelperTransport(Protocol):
    """Opens byte streams to the privileged helper."""

    @property
    def channel(self) -> str:
        """Return the channel name or path, for log and error messages."""
        ...

    async def open(self) -> anyio.abc.ByteStream:
        """Open a new connection.

        Raises:
            OSError: If the helper is not accepting connections right now.
        """
        ...


@final
class UnixSocketTransport:
    """Connects to the helper over a Unix domain socket."""

    __slots__ = ("_path",)

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def channel(self) -> str:
        return str(self._path)

    async def open(self) -> anyio.abc.ByteStream:
        return await anyio.connect_unix(self._path)


@final
class _PipeStream(anyio.abc.ByteStream):
    """Byte stream over an open Windows named pipe handle.

    Blocking reads and writes run in worker threads. Each send() is one
    pipe message. Cancelling a read or write abandons the worker thread and
    closes the pipe, so the stream is unusable afterwards.
    """

    def __init__(self, pipe: BinaryIO) -> None:
        self._pipe = pipe

    async def _run_blocking(self, func: Callable[..., T], *args: object) -> T:
        try:
            return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True)
        except anyio.get_cancelled_exc_class():
            self._pipe.close()
            raise

    async def send(self, item: bytes) -> None:
        try:
            _ = await self._run_blocking(self._pipe.write, item)
        except OSError as e:
            raise anyio.BrokenResourceError from e

    async def send_eof(self) -> None:
        # Message-mode pipes delimit messages by write, not by half-close.
        return

    async def receive(self, max_bytes: int = 65536) -> bytes:
        try:
            data = await self._run_blocking(self._pipe.read, max_bytes)
        except BrokenPipeError:
            raise anyio.EndOfStream from None
        except OSError as e:
            raise anyio.BrokenResourceError from e
        if not data:
            raise anyio.EndOfStream
        return data

    async def aclose(self) -> None:
        self._pipe.close()


@final
class NamedPipeTransport:
    """Connects to the helper over a Windows named pipe."""

    __slots__ = ("_path",)

    def __init__(self, name: str = _defaults.PIPE_NAME, server: str = ".") -> None:
        self._path = rf"\\{server}\pipe\{name}"

    @property
    def channel(self) -> str:
        return self._path

    async def open(self) -> anyio.abc.ByteStream:
        opener = partial(open, self._path, "r+b", buffering=0)
        pipe = await anyio.to_thread.run_sync(opener)
        return _PipeStream(pipe)


def default_transport(settings: SupervisorSettings) -> HelperTransport:
    """Return the transport for the current platform."""
    if sys.platform == "win32":
        return NamedPipeTransport(settings.pipe_name)
    return UnixSocketTransport(settings.socket_path)


def _count_lines(buffer: bytes | bytearray) -> int:
    # Only count complete UTF-16 code units
    complete = bytes(buffer[: len(buffer) - len(buffer) % 2])
    return complete.decode(ENCODING, errors="replace").count("\n")


@final
class HelperClient:
    """Requests OpenVPN process launches from the privileged helper.

    A new connection is opened for every request and closed as soon as the
    reply has been read. Connections are never shared between tunnels.
    """

    __slots__ = (
        "_connect_timeout",
        "_logger",
        "_response_timeout",
        "_retry_interval",
        "_transport",
    )

    def __init__(
        self,
        transport: HelperTransport,
        *,
        connect_timeout: float = _defaults.CONNECT_TIMEOUT,
        response_timeout: float = _defaults.RESPONSE_TIMEOUT,
        retry_interval: float = _defaults.CONNECT_RETRY_INTERVAL,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport used to reach the helper.
            connect_timeout: Seconds to keep retrying the connection.
            response_timeout: Seconds to wait for the complete reply.
            retry_interval: Seconds between connection attempts.
            logger: Logger for handshake progress.
        """
        self._transport = transport
        self._connect_timeout = connect_timeout
        self._response_timeout = response_timeout
        self._retry_interval = retry_interval
        self._logger = logger

    @classmethod
    def from_settings(
        cls,
        settings: SupervisorSettings,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> HelperClient:
        return cls(
            default_transport(settings),
            connect_timeout=settings.connect_timeout,
            response_timeout=settings.response_timeout,
            logger=logger,
        )

    @property
    def transport(self) -> HelperTransport:
        return self._transport

    async def connect(self) -> anyio.abc.ByteStream:
        """Open a connection to the helper, retrying until the deadline.

        Raises:
            ConnectionTimeout: If no connection could be made in time.
        """
        if self._logger is not None:
            self._logger.debug("helper_connecting", channel=self._transport.channel)

        stream: anyio.abc.ByteStream | None = None
        last_error: OSError | None = None
        with anyio.move_on_after(self._connect_timeout):
            while stream is None:
                try:
                    stream = await self._transport.open()
                except OSError as e:
                    last_error = e
                    await anyio.sleep(self._retry_interval)

        if stream is None:
            msg = (
                f"Timed out after {self._connect_timeout:g}s connecting to "
                f"helper at {self._transport.channel}"
            )
            if last_error is not None:
                msg = f"{msg}: {last_error}"
            raise ConnectionTimeout(
                msg,
                channel=self._transport.channel,
                timeout=self._connect_timeout,
                cause=last_error,
            )
        return stream

    async def request_startup(self, request: StartupRequest) -> StartupResponse:
        """Ask the helper to launch one OpenVPN process.

        Args:
            request: The startup information to send.

        Returns:
            The parsed reply holding the new process ID.

        Raises:
            ConnectionTimeout: If the helper is not reachable in time.
            ProtocolError: If the exchange breaks off or the reply is malformed.
            ApplyFailed: If the helper reports a non-zero status.
        """
        stream = await self.connect()
        async with stream:
            try:
                await stream.send(request.encode())
                await stream.send_eof()
            except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as e:
                msg = f"Lost connection to helper while sending startup info: {e}"
                raise ProtocolError(msg) from e

            if self._logger is not None:
                self._logger.debug("startup_info_sent", channel=self._transport.channel)

            text = await self._read_response(stream)

        if self._logger is not None:
            self._logger.debug("helper_replied", response=" ".join(text.split()))
        return StartupResponse.parse(text)

    async def _read_response(self, stream: anyio.abc.ByteStream) -> str:
        buffer = bytearray()
        with anyio.move_on_after(self._response_timeout) as scope:
            while _count_lines(buffer) < _RESPONSE_LINES:
                try:
                    buffer.extend(await stream.receive(_RECEIVE_SIZE))
                except anyio.EndOfStream:
                    break
                except (anyio.BrokenResourceError, OSError) as e:
                    msg = f"Lost connection to helper while reading reply: {e}"
                    raise ProtocolError(msg) from e

        if scope.cancelled_caught:
            msg = f"Timed out after {self._response_timeout:g}s waiting for helper reply"
            raise ProtocolError(msg, response=bytes(buffer).decode(ENCODING, errors="replace"))

        try:
            return bytes(buffer).decode(ENCODING)
        except UnicodeDecodeError as e:
            msg = f"Helper reply is not valid UTF-16: {e}"
            raise ProtocolError(msg) from e

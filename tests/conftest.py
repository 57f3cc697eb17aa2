"""Shared test fixtures for ovpnsvc tests."""

from __future__ import annotations

import io
import json
import subprocess
import sys
import tempfile
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
import pytest

from ovpnsvc.config import LogFormat, LoggingConfig, LogLevel, SupervisorSettings
from ovpnsvc.exceptions import SignalCreationError
from ovpnsvc.supervisor import (
    FileExitSignaller,
    HelperClient,
    StartupRequest,
    UnixSocketTransport,
)
from ovpnsvc.supervisor._models import ENCODING
from ovpnsvc.utils import create_service_logger

if TYPE_CHECKING:
    import anyio.abc
    from structlog.typing import FilteringBoundLogger

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def short_tmp() -> Iterator[Path]:
    """Create a temporary directory with a path short enough for Unix sockets."""
    with tempfile.TemporaryDirectory(prefix="ovpn", dir="/tmp") as tmp:  # noqa: S108
        yield Path(tmp)


@dataclass(slots=True)
class FakeHelper:
    """In-process stand-in for the privileged helper.

    Each request spawns a real sleeping process whose pid is returned, unless
    a status or raw reply is configured.
    """

    socket_path: Path
    requests: list[StartupRequest] = field(default_factory=list)
    processes: list[subprocess.Popen[bytes]] = field(default_factory=list)
    status: int = 0
    detail: str = ""
    reply: str | None = None
    reply_delay: float = 0.0

    def spawn(self) -> subprocess.Popen[bytes]:
        process = subprocess.Popen(SLEEPER)
        self.processes.append(process)
        return process

    async def handle(self, stream: anyio.abc.SocketStream) -> None:
        async with stream:
            data = bytearray()
            while True:
                try:
                    data.extend(await stream.receive())
                except anyio.EndOfStream:
                    break

            self.requests.append(StartupRequest.decode(bytes(data)))

            if self.reply is not None:
                text = self.reply
            elif self.status:
                text = f"{self.status:x}\n{self.detail}\n"
            else:
                text = f"0\n{self.spawn().pid:x}\n"
            await anyio.sleep(self.reply_delay)
            await stream.send(text.encode(ENCODING))

    @asynccontextmanager
    async def serve(self) -> AsyncIterator[FakeHelper]:
        listener = await anyio.create_unix_listener(self.socket_path)
        async with listener, anyio.create_task_group() as tg:
            tg.start_soon(listener.serve, self.handle)
            try:
                yield self
            finally:
                tg.cancel_scope.cancel()

    def terminate_all(self) -> None:
        for process in self.processes:
            if process.poll() is None:
                process.kill()
            _ = process.wait()


@pytest.fixture
def fake_helper(short_tmp: Path) -> Iterator[FakeHelper]:
    helper = FakeHelper(socket_path=short_tmp / "helper.sock")
    try:
        yield helper
    finally:
        helper.terminate_all()


class RecordingSignaller:
    """Exit signaller that records calls and can be told to fail."""

    def __init__(self, *, fail: bool = False) -> None:
        self.set_calls: list[str] = []
        self.clear_calls: list[str] = []
        self.fail = fail

    def set(self, name: str) -> None:
        self.set_calls.append(name)
        if self.fail:
            msg = f"Cannot create exit event named {name!r}"
            raise SignalCreationError(msg, name=name)

    def clear(self, name: str) -> None:
        self.clear_calls.append(name)


@pytest.fixture
def recording_signaller() -> RecordingSignaller:
    return RecordingSignaller()


@pytest.fixture
def failing_signaller() -> RecordingSignaller:
    return RecordingSignaller(fail=True)


@pytest.fixture
def file_signaller(tmp_path: Path) -> FileExitSignaller:
    return FileExitSignaller(tmp_path / "signals")


@dataclass(frozen=True, slots=True)
class LogCapture:
    """A JSON logger writing to an in-memory stream."""

    logger: FilteringBoundLogger
    stream: io.StringIO

    def events(self) -> list[dict[str, object]]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def event_names(self) -> list[str]:
        return [str(entry["event"]) for entry in self.events()]


@pytest.fixture
def log_capture() -> LogCapture:
    stream = io.StringIO()
    config = LoggingConfig(level=LogLevel.DEBUG, format=LogFormat.JSON)
    return LogCapture(logger=create_service_logger(config, stream=stream), stream=stream)


@pytest.fixture
def fast_settings(short_tmp: Path) -> SupervisorSettings:
    """Settings with short intervals pointing at the fake helper socket."""
    return SupervisorSettings(
        socket_path=short_tmp / "helper.sock",
        connect_timeout=0.5,
        response_timeout=2.0,
        poll_interval=0.05,
        restart_delay=0.2,
        signal_dir=short_tmp / "signals",
        use_registry=False,
    )


@pytest.fixture
def make_client(
    log_capture: LogCapture,
) -> Callable[..., HelperClient]:
    def _make(socket_path: Path, **kwargs: float) -> HelperClient:
        kwargs.setdefault("connect_timeout", 0.5)
        kwargs.setdefault("response_timeout", 2.0)
        kwargs.setdefault("retry_interval", 0.02)
        return HelperClient(
            UnixSocketTransport(socket_path),
            logger=log_capture.logger,
            **kwargs,
        )

    return _make


@pytest.fixture
def write_tunnel_tree(tmp_path: Path) -> Callable[..., Path]:
    """Return a function creating a config dir holding the named files."""

    def _write(*names: str, directory: str = "cfg") -> Path:
        config_dir = tmp_path / directory
        config_dir.mkdir(parents=True, exist_ok=True)
        for name in names:
            path = config_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            _ = path.write_text("client\n")
        return config_dir

    return _write


def source_values(config_dir: Path, log_dir: Path, **overrides: object) -> dict[str, object]:
    """Build discovery values for an OpenVPN install using this interpreter as binary."""
    values: dict[str, object] = {
        "exe_path": sys.executable,
        "autostart_config_dir": str(config_dir),
        "config_ext": "ovpn",
        "log_dir": str(log_dir),
        "log_append": "0",
    }
    values.update(overrides)
    return values

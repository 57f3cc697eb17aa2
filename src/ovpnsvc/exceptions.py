"""ovpnsvc exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class OvpnServiceError(Exception):
    """Base exception for ovpnsvc errors."""


# =============================================================================
# Helper IPC Exceptions
# =============================================================================


class HelperError(OvpnServiceError):
    """Base exception for failures talking to the privileged helper."""


class ConnectionTimeout(HelperError):  # noqa: N818
    """Raised when the helper channel cannot be opened before the deadline.

    Attributes:
        channel: Name or path of the channel that was being opened.
        timeout: The connection deadline in seconds.
    """

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        timeout: float,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and channel context."""
        super().__init__(message)
        self.channel: str = channel
        self.timeout: float = timeout
        self.cause: Exception | None = cause


class ProtocolError(HelperError):
    """Raised when the helper response is short, truncated or malformed."""

    def __init__(self, message: str, *, response: str | None = None) -> None:
        """Initialize with error message and the raw response text."""
        super().__init__(message)
        self.response: str | None = response


class ApplyFailed(HelperError):  # noqa: N818
    """Raised when the helper answers with a non-zero status.

    Attributes:
        status: The status code reported by the helper.
        detail: Error text the helper sent after the status line, if any.
    """

    def __init__(self, message: str, *, status: int, detail: str = "") -> None:
        """Initialize with error message and helper status."""
        super().__init__(message)
        self.status: int = status
        self.detail: str = detail


class ProcessResolutionFailed(HelperError):  # noqa: N818
    """Raised when the pid reported by the helper does not name a live process."""

    def __init__(self, message: str, *, pid: int) -> None:
        """Initialize with error message and the unresolved pid."""
        super().__init__(message)
        self.pid: int = pid


# =============================================================================
# Exit Signal Exceptions
# =============================================================================


class SignalCreationError(OvpnServiceError):
    """Raised when a named exit signal cannot be created, opened or set.

    Attributes:
        name: The exit signal name.
        cause: The underlying OS error, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        name: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and signal context."""
        super().__init__(message)
        self.name: str = name
        self.cause: Exception | None = cause


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(OvpnServiceError):
    """Raised when discovery values are missing or invalid.

    Attributes:
        source: Name of the discovery source, if known.
        key: The offending key, if known.
        path: Settings file path, if the values came from a file.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        key: str | None = None,
        path: Path | None = None,
    ) -> None:
        """Initialize with error message and discovery context."""
        super().__init__(message)
        self.source: str | None = source
        self.key: str | None = key
        self.path: Path | None = path

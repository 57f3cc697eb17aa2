# pyright: reportAny=false
"""Discovery of tunnel configurations.

A discovery source supplies the raw values describing one OpenVPN
installation: helper executable, configuration directory and extension, log
directory and log append flag. Sources come from the Windows registry
(``HKLM\\Software\\OpenVPN`` in the 64-bit then the 32-bit view) or from
``[[sources]]`` tables in the settings file.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol, final, runtime_checkable

from ovpnsvc.exceptions import ConfigurationError

from . import _defaults
from ._models import ServiceConfiguration

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._models import SupervisorSettings

RegistryView = Literal["64", "32"]


@runtime_checkable
class DiscoverySource(Protocol):
    """Provider of raw discovery values."""

    @property
    def name(self) -> str:
        """Return a human-readable name for log messages."""
        ...

    def read_values(self) -> Mapping[str, object]:
        """Return the raw discovery values.

        Raises:
            ConfigurationError: If the source cannot be read.
        """
        ...


@dataclass(frozen=True, slots=True)
class StaticDiscoverySource:
    """Discovery source backed by an in-memory mapping."""

    name: str
    values: Mapping[str, object]

    def read_values(self) -> Mapping[str, object]:
        return self.values


@final
class RegistryDiscoverySource:
    """Discovery source reading ``HKLM\\Software\\OpenVPN`` from one registry view."""

    __slots__ = ("_view",)

    def __init__(self, view: RegistryView) -> None:
        self._view: RegistryView = view

    @property
    def name(self) -> str:
        return f"registry{self._view}"

    def _open(self):  # noqa: ANN202
        import winreg  # noqa: PLC0415

        flag = winreg.KEY_WOW64_64KEY if self._view == "64" else winreg.KEY_WOW64_32KEY
        return winreg.OpenKey(
            winreg.HKEY_LOCAL_MACHINE,
            _defaults.REGISTRY_KEY,
            0,
            winreg.KEY_READ | flag,
        )

    def exists(self) -> bool:
        """Check whether the OpenVPN key exists in this view."""
        try:
            with self._open():
                return True
        except OSError:
            return False

    def read_values(self) -> Mapping[str, object]:
        import winreg  # noqa: PLC0415

        values: dict[str, object] = {}
        try:
            with self._open() as key:
                for value_name in _defaults.REGISTRY_VALUE_NAMES:
                    try:
                        values[value_name], _ = winreg.QueryValueEx(key, value_name)
                    except FileNotFoundError:
                        continue
        except OSError as e:
            msg = f"Cannot read registry key {_defaults.REGISTRY_KEY} ({self.name}): {e}"
            raise ConfigurationError(msg, source=self.name) from e
        return values


def find_registry_sources() -> list[RegistryDiscoverySource]:
    """Return the registry views holding an OpenVPN key, 64-bit first.

    Returns an empty list on platforms without a registry.
    """
    if sys.platform != "win32":
        return []
    views: tuple[RegistryView, ...] = ("64", "32")
    return [
        source
        for source in (RegistryDiscoverySource(view) for view in views)
        if source.exists()
    ]


def sources_from_settings(settings: SupervisorSettings) -> list[StaticDiscoverySource]:
    """Build discovery sources from the ``[[sources]]`` settings tables.

    A table may carry a ``name`` key; otherwise the source is named by its
    position.
    """
    return [
        StaticDiscoverySource(
            name=str(table.get("name", f"sources[{index}]")),
            values={key: value for key, value in table.items() if key != "name"},
        )
        for index, table in enumerate(settings.sources)
    ]


def collect_sources(settings: SupervisorSettings) -> list[DiscoverySource]:
    """Collect every discovery source enabled by the settings.

    Registry sources come first so the installed service wins over settings
    file entries pointing at the same configuration directory.
    """
    sources: list[DiscoverySource] = []
    if settings.use_registry:
        sources.extend(find_registry_sources())
    sources.extend(sources_from_settings(settings))
    return sources


def discover_configurations(
    sources: Iterable[DiscoverySource],
    *,
    logger: FilteringBoundLogger,
) -> list[ServiceConfiguration]:
    """Validate discovery sources into configurations.

    Sources with an empty or already seen configuration directory are skipped
    (first one wins). Sources whose values are incomplete or invalid are
    logged and skipped, as are sources whose OpenVPN executable is missing.

    Args:
        sources: Discovery sources in precedence order.
        logger: Logger for skipped sources.

    Returns:
        The usable configurations in source order.

    Raises:
        ConfigurationError: If no discovery source was supplied at all.
    """
    sources = list(sources)
    if not sources:
        msg = "No configuration source found"
        raise ConfigurationError(msg)

    considered: set[Path] = set()
    configurations: list[ServiceConfiguration] = []

    for source in sources:
        try:
            values = source.read_values()
            if not str(values.get("autostart_config_dir") or "").strip():
                logger.debug("source_skipped", source=source.name, reason="empty config dir")
                continue
            config = ServiceConfiguration.from_values(values, source=source.name)
        except ConfigurationError as e:
            logger.error("source_invalid", source=source.name, error=str(e))
            continue

        if config.config_dir in considered:
            logger.debug(
                "source_skipped",
                source=source.name,
                reason="duplicate config dir",
                config_dir=str(config.config_dir),
            )
            continue
        considered.add(config.config_dir)

        # Leftover values from an uninstalled 32-bit OpenVPN point at a
        # binary that no longer exists.
        if not config.exe_path.is_file():
            logger.warning(
                "openvpn_binary_missing",
                source=source.name,
                exe_path=str(config.exe_path),
            )
            continue

        configurations.append(config)

    return configurations


def enumerate_config_files(config: ServiceConfiguration) -> list[Path]:
    """List configuration files below the configuration directory.

    Subdirectories are searched recursively. Results are sorted so start
    order is stable.

    Raises:
        ConfigurationError: If the configuration directory does not exist.
    """
    if not config.config_dir.is_dir():
        msg = f"Configuration directory does not exist: {config.config_dir}"
        raise ConfigurationError(msg, source=config.source, key="autostart_config_dir")

    return sorted(
        path for path in config.config_dir.rglob(f"*{config.config_ext}") if path.is_file()
    )

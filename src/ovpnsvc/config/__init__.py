"""ovpnsvc configuration.

This module provides settings loading, the validated per-source
configuration model and discovery of tunnel configuration files.

Example:
    >>> from ovpnsvc.config import load_settings, collect_sources
    >>> settings = load_settings()
    >>> sources = collect_sources(settings)
"""

from ovpnsvc.exceptions import ConfigurationError

from ._discovery import (
    DiscoverySource,
    RegistryDiscoverySource,
    StaticDiscoverySource,
    collect_sources,
    discover_configurations,
    enumerate_config_files,
    find_registry_sources,
    sources_from_settings,
)
from ._loader import get_settings_path, get_signal_dir, load_settings, read_toml_file
from ._models import (
    LogFormat,
    LoggingConfig,
    LogLevel,
    ServiceConfiguration,
    SupervisorSettings,
    parse_log_append,
)

__all__ = [
    "ConfigurationError",
    "DiscoverySource",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "RegistryDiscoverySource",
    "ServiceConfiguration",
    "StaticDiscoverySource",
    "SupervisorSettings",
    "collect_sources",
    "discover_configurations",
    "enumerate_config_files",
    "find_registry_sources",
    "get_settings_path",
    "get_signal_dir",
    "load_settings",
    "parse_log_append",
    "read_toml_file",
    "sources_from_settings",
]

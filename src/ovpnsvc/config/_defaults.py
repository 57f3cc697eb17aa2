"""Default values for supervisor settings."""

from typing import Final

PIPE_NAME: Final = r"openvpn\service"
SOCKET_PATH: Final = "/run/openvpn/service.sock"

CONNECT_TIMEOUT: Final = 5.0
CONNECT_RETRY_INTERVAL: Final = 0.1
RESPONSE_TIMEOUT: Final = 30.0
POLL_INTERVAL: Final = 1.0
RESTART_DELAY: Final = 10.0

REGISTRY_KEY: Final = r"Software\OpenVPN"
REGISTRY_VALUE_NAMES: Final = (
    "exe_path",
    "autostart_config_dir",
    "config_ext",
    "log_dir",
    "log_append",
)

SETTINGS_FILE_NAME: Final = "config.toml"
APP_NAME: Final = "ovpnsvc"

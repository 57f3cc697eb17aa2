from pathlib import Path

import pytest

from ovpnsvc.config import (
    LogFormat,
    LogLevel,
    ServiceConfiguration,
    SupervisorSettings,
    parse_log_append,
)
from ovpnsvc.exceptions import ConfigurationError


def _values(**overrides: object) -> dict[str, object]:
    values: dict[str, object] = {
        "exe_path": "/usr/sbin/openvpn",
        "autostart_config_dir": "/etc/openvpn/autostart",
        "config_ext": "ovpn",
        "log_dir": "/var/log/openvpn",
        "log_append": "0",
    }
    values.update(overrides)
    return values


class TestParseLogAppend:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("0", False),
            ("1", True),
            ("1 ", True),
            ("0x", False),
            (0, False),
            (1, True),
            (True, True),
        ],
    )
    def test_accepts_zero_and_one(self, value: object, expected: bool) -> None:  # noqa: FBT001
        assert parse_log_append(value) is expected

    @pytest.mark.parametrize("value", ["", "yes", "2", " 1", 2, None])
    def test_rejects_other_values(self, value: object) -> None:
        with pytest.raises(ValueError, match="Log file append flag must be 1 or 0"):
            _ = parse_log_append(value)


class TestServiceConfiguration:
    def test_from_values_builds_configuration(self) -> None:
        config = ServiceConfiguration.from_values(_values(), source="registry64")

        assert config.exe_path == Path("/usr/sbin/openvpn")
        assert config.config_dir == Path("/etc/openvpn/autostart")
        assert config.log_dir == Path("/var/log/openvpn")
        assert config.log_append is False
        assert config.source == "registry64"

    def test_extension_gets_leading_dot(self) -> None:
        assert ServiceConfiguration.from_values(_values(config_ext="ovpn")).config_ext == ".ovpn"
        assert ServiceConfiguration.from_values(_values(config_ext=".conf")).config_ext == ".conf"

    def test_missing_value_names_the_key(self) -> None:
        values = _values()
        del values["log_dir"]

        with pytest.raises(ConfigurationError) as exc_info:
            _ = ServiceConfiguration.from_values(values, source="registry32")

        assert exc_info.value.key == "log_dir"
        assert exc_info.value.source == "registry32"

    def test_invalid_log_append_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Log file append flag") as exc_info:
            _ = ServiceConfiguration.from_values(_values(log_append="maybe"), source="s")

        assert exc_info.value.key == "log_append"

    def test_empty_extension_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = ServiceConfiguration.from_values(_values(config_ext="."))

        assert exc_info.value.key == "config_ext"

    def test_is_frozen(self) -> None:
        config = ServiceConfiguration.from_values(_values())

        with pytest.raises(ValueError, match="frozen"):
            config.log_append = True  # pyright: ignore[reportAttributeAccessIssue]


class TestSupervisorSettings:
    def test_defaults(self) -> None:
        settings = SupervisorSettings()

        assert settings.pipe_name == "openvpn\\service"
        assert settings.connect_timeout == 5.0
        assert settings.poll_interval == 1.0
        assert settings.restart_delay == 10.0
        assert settings.use_registry is True
        assert settings.sources == ()
        assert settings.logging.level is None
        assert settings.logging.format == LogFormat.TEXT

    def test_from_dict_reads_all_tables(self) -> None:
        data = {
            "supervisor": {"restart_delay": 3, "use_registry": False},
            "logging": {"level": "debug", "format": "json"},
            "sources": [{"name": "lab", "autostart_config_dir": "/lab"}],
        }

        settings = SupervisorSettings.from_dict(data)

        assert settings.restart_delay == 3.0
        assert settings.use_registry is False
        assert settings.logging.level == LogLevel.DEBUG
        assert settings.logging.format == LogFormat.JSON
        assert settings.sources == ({"name": "lab", "autostart_config_dir": "/lab"},)

    def test_from_dict_rejects_non_positive_poll_interval(self) -> None:
        path = Path("/etc/ovpnsvc/config.toml")

        with pytest.raises(ConfigurationError) as exc_info:
            _ = SupervisorSettings.from_dict({"supervisor": {"poll_interval": 0}}, path=path)

        assert exc_info.value.key == "poll_interval"
        assert exc_info.value.path == path

    def test_from_dict_rejects_unknown_log_level(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = SupervisorSettings.from_dict({"logging": {"level": "loud"}})

        assert exc_info.value.key == "logging.level"

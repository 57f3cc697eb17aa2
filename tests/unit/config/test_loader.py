from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from ovpnsvc.config import SupervisorSettings, load_settings, read_toml_file
from ovpnsvc.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem
    from pytest_mock import MockerFixture


class TestReadTomlFile:
    def test_parses_valid_toml(self, fs: FakeFilesystem) -> None:
        path = Path("/etc/ovpnsvc/config.toml")
        fs.create_file(path, contents='[supervisor]\nrestart_delay = 2\n')

        assert read_toml_file(path) == {"supervisor": {"restart_delay": 2}}

    def test_raises_file_not_found_for_missing_file(self, fs: FakeFilesystem) -> None:
        with pytest.raises(FileNotFoundError):
            _ = read_toml_file(Path("/etc/ovpnsvc/missing.toml"))

    def test_raises_configuration_error_for_invalid_toml(self, fs: FakeFilesystem) -> None:
        path = Path("/etc/ovpnsvc/config.toml")
        fs.create_file(path, contents="[supervisor\n")

        with pytest.raises(ConfigurationError) as exc_info:
            _ = read_toml_file(path)

        assert exc_info.value.path == path


class TestLoadSettings:
    def test_explicit_path_is_loaded(self, fs: FakeFilesystem) -> None:
        path = Path("/srv/ovpnsvc.toml")
        fs.create_file(
            path,
            contents=(
                "[supervisor]\n"
                "use_registry = false\n"
                "\n"
                "[[sources]]\n"
                'name = "lab"\n'
                'autostart_config_dir = "/srv/tunnels"\n'
            ),
        )

        settings = load_settings(path)

        assert settings.use_registry is False
        assert settings.sources[0]["name"] == "lab"

    def test_explicit_missing_path_raises(self, fs: FakeFilesystem) -> None:
        with pytest.raises(FileNotFoundError):
            _ = load_settings(Path("/srv/missing.toml"))

    def test_defaults_when_platform_file_is_absent(
        self, fs: FakeFilesystem, mocker: MockerFixture
    ) -> None:
        _ = mocker.patch(
            "ovpnsvc.config._loader.get_settings_path",
            return_value=Path("/etc/xdg/ovpnsvc/config.toml"),
        )

        assert load_settings() == SupervisorSettings()

    def test_platform_file_is_used_when_present(
        self, fs: FakeFilesystem, mocker: MockerFixture
    ) -> None:
        path = Path("/etc/xdg/ovpnsvc/config.toml")
        fs.create_file(path, contents="[supervisor]\npoll_interval = 0.5\n")
        _ = mocker.patch("ovpnsvc.config._loader.get_settings_path", return_value=path)

        assert load_settings().poll_interval == 0.5

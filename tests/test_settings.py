"""User settings tests"""

from pathlib import Path

import pytest

from tmux_projector.errors import ConfigError
from tmux_projector.settings import LauncherSettings, default_settings_path


class TestDefaultPath:
    def test_explicit_env_var(self):
        assert default_settings_path({"TMUX_PROJECTOR_CONFIG": "/etc/tp.yaml"}) == Path("/etc/tp.yaml")

    def test_xdg(self):
        path = default_settings_path({"XDG_CONFIG_HOME": "/cfg"})
        assert path == Path("/cfg/tmux-projector/config.yaml")

    def test_home(self):
        path = default_settings_path({"HOME": "/home/me"})
        assert path == Path("/home/me/.config/tmux-projector/config.yaml")


class TestLoad:
    def test_missing_file(self, tmp_path):
        assert LauncherSettings.from_yaml(tmp_path / "none.yaml") == LauncherSettings()

    def test_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tmux_command: tmux -2\nenv:\n  EDITOR: nvim\n  PORT: 8080\n  EMPTY:\n")
        settings = LauncherSettings.from_yaml(path)
        assert settings.tmux_command == "tmux -2"
        assert settings.env == {"EDITOR": "nvim", "PORT": "8080", "EMPTY": ""}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert LauncherSettings.from_yaml(path) == LauncherSettings()

    @pytest.mark.parametrize(
        "text",
        ["- a\n", "tmux_command: [tmux]\n", "env: [A]\n", "tmux_command: [unclosed\n"],
    )
    def test_malformed(self, tmp_path, text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError):
            LauncherSettings.from_yaml(path)

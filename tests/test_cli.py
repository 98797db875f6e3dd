"""CLI tests"""

import os
from unittest.mock import MagicMock, patch

import pytest

from tmux_projector import cli
from tmux_projector.compiler import sh_quote
from tmux_projector.model import StartMode


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TMUX_PROJECTOR_CONFIG", str(tmp_path / "no-settings.yaml"))
    monkeypatch.delenv("TMUX", raising=False)
    monkeypatch.delenv("GREETING", raising=False)
    return tmp_path


def write(path, text):
    path.write_text(text)
    return str(path)


class TestMergeEnv:
    def test_merge(self):
        assert cli._merge_env({"A": "1", "B": "2"}, ["B=3", "C=x=y"]) == {"A": "1", "B": "3", "C": "x=y"}

    def test_invalid(self):
        with pytest.raises(ValueError):
            cli._merge_env({}, ["NOEQUALS"])


class TestDebug:
    """debug prints the script without touching tmux"""

    def test_prints_script(self, project_dir, capsys):
        path = write(project_dir / "demo.yml", "windows:\n  - editor: echo ${GREETING:-hi} $1\n")
        with patch("tmux_projector.cli.server_for_argv") as server:
            assert cli.main(["debug", path, "there"]) == 0
        server.assert_not_called()
        out = capsys.readouterr().out
        lines = out.splitlines()
        assert lines[0] == f"new-session -d -s demo -c {sh_quote(os.getcwd())}"
        assert "send-keys -t demo:1.1 'echo hi there' C-m" in lines
        assert not any(line.startswith("attach-session") for line in lines)

    def test_env_option(self, project_dir, capsys):
        path = write(project_dir / "demo.yml", "windows:\n  - echo $GREETING\n")
        assert cli.main(["debug", path, "--env", "GREETING=yo", "--session", "other"]) == 0
        out = capsys.readouterr().out
        assert "send-keys -t other:1.1 'echo yo' C-m" in out.splitlines()

    def test_settings_env_is_default(self, project_dir, capsys):
        settings = write(project_dir / "settings.yaml", "env:\n  GREETING: from-settings\n")
        path = write(project_dir / "demo.yml", "windows:\n  - echo $GREETING\n")
        assert cli.main(["debug", path, "--settings", settings]) == 0
        assert "send-keys -t demo:1.1 'echo from-settings' C-m" in capsys.readouterr().out

    def test_config_error(self, project_dir, capsys):
        path = write(project_dir / "bad.yml", "windows:\n  - w:\n      layout: tiled\n      panes: [a, {split: h}]\n")
        assert cli.main(["debug", path]) == 1
        err = capsys.readouterr().err
        assert err.startswith("error: windows[0].w.panes[1]:")

    def test_missing_file(self, project_dir, capsys):
        assert cli.main(["debug", str(project_dir / "nope.yml")]) == 1
        assert "Project file not found" in capsys.readouterr().err


class TestStart:
    """start runs the script and attaches"""

    def test_first_start(self, project_dir, capsys):
        path = write(project_dir / "demo.yml", "tmux_socket: sock\non_first_start: echo first\nwindows: [htop]\n")
        with patch("tmux_projector.cli.server_for_argv") as server, \
                patch("tmux_projector.cli.detect_start_mode", return_value=StartMode.FIRST_START) as detect, \
                patch("tmux_projector.cli.run_script") as run, \
                patch("tmux_projector.cli.attach_client") as attach:
            assert cli.main(["start", path, "--detach"]) == 0

        server.assert_called_once_with(["tmux", "-L", "sock"])
        detect.assert_called_once_with(server.return_value, "demo")
        script = run.call_args[0][0]
        assert script.commands[0] == f"run-shell -c {sh_quote(os.getcwd())} 'echo first'"
        assert script.client_command is None
        attach.assert_called_once_with(script)
        assert "tmux session 'demo' started." in capsys.readouterr().out

    def test_restart(self, project_dir, capsys):
        path = write(project_dir / "demo.yml", "on_restart: echo again\nwindows: [htop]\n")
        with patch("tmux_projector.cli.server_for_argv"), \
                patch("tmux_projector.cli.detect_start_mode", return_value=StartMode.RESTART), \
                patch("tmux_projector.cli.run_script") as run, \
                patch("tmux_projector.cli.attach_client"):
            assert cli.main(["start", path]) == 0
        script = run.call_args[0][0]
        assert script.commands == [f"run-shell -c {sh_quote(os.getcwd())} 'echo again'"]
        assert script.client_command == "attach-session -t demo"
        assert "restarted" in capsys.readouterr().out

    def test_socket_path_option(self, project_dir):
        """-S in tmux_options decides which server is asked about the session"""
        path = write(project_dir / "demo.yml", "tmux_options: -S /tmp/demo.sock\nwindows: [htop]\n")
        with patch("tmux_projector.runner.libtmux.Server") as server_cls, \
                patch("tmux_projector.cli.detect_start_mode", return_value=StartMode.FIRST_START) as detect, \
                patch("tmux_projector.cli.run_script"), \
                patch("tmux_projector.cli.attach_client"):
            assert cli.main(["start", path, "--detach"]) == 0
        server_cls.assert_called_once_with(socket_path="/tmp/demo.sock")
        detect.assert_called_once_with(server_cls.return_value, "demo")


class TestList:
    def test_list(self, capsys):
        server = MagicMock()
        with patch("tmux_projector.cli.tmux_server", return_value=server), \
                patch("tmux_projector.cli.list_sessions", return_value=["a", "b"]):
            assert cli.main(["list"]) == 0
        assert capsys.readouterr().out == "a\nb\n"

    def test_list_empty(self, capsys):
        with patch("tmux_projector.cli.tmux_server"), \
                patch("tmux_projector.cli.list_sessions", return_value=[]):
            assert cli.main(["list", "-L", "sock"]) == 0
        assert "(no tmux sessions)" in capsys.readouterr().out


class TestKill:
    def test_kill(self, capsys):
        session = MagicMock()
        with patch("tmux_projector.cli.tmux_server"), \
                patch("tmux_projector.cli.find_session", return_value=session):
            assert cli.main(["kill", "demo"]) == 0
        session.kill.assert_called_once_with()
        assert "Killed session: demo" in capsys.readouterr().out

    def test_kill_missing(self, capsys):
        with patch("tmux_projector.cli.tmux_server"), \
                patch("tmux_projector.cli.find_session", return_value=None):
            assert cli.main(["kill", "demo"]) == 2
        assert "No such session: demo" in capsys.readouterr().err

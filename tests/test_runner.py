"""Runner tests (tmux and libtmux are mocked)"""

import os
from unittest.mock import MagicMock, patch

import pytest

from tmux_projector.compiler import Script
from tmux_projector.errors import ScriptExecutionError
from tmux_projector.model import StartMode
from tmux_projector.runner import (
    attach_client,
    detect_start_mode,
    find_session,
    list_sessions,
    run_script,
    server_for_argv,
    tmux_server,
)


def make_server(names):
    server = MagicMock()
    sessions = [MagicMock(session_name=n) for n in names]
    server.sessions = MagicMock()
    server.sessions.__iter__.side_effect = lambda: iter(sessions)
    server.sessions.filter.side_effect = lambda session_name: [s for s in sessions if s.session_name == session_name]
    return server


SCRIPT = Script(
    session_name="demo",
    tmux_argv=["tmux", "-L", "sock"],
    commands=["new-session -d -s demo -c /work", "select-pane -t demo:1.1"],
    client_command="attach-session -t demo",
)


class TestSessions:
    """Session lookup"""

    def test_tmux_server_socket(self):
        with patch("tmux_projector.runner.libtmux.Server") as server_cls:
            tmux_server("sock")
        server_cls.assert_called_once_with(socket_name="sock")

    def test_server_for_argv(self):
        with patch("tmux_projector.runner.libtmux.Server") as server_cls:
            server_for_argv(["tmux", "-2", "-L", "sock", "-f", "/etc/my tmux.conf"])
        server_cls.assert_called_once_with(socket_name="sock", config_file="/etc/my tmux.conf")

    def test_server_for_argv_socket_path(self):
        with patch("tmux_projector.runner.libtmux.Server") as server_cls:
            server_for_argv(["/opt/bin/tmux", "-S/tmp/t.sock"])
        server_cls.assert_called_once_with(socket_path="/tmp/t.sock")

    def test_server_for_argv_default(self):
        with patch("tmux_projector.runner.libtmux.Server") as server_cls:
            server_for_argv(["tmux"])
        server_cls.assert_called_once_with()

    def test_find_session(self):
        server = make_server(["a", "demo"])
        assert find_session(server, "demo").session_name == "demo"
        assert find_session(server, "nope") is None

    def test_list_sessions(self):
        assert list_sessions(make_server(["a", "b"])) == ["a", "b"]

    def test_detect_start_mode(self):
        server = make_server(["demo"])
        assert detect_start_mode(server, "demo") is StartMode.RESTART
        assert detect_start_mode(server, "other") is StartMode.FIRST_START


class TestRunScript:
    """Feeding the script to tmux"""

    def test_sources_script_file(self):
        seen = {}

        def fake_run(argv, **kwargs):
            seen["argv"] = argv
            with open(argv[-1]) as f:
                seen["content"] = f.read()
            return MagicMock(returncode=0, stdout="", stderr="")

        with patch("tmux_projector.runner.subprocess.run", side_effect=fake_run):
            run_script(SCRIPT)

        assert seen["argv"][:-1] == ["tmux", "-L", "sock", "start-server", ";", "source-file"]
        assert seen["content"] == "new-session -d -s demo -c /work\nselect-pane -t demo:1.1\n"
        assert "attach-session" not in seen["content"]
        assert not os.path.exists(seen["argv"][-1])

    def test_failure(self):
        result = MagicMock(returncode=1, stdout="", stderr="unknown command: foo")
        with patch("tmux_projector.runner.subprocess.run", return_value=result):
            with pytest.raises(ScriptExecutionError) as exc:
                run_script(SCRIPT)
        assert "unknown command: foo" in str(exc.value)

    def test_empty_script(self):
        empty = Script(session_name="demo", tmux_argv=["tmux"], commands=[])
        with patch("tmux_projector.runner.subprocess.run") as run:
            run_script(empty)
        run.assert_not_called()


class TestAttach:
    """Client attach"""

    def test_exec_client(self):
        with patch("tmux_projector.runner.os.execvp") as execvp:
            attach_client(SCRIPT)
        execvp.assert_called_once_with("tmux", ["tmux", "-L", "sock", "attach-session", "-t", "demo"])

    def test_no_client(self):
        detached = Script(session_name="demo", tmux_argv=["tmux"], commands=["x"])
        with patch("tmux_projector.runner.os.execvp") as execvp:
            attach_client(detached)
        execvp.assert_not_called()

# -*- coding: utf-8 -*-
"""
runner.py

Everything that talks to a live tmux server: session lookup (which decides
the start mode), feeding a compiled script to tmux and attaching the client.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from typing import List, Optional

import libtmux

from .compiler import Script
from .errors import ScriptExecutionError
from .model import StartMode

logger = logging.getLogger(__name__)


def tmux_server(socket_name: Optional[str] = None) -> libtmux.Server:
    """! @brief Create a libtmux Server object.

    @param socket_name tmux socket name (``-L``); None for the default socket.
    @return libtmux.Server bound to that socket.
    """
    return libtmux.Server(socket_name=socket_name)


def server_for_argv(argv: List[str]) -> libtmux.Server:
    """! @brief Create a libtmux Server for the socket a tmux argv talks to.

    Picks up ``-L name``, ``-S path`` and ``-f file`` (joined or separate)
    from the global options. libtmux always runs the ``tmux`` found on PATH,
    so a custom executable in argv[0] is not carried over.

    @param argv tmux executable plus global options (see compiler.tmux_argv).
    @return libtmux.Server bound to the same socket.
    """
    options = {"-L": None, "-S": None, "-f": None}
    args = iter(argv[1:])
    for arg in args:
        flag = arg[:2]
        if flag in options:
            options[flag] = arg[2:] or next(args, None)
    kwargs = {}
    if options["-L"]:
        kwargs["socket_name"] = options["-L"]
    if options["-S"]:
        kwargs["socket_path"] = options["-S"]
    if options["-f"]:
        kwargs["config_file"] = options["-f"]
    return libtmux.Server(**kwargs)


def find_session(server: libtmux.Server, name: str) -> Optional[libtmux.Session]:
    """! @brief Find a tmux session by name.

    @param server libtmux server.
    @param name Session name.
    @return Session if found, otherwise None.
    """
    ql = server.sessions.filter(session_name=name)
    if len(ql) > 1:
        from warnings import warn

        warn(f"Multiple sessions named '{name}'\n{ql}")
    return ql[0] if ql else None


def list_sessions(server: libtmux.Server) -> List[str]:
    return [s.session_name for s in server.sessions]


def detect_start_mode(server: libtmux.Server, name: str) -> StartMode:
    """! @brief RESTART when the session already exists, FIRST_START otherwise."""
    exists = find_session(server, name) is not None
    logger.info(f"Session '{name}' {'exists' if exists else 'does not exist'}")
    return StartMode.RESTART if exists else StartMode.FIRST_START


def run_script(script: Script) -> None:
    """! @brief Execute the script body through ``tmux source-file``.

    ``start-server`` runs in the same client invocation so the server is
    up before the first command, even when no session exists yet.

    @param script Compiled script. The client command is not run here.
    @throws ScriptExecutionError when tmux exits non-zero.
    """
    if not script.commands:
        return
    with tempfile.NamedTemporaryFile(
        "w", prefix="tmux-projector-", suffix=".tmux", delete=False
    ) as f:
        f.write("".join(line + "\n" for line in script.commands))
        path = f.name
    try:
        argv = script.tmux_argv + ["start-server", ";", "source-file", path]
        logger.debug(f"Running {' '.join(argv)} ({len(script.commands)} command(s))")
        result = subprocess.run(argv, capture_output=True, text=True)
        if result.returncode != 0:
            raise ScriptExecutionError(
                f"tmux failed ({result.returncode}): {result.stderr.strip() or result.stdout.strip()}"
            )
    finally:
        os.unlink(path)


def attach_client(script: Script) -> None:
    """! @brief Replace the current process with the attach/switch client command.

    Uses exec, like ``tmux attach-session`` run by hand; does nothing when the
    script has no client command (detached or debug).

    @param script Compiled script.
    """
    if script.client_command is None:
        return
    argv = script.tmux_argv + shlex.split(script.client_command)
    logger.debug(f"exec {' '.join(argv)}")
    os.execvp(argv[0], argv)

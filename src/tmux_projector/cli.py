#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cli.py

Start tmux sessions described by YAML/JSON project files.

Example:
  tmux-projector start demo.yml               # create (or re-enter) the session
  tmux-projector start demo.yml v2 --detach   # positional $1=v2, don't attach
  tmux-projector debug demo.yml               # print the tmux script only
  tmux-projector list
  tmux-projector kill demo
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .compiler import CompileContext, compile_script, prepare_project, tmux_argv
from .errors import ConfigError, ScriptExecutionError
from .model import StartMode
from .normalize import load_document, normalize_document
from .runner import (
    attach_client,
    detect_start_mode,
    find_session,
    list_sessions,
    run_script,
    server_for_argv,
    tmux_server,
)
from .settings import LauncherSettings, default_settings_path


def _merge_env(base_env: Dict[str, str], cli_env: List[str]) -> Dict[str, str]:
    """! @brief Merge CLI KEY=VALUE entries over an environment snapshot.

    @param base_env Environment (settings defaults + process environment).
    @param cli_env List of KEY=VALUE strings from CLI.
    @return Merged environment dictionary.
    """
    merged = dict(base_env or {})
    for item in cli_env or []:
        if "=" not in item:
            raise ValueError(f"Invalid --env item '{item}'. Expected KEY=VALUE.")
        k, v = item.split("=", 1)
        merged[k] = v
    return merged


def _load_settings(args: argparse.Namespace) -> LauncherSettings:
    path = Path(args.settings) if args.settings else default_settings_path()
    return LauncherSettings.from_yaml(path)


def cmd_start(args: argparse.Namespace) -> int:
    """! @brief CLI handler: start / debug.

    Loads the project, asks the tmux server whether the session already
    exists (skipped for debug), compiles and runs the script, then attaches.

    @param args Parsed argparse args.
    @return Process exit code.
    """
    project_path = Path(args.project)
    if not project_path.exists():
        raise FileNotFoundError(f"Project file not found: {args.project}")

    settings = _load_settings(args)
    environ = dict(settings.env)
    environ.update(os.environ)

    context = CompileContext(
        environ=_merge_env(environ, args.env),
        args=list(args.args),
        cwd=os.getcwd(),
        project_name=project_path.stem,
        session_name=args.session,
        attach=args.attach,
        tmux_command=settings.tmux_command,
    )
    project = prepare_project(normalize_document(load_document(project_path.read_text())), context)

    if args.debug:
        mode = StartMode.DEBUG
    elif project.session_name:
        mode = detect_start_mode(server_for_argv(tmux_argv(project)), project.session_name)
    else:
        mode = StartMode.FIRST_START
    script = compile_script(project, dataclasses.replace(context, start_mode=mode))

    if args.debug:
        sys.stdout.write(script.render())
        return 0

    run_script(script)
    verb = "started" if mode is StartMode.FIRST_START else "restarted"
    print(f"tmux session '{script.session_name}' {verb}.")
    attach_client(script)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """! @brief CLI handler: list.

    @param args Parsed argparse args.
    @return Process exit code.
    """
    sessions = list_sessions(tmux_server(args.socket))
    if not sessions:
        print("(no tmux sessions)")
        return 0
    for s in sessions:
        print(s)
    return 0


def cmd_kill(args: argparse.Namespace) -> int:
    """! @brief CLI handler: kill.

    Killing the session fires any on_stop hooks registered by start.

    @param args Parsed argparse args.
    @return Process exit code.
    """
    name = args.session
    sess = find_session(tmux_server(args.socket), name)
    if not sess:
        print(f"No such session: {name}", file=sys.stderr)
        return 2
    sess.kill()
    print(f"Killed session: {name}")
    return 0


def _add_project_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("project", help="Project file (YAML or JSON).")
    p.add_argument("args", nargs="*", default=[], help="Positional parameters, available as $1, $2, ...")
    p.add_argument("--session", help="Session name override (overrides the project file).")
    p.add_argument("--env", action="append", default=[], help="Variable KEY=VALUE for expansion. Repeatable.")
    p.add_argument("--settings", help="Settings file (default: $TMUX_PROJECTOR_CONFIG, else XDG config).")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--attach", dest="attach", action="store_const", const=True, default=None,
                       help="Attach after starting (overrides the project file).")
    group.add_argument("--detach", dest="attach", action="store_const", const=False,
                       help="Do not attach after starting.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        formatter_class=argparse.RawTextHelpFormatter,
        description="Build tmux sessions from declarative project files.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    ps = sub.add_parser("start", help="Start (or re-enter) the session described by a project file.")
    _add_project_args(ps)
    ps.set_defaults(func=cmd_start, debug=False)

    pd = sub.add_parser("debug", help="Print the tmux script for a project file without running it.")
    _add_project_args(pd)
    pd.set_defaults(func=cmd_start, debug=True)

    pl = sub.add_parser("list", help="List tmux sessions.")
    pl.add_argument("-L", "--socket", help="tmux socket name.")
    pl.set_defaults(func=cmd_list)

    pk = sub.add_parser("kill", help="Kill a tmux session.")
    pk.add_argument("session", help="Session name.")
    pk.add_argument("-L", "--socket", help="tmux socket name.")
    pk.set_defaults(func=cmd_kill)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except (ConfigError, ScriptExecutionError, FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

# -*- coding: utf-8 -*-
"""
compiler.py

Compile a project into an ordered tmux command script.

The script uses tmux's own command syntax (one command per line, the same
syntax ``tmux source-file`` reads). Compilation is pure: the same project and
context always give the same script, and a script is only returned once every
window, pane, hook and selector has been validated.

Example (``tmux-projector debug demo.yml``):

  new-session -d -s demo -c /home/me/demo
  set-option -t demo base-index 1
  move-window -r -t demo
  set-option -w -t demo:1 pane-base-index 1
  rename-window -t demo:1 editor
  split-window -t demo:1.1 -h -c /home/me/demo -l 50%
  send-keys -t demo:1.1 vim C-m
  send-keys -t demo:1.2 'make watch' C-m
  select-window -t demo:1
  select-pane -t demo:1.1
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import StructuralError, TargetError
from .expand import ExpansionContext, TokenScope, expand_builtins, expand_project
from .model import PaneConfig, ProjectConfig, SplitOrientation, StartMode, WindowConfig
from .normalize import check_window_panes, normalize_document, resolve_project

logger = logging.getLogger(__name__)


def sh_quote(s: str) -> str:
    """! @brief Quote a string for POSIX-ish shell (and tmux) consumption.

    @param s Input string.
    @return Shell-safe quoted string.
    """
    if s == "":
        return "''"
    if re.fullmatch(r"[A-Za-z0-9_./:@%+-]+", s):
        return s
    return "'" + s.replace("'", "'\"'\"'") + "'"


def _command(*argv: Any) -> str:
    return " ".join(sh_quote(str(a)) for a in argv)


# ---------------------------
# Inputs / outputs
# ---------------------------

@dataclass
class CompileContext:
    """! @brief Everything the compiler needs to know about the invocation.

    start_mode is an external fact (does the session already exist?) and is
    never looked up by the compiler itself.
    """

    start_mode: StartMode = StartMode.FIRST_START
    environ: Dict[str, str] = field(default_factory=dict)
    args: List[str] = field(default_factory=list)
    cwd: str = "/"
    home: Optional[str] = None
    project_name: Optional[str] = None
    session_name: Optional[str] = None
    attach: Optional[bool] = None
    inside_tmux: Optional[bool] = None
    tmux_command: Optional[str] = None

    @property
    def resolved_home(self) -> str:
        return self.home or self.environ.get("HOME") or "/"

    @property
    def resolved_inside_tmux(self) -> bool:
        if self.inside_tmux is not None:
            return self.inside_tmux
        return bool(self.environ.get("TMUX"))


@dataclass(frozen=True)
class Script:
    session_name: str
    tmux_argv: List[str]
    commands: List[str]
    client_command: Optional[str] = None

    @property
    def lines(self) -> List[str]:
        if self.client_command is None:
            return list(self.commands)
        return self.commands + [self.client_command]

    def render(self) -> str:
        return "".join(line + "\n" for line in self.lines)


def tmux_argv(project: ProjectConfig) -> List[str]:
    """! @brief tmux executable plus socket and global options, as argv.

    @param project Resolved project (tmux_command set).
    @throws StructuralError when tmux_command/tmux_options cannot be shell-split.
    """
    try:
        argv = shlex.split(project.tmux_command or "")
    except ValueError as e:
        raise StructuralError(f"cannot split command: {e}", "tmux_command") from e
    if not argv:
        raise StructuralError("tmux command is empty", "tmux_command")
    if project.tmux_socket:
        argv += ["-L", project.tmux_socket]
    if project.tmux_options:
        try:
            argv += shlex.split(project.tmux_options)
        except ValueError as e:
            raise StructuralError(f"cannot split options: {e}", "tmux_options") from e
    return argv


# ---------------------------
# Builder
# ---------------------------

class ScriptBuilder:
    """Emit the command script for one resolved project."""

    def __init__(self, project: ProjectConfig, context: CompileContext) -> None:
        self.project = project
        self.context = context
        self.session = self._check_session_name(project.session_name)
        self.argv = tmux_argv(project)
        self.scope = TokenScope(tmux=" ".join(sh_quote(a) for a in self.argv))

    @staticmethod
    def _check_session_name(name: Optional[str]) -> str:
        if not name:
            raise StructuralError("session name is not set", "session_name")
        for ch in ".:":
            if ch in name:
                raise StructuralError(f"session name {name!r} must not contain {ch!r}", "session_name")
        return name

    def _run_shell(self, commands: List[str], scope: TokenScope, site: str, cwd: str) -> List[str]:
        return [
            _command("run-shell", "-c", cwd, expand_builtins(cmd, scope, f"{site}[{i}]"))
            for i, cmd in enumerate(commands)
        ]

    def _lifecycle_hooks(self, scope: TokenScope) -> List[str]:
        """on_exit/on_stop are bound to tmux hooks instead of running now."""
        lines = []
        for site, hook, commands in (
            ("on_exit", "client-detached", self.project.on_exit),
            ("on_stop", "session-closed", self.project.on_stop),
        ):
            for i, run in enumerate(self._run_shell(commands, scope, site, self.project.working_dir)):
                lines.append(_command("set-hook", "-t", self.session, f"{hook}[{i}]", run))
        return lines

    # -- panes -------------------------------------------------------------

    def _split_source(self, pane: PaneConfig, ordinal: int, path: str) -> int:
        """! @brief Creation ordinal of the pane this one splits from.

        @param pane Pane being created.
        @param ordinal Its own creation ordinal (0 is the window's first pane).
        @param path Location of the pane.
        @throws TargetError when split_from names a pane not created yet.
        """
        if pane.split_from is None:
            return ordinal - 1
        base = self.project.pane_base_index
        source = pane.split_from - base
        if not 0 <= source < ordinal:
            raise TargetError(
                f"split_from {pane.split_from} does not name an earlier pane "
                f"(expected {base}..{base + ordinal - 1})",
                f"{path}.split_from",
            )
        return source

    def _window(self, window: WindowConfig, index: int, first: bool, scope: TokenScope, path: str) -> List[str]:
        check_window_panes(window, path)
        lines: List[str] = []
        base = self.project.pane_base_index
        target = f"{self.session}:{index}"

        if not first:
            lines.append(_command("new-window", "-d", "-t", target, "-c", window.panes[0].working_dir))
        lines.append(_command("set-option", "-w", "-t", target, "pane-base-index", base))
        if window.name is not None:
            lines.append(_command("rename-window", "-t", target, window.name))

        window_scope = scope.enter_window(target)
        lines += self._run_shell(window.on_create, window_scope, f"{path}.on_create", window.working_dir)

        # creation ordinals in tmux index order; a split lands right after its source
        order = [0]
        for ordinal, pane in enumerate(window.panes):
            pane_path = f"{path}.panes[{ordinal}]"
            if ordinal:
                source = order.index(self._split_source(pane, ordinal, pane_path))
                split = [
                    "split-window",
                    "-t", f"{target}.{base + source}",
                    (pane.split or SplitOrientation.VERTICAL).flag,
                    "-c", pane.working_dir,
                ]
                if pane.split_size is not None:
                    split += ["-l", str(pane.split_size)]
                lines.append(_command(*split))
                order.insert(source + 1, ordinal)
            pane_scope = window_scope.enter_pane(f"{target}.{base + order.index(ordinal)}")
            lines += self._run_shell(pane.on_create or [], pane_scope, f"{pane_path}.on_create", pane.working_dir)

        if window.layout is not None:
            lines.append(_command("select-layout", "-t", target, window.layout))

        for ordinal, pane in enumerate(window.panes):
            pane_path = f"{path}.panes[{ordinal}]"
            pane_target = f"{target}.{base + order.index(ordinal)}"
            for cmd in (pane.pane_commands or []) + pane.commands:
                lines.append(_command("send-keys", "-t", pane_target, cmd, "C-m"))
            if pane.clear:
                lines.append(_command("send-keys", "-t", pane_target, "C-l"))
            if pane.send_keys:
                lines.append(_command("send-keys", "-t", pane_target, "-l", pane.send_keys))
            lines += self._run_shell(
                pane.post_create or [],
                window_scope.enter_pane(pane_target),
                f"{pane_path}.post_create",
                pane.working_dir,
            )

        lines += self._run_shell(window.post_create, window_scope, f"{path}.post_create", window.working_dir)
        return lines

    # -- session -----------------------------------------------------------

    def _startup_target(self) -> str:
        p = self.project
        first = p.window_base_index
        last = first + len(p.windows) - 1
        selector = p.startup_window

        if selector is None:
            index = first
        elif isinstance(selector, int):
            if not first <= selector <= last:
                raise TargetError(f"there is no window with index {selector} (expected {first}..{last})", "startup_window")
            index = selector
        else:
            names = [w.name for w in p.windows]
            if selector not in names:
                raise TargetError(f"there is no window named {selector!r}", "startup_window")
            index = first + names.index(selector)

        window = p.windows[index - first]
        pane = p.pane_base_index if p.startup_pane is None else p.startup_pane
        if not p.pane_base_index <= pane < p.pane_base_index + len(window.panes):
            raise TargetError(f"window {index} has no pane with index {pane}", "startup_pane")
        return f"{self.session}:{index}.{pane}"

    def _session_body(self) -> List[str]:
        p = self.project
        session_scope = self.scope.enter_session(self.session)
        lines = [
            _command("new-session", "-d", "-s", self.session, "-c", p.windows[0].panes[0].working_dir),
            _command("set-option", "-t", self.session, "base-index", p.window_base_index),
            _command("move-window", "-r", "-t", self.session),
        ]
        lines += self._lifecycle_hooks(session_scope)
        lines += self._run_shell(p.on_create, session_scope, "on_create", p.working_dir)

        for offset, window in enumerate(p.windows):
            lines += self._window(
                window, p.window_base_index + offset, offset == 0, session_scope, f"windows[{offset}]"
            )

        lines += self._run_shell(p.post_create, session_scope, "post_create", p.working_dir)

        startup = self._startup_target()
        lines.append(_command("select-window", "-t", startup.rsplit(".", 1)[0]))
        lines.append(_command("select-pane", "-t", startup))
        return lines

    def _client_command(self) -> Optional[str]:
        if self.context.start_mode is StartMode.DEBUG or not self.project.attach:
            return None
        if self.context.resolved_inside_tmux:
            return _command("switch-client", "-t", self.session)
        return _command("attach-session", "-t", self.session)

    def build(self) -> Script:
        """! @brief Validate the whole project and emit the script.

        Every section is built regardless of start mode so a configuration
        error surfaces the same way on first start and on restart.

        @return Complete Script.
        """
        p = self.project
        mode = self.context.start_mode
        root = p.working_dir

        first_start = self._run_shell(p.on_first_start, self.scope, "on_first_start", root)
        restart = self._run_shell(p.on_restart, self.scope.enter_session(self.session), "on_restart", root)
        start = self._run_shell(p.on_start, self.scope, "on_start", root)
        body = self._session_body()

        commands: List[str] = []
        if p.on_exit or p.on_stop:
            # the server must outlive the session for on_stop to run
            commands.append(_command("set-option", "-s", "exit-empty", "off"))
        if mode is StartMode.FIRST_START:
            commands += first_start
        elif mode is StartMode.RESTART:
            commands += restart
        commands += start
        if mode is not StartMode.RESTART:
            commands += body

        logger.debug(f"Compiled session {self.session!r} ({mode.value}): {len(commands)} command(s)")
        return Script(
            session_name=self.session,
            tmux_argv=list(self.argv),
            commands=commands,
            client_command=self._client_command(),
        )


# ---------------------------
# Entry points
# ---------------------------

def prepare_project(project: ProjectConfig, context: CompileContext) -> ProjectConfig:
    """! @brief Expand variables, apply overrides and resolve inheritance.

    @param project Normalized project.
    @param context Invocation context.
    @return Project ready for compile_script.
    """
    expanded = expand_project(project, ExpansionContext(environ=dict(context.environ), args=list(context.args)))
    return resolve_project(
        expanded,
        cwd=context.cwd,
        home=context.resolved_home,
        project_name=context.project_name,
        session_name=context.session_name,
        tmux_command=context.tmux_command,
        attach=context.attach,
    )


def compile_script(project: ProjectConfig, context: CompileContext) -> Script:
    """! @brief Compile a prepared project.

    @throws ConfigError (StructuralError, TargetError, ExpansionError).
    """
    return ScriptBuilder(project, context).build()


def compile_document(document: Any, context: CompileContext) -> Script:
    """! @brief Normalize, expand and compile a parsed project document.

    @param document Parsed YAML/JSON document.
    @param context Invocation context.
    @return Complete Script.
    """
    project = normalize_document(document)
    return compile_script(prepare_project(project, context), context)

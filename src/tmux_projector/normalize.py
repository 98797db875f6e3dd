# -*- coding: utf-8 -*-
"""
normalize.py

Turn a loosely shaped project document into the canonical
ProjectConfig -> WindowConfig -> PaneConfig tree.

Accepted shapes (YAML shown, JSON works the same way):

  windows:
    - htop                      # unnamed window, one pane running "htop"
    - editor: vim               # named window, one pane
    - logs:                     # named window, pane list
        - tail -f app.log
        - { commands: [make watch], split: h, split_size: 30% }
    - servers:                  # named window, window fields
        layout: tiled
        panes: [redis-server, rails s]
    - name: db                  # first key is a window field: the mapping *is* the window
      root: ~/db
      panes: [psql]
    - ~: top                    # explicit "no name"
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import StructuralError
from .expand import normalize_command_text
from .model import (
    DEFAULT_PANE_BASE_INDEX,
    DEFAULT_TMUX_COMMAND,
    DEFAULT_WINDOW_BASE_INDEX,
    HOME_DIR,
    NAMED_LAYOUTS,
    PaneConfig,
    ProjectConfig,
    SplitOrientation,
    SplitSize,
    WindowConfig,
)

logger = logging.getLogger(__name__)

DOCUMENT_PATH = "<document>"

_PANE_COMMANDS_ALIASES = ("pane_commands", "pre", "pre_window", "pane_command")

# canonical field -> every accepted spelling
PROJECT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "session_name": ("session_name", "name"),
    "tmux_command": ("tmux_command",),
    "tmux_options": ("tmux_options",),
    "tmux_socket": ("tmux_socket", "socket_name"),
    "working_dir": ("working_dir", "root"),
    "window_base_index": ("window_base_index",),
    "pane_base_index": ("pane_base_index",),
    "startup_window": ("startup_window",),
    "startup_pane": ("startup_pane",),
    "on_start": ("on_start", "on_project_start"),
    "on_first_start": ("on_first_start", "on_project_first_start"),
    "on_restart": ("on_restart", "on_project_restart"),
    "on_exit": ("on_exit", "on_project_exit"),
    "on_stop": ("on_stop", "on_project_stop"),
    "on_create": ("on_create",),
    "post_create": ("post_create",),
    "on_pane_create": ("on_pane_create",),
    "post_pane_create": ("post_pane_create",),
    "pane_commands": _PANE_COMMANDS_ALIASES,
    "clear_panes": ("clear_panes",),
    "attach": ("attach", "tmux_attached"),
    "detached": ("detached", "tmux_detached"),
    "windows": ("windows", "window"),
}

WINDOW_FIELDS: Dict[str, Tuple[str, ...]] = {
    "name": ("name", "title"),
    "working_dir": ("working_dir", "root"),
    "layout": ("layout",),
    "on_create": ("on_create",),
    "post_create": ("post_create",),
    "on_pane_create": ("on_pane_create",),
    "post_pane_create": ("post_pane_create",),
    "pane_commands": _PANE_COMMANDS_ALIASES,
    "clear_panes": ("clear_panes",),
    "panes": ("panes",),
}

PANE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "working_dir": ("working_dir", "root"),
    "split_from": ("split_from",),
    "split": ("split",),
    "split_size": ("split_size",),
    "clear": ("clear",),
    "on_create": ("on_create",),
    "post_create": ("post_create",),
    "commands": ("commands", "command"),
    "send_keys": ("send_keys",),
}

RESERVED_WINDOW_KEYS = frozenset(alias for names in WINDOW_FIELDS.values() for alias in names)

# Recognized but rejected with a dedicated message.
UNSUPPORTED_PROJECT_FIELDS = frozenset(("template",))

_SPLIT_SIZE_RE = re.compile(r"^(\d+)(%?)$")
_CUSTOM_LAYOUT_RE = re.compile(r"^[0-9a-fA-F]{4},\d+x\d+,\d+,\d+")


def load_document(text: str) -> Any:
    """! @brief Parse a YAML (or JSON) project document.

    @param text Document source.
    @return Parsed document (mapping, sequence, scalar or None).
    @throws StructuralError on a syntax error.
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise StructuralError(f"cannot parse document: {e}", DOCUMENT_PATH) from e


# ---------------------------
# Field helpers
# ---------------------------

def _join(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "a mapping"
    if isinstance(value, list):
        return "a list"
    return f"{type(value).__name__} {value!r}"


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _collect_fields(mapping: Dict[Any, Any], field_names: Dict[str, Tuple[str, ...]], path: str) -> Dict[str, Any]:
    """! @brief Map every key of @p mapping to its canonical field name.

    @param mapping Raw mapping from the document.
    @param field_names Canonical field -> accepted spellings.
    @param path Location of @p mapping.
    @return Canonical field -> raw value, for the fields that are present.
    @throws StructuralError on unknown keys or conflicting aliases.
    """
    lookup = {alias: canonical for canonical, names in field_names.items() for alias in names}
    fields: Dict[str, Any] = {}
    spelled: Dict[str, str] = {}
    for key, value in mapping.items():
        if not isinstance(key, str) or key not in lookup:
            raise StructuralError(f"unknown field {key!r}", path or DOCUMENT_PATH)
        canonical = lookup[key]
        if canonical in fields and fields[canonical] != value:
            raise StructuralError(
                f"conflicts with '{spelled[canonical]}' (both set '{canonical}')", _join(path, key)
            )
        fields[canonical] = value
        spelled[canonical] = key
    return fields


def _string(value: Any, path: str) -> Optional[str]:
    if value is None:
        return None
    if not _is_scalar(value):
        raise StructuralError(f"expected a string, got {_kind(value)}", path)
    return str(value)


def _flag(value: Any, path: str) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raise StructuralError(f"expected true or false, got {_kind(value)}", path)


def _index(value: Any, path: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise StructuralError(f"expected a non-negative integer, got {_kind(value)}", path)
    return value


def _command_list(value: Any, path: str) -> List[str]:
    """! @brief Accept a single command or a list of commands.

    @return Commands with ``\\r`` removed and ``\\n`` folded into spaces.
    """
    if value is None:
        return []
    if _is_scalar(value):
        return [normalize_command_text(str(value))]
    if isinstance(value, list):
        commands = []
        for i, item in enumerate(value):
            if not _is_scalar(item):
                raise StructuralError(f"expected a command string, got {_kind(item)}", f"{path}[{i}]")
            commands.append(normalize_command_text(str(item)))
        return commands
    raise StructuralError(f"expected a command or a list of commands, got {_kind(value)}", path)


def _optional_commands(fields: Dict[str, Any], key: str, path: str) -> Optional[List[str]]:
    if key not in fields:
        return None
    return _command_list(fields[key], _join(path, key))


def _working_dir(fields: Dict[str, Any], path: str) -> Optional[str]:
    """None when absent (inherit), HOME_DIR when null or empty."""
    if "working_dir" not in fields:
        return None
    value = _string(fields["working_dir"], _join(path, "working_dir"))
    return value or HOME_DIR


def _split(value: Any, path: str) -> Optional[SplitOrientation]:
    if value is None:
        return None
    if isinstance(value, str) and value:
        word = value.lower()
        for orientation in SplitOrientation:
            if orientation.value.startswith(word):
                return orientation
    raise StructuralError(f"expected h[orizontal] or v[ertical], got {_kind(value)}", path)


def _split_size(value: Any, path: str) -> Optional[SplitSize]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return SplitSize(value)
    if isinstance(value, str):
        m = _SPLIT_SIZE_RE.match(value.strip())
        if m:
            size = SplitSize(int(m.group(1)), percent=bool(m.group(2)))
            if size.value > 0 and not (size.percent and size.value > 100):
                return size
    raise StructuralError(f"expected a cell count or a percentage, got {_kind(value)}", path)


def _layout(value: Any, path: str) -> Optional[str]:
    layout = _string(value, path)
    if layout is None or layout in NAMED_LAYOUTS or _CUSTOM_LAYOUT_RE.match(layout):
        return layout
    raise StructuralError(
        f"unknown layout {layout!r} (expected one of {', '.join(NAMED_LAYOUTS)} or a tmux layout string)",
        path,
    )


def _send_keys(value: Any, path: str) -> Optional[str]:
    keys = _string(value, path)
    if keys is not None and ("\n" in keys or "\r" in keys):
        raise StructuralError("send_keys must not contain a newline", path)
    return keys


# ---------------------------
# Panes
# ---------------------------

def normalize_pane(entry: Any, path: str) -> PaneConfig:
    """! @brief Normalize one pane entry.

    A scalar is one command, a list is a command list, null is an empty pane
    and a mapping carries the pane fields.
    """
    if entry is None:
        return PaneConfig()
    if _is_scalar(entry) or isinstance(entry, list):
        return PaneConfig(commands=_command_list(entry, path))
    if not isinstance(entry, dict):
        raise StructuralError(f"expected a pane, got {_kind(entry)}", path)

    fields = _collect_fields(entry, PANE_FIELDS, path)
    split_from = _index(fields.get("split_from"), _join(path, "split_from"))
    return PaneConfig(
        working_dir=_working_dir(fields, path),
        split_from=split_from,
        split=_split(fields.get("split"), _join(path, "split")),
        split_size=_split_size(fields.get("split_size"), _join(path, "split_size")),
        clear=_flag(fields.get("clear"), _join(path, "clear")),
        on_create=_optional_commands(fields, "on_create", path),
        post_create=_optional_commands(fields, "post_create", path),
        commands=_command_list(fields.get("commands"), _join(path, "commands")),
        send_keys=_send_keys(fields.get("send_keys"), _join(path, "send_keys")),
    )


def _panes(value: Any, path: str) -> List[PaneConfig]:
    if value is None:
        return [PaneConfig()]
    if not isinstance(value, list):
        return [normalize_pane(value, f"{path}[0]")]
    panes = [normalize_pane(entry, f"{path}[{i}]") for i, entry in enumerate(value)]
    return panes or [PaneConfig()]


def check_window_panes(window: WindowConfig, path: str) -> None:
    """! @brief Cross-field pane checks shared by the normalizer and the compiler.

    @throws StructuralError when the first pane carries split directives or
            when a layout is combined with split/split_size.
    """
    first = window.panes[0]
    if first.split_from is not None or first.has_split_directives:
        raise StructuralError("the first pane of a window cannot be split", f"{path}.panes[0]")
    if window.layout is None:
        return
    for i, pane in enumerate(window.panes):
        if pane.has_split_directives:
            raise StructuralError(
                f"layout {window.layout!r} cannot be combined with split/split_size",
                f"{path}.panes[{i}]",
            )


# ---------------------------
# Windows
# ---------------------------

_UNSET = object()


def _window_from_fields(mapping: Dict[Any, Any], path: str, name: Any = _UNSET) -> WindowConfig:
    fields = _collect_fields(mapping, WINDOW_FIELDS, path)
    if name is _UNSET:
        name = _string(fields.get("name"), _join(path, "name"))
    elif "name" in fields and _string(fields["name"], _join(path, "name")) != name:
        raise StructuralError(f"conflicts with the window key {name!r}", _join(path, "name"))

    window = WindowConfig(
        name=name,
        working_dir=_working_dir(fields, path),
        layout=_layout(fields.get("layout"), _join(path, "layout")),
        on_create=_command_list(fields.get("on_create"), _join(path, "on_create")),
        post_create=_command_list(fields.get("post_create"), _join(path, "post_create")),
        on_pane_create=_optional_commands(fields, "on_pane_create", path),
        post_pane_create=_optional_commands(fields, "post_pane_create", path),
        pane_commands=_optional_commands(fields, "pane_commands", path),
        clear_panes=_flag(fields.get("clear_panes"), _join(path, "clear_panes")),
        panes=_panes(fields.get("panes"), _join(path, "panes")),
    )
    check_window_panes(window, path)
    return window


def _window_name(key: Any, path: str) -> Optional[str]:
    if key is None:
        return None
    if isinstance(key, bool) or not isinstance(key, (str, int)):
        raise StructuralError(f"expected a window name, got {_kind(key)}", path)
    return str(key)


def normalize_window(entry: Any, path: str) -> WindowConfig:
    """! @brief Normalize one element of the window list.

    Disambiguation, in order:
      1. null or an empty mapping -> default window
      2. scalar -> unnamed window with one pane running the scalar
      3. mapping whose first key is a window field -> the mapping is the window
      4. single-key mapping -> key is the name, value is a pane list,
         window fields, a single command or nothing

    @param entry Raw window entry.
    @param path Location of the entry.
    @return WindowConfig.
    """
    if entry is None or entry == {}:
        return WindowConfig()
    if _is_scalar(entry):
        return WindowConfig(panes=[PaneConfig(commands=_command_list(entry, path))])
    if not isinstance(entry, dict):
        raise StructuralError(f"expected a window, got {_kind(entry)}", path)

    first = next(iter(entry))
    if isinstance(first, str) and first in RESERVED_WINDOW_KEYS:
        return _window_from_fields(entry, path)

    if len(entry) != 1:
        raise StructuralError(
            f"window {first!r} must be a single-key mapping or start with a window field", path
        )
    name = _window_name(first, path)
    value = entry[first]
    sub_path = _join(path, first if first is not None else "~")

    if value is None:
        return WindowConfig(name=name)
    if isinstance(value, dict):
        return _window_from_fields(value, sub_path, name=name)
    if isinstance(value, list):
        window = WindowConfig(name=name, panes=_panes(value, sub_path))
        check_window_panes(window, sub_path)
        return window
    if _is_scalar(value):
        return WindowConfig(name=name, panes=[PaneConfig(commands=_command_list(value, sub_path))])
    raise StructuralError(f"expected panes or window fields, got {_kind(value)}", sub_path)


def _windows(value: Any, path: str) -> List[WindowConfig]:
    if value is None:
        return [WindowConfig()]
    if not isinstance(value, list):
        return [normalize_window(value, path)]
    windows = [normalize_window(entry, f"{path}[{i}]") for i, entry in enumerate(value)]
    return windows or [WindowConfig()]


# ---------------------------
# Project
# ---------------------------

def _attach(fields: Dict[str, Any]) -> bool:
    attach = _flag(fields.get("attach"), "attach")
    detached = _flag(fields.get("detached"), "detached")
    if attach is not None and detached is not None:
        raise StructuralError("cannot set both 'attach' and 'detached'", "attach")
    if attach is not None:
        return attach
    if detached is not None:
        return not detached
    return True


def _base_index(fields: Dict[str, Any], key: str, default: int) -> int:
    value = _index(fields.get(key), key)
    return default if value is None else value


def _startup_window(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return _index(value, "startup_window")
    return _string(value, "startup_window")


def normalize_document(document: Any) -> ProjectConfig:
    """! @brief Build the canonical project tree from a parsed document.

    @param document Output of load_document (or any equivalent mapping).
    @return ProjectConfig with unset values still None.
    @throws StructuralError naming the offending path.
    """
    if document is None or (isinstance(document, dict) and all(v is None for v in document.values())):
        raise StructuralError("project document is empty", DOCUMENT_PATH)
    if not isinstance(document, dict):
        raise StructuralError(f"expected a mapping, got {_kind(document)}", DOCUMENT_PATH)
    unsupported = sorted(k for k in document if k in UNSUPPORTED_PROJECT_FIELDS)
    if unsupported:
        raise StructuralError("project templates are not supported", unsupported[0])

    fields = _collect_fields(document, PROJECT_FIELDS, "")
    project = ProjectConfig(
        session_name=_string(fields.get("session_name"), "session_name"),
        tmux_command=_string(fields.get("tmux_command"), "tmux_command"),
        tmux_options=_string(fields.get("tmux_options"), "tmux_options"),
        tmux_socket=_string(fields.get("tmux_socket"), "tmux_socket"),
        working_dir=_working_dir(fields, ""),
        window_base_index=_base_index(fields, "window_base_index", DEFAULT_WINDOW_BASE_INDEX),
        pane_base_index=_base_index(fields, "pane_base_index", DEFAULT_PANE_BASE_INDEX),
        startup_window=_startup_window(fields.get("startup_window")),
        startup_pane=_index(fields.get("startup_pane"), "startup_pane"),
        on_start=_command_list(fields.get("on_start"), "on_start"),
        on_first_start=_command_list(fields.get("on_first_start"), "on_first_start"),
        on_restart=_command_list(fields.get("on_restart"), "on_restart"),
        on_exit=_command_list(fields.get("on_exit"), "on_exit"),
        on_stop=_command_list(fields.get("on_stop"), "on_stop"),
        on_create=_command_list(fields.get("on_create"), "on_create"),
        post_create=_command_list(fields.get("post_create"), "post_create"),
        on_pane_create=_command_list(fields.get("on_pane_create"), "on_pane_create"),
        post_pane_create=_command_list(fields.get("post_pane_create"), "post_pane_create"),
        pane_commands=_command_list(fields.get("pane_commands"), "pane_commands"),
        clear_panes=bool(_flag(fields.get("clear_panes"), "clear_panes")),
        attach=_attach(fields),
        windows=_windows(fields.get("windows"), "windows"),
    )
    logger.debug(f"Normalized project with {len(project.windows)} window(s)")
    return project


# ---------------------------
# Inheritance
# ---------------------------

def _resolve_dir(value: Optional[str], base: str, home: str) -> str:
    """! @brief Resolve a working directory against its enclosing one.

    @param value Directory from the document (None inherits @p base).
    @param base Enclosing directory (absolute).
    @param home Home directory for ``~``.
    """
    if value is None:
        return base
    if value in (HOME_DIR, ""):
        return home
    if value.startswith("~/"):
        return posixpath.normpath(posixpath.join(home, value[2:]))
    return posixpath.normpath(posixpath.join(base, value))


def _inherit(value: Optional[List[str]], default: List[str]) -> List[str]:
    return list(default) if value is None else value


def resolve_project(
    project: ProjectConfig,
    *,
    cwd: str,
    home: str,
    project_name: Optional[str] = None,
    session_name: Optional[str] = None,
    tmux_command: Optional[str] = None,
    attach: Optional[bool] = None,
) -> ProjectConfig:
    """! @brief Apply caller overrides and resolve every inherited value.

    After this step every pane carries its own working directory, hooks,
    pane commands and clear flag; nothing is looked up at emission time.

    @param project Normalized (and variable-expanded) project.
    @param cwd Process working directory, used when the project sets none.
    @param home Home directory, used for null/empty directories and ``~``.
    @param project_name Fallback session name (usually the project file stem).
    @param session_name Session name override.
    @param tmux_command tmux command override from settings.
    @param attach Attach override.
    @return Fully resolved ProjectConfig.
    """
    root = _resolve_dir(project.working_dir, cwd, home)
    windows = []
    for window in project.windows:
        window_dir = _resolve_dir(window.working_dir, root, home)
        on_pane_create = _inherit(window.on_pane_create, project.on_pane_create)
        post_pane_create = _inherit(window.post_pane_create, project.post_pane_create)
        pane_commands = _inherit(window.pane_commands, project.pane_commands)
        clear_panes = project.clear_panes if window.clear_panes is None else window.clear_panes
        panes = [
            replace(
                pane,
                working_dir=_resolve_dir(pane.working_dir, window_dir, home),
                on_create=_inherit(pane.on_create, on_pane_create),
                post_create=_inherit(pane.post_create, post_pane_create),
                pane_commands=list(pane_commands),
                clear=clear_panes if pane.clear is None else pane.clear,
            )
            for pane in window.panes
        ]
        windows.append(
            replace(
                window,
                working_dir=window_dir,
                on_pane_create=on_pane_create,
                post_pane_create=post_pane_create,
                pane_commands=pane_commands,
                clear_panes=clear_panes,
                panes=panes,
            )
        )

    return replace(
        project,
        session_name=session_name or project.session_name or project_name,
        tmux_command=tmux_command or project.tmux_command or DEFAULT_TMUX_COMMAND,
        working_dir=root,
        attach=project.attach if attach is None else attach,
        windows=windows,
    )

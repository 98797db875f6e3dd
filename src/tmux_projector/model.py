# -*- coding: utf-8 -*-
"""
model.py

Canonical configuration tree: Project -> Window -> Pane.

Fields left as ``None`` are "unset" and get filled in by
:func:`tmux_projector.normalize.resolve_project`; after that every list is
populated and every directory is absolute.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Union


DEFAULT_TMUX_COMMAND = "tmux"
DEFAULT_WINDOW_BASE_INDEX = 1
DEFAULT_PANE_BASE_INDEX = 1

NAMED_LAYOUTS = (
    "even-horizontal",
    "even-vertical",
    "main-horizontal",
    "main-vertical",
    "tiled",
)

# Sentinel stored in working_dir when the document asked for the home directory.
HOME_DIR = "~"


class StartMode(enum.Enum):
    FIRST_START = "first_start"
    RESTART = "restart"
    DEBUG = "debug"


class SplitOrientation(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    @property
    def flag(self) -> str:
        return "-h" if self is SplitOrientation.HORIZONTAL else "-v"


@dataclass(frozen=True)
class SplitSize:
    """! @brief Size of a new pane, either in cells or as a percentage."""

    value: int
    percent: bool = False

    def __str__(self) -> str:
        return f"{self.value}%" if self.percent else str(self.value)


# startup_window is either a window index (window_base_index based) or a name.
StartupWindow = Union[int, str, None]


@dataclass(frozen=True)
class PaneConfig:
    working_dir: Optional[str] = None
    split_from: Optional[int] = None
    split: Optional[SplitOrientation] = None
    split_size: Optional[SplitSize] = None
    clear: Optional[bool] = None
    on_create: Optional[List[str]] = None
    post_create: Optional[List[str]] = None
    pane_commands: Optional[List[str]] = None
    commands: List[str] = field(default_factory=list)
    send_keys: Optional[str] = None

    @property
    def has_split_directives(self) -> bool:
        return self.split is not None or self.split_size is not None


@dataclass(frozen=True)
class WindowConfig:
    name: Optional[str] = None
    working_dir: Optional[str] = None
    layout: Optional[str] = None
    on_create: List[str] = field(default_factory=list)
    post_create: List[str] = field(default_factory=list)
    on_pane_create: Optional[List[str]] = None
    post_pane_create: Optional[List[str]] = None
    pane_commands: Optional[List[str]] = None
    clear_panes: Optional[bool] = None
    panes: List[PaneConfig] = field(default_factory=lambda: [PaneConfig()])


@dataclass(frozen=True)
class ProjectConfig:
    session_name: Optional[str] = None
    tmux_command: Optional[str] = None
    tmux_options: Optional[str] = None
    tmux_socket: Optional[str] = None
    working_dir: Optional[str] = None
    window_base_index: int = DEFAULT_WINDOW_BASE_INDEX
    pane_base_index: int = DEFAULT_PANE_BASE_INDEX
    startup_window: StartupWindow = None
    startup_pane: Optional[int] = None
    on_start: List[str] = field(default_factory=list)
    on_first_start: List[str] = field(default_factory=list)
    on_restart: List[str] = field(default_factory=list)
    on_exit: List[str] = field(default_factory=list)
    on_stop: List[str] = field(default_factory=list)
    on_create: List[str] = field(default_factory=list)
    post_create: List[str] = field(default_factory=list)
    on_pane_create: List[str] = field(default_factory=list)
    post_pane_create: List[str] = field(default_factory=list)
    pane_commands: List[str] = field(default_factory=list)
    clear_panes: bool = False
    attach: bool = True
    windows: List[WindowConfig] = field(default_factory=lambda: [WindowConfig()])

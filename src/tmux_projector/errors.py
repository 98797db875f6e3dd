# -*- coding: utf-8 -*-
"""
errors.py

Error types raised while loading, compiling and running a project.
"""

from __future__ import annotations

from typing import Optional


class ConfigError(Exception):
    """! @brief Base class for every project configuration error.

    @param message Human readable description.
    @param path Location of the offending construct (e.g. ``windows[1].panes[0]``).
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class StructuralError(ConfigError):
    """Document shape does not match any accepted form for a field."""


class TargetError(StructuralError):
    """A split source or startup selector names a window/pane that does not exist yet."""


class ExpansionError(ConfigError):
    """A variable or builtin token cannot be expanded at its site."""


class ScriptExecutionError(Exception):
    """tmux rejected the compiled script."""

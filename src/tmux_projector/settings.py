# -*- coding: utf-8 -*-
"""
settings.py

Optional per-user settings, read from YAML:

  tmux_command: tmux -2
  env:
    EDITOR: nvim

Looked up at $TMUX_PROJECTOR_CONFIG, else
$XDG_CONFIG_HOME/tmux-projector/config.yaml (~/.config when unset).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .errors import ConfigError


SETTINGS_ENV_VAR = "TMUX_PROJECTOR_CONFIG"


def default_settings_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """! @brief Location of the settings file.

    @param environ Environment to consult (defaults to os.environ).
    @return Path (which may not exist).
    """
    environ = os.environ if environ is None else environ
    if environ.get(SETTINGS_ENV_VAR):
        return Path(environ[SETTINGS_ENV_VAR])
    base = environ.get("XDG_CONFIG_HOME") or str(Path(environ.get("HOME", "~")) / ".config")
    return Path(base).expanduser() / "tmux-projector" / "config.yaml"


@dataclass
class LauncherSettings:
    tmux_command: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)

    @staticmethod
    def from_yaml(path: Path) -> "LauncherSettings":
        """! @brief Load settings; a missing file yields the defaults.

        @param path Settings file.
        @return LauncherSettings.
        @throws ConfigError on a malformed file.
        """
        if not path.exists():
            return LauncherSettings()
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse settings: {e}", str(path)) from e
        if not isinstance(data, dict):
            raise ConfigError("settings must be a mapping", str(path))

        tmux_command = data.get("tmux_command")
        if tmux_command is not None and not isinstance(tmux_command, str):
            raise ConfigError("tmux_command must be a string", f"{path}:tmux_command")
        env = data.get("env") or {}
        if not isinstance(env, dict):
            raise ConfigError("env must be a mapping", f"{path}:env")
        return LauncherSettings(
            tmux_command=tmux_command,
            env={str(k): "" if v is None else str(v) for k, v in env.items()},
        )

# -*- coding: utf-8 -*-
"""
expand.py

Variable and builtin-token expansion.

Two independent token families:

  - ``$NAME``, ``${NAME}``, ``${NAME:-fallback}`` and ``$$``, resolved against
    the environment and positional parameters. Applied to every string field
    of a project (:func:`expand_project`).
  - ``__TMUX__``, ``__SESSION__``, ``__WINDOW__``, ``__PANE__``, resolved only
    inside hook text, against the :class:`TokenScope` of the emission site
    (:func:`expand_builtins`).
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import ExpansionError


_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_BRACED_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*|[0-9]+")
_BUILTIN_RE = re.compile(r"__(TMUX|SESSION|WINDOW|PANE)__")

# Fields holding command lists; their text is single-line again after expansion.
_COMMAND_FIELDS = frozenset((
    "on_start", "on_first_start", "on_restart", "on_exit", "on_stop",
    "on_create", "post_create", "on_pane_create", "post_pane_create",
    "pane_commands", "commands",
))


def normalize_command_text(text: str) -> str:
    """! @brief Drop carriage returns and fold newlines into single spaces.

    @param text Raw command text.
    @return Single-line command text.
    """
    return text.replace("\r", "").replace("\n", " ")


# ---------------------------
# $VARIABLES
# ---------------------------

@dataclass(frozen=True)
class ExpansionContext:
    environ: Dict[str, str] = field(default_factory=dict)
    args: List[str] = field(default_factory=list)

    def lookup(self, name: str) -> Optional[str]:
        """! @brief Value of a variable, or None when it is unset.

        Purely numeric names are positional parameters (1-based).
        """
        if name.isdigit():
            index = int(name)
            if 1 <= index <= len(self.args):
                return self.args[index - 1]
            return None
        return self.environ.get(name)


def _find_closing_brace(text: str, start: int, path: Optional[str]) -> int:
    depth = 1
    i = start
    while i < len(text):
        if text.startswith("$$", i):
            i += 2
            continue
        if text.startswith("${", i):
            depth += 1
            i += 2
            continue
        if text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ExpansionError(f"unterminated '${{' in {text!r}", path)


def _parse_braced(text: str, start: int, path: Optional[str]) -> Tuple[int, str, Optional[str]]:
    """! @brief Parse the body of ``${...}`` starting right after the brace.

    @return (index after the closing brace, variable name, fallback or None).
    """
    end = _find_closing_brace(text, start, path)
    body = text[start:end]
    m = _BRACED_NAME_RE.match(body)
    if not m:
        raise ExpansionError(f"invalid variable name in '${{{body}}}'", path)
    rest = body[m.end():]
    if not rest:
        return end + 1, m.group(0), None
    if rest.startswith(":-"):
        return end + 1, m.group(0), rest[2:]
    raise ExpansionError(f"unsupported expansion '${{{body}}}'", path)


def expand_variables(text: str, context: ExpansionContext, path: Optional[str] = None) -> str:
    """! @brief Expand ``$NAME``, ``${NAME}``, ``${NAME:-fallback}`` and ``$$``.

    Unset variables without a fallback expand to an empty string. A variable
    set to an empty string counts as set. ``$$`` yields a literal ``$`` that is
    never expanded again.

    @param text Input string.
    @param context Environment and positional parameters.
    @param path Field path used in error messages.
    @return Expanded string.
    @throws ExpansionError on malformed ``${...}``.
    """
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch != "$" or i + 1 == n:
            out.append(ch)
            i += 1
            continue

        nxt = text[i + 1]
        if nxt == "$":
            out.append("$")
            i += 2
        elif nxt == "{":
            i, name, fallback = _parse_braced(text, i + 2, path)
            value = context.lookup(name)
            if value is None:
                value = expand_variables(fallback, context, path) if fallback is not None else ""
            out.append(value)
        elif nxt.isdigit():
            # POSIX: $12 is $1 followed by "2"
            out.append(context.lookup(nxt) or "")
            i += 2
        else:
            m = _NAME_RE.match(text, i + 1)
            if m:
                out.append(context.lookup(m.group(0)) or "")
                i = m.end()
            else:
                out.append(ch)
                i += 1
    return "".join(out)


def _expand_value(value: Any, context: ExpansionContext, path: str) -> Any:
    if isinstance(value, str):
        return expand_variables(value, context, path)
    if isinstance(value, list):
        return [_expand_value(v, context, f"{path}[{i}]") for i, v in enumerate(value)]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        changes = {}
        for f in dataclasses.fields(value):
            sub_path = f"{path}.{f.name}" if path else f.name
            expanded = _expand_value(getattr(value, f.name), context, sub_path)
            if f.name in _COMMAND_FIELDS and expanded is not None:
                expanded = [normalize_command_text(c) for c in expanded]
            elif f.name == "send_keys" and expanded is not None and ("\n" in expanded or "\r" in expanded):
                raise ExpansionError("send_keys must not contain a newline after expansion", sub_path)
            changes[f.name] = expanded
        return dataclasses.replace(value, **changes)
    return value


def expand_project(project, context: ExpansionContext):
    """! @brief Expand variables in every string field of a project tree.

    Command text is folded back to a single line afterwards, since a value
    may carry line breaks of its own.

    @param project Normalized ProjectConfig.
    @param context Environment and positional parameters.
    @return A new ProjectConfig; the input is left untouched.
    """
    return _expand_value(project, context, "")


# ---------------------------
# __BUILTIN__ tokens
# ---------------------------

@dataclass(frozen=True)
class TokenScope:
    """Targets known at an emission site. Each layer adds one token."""

    tmux: str
    session: Optional[str] = None
    window: Optional[str] = None
    pane: Optional[str] = None

    def enter_session(self, target: str) -> "TokenScope":
        return dataclasses.replace(self, session=target)

    def enter_window(self, target: str) -> "TokenScope":
        return dataclasses.replace(self, window=target, pane=None)

    def enter_pane(self, target: str) -> "TokenScope":
        return dataclasses.replace(self, pane=target)


def expand_builtins(text: str, scope: TokenScope, site: str) -> str:
    """! @brief Replace builtin tokens with the targets of the current site.

    @param text Hook command text.
    @param scope Targets available at this site.
    @param site Hook location, used in error messages.
    @return Text with tokens substituted.
    @throws ExpansionError when a token names a target that does not exist here.
    """

    def repl(m: re.Match) -> str:
        value = getattr(scope, m.group(1).lower())
        if value is None:
            raise ExpansionError(f"{m.group(0)} is not available here", site)
        return value

    return _BUILTIN_RE.sub(repl, text)

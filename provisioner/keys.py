"""Translate literal text into QEMU monitor ``sendkey`` directives.

Characters not listed in :data:`KEY_TABLE` (lowercase letters and digits)
are their own key names.  A ``<name>`` span made of lowercase letters and
underscores is a single symbolic key such as ``<ret>`` or ``<tab>``;
``<lt>`` and ``<gt>`` type literal angle brackets.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List

from provisioner.models import KeySequence

KEY_TABLE: Dict[str, str] = {
    " ": "spc",
    "!": "shift-1",
    '"': "shift-apostrophe",
    "#": "shift-3",
    "$": "shift-4",
    "%": "shift-5",
    "&": "shift-7",
    "'": "apostrophe",
    "(": "shift-9",
    ")": "shift-0",
    "*": "shift-8",
    "+": "shift-equal",
    ",": "comma",
    "-": "minus",
    ".": "dot",
    "/": "slash",
    ":": "shift-semicolon",
    ";": "semicolon",
    "<": "shift-comma",
    "=": "equal",
    ">": "shift-dot",
    "?": "shift-slash",
    "@": "shift-2",
    "[": "bracket_left",
    "\\": "backslash",
    "]": "bracket_right",
    "^": "shift-6",
    "_": "shift-minus",
    "`": "grave_accent",
    "{": "shift-bracket_left",
    "|": "shift-backslash",
    "}": "shift-bracket_right",
    "~": "shift-grave_accent",
}

SYMBOLIC_ALIASES: Dict[str, str] = {
    "lt": KEY_TABLE["<"],
    "gt": KEY_TABLE[">"],
}

_SYMBOLIC_RE = re.compile(r"<([a-z_]+)>")

_REVERSE_TABLE: Dict[str, str] = {key: char for char, key in KEY_TABLE.items()}


def compile_keys(literal: str) -> KeySequence:
    keys: List[str] = []
    i = 0
    while i < len(literal):
        char = literal[i]
        if char == "<":
            match = _SYMBOLIC_RE.match(literal, i)
            if match:
                name = match.group(1)
                keys.append(SYMBOLIC_ALIASES.get(name, name))
                i = match.end()
                continue
        keys.append(KEY_TABLE.get(char, char))
        i += 1
    return tuple(keys)


def decode_keys(keys: Iterable[str]) -> str:
    """Inverse table lookup for sequences compiled from plain text."""
    return "".join(_REVERSE_TABLE.get(key, key) for key in keys)


def to_monitor_commands(keys: Iterable[str]) -> List[str]:
    return [f"sendkey {key}" for key in keys]

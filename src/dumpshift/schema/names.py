"""Identifier sanitization and collision handling for target names."""

from __future__ import annotations

import re

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_name(name: str) -> str:
    """Map an arbitrary source identifier onto the target's identifier set.

    Characters outside [A-Za-z0-9_] become '_'. A leading underscore is
    replaced with 'A' and a leading digit gets an 'A' prefix, since target
    identifiers must start with a letter. The result is a fixed point:
    sanitizing it again returns it unchanged.
    """
    fixed = _INVALID_CHARS.sub("_", name)
    if not fixed:
        return "A"
    if fixed[0] == "_":
        return "A" + fixed[1:]
    if fixed[0].isdigit():
        return "A" + fixed
    return fixed


class NameRegistry:
    """Set of names already handed out within one namespace.

    Comparison is case-insensitive. When a sanitized name is taken, the
    prefix ``A<n>_`` is added using the smallest free n.
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._used

    def unique_name(self, name: str) -> str:
        base = sanitize_name(name)
        candidate = base
        n = 0
        while candidate.lower() in self._used:
            n += 1
            candidate = f"A{n}_{base}"
        self._used.add(candidate.lower())
        return candidate

    def reserve(self, name: str) -> None:
        self._used.add(name.lower())

    def release(self, name: str) -> None:
        self._used.discard(name.lower())

"""Helpers for ClearCase version paths.

A version path suffix looks like ``\\main\\REL1\\3``: branch names from the
root branch down, then the version number. A version-extended path prefixes
it with the element name and ``@@``.
"""

from __future__ import annotations

import re

# Pseudo "versions" listed at the start of each branch carry no number
_FULL_VERSION_RE = re.compile(r"\\\d+$")
_VERSION_EXTENDED_RE = re.compile(r"(.*)@@(\\main(?:\\[\w.]+)*\\\d+)$")


def is_full_version(suffix: str) -> bool:
    """True when the suffix ends with a revision number."""
    return bool(_FULL_VERSION_RE.search(suffix))


def strip_extended(line: str) -> str:
    """Keep what follows the last ``@@`` (the whole line when there is none)."""
    index = line.rfind("@@")
    return line if index < 0 else line[index + 2:]


def split_version(suffix: str) -> tuple[list[str], int]:
    """
    Split a version suffix into its branch chain and version number.

    Raises:
        ValueError: If the suffix has no branch or no numeric revision
    """
    parts = [p for p in strip_extended(suffix).split("\\") if p]
    if len(parts) < 2:
        raise ValueError(f"Not a version path: {suffix!r}")
    return parts[:-1], int(parts[-1])


def branch_and_number(suffix: str) -> tuple[str, int]:
    """Return ``(branch name, version number)`` for a version suffix."""
    branches, number = split_version(suffix)
    return branches[-1], number


def parse_version_extended(path: str) -> tuple[str, str] | None:
    """Split ``elem@@\\main\\3`` into ``(elem, \\main\\3)``, or None."""
    match = _VERSION_EXTENDED_RE.match(path)
    if not match:
        return None
    return match.group(1), match.group(2)


def canonical_element_name(name: str) -> str:
    """Element names are kept without a trailing ``@@``."""
    return name[:-2] if name.endswith("@@") else name

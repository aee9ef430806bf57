"""Graph Layer - in-memory version graph of the imported elements."""

from .model import (
    ROOT_BRANCH,
    SYMLINK_PREFIX,
    Branch,
    DirectoryVersion,
    Element,
    SymLinkElement,
    Version,
    new_version,
)
from .snapshot import Snapshot

__all__ = [
    "ROOT_BRANCH",
    "SYMLINK_PREFIX",
    "Branch",
    "DirectoryVersion",
    "Element",
    "SymLinkElement",
    "Version",
    "new_version",
    "Snapshot",
]

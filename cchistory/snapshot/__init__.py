"""Snapshot Layer - persistence of the version graph across runs."""

from .schema import SnapshotModel, VersionRef
from .serialization import flatten_snapshot, restore_snapshot
from .store import SnapshotError, SnapshotStore

__all__ = [
    "SnapshotModel",
    "VersionRef",
    "flatten_snapshot",
    "restore_snapshot",
    "SnapshotError",
    "SnapshotStore",
]

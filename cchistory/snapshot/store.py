"""SnapshotStore - JSON file persistence for Snapshots."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from ..graph.snapshot import Snapshot
from .schema import FORMAT_VERSION, SnapshotModel
from .serialization import flatten_snapshot, restore_snapshot


class SnapshotError(Exception):
    """A snapshot file could not be read."""


class SnapshotStore:
    """
    Saves and loads Snapshots as JSON files.

    One snapshot per file. Writes are atomic: the file is either the old
    snapshot or the new one, never a partial write.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def save(self, snapshot: Snapshot, path: Path | str) -> Path:
        """
        Save a snapshot.

        Args:
            snapshot: Graph to persist
            path: Target file; parent directories are created

        Returns:
            Path of the written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = flatten_snapshot(snapshot).model_dump_json(indent=1)

        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=f"{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        self.logger.info("Snapshot of %d elements saved in %s", len(snapshot), path)
        return path

    def load(self, path: Path | str) -> Snapshot:
        """
        Load a snapshot.

        Raises:
            FileNotFoundError: If the file does not exist
            SnapshotError: If the file is not a valid snapshot
        """
        path = Path(path)
        try:
            model = SnapshotModel.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise SnapshotError(f"Invalid snapshot {path}: {e}") from e
        if model.format_version != FORMAT_VERSION:
            raise SnapshotError(
                f"Snapshot {path} has format {model.format_version}, expected {FORMAT_VERSION}"
            )
        try:
            snapshot = restore_snapshot(model, self.logger)
        except ValueError as e:
            raise SnapshotError(f"Inconsistent snapshot {path}: {e}") from e
        self.logger.info("Snapshot of %d elements loaded from %s", len(snapshot), path)
        return snapshot

    def load_all(self, paths: Iterable[Path | str]) -> Snapshot | None:
        """
        Load several snapshots and merge them in order.

        The first file wins on every oid present in more than one file.

        Returns:
            Merged snapshot, None when no path was given
        """
        result: Snapshot | None = None
        for path in paths:
            snapshot = self.load(path)
            if result is None:
                result = snapshot
            else:
                result.merge(snapshot)
        return result

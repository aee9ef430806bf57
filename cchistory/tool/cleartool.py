"""Typed cleartool queries on top of a ToolSession."""

from __future__ import annotations

import logging
import tempfile
import uuid
from pathlib import Path
from typing import Protocol

from .parsers import (
    FIELD_SEPARATOR,
    DirectoryEntry,
    VersionMetadata,
    parse_directory_dump,
    parse_object_id,
    parse_version_metadata,
    parse_version_tree,
)

_SEP = FIELD_SEPARATOR
OID_FORMAT = f"%On{_SEP}%m"
METADATA_FORMAT = f"%Fu{_SEP}%u{_SEP}%Nd{_SEP}%Nc{_SEP}%Nl{_SEP}%[hlink:Merge]p"


class CommandRunner(Protocol):
    """Anything that executes one tool command and returns its lines."""

    def execute(self, command: str) -> list[str]: ...


class Cleartool:
    """
    Cleartool queries.

    Every query is one round trip on the underlying session. Not thread
    safe beyond what the session guarantees.
    """

    def __init__(self, session: CommandRunner, logger: logging.Logger | None = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    def cd(self, directory: str) -> None:
        self.session.execute(f'cd "{directory}"')

    def pwd(self) -> str | None:
        lines = self.session.execute("pwd")
        return lines[0] if lines else None

    def lsvtree(self, element: str) -> list[str]:
        """
        Version suffixes of an element, in creation order.

        Includes obsolete versions and the pseudo entries that open each
        branch (no trailing number); callers filter those.
        """
        return parse_version_tree(self.session.execute(f'lsvtree -short -all -obsolete "{element}"'))

    def ls(self, versioned_path: str) -> dict[str, DirectoryEntry]:
        """Content of a directory version as name -> entry."""
        return parse_directory_dump(self.session.execute(f'ls -dump "{versioned_path}"'))

    def get_oid(self, element: str) -> tuple[str, bool] | None:
        """
        Return ``(oid, is_directory)`` of an element, None when not found.
        """
        if not element.endswith("@@"):
            element += "@@"
        return parse_object_id(self.session.execute(f'desc -fmt {OID_FORMAT} "{element}"'))

    def get_predecessor(self, version: str) -> str | None:
        lines = self.session.execute(f'desc -pred -s "{version}"')
        return lines[0].strip() if lines else None

    def get_version_details(self, version: str) -> VersionMetadata | None:
        """
        Author, date, comment, labels and merge links of a version.

        Returns None when the tool returns nothing usable for the version.
        """
        lines = self.session.execute(f'desc -fmt {METADATA_FORMAT} "{version}"')
        try:
            return parse_version_metadata(lines)
        except ValueError as e:
            self.logger.warning("Could not parse details of %s: %s", version, e)
            return None

    def get(self, versioned_path: str) -> Path:
        """
        Write the content of a version to a new temporary file.

        The caller owns the returned file and must delete it. The path may
        not exist if the tool failed to fetch the content.
        """
        target = Path(tempfile.gettempdir()) / f"cchistory-{uuid.uuid4().hex}"
        self.session.execute(f'get -to "{target}" "{versioned_path}"')
        if not target.exists():
            self.logger.warning("Version %s could not be fetched", versioned_path)
        return target

"""Parsers for cleartool response shapes.

Pure functions over the lines returned by ``ToolSession.execute`` so they
can be tested without a live tool.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .paths import branch_and_number, strip_extended

logger = logging.getLogger(__name__)

# Reserved separator of every -fmt query; never appears in tool content
FIELD_SEPARATOR = "§"
DATE_FORMAT = "%Y%m%d.%H%M%S"
DIRECTORY_KIND = "directory element"

_ENTRY_RE = re.compile(r'^===> name: "([^"]+)"')
_OID_RE = re.compile(r"cataloged oid: (\S+) \(mtype \d+\)")
_SYMLINK_RE = re.compile(r"^.+ --> (.+)$")
_HLINK_RE = re.compile(r'(->|<-)\s*(?:"([^"]+)"|(\S+))')


@dataclass(frozen=True)
class DirectoryEntry:
    """One entry of a directory version: either a cataloged oid or a symlink."""

    oid: str | None = None
    symlink_target: str | None = None

    @property
    def is_symlink(self) -> bool:
        return self.symlink_target is not None


@dataclass
class VersionMetadata:
    """Fields of a ``desc -fmt`` metadata query."""

    author_name: str
    author_login: str
    date: datetime
    comment: str
    labels: list[str] = field(default_factory=list)
    merges_to: list[tuple[str, int]] = field(default_factory=list)
    merges_from: list[tuple[str, int]] = field(default_factory=list)


def parse_directory_dump(lines: list[str]) -> dict[str, DirectoryEntry]:
    """
    Parse ``ls -dump`` output into name -> entry.

    An entry header starts a new entry; the oid or symlink line that follows
    completes it. Headers never completed are dropped.
    """
    result: dict[str, DirectoryEntry] = {}
    name: str | None = None
    entry: DirectoryEntry | None = None

    for line in lines:
        match = _ENTRY_RE.match(line)
        if match:
            if name is not None and entry is not None:
                result[name] = entry
            name = match.group(1)
            entry = None
            continue
        match = _OID_RE.search(line)
        if match:
            entry = DirectoryEntry(oid=match.group(1))
            continue
        match = _SYMLINK_RE.match(line)
        if match:
            entry = DirectoryEntry(symlink_target=match.group(1))

    if name is not None and entry is not None:
        result[name] = entry
    return result


def parse_object_id(lines: list[str]) -> tuple[str, bool] | None:
    """Parse ``%On§%m`` into ``(oid, is_directory)``; None when empty."""
    if not lines:
        return None
    parts = lines[0].split(FIELD_SEPARATOR)
    if not parts[0]:
        return None
    is_directory = len(parts) > 1 and parts[1] == DIRECTORY_KIND
    return parts[0], is_directory


def parse_date(raw: str) -> datetime:
    """Tool timestamps are ``yyyyMMdd.HHmmss`` in UTC."""
    return datetime.strptime(raw.strip(), DATE_FORMAT).replace(tzinfo=timezone.utc)


def parse_labels(raw: str) -> list[str]:
    labels: list[str] = []
    for label in raw.split():
        if label not in labels:
            labels.append(label)
    return labels


def parse_merge_hyperlinks(raw: str) -> tuple[list[tuple[str, int]], list[tuple[str, int]]]:
    """
    Parse the ``%[hlink:Merge]p`` field.

    ``->`` points at the merge target (merge-to), ``<-`` at the merge source
    (merge-from). Targets may be quoted and contain spaces. Entries whose
    target is not a version path are logged and dropped.

    Returns:
        (merges_to, merges_from) as (branch name, version number) pairs
    """
    merges_to: list[tuple[str, int]] = []
    merges_from: list[tuple[str, int]] = []
    for arrow, quoted, bare in _HLINK_RE.findall(raw):
        target = quoted or bare
        try:
            if "@@" not in target:
                raise ValueError("no version-extended path")
            link = branch_and_number(strip_extended(target))
        except ValueError as e:
            logger.warning("Ignoring merge hyperlink %s %s: %s", arrow, target, e)
            continue
        (merges_to if arrow == "->" else merges_from).append(link)
    return merges_to, merges_from


def parse_version_metadata(lines: list[str]) -> VersionMetadata | None:
    """
    Parse a metadata query response.

    Lines are rejoined first since a comment may span several of them.

    Raises:
        ValueError: If the timestamp is malformed
    """
    raw = "\n".join(lines)
    parts = raw.split(FIELD_SEPARATOR)
    if len(parts) < 5:
        return None

    merges_to, merges_from = parse_merge_hyperlinks(parts[5]) if len(parts) > 5 else ([], [])
    return VersionMetadata(
        author_name=parts[0],
        author_login=parts[1],
        date=parse_date(parts[2]),
        comment=parts[3],
        labels=parse_labels(parts[4]),
        merges_to=merges_to,
        merges_from=merges_from,
    )


def parse_version_tree(lines: list[str]) -> list[str]:
    """Version suffixes of ``lsvtree`` output, pseudo entries included."""
    return [strip_extended(line.strip()) for line in lines if line.strip()]

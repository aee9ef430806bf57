"""
HistoryReader - rebuilds the version graph from cleartool queries.

Two discovery modes feed the same graph:
- bulk: every version of an element, from its version tree
- point-in-time: one version path and the ancestors it implies

References to elements or versions not known yet are queued and resolved
by ``resolve_fixups`` once everything requested has been read.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .graph.model import (
    ROOT_BRANCH,
    Branch,
    DirectoryVersion,
    Element,
    SymLinkElement,
    Version,
    new_version,
)
from .graph.snapshot import Snapshot
from .tool.paths import (
    branch_and_number,
    canonical_element_name,
    is_full_version,
    parse_version_extended,
    split_version,
)

if TYPE_CHECKING:
    from .tool.cleartool import Cleartool


class StructuralInconsistencyError(Exception):
    """The tool's answers cannot form a consistent graph; the run must stop."""


class AddResult(Enum):
    """Outcome of materializing one version."""

    ADDED = "added"
    FUTURE = "future"    # dated after the cutoff
    SKIPPED = "skipped"  # no details, or out of order


@dataclass
class ContentFixup:
    """Directory entry whose element was not known when the directory was read."""

    directory_version: DirectoryVersion
    name: str
    oid: str


@dataclass
class MergeFixup:
    """Merge link to a version that may not be read yet."""

    version: Version
    branch_name: str
    version_number: int
    to: bool


def normalize_cutoff(cutoff: datetime | None) -> datetime:
    """None means now; naive datetimes are taken as UTC."""
    if cutoff is None:
        return datetime.now(timezone.utc)
    if cutoff.tzinfo is None:
        return cutoff.replace(tzinfo=timezone.utc)
    return cutoff.astimezone(timezone.utc)


class HistoryReader:
    """
    Builds and extends a Snapshot from cleartool.

    Single threaded: one query in flight at a time. Missing elements,
    versions and unresolved references are logged and skipped; only
    structural inconsistencies in point-in-time mode abort the run.
    """

    def __init__(
        self,
        cleartool: "Cleartool",
        cutoff: datetime | None = None,
        snapshot: Snapshot | None = None,
        root: str | None = None,
        logger: logging.Logger | None = None,
        file_progress: int = 100,
        directory_progress: int = 20,
        version_progress: int = 100,
    ):
        """
        Initialize the reader.

        Args:
            cleartool: Typed tool queries
            cutoff: Versions dated after this are not imported (default: now)
            snapshot: Existing graph to extend (incremental import)
            root: Directory to cd into before reading
            logger: Logger for progress and skipped items
        """
        self.cleartool = cleartool
        self.cutoff = normalize_cutoff(cutoff)
        self.logger = logger or logging.getLogger(__name__)
        self.snapshot = snapshot if snapshot is not None else Snapshot(logger=self.logger)
        self.file_progress = file_progress
        self.directory_progress = directory_progress
        self.version_progress = version_progress
        self.content_fixups: list[ContentFixup] = []
        self.merge_fixups: list[MergeFixup] = []
        if root:
            self.cleartool.cd(root)

    @property
    def elements_by_oid(self) -> dict[str, Element]:
        return self.snapshot.elements_by_oid

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    def read(
        self,
        elements: Iterable[str] = (),
        directories: Iterable[str] = (),
        versions: Iterable[str] | None = None,
    ) -> list[Version] | None:
        """
        Read elements, then directories, then version paths, then fix up.

        Returns:
            Newly discovered versions in discovery order when version paths
            were given, None otherwise
        """
        self._read_elements(elements, "file", self.file_progress)
        self._read_elements(directories, "directory", self.directory_progress)

        new_versions: list[Version] | None = None
        if versions is not None:
            new_versions = []
            self.logger.info("Start reading individual versions")
            for i, path in enumerate(versions, 1):
                if i % self.version_progress == 0:
                    self.logger.info("Reading version %d", i)
                self.read_version(path, new_versions)
            self.logger.info("Stop reading individual versions: %d new", len(new_versions))

        self.resolve_fixups()
        return new_versions

    def read_files(
        self,
        elements_file: Path | str | None = None,
        directories_file: Path | str | None = None,
        versions_file: Path | str | None = None,
    ) -> list[Version] | None:
        """Same as ``read`` with one path per line taken from text files."""
        return self.read(
            elements=_lines(elements_file) if elements_file else (),
            directories=_lines(directories_file) if directories_file else (),
            versions=_lines(versions_file) if versions_file else None,
        )

    def _read_elements(self, names: Iterable[str], kind: str, progress: int) -> None:
        count = 0
        for count, name in enumerate(names, 1):
            if count == 1:
                self.logger.info("Start reading %s elements", kind)
            if count % progress == 0:
                self.logger.info("Reading %s element %d", kind, count)
            self.read_element(name)
        if count:
            self.logger.info("Stop reading %s elements: %d read", kind, count)

    # ------------------------------------------------------------------
    # Bulk mode
    # ------------------------------------------------------------------

    def read_element(self, name: str) -> bool:
        """
        Read every version of an element not seen before.

        Returns:
            True if the element was added to the graph
        """
        name = canonical_element_name(name)
        found = self.cleartool.get_oid(name)
        if found is None:
            self.logger.warning("Could not find oid for element %s", name)
            return False
        oid, is_directory = found
        if oid in self.snapshot:
            self.logger.warning("Element %s (oid:%s) already read, skipping it", name, oid)
            return False

        self.logger.debug("Start reading %s element %s", "directory" if is_directory else "file", name)
        element = self.snapshot.add(Element(oid=oid, name=name, is_directory=is_directory))
        orphan_branches: set[str] = set()

        for suffix in self.cleartool.lsvtree(name):
            if not is_full_version(suffix):
                continue
            branches, number = split_version(suffix)
            branch_name = branches[-1]
            if branch_name in orphan_branches:
                continue

            branch = element.get_branch(branch_name)
            if branch is None:
                branch = self._open_branch_at_latest(element, branches)
                if branch is None:
                    orphan_branches.add(branch_name)
                    continue

            result = self._add_version(branch, number, None)
            if result is AddResult.FUTURE:
                if not branch.versions:
                    element.remove_branch(branch_name)
                # versions come in creation order, later ones are too recent as well
                break

        for empty in [b.name for b in element.branches.values() if not b.versions]:
            element.remove_branch(empty)
        self.logger.debug("Stop reading element %s", name)
        return True

    def _open_branch_at_latest(self, element: Element, branches: list[str]) -> Branch | None:
        """New branch forking from the latest version read on its parent."""
        branch_name = branches[-1]
        if len(branches) == 1:
            return element.add_branch(branch_name)

        parent = element.get_branch(branches[-2])
        if parent is None or parent.last is None:
            self.logger.warning(
                "Branch %s of %s (oid:%s) has no parent branch %s, skipping it",
                branch_name, element.name, element.oid, branches[-2],
            )
            return None
        return element.add_branch(branch_name, parent.last)

    # ------------------------------------------------------------------
    # Point-in-time mode
    # ------------------------------------------------------------------

    def read_version(self, path: str, new_versions: list[Version] | None = None) -> bool:
        """
        Read one version and every ancestor of it not read yet.

        Args:
            path: Version-extended path, e.g. ``dir/foo.c@@\\main\\REL1\\3``
            new_versions: Receives versions actually added, oldest first

        Returns:
            True if the version is in the graph afterwards

        Raises:
            StructuralInconsistencyError: If a predecessor or a branching
                point the tool implies cannot be found
        """
        parsed = parse_version_extended(path)
        if parsed is None:
            self.logger.warning("Could not parse '%s' as a clearcase version", path)
            return False
        element_name, suffix = parsed

        found = self.cleartool.get_oid(element_name)
        if found is None:
            self.logger.warning("Could not find oid for element %s", element_name)
            return False
        oid, is_directory = found
        element = self.snapshot.get(oid)
        if element is None:
            element = self.snapshot.add(Element(oid=oid, name=element_name, is_directory=is_directory))
        elif element.name != element_name:
            self.logger.info(
                "element with oid %s has a different name: now using %s instead of %s",
                oid, element_name, element.name,
            )
            element.name = element_name

        chain = self._unread_ancestry(element, element_name, suffix)
        for current, predecessor in reversed(chain):
            self.logger.debug("Reading version %s@@%s", element_name, current)
            if self._add_from_chain(element, current, predecessor, new_versions) is not AddResult.ADDED:
                # anything newer in the chain cannot be read either
                return False
        return True

    def _unread_ancestry(
        self, element: Element, element_name: str, suffix: str
    ) -> list[tuple[str, str | None]]:
        """
        Walk predecessors back to the first version already read.

        Returns:
            (version suffix, predecessor suffix) pairs, newest first
        """
        chain: list[tuple[str, str | None]] = []
        current = suffix
        while True:
            branch_name, number = branch_and_number(current)
            branch = element.get_branch(branch_name)
            if branch is not None and branch.last is not None and branch.last.version_number >= number:
                return chain

            predecessor = self.cleartool.get_predecessor(f"{element_name}@@{current}")
            chain.append((current, predecessor))
            if predecessor is None:
                if branch_name != ROOT_BRANCH or number != 0:
                    raise StructuralInconsistencyError(
                        f"Failed to retrieve predecessor of {element_name}@@{current}"
                    )
                return chain
            current = predecessor

    def _add_from_chain(
        self,
        element: Element,
        suffix: str,
        predecessor: str | None,
        new_versions: list[Version] | None,
    ) -> AddResult:
        branches, number = split_version(suffix)
        branch_name = branches[-1]
        branch = element.get_branch(branch_name)
        if branch is None:
            branching_point = None
            if len(branches) > 1:
                parent_name = branches[-2]
                parent = element.get_branch(parent_name)
                if parent is not None and predecessor is not None:
                    predecessor_branch, predecessor_number = branch_and_number(predecessor)
                    if predecessor_branch == parent_name:
                        branching_point = parent.get_version(predecessor_number)
                if branching_point is None:
                    raise StructuralInconsistencyError(
                        f"Could not complete branch {parent_name} of {element.name} "
                        f"(oid:{element.oid}) to open {branch_name}"
                    )
            elif predecessor is not None:
                raise StructuralInconsistencyError(
                    f"Could not complete branch {branch_name} of {element.name} (oid:{element.oid})"
                )
            branch = element.add_branch(branch_name, branching_point)

        result = self._add_version(branch, number, new_versions)
        if result is not AddResult.ADDED and not branch.versions:
            element.remove_branch(branch_name)
        return result

    # ------------------------------------------------------------------
    # Version materialization
    # ------------------------------------------------------------------

    def _add_version(
        self, branch: Branch, version_number: int, new_versions: list[Version] | None
    ) -> AddResult:
        element = branch.element
        last = branch.last
        if last is not None and version_number <= last.version_number:
            self.logger.warning(
                "Version %d of %s\\%s (oid:%s) is not after %d, skipping it",
                version_number, element.name, branch.name, element.oid, last.version_number,
            )
            return AddResult.SKIPPED

        version = new_version(branch, version_number)
        details = self.cleartool.get_version_details(str(version))
        if details is None:
            self.logger.warning("Could not read details of %s (oid:%s)", version, element.oid)
            return AddResult.SKIPPED
        if details.date > self.cutoff:
            self.logger.info("Skipping version %s: %s > %s", version, details.date, self.cutoff)
            return AddResult.FUTURE

        version.author_name = details.author_name
        version.author_login = details.author_login
        version.date = details.date
        version.comment = details.comment
        for label in details.labels:
            version.add_label(label)

        if isinstance(version, DirectoryVersion):
            self._read_content(version)

        for links, to in ((details.merges_to, True), (details.merges_from, False)):
            for linked_branch, linked_number in links:
                # only merges between branches are interesting
                if linked_branch != branch.name:
                    self.merge_fixups.append(MergeFixup(version, linked_branch, linked_number, to))

        branch.add_version(version)
        if new_versions is not None:
            new_versions.append(version)
        return AddResult.ADDED

    def _read_content(self, version: DirectoryVersion) -> None:
        for name, entry in self.cleartool.ls(str(version)).items():
            if entry.symlink_target is not None:
                link = self.snapshot.add(SymLinkElement.create(version.element, entry.symlink_target))
                version.set_entry(name, link)
                continue
            if entry.oid is None:
                self.logger.warning("Entry %s of %s has neither oid nor symlink target, skipping it", name, version)
                continue
            child = self.snapshot.get(entry.oid)
            if child is not None:
                version.set_entry(name, child)
            else:
                self.content_fixups.append(ContentFixup(version, name, entry.oid))

    # ------------------------------------------------------------------
    # Fixups
    # ------------------------------------------------------------------

    def resolve_fixups(self) -> None:
        """Resolve queued content and merge references; drop what stays unknown."""
        self.logger.info(
            "Start fixups: %d content, %d merges", len(self.content_fixups), len(self.merge_fixups)
        )
        for content in self.content_fixups:
            child = self.snapshot.get(content.oid)
            if child is None:
                self.logger.warning(
                    "Element %s (oid:%s) referenced in %s was not imported",
                    content.name, content.oid, content.directory_version,
                )
                continue
            content.directory_version.set_entry(content.name, child)

        for merge in self.merge_fixups:
            version = merge.version
            linked = version.element.get_version(merge.branch_name, merge.version_number)
            if linked is None:
                self.logger.warning(
                    "Version %s/%d of %s (oid:%s), linked to %s/%d, was not imported",
                    merge.branch_name, merge.version_number, version.element.name,
                    version.element.oid, version.branch.name, version.version_number,
                )
                continue
            version.add_merge(linked, merge.to)

        self.content_fixups = []
        self.merge_fixups = []
        self.logger.info("Stop fixups")


def _lines(path: Path | str) -> Iterator[str]:
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield line

"""Version graph - elements, branches, versions and their links.

The graph is cyclic (a version knows its branch, a branch its element,
merge links and directory entries point across), so dataclasses here use
identity equality and keep back-references out of ``repr``.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone

ROOT_BRANCH = "main"
SYMLINK_PREFIX = "SYMLINK:"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(eq=False)
class Element:
    """
    One versioned file or directory.

    ``oid`` never changes; ``name`` is the last name the element was seen
    under. Branches are kept in discovery order.
    """

    oid: str
    name: str
    is_directory: bool = False
    branches: dict[str, "Branch"] = field(default_factory=dict, repr=False)

    def get_branch(self, name: str) -> "Branch | None":
        return self.branches.get(name)

    def add_branch(self, name: str, branching_point: "Version | None" = None) -> "Branch":
        """
        Create a branch on this element.

        Raises:
            ValueError: If the branch exists, if a non-root branch has no
                branching point, or if the branching point belongs to
                another element
        """
        if name in self.branches:
            raise ValueError(f"Branch {name} already exists on {self.name}")
        if branching_point is None and name != ROOT_BRANCH:
            raise ValueError(f"Branch {name} of {self.name} needs a branching point")
        if branching_point is not None and branching_point.element is not self:
            raise ValueError(f"Branching point of {name} is not a version of {self.name}")
        branch = Branch(element=self, name=name, branching_point=branching_point)
        self.branches[name] = branch
        return branch

    def remove_branch(self, name: str) -> None:
        self.branches.pop(name, None)

    def get_version(self, branch_name: str, version_number: int) -> "Version | None":
        branch = self.branches.get(branch_name)
        return branch.get_version(version_number) if branch else None

    def versions(self) -> list["Version"]:
        return [v for branch in self.branches.values() for v in branch.versions]

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class SymLinkElement(Element):
    """
    Pseudo-element for a symbolic link found in a directory version.

    Carries the link target instead of a history. The oid is synthetic and
    derived from the target resolved against the owning directory, so the
    same link seen from several directory versions maps to one element.
    """

    target: str = ""
    directory: Element | None = field(default=None, repr=False)

    @staticmethod
    def make_oid(directory_name: str, target: str) -> str:
        resolved = posixpath.normpath(posixpath.join(directory_name.replace("\\", "/"), target))
        return SYMLINK_PREFIX + resolved

    @classmethod
    def create(cls, directory: Element, target: str) -> "SymLinkElement":
        oid = cls.make_oid(directory.name, target)
        return cls(oid=oid, name=oid[len(SYMLINK_PREFIX):], target=target, directory=directory)


@dataclass(eq=False)
class Branch:
    """
    Versions of one element under one branch name.

    Only the root branch has no branching point. Version numbers strictly
    increase in insertion order.
    """

    element: Element = field(repr=False)
    name: str
    branching_point: "Version | None" = field(default=None, repr=False)
    versions: list["Version"] = field(default_factory=list, repr=False)

    @property
    def parent(self) -> "Branch | None":
        return self.branching_point.branch if self.branching_point else None

    @property
    def full_name(self) -> str:
        """Branch path from the root, e.g. ``main\\REL1\\fix``."""
        parent = self.parent
        return f"{parent.full_name}\\{self.name}" if parent else self.name

    @property
    def last(self) -> "Version | None":
        return self.versions[-1] if self.versions else None

    def add_version(self, version: "Version") -> None:
        """
        Append a version.

        Raises:
            ValueError: If the version belongs to another branch or does not
                increase the version number
        """
        if version.branch is not self:
            raise ValueError(f"{version} does not belong to branch {self.name}")
        if self.versions and version.version_number <= self.versions[-1].version_number:
            raise ValueError(
                f"Version {version.version_number} does not follow "
                f"{self.versions[-1].version_number} on {self.element.name}\\{self.name}"
            )
        self.versions.append(version)

    def get_version(self, version_number: int) -> "Version | None":
        for version in self.versions:
            if version.version_number == version_number:
                return version
        return None


@dataclass(eq=False)
class Version:
    """One immutable revision of an element on a branch."""

    branch: Branch = field(repr=False)
    version_number: int
    author_name: str = ""
    author_login: str = ""
    date: datetime = _EPOCH
    comment: str = ""
    labels: list[str] = field(default_factory=list)
    merges_from: list["Version"] = field(default_factory=list, repr=False)
    merges_to: list["Version"] = field(default_factory=list, repr=False)

    @property
    def element(self) -> Element:
        return self.branch.element

    @property
    def version_path(self) -> str:
        return f"\\{self.branch.full_name}\\{self.version_number}"

    def add_label(self, label: str) -> None:
        if label not in self.labels:
            self.labels.append(label)

    def add_merge(self, other: "Version", to: bool) -> bool:
        """
        Record a merge link to (``to=True``) or from another version.

        Only links between different branches of the same element are kept.

        Returns:
            True if the link was recorded
        """
        if other.branch is self.branch or other.element is not self.element:
            return False
        links = self.merges_to if to else self.merges_from
        if other not in links:
            links.append(other)
        return True

    def __str__(self) -> str:
        return f"{self.element.name}@@{self.version_path}"


@dataclass(eq=False)
class DirectoryVersion(Version):
    """Version of a directory: entry name -> child element."""

    content: dict[str, Element] = field(default_factory=dict, repr=False)

    def set_entry(self, name: str, element: Element) -> None:
        """Record or replace the element under ``name``."""
        self.content[name] = element


def new_version(branch: Branch, version_number: int) -> Version:
    """Create a version of the right kind for the branch's element."""
    cls = DirectoryVersion if branch.element.is_directory else Version
    return cls(branch=branch, version_number=version_number)

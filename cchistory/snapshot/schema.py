"""
Snapshot schema models.

Pydantic models for the persisted snapshot. The live graph is cyclic; here
every cross reference is a value: a bare oid for elements, or a
``VersionRef`` (oid, branch, number) for versions.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

FORMAT_VERSION = "1.0"


class ElementKind(str, Enum):
    """Kind of a persisted element."""

    ELEMENT = "element"
    SYMLINK = "symlink"


class VersionRef(BaseModel):
    """Reference to a version by value."""

    element_oid: str
    branch: str
    version_number: int

    model_config = {"frozen": True}


class VersionModel(BaseModel):
    """One version. ``content`` is only set for directory versions."""

    version_number: int = Field(ge=0)
    author_name: str = ""
    author_login: str = ""
    date: datetime
    comment: str = ""
    labels: list[str] = Field(default_factory=list)
    merges_from: list[VersionRef] = Field(default_factory=list)
    merges_to: list[VersionRef] = Field(default_factory=list)
    content: dict[str, str] | None = None  # entry name -> element oid


class BranchModel(BaseModel):
    """A branch; only the root branch has no branching point."""

    name: str
    branching_point: VersionRef | None = None
    versions: list[VersionModel] = Field(default_factory=list)


class ElementModel(BaseModel):
    """An element or a symlink pseudo-element."""

    oid: str
    name: str
    kind: ElementKind = ElementKind.ELEMENT
    is_directory: bool = False
    branches: list[BranchModel] = Field(default_factory=list)
    symlink_target: str | None = None
    symlink_directory_oid: str | None = None

    model_config = {"use_enum_values": True}


class SnapshotModel(BaseModel):
    """
    Persisted snapshot.

    Element order follows the live table's insertion order.
    """

    format_version: str = FORMAT_VERSION
    created_at: datetime | None = None
    elements: list[ElementModel] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


__all__ = [
    "FORMAT_VERSION",
    "ElementKind",
    "VersionRef",
    "VersionModel",
    "BranchModel",
    "ElementModel",
    "SnapshotModel",
]

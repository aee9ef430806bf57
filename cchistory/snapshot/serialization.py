"""Snapshot serialization - flatten the live graph and restore it."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..graph.model import (
    ROOT_BRANCH,
    Branch,
    DirectoryVersion,
    Element,
    SymLinkElement,
    Version,
    new_version,
)
from ..graph.snapshot import Snapshot
from .schema import (
    BranchModel,
    ElementKind,
    ElementModel,
    SnapshotModel,
    VersionModel,
    VersionRef,
)

logger = logging.getLogger(__name__)


def version_ref(version: Version) -> VersionRef:
    return VersionRef(
        element_oid=version.element.oid,
        branch=version.branch.name,
        version_number=version.version_number,
    )


def flatten_snapshot(snapshot: Snapshot) -> SnapshotModel:
    """
    Convert a Snapshot to its persisted form.

    Every back pointer, merge link and directory entry becomes a value
    reference, so the result has no cycles.
    """
    return SnapshotModel(
        created_at=datetime.now(timezone.utc),
        elements=[_flatten_element(e) for e in snapshot],
    )


def _flatten_element(element: Element) -> ElementModel:
    if isinstance(element, SymLinkElement):
        return ElementModel(
            oid=element.oid,
            name=element.name,
            kind=ElementKind.SYMLINK,
            symlink_target=element.target,
            symlink_directory_oid=element.directory.oid if element.directory else None,
        )
    return ElementModel(
        oid=element.oid,
        name=element.name,
        is_directory=element.is_directory,
        branches=[
            BranchModel(
                name=branch.name,
                branching_point=version_ref(branch.branching_point) if branch.branching_point else None,
                versions=[_flatten_version(v) for v in branch.versions],
            )
            for branch in element.branches.values()
        ],
    )


def _flatten_version(version: Version) -> VersionModel:
    content = None
    if isinstance(version, DirectoryVersion):
        content = {name: child.oid for name, child in version.content.items()}
    return VersionModel(
        version_number=version.version_number,
        author_name=version.author_name,
        author_login=version.author_login,
        date=version.date,
        comment=version.comment,
        labels=list(version.labels),
        merges_from=[version_ref(v) for v in version.merges_from],
        merges_to=[version_ref(v) for v in version.merges_to],
        content=content,
    )


def restore_snapshot(model: SnapshotModel, log: logging.Logger | None = None) -> Snapshot:
    """
    Rebuild a live Snapshot from its persisted form.

    Elements, branches and versions are created first; references are
    resolved afterwards against the complete oid table. A reference that
    does not resolve is logged and dropped.
    """
    log = log or logger
    elements: dict[str, Element] = {}
    pending: list[tuple[Element, ElementModel]] = []

    for data in model.elements:
        if data.kind == ElementKind.SYMLINK:
            element: Element = SymLinkElement(oid=data.oid, name=data.name, target=data.symlink_target or "")
        else:
            element = Element(oid=data.oid, name=data.name, is_directory=data.is_directory)
            for branch_data in data.branches:
                branch = Branch(element=element, name=branch_data.name)
                element.branches[branch.name] = branch
                for version_data in branch_data.versions:
                    branch.add_version(_restore_version(branch, version_data))
        if data.oid in elements:
            log.warning("Duplicate oid %s in snapshot, keeping %s", data.oid, elements[data.oid].name)
            continue
        elements[data.oid] = element
        pending.append((element, data))

    for element, data in pending:
        _resolve_references(element, data, elements, log)

    return Snapshot(elements, logger=log)


def _restore_version(branch: Branch, data: VersionModel) -> Version:
    version = new_version(branch, data.version_number)
    version.author_name = data.author_name
    version.author_login = data.author_login
    version.date = data.date
    version.comment = data.comment
    version.labels = list(data.labels)
    return version


def _lookup(ref: VersionRef, elements: dict[str, Element]) -> Version | None:
    element = elements.get(ref.element_oid)
    return element.get_version(ref.branch, ref.version_number) if element else None


def _resolve_references(
    element: Element,
    data: ElementModel,
    elements: dict[str, Element],
    log: logging.Logger,
) -> None:
    if isinstance(element, SymLinkElement):
        if data.symlink_directory_oid:
            element.directory = elements.get(data.symlink_directory_oid)
            if element.directory is None:
                log.warning("Directory %s of symlink %s not in snapshot", data.symlink_directory_oid, element.oid)
        return

    for branch_data in data.branches:
        branch = element.branches[branch_data.name]
        if branch_data.branching_point is not None:
            branch.branching_point = _lookup(branch_data.branching_point, elements)
        if branch.branching_point is None and branch.name != ROOT_BRANCH:
            log.warning(
                "Branching point of %s\\%s (oid:%s) not in snapshot, dropping the branch",
                element.name, branch.name, element.oid,
            )
            element.remove_branch(branch.name)
            continue

        for version, version_data in zip(branch.versions, branch_data.versions):
            for refs, to in ((version_data.merges_to, True), (version_data.merges_from, False)):
                for ref in refs:
                    linked = _lookup(ref, elements)
                    if linked is None:
                        log.warning("Merge link of %s to %s/%d not in snapshot", version, ref.branch, ref.version_number)
                        continue
                    version.add_merge(linked, to)
            if isinstance(version, DirectoryVersion) and version_data.content:
                for name, oid in version_data.content.items():
                    child = elements.get(oid)
                    if child is None:
                        log.warning("Element %s (oid:%s) referenced in %s not in snapshot", name, oid, version)
                        continue
                    version.set_entry(name, child)

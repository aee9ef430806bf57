"""Snapshot - the oid-indexed table of every known element."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .model import DirectoryVersion, Element, SymLinkElement


class Snapshot:
    """
    Mapping oid -> Element; the unit of save, load and merge.

    Elements are never removed once added.
    """

    def __init__(
        self,
        elements_by_oid: dict[str, Element] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.elements_by_oid: dict[str, Element] = elements_by_oid if elements_by_oid is not None else {}
        self.logger = logger or logging.getLogger(__name__)

    def get(self, oid: str) -> Element | None:
        return self.elements_by_oid.get(oid)

    def add(self, element: Element) -> Element:
        """
        Add an element, keeping the existing one on an oid collision.

        Returns:
            The element now stored under the oid
        """
        existing = self.elements_by_oid.get(element.oid)
        if existing is None:
            self.elements_by_oid[element.oid] = element
            return element
        if existing is not element and existing.name != element.name:
            self.logger.warning(
                "element with oid %s has a different name: keeping %s, ignoring %s",
                element.oid, existing.name, element.name,
            )
        return existing

    def merge(self, other: "Snapshot") -> None:
        """
        Merge another snapshot into this one.

        Oids only known to ``other`` are added. For an oid known to both,
        this snapshot's element is kept as is; branches and versions that
        only ``other`` has are not reconciled. Directory entries and symlink
        directories of the added elements are rebound to the elements of
        this table, so every oid keeps a single live Element.
        """
        added: list[Element] = []
        for oid, element in other.elements_by_oid.items():
            if oid not in self.elements_by_oid:
                added.append(element)
            self.add(element)
        for element in added:
            self._rebind(element)
        self.logger.info("Merged snapshot: %d new elements, %d total", len(added), len(self))

    def _rebind(self, element: Element) -> None:
        if isinstance(element, SymLinkElement) and element.directory is not None:
            element.directory = self.elements_by_oid.setdefault(element.directory.oid, element.directory)
        for version in element.versions():
            if isinstance(version, DirectoryVersion):
                for name, child in list(version.content.items()):
                    stored = self.elements_by_oid.setdefault(child.oid, child)
                    if stored is not child:
                        version.set_entry(name, stored)

    def __contains__(self, oid: str) -> bool:
        return oid in self.elements_by_oid

    def __len__(self) -> int:
        return len(self.elements_by_oid)

    def __iter__(self) -> Iterator[Element]:
        return iter(self.elements_by_oid.values())

    def values(self) -> list[Element]:
        return list(self.elements_by_oid.values())

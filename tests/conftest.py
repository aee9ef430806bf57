"""Shared fixtures: an in-memory cleartool for HistoryReader tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cchistory.tool.parsers import DirectoryEntry, VersionMetadata
from cchistory.tool.paths import split_version

BASE_DATE = datetime(2020, 1, 1, tzinfo=timezone.utc)


class FakeCleartool:
    """
    In-memory repository answering the typed Cleartool queries.

    Elements are declared with their version tree in creation order;
    predecessors and metadata are derived from it.
    """

    def __init__(self):
        self.oids: dict[str, tuple[str, bool]] = {}
        self.trees: dict[str, list[str]] = {}
        self.predecessors: dict[str, str | None] = {}
        self.details: dict[str, VersionMetadata] = {}
        self.listings: dict[str, dict[str, DirectoryEntry]] = {}
        self.cwd: str | None = None
        self.calls: list[tuple[str, str]] = []
        self._day = 0

    def add_element(
        self,
        name: str,
        oid: str,
        versions: list[str],
        is_directory: bool = False,
        dates: dict[str, datetime] | None = None,
    ) -> None:
        """Declare an element and its versions (branch starts added to the tree)."""
        self.oids[name] = (oid, is_directory)
        tree: list[str] = []
        last_on_branch: dict[str, str] = {}
        for suffix in versions:
            branches, number = split_version(suffix)
            branch_path = "\\" + "\\".join(branches)
            if branch_path not in last_on_branch and len(branches) > 1:
                tree.append(branch_path)  # pseudo entry without number
            if number > 0 and branch_path in last_on_branch:
                predecessor = last_on_branch[branch_path]
            elif len(branches) > 1:
                predecessor = last_on_branch["\\" + "\\".join(branches[:-1])]
            else:
                predecessor = None
            self.predecessors[f"{name}@@{suffix}"] = predecessor
            last_on_branch[branch_path] = suffix
            tree.append(suffix)

            self._day += 1
            date = (dates or {}).get(suffix, BASE_DATE + timedelta(days=self._day))
            self.details[f"{name}@@{suffix}"] = VersionMetadata(
                author_name="Alice",
                author_login="alice",
                date=date,
                comment=f"{name} {suffix}",
            )
        self.trees[name] = tree

    def set_listing(self, version: str, entries: dict[str, DirectoryEntry]) -> None:
        self.listings[version] = entries

    def add_merge(self, version: str, target: tuple[str, int], to: bool = True) -> None:
        details = self.details[version]
        (details.merges_to if to else details.merges_from).append(target)

    # Cleartool interface

    def cd(self, directory: str) -> None:
        self.calls.append(("cd", directory))
        self.cwd = directory

    def lsvtree(self, element: str) -> list[str]:
        self.calls.append(("lsvtree", element))
        return list(self.trees.get(element, []))

    def ls(self, versioned_path: str) -> dict[str, DirectoryEntry]:
        self.calls.append(("ls", versioned_path))
        return dict(self.listings.get(versioned_path, {}))

    def get_oid(self, element: str) -> tuple[str, bool] | None:
        self.calls.append(("get_oid", element))
        return self.oids.get(element.removesuffix("@@"))

    def get_predecessor(self, version: str) -> str | None:
        self.calls.append(("get_predecessor", version))
        return self.predecessors.get(version)

    def get_version_details(self, version: str) -> VersionMetadata | None:
        self.calls.append(("get_version_details", version))
        details = self.details.get(version)
        if details is None:
            return None
        return VersionMetadata(
            author_name=details.author_name,
            author_login=details.author_login,
            date=details.date,
            comment=details.comment,
            labels=list(details.labels),
            merges_to=list(details.merges_to),
            merges_from=list(details.merges_from),
        )


class FakeSession:
    """Maps exact command strings to canned response lines."""

    def __init__(self, responses: dict[str, list[str]] | None = None):
        self.responses = responses or {}
        self.commands: list[str] = []

    def execute(self, command: str) -> list[str]:
        self.commands.append(command)
        return list(self.responses.get(command, []))


@pytest.fixture
def fake_cleartool():
    return FakeCleartool()


@pytest.fixture
def far_future():
    return datetime(2100, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def fake_tool_script():
    return Path(__file__).parent / "fixtures" / "fake_cleartool.py"

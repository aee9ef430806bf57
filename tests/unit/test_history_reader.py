"""Tests for HistoryReader bulk and point-in-time discovery."""

from datetime import datetime, timezone

import pytest

from cchistory.graph.model import DirectoryVersion, Element
from cchistory.graph.snapshot import Snapshot
from cchistory.history_reader import HistoryReader, StructuralInconsistencyError
from cchistory.tool.parsers import DirectoryEntry


def version_numbers(element, branch):
    return [v.version_number for v in element.branches[branch].versions]


class TestBulkMode:
    """Reading whole version trees."""

    def test_branches_and_branching_point(self, fake_cleartool, far_future):
        """Version tree main 0,1 and CHANGE 0,1 forks CHANGE at main 1."""
        fake_cleartool.add_element(
            "foo.txt", "40a1", ["\\main\\0", "\\main\\1", "\\main\\CHANGE\\0", "\\main\\CHANGE\\1"]
        )
        reader = HistoryReader(fake_cleartool, cutoff=far_future)

        assert reader.read_element("foo.txt")

        element = reader.elements_by_oid["40a1"]
        assert list(element.branches) == ["main", "CHANGE"]
        assert version_numbers(element, "main") == [0, 1]
        assert version_numbers(element, "CHANGE") == [0, 1]
        assert element.branches["CHANGE"].branching_point is element.get_version("main", 1)
        assert element.branches["main"].branching_point is None

    def test_branch_forks_from_latest_seen_parent_version(self, fake_cleartool, far_future):
        fake_cleartool.add_element(
            "foo.txt", "1", ["\\main\\0", "\\main\\REL1\\0", "\\main\\1", "\\main\\REL1\\1"]
        )
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read_element("foo.txt")

        element = reader.elements_by_oid["1"]
        assert element.branches["REL1"].branching_point is element.get_version("main", 0)
        assert version_numbers(element, "main") == [0, 1]

    def test_already_read_element_is_skipped_with_warning(self, fake_cleartool, far_future, caplog):
        fake_cleartool.add_element("foo.txt", "40a1", ["\\main\\0"])
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        assert reader.read_element("foo.txt")

        assert not reader.read_element("foo.txt")
        assert "Element foo.txt (oid:40a1) already read" in caplog.text

    def test_directory_entry_without_target_is_skipped(self, fake_cleartool, far_future, caplog):
        fake_cleartool.add_element("src", "d1", ["\\main\\0"], is_directory=True)
        fake_cleartool.set_listing("src@@\\main\\0", {"odd": DirectoryEntry()})
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read_element("src")

        assert reader.elements_by_oid["d1"].get_version("main", 0).content == {}
        assert reader.content_fixups == []
        assert "Entry odd of src@@\\main\\0" in caplog.text

    def test_versions_carry_metadata(self, fake_cleartool, far_future):
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0"])
        fake_cleartool.details["foo.txt@@\\main\\0"].labels.extend(["L1", "L2"])
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read_element("foo.txt@@")

        version = reader.elements_by_oid["1"].get_version("main", 0)
        assert version.author_name == "Alice"
        assert version.author_login == "alice"
        assert version.comment == "foo.txt \\main\\0"
        assert version.labels == ["L1", "L2"]
        assert reader.elements_by_oid["1"].name == "foo.txt"

    def test_cutoff_stops_reading(self, fake_cleartool):
        dates = {
            "\\main\\0": datetime(2020, 1, 1, tzinfo=timezone.utc),
            "\\main\\1": datetime(2020, 2, 1, tzinfo=timezone.utc),
            "\\main\\2": datetime(2020, 6, 1, tzinfo=timezone.utc),
            "\\main\\CHANGE\\0": datetime(2020, 7, 1, tzinfo=timezone.utc),
        }
        fake_cleartool.add_element("foo.txt", "1", list(dates), dates=dates)
        reader = HistoryReader(fake_cleartool, cutoff=datetime(2020, 3, 1, tzinfo=timezone.utc))
        reader.read_element("foo.txt")

        element = reader.elements_by_oid["1"]
        assert version_numbers(element, "main") == [0, 1]
        # nothing after the first rejected version is queried
        assert "CHANGE" not in element.branches
        assert ("get_version_details", "foo.txt@@\\main\\CHANGE\\0") not in fake_cleartool.calls

    def test_all_versions_too_recent(self, fake_cleartool):
        fake_cleartool.add_element(
            "foo.txt", "1", ["\\main\\0"], dates={"\\main\\0": datetime(2030, 1, 1, tzinfo=timezone.utc)}
        )
        reader = HistoryReader(fake_cleartool, cutoff=datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert reader.read_element("foo.txt")
        assert reader.elements_by_oid["1"].branches == {}

    def test_naive_cutoff_is_utc(self, fake_cleartool):
        reader = HistoryReader(fake_cleartool, cutoff=datetime(2020, 3, 1))
        assert reader.cutoff == datetime(2020, 3, 1, tzinfo=timezone.utc)

    def test_default_cutoff_is_now(self, fake_cleartool):
        reader = HistoryReader(fake_cleartool)
        assert abs((datetime.now(timezone.utc) - reader.cutoff).total_seconds()) < 60

    def test_missing_oid_is_skipped(self, fake_cleartool, caplog):
        reader = HistoryReader(fake_cleartool)
        assert not reader.read_element("ghost.txt")
        assert "Could not find oid for element ghost.txt" in caplog.text
        assert len(reader.snapshot) == 0

    def test_known_oid_is_not_read_again(self, fake_cleartool, far_future):
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0"])
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        assert reader.read_element("foo.txt")
        assert not reader.read_element("foo.txt")
        assert [c for c in fake_cleartool.calls if c[0] == "lsvtree"] == [("lsvtree", "foo.txt")]

    def test_missing_details_skip_one_version(self, fake_cleartool, far_future, caplog):
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0", "\\main\\1", "\\main\\2"])
        del fake_cleartool.details["foo.txt@@\\main\\1"]
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read_element("foo.txt")
        assert version_numbers(reader.elements_by_oid["1"], "main") == [0, 2]
        assert "Could not read details" in caplog.text

    def test_branch_without_parent_is_skipped(self, fake_cleartool, far_future, caplog):
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0"])
        fake_cleartool.trees["foo.txt"] = ["\\main\\0", "\\main\\A\\B\\0"]
        fake_cleartool.details["foo.txt@@\\main\\A\\B\\0"] = fake_cleartool.details["foo.txt@@\\main\\0"]
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read_element("foo.txt")
        assert list(reader.elements_by_oid["1"].branches) == ["main"]
        assert "has no parent branch A" in caplog.text

    def test_root_changes_directory(self, fake_cleartool):
        HistoryReader(fake_cleartool, root="M:\\view\\vob")
        assert fake_cleartool.cwd == "M:\\view\\vob"

    def test_extends_existing_snapshot(self, fake_cleartool, far_future):
        existing = Element(oid="old", name="old.txt")
        snapshot = Snapshot({"old": existing})
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0"])
        reader = HistoryReader(fake_cleartool, cutoff=far_future, snapshot=snapshot)
        reader.read_element("foo.txt")
        assert reader.snapshot is snapshot
        assert set(snapshot.elements_by_oid) == {"old", "1"}


class TestPointInTimeMode:
    """Reading single versions and their ancestry."""

    @pytest.fixture
    def repo(self, fake_cleartool):
        fake_cleartool.add_element(
            "foo.txt",
            "40a1",
            ["\\main\\0", "\\main\\1", "\\main\\CHANGE\\0", "\\main\\CHANGE\\1", "\\main\\2"],
        )
        return fake_cleartool

    def test_reads_whole_ancestry(self, repo, far_future):
        reader = HistoryReader(repo, cutoff=far_future)
        new_versions = []

        assert reader.read_version("foo.txt@@\\main\\CHANGE\\1", new_versions)

        element = reader.elements_by_oid["40a1"]
        assert version_numbers(element, "main") == [0, 1]
        assert version_numbers(element, "CHANGE") == [0, 1]
        assert element.branches["CHANGE"].branching_point is element.get_version("main", 1)
        assert [str(v) for v in new_versions] == [
            "foo.txt@@\\main\\0",
            "foo.txt@@\\main\\1",
            "foo.txt@@\\main\\CHANGE\\0",
            "foo.txt@@\\main\\CHANGE\\1",
        ]

    def test_idempotent(self, repo, far_future):
        reader = HistoryReader(repo, cutoff=far_future)
        reader.read_version("foo.txt@@\\main\\CHANGE\\1", [])
        element = reader.elements_by_oid["40a1"]
        before = {name: list(b.versions) for name, b in element.branches.items()}
        calls = len(repo.calls)

        again = []
        assert reader.read_version("foo.txt@@\\main\\CHANGE\\1", again)
        assert reader.read_version("foo.txt@@\\main\\CHANGE\\0", again)

        assert again == []
        assert {name: list(b.versions) for name, b in element.branches.items()} == before
        # only the oid lookups were issued
        assert [c[0] for c in repo.calls[calls:]] == ["get_oid", "get_oid"]

    def test_incremental_extension(self, repo, far_future):
        reader = HistoryReader(repo, cutoff=far_future)
        reader.read_version("foo.txt@@\\main\\1", [])
        new_versions = []
        reader.read_version("foo.txt@@\\main\\2", new_versions)
        assert [str(v) for v in new_versions] == ["foo.txt@@\\main\\2"]
        assert version_numbers(reader.elements_by_oid["40a1"], "main") == [0, 1, 2]

    def test_rename_updates_name(self, repo, far_future, caplog):
        repo.oids["renamed.txt"] = repo.oids["foo.txt"]
        repo.predecessors["renamed.txt@@\\main\\2"] = "\\main\\1"
        repo.details["renamed.txt@@\\main\\2"] = repo.details["foo.txt@@\\main\\2"]
        reader = HistoryReader(repo, cutoff=far_future)
        reader.read_version("foo.txt@@\\main\\1", [])
        with caplog.at_level("INFO"):
            reader.read_version("renamed.txt@@\\main\\2", [])
        element = reader.elements_by_oid["40a1"]
        assert element.name == "renamed.txt"
        assert version_numbers(element, "main") == [0, 1, 2]
        assert "now using renamed.txt instead of foo.txt" in caplog.text

    def test_missing_predecessor_outside_root_is_fatal(self, repo, far_future):
        repo.predecessors["foo.txt@@\\main\\1"] = None
        reader = HistoryReader(repo, cutoff=far_future)
        with pytest.raises(StructuralInconsistencyError, match="predecessor"):
            reader.read_version("foo.txt@@\\main\\1", [])

    def test_missing_branching_point_is_fatal(self, repo, far_future):
        # predecessor claims to be on a branch that is not the parent
        repo.predecessors["foo.txt@@\\main\\CHANGE\\0"] = "\\main\\OTHER\\0"
        repo.predecessors["foo.txt@@\\main\\OTHER\\0"] = "\\main\\0"
        repo.details["foo.txt@@\\main\\OTHER\\0"] = repo.details["foo.txt@@\\main\\0"]
        reader = HistoryReader(repo, cutoff=far_future)
        with pytest.raises(StructuralInconsistencyError, match="Could not complete branch"):
            reader.read_version("foo.txt@@\\main\\CHANGE\\0", [])

    def test_future_version_is_reported(self, fake_cleartool):
        dates = {
            "\\main\\0": datetime(2020, 1, 1, tzinfo=timezone.utc),
            "\\main\\1": datetime(2021, 1, 1, tzinfo=timezone.utc),
            "\\main\\REL\\0": datetime(2022, 1, 1, tzinfo=timezone.utc),
        }
        fake_cleartool.add_element("foo.txt", "1", list(dates), dates=dates)
        reader = HistoryReader(fake_cleartool, cutoff=datetime(2020, 6, 1, tzinfo=timezone.utc))
        new_versions = []

        assert not reader.read_version("foo.txt@@\\main\\REL\\0", new_versions)

        element = reader.elements_by_oid["1"]
        assert list(element.branches) == ["main"]
        assert version_numbers(element, "main") == [0]
        assert [str(v) for v in new_versions] == ["foo.txt@@\\main\\0"]

    def test_unparsable_path(self, fake_cleartool, caplog):
        reader = HistoryReader(fake_cleartool)
        assert not reader.read_version("foo.txt@@\\main\\CHANGE")
        assert "Could not parse" in caplog.text

    def test_unknown_element(self, fake_cleartool, caplog):
        reader = HistoryReader(fake_cleartool)
        assert not reader.read_version("ghost.txt@@\\main\\0")
        assert "Could not find oid for element ghost.txt" in caplog.text

    def test_long_history_does_not_recurse(self, fake_cleartool, far_future):
        versions = [f"\\main\\{n}" for n in range(3000)]
        fake_cleartool.add_element("big.c", "b", versions)
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        new_versions = []
        assert reader.read_version("big.c@@\\main\\2999", new_versions)
        assert len(new_versions) == 3000


class TestBatchRead:
    def test_read_returns_none_without_versions(self, fake_cleartool, far_future):
        fake_cleartool.add_element("foo.txt", "1", ["\\main\\0"])
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        assert reader.read(elements=["foo.txt"]) is None

    def test_read_files(self, fake_cleartool, far_future, tmp_path):
        fake_cleartool.add_element("a.txt", "a", ["\\main\\0"])
        fake_cleartool.add_element("src", "d", ["\\main\\0"], is_directory=True)
        fake_cleartool.add_element("b.txt", "b", ["\\main\\0", "\\main\\1"])
        (tmp_path / "elements.txt").write_text("a.txt\n\n")
        (tmp_path / "dirs.txt").write_text("src@@\n")
        (tmp_path / "versions.txt").write_text("b.txt@@\\main\\1\n")

        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        new_versions = reader.read_files(
            tmp_path / "elements.txt", tmp_path / "dirs.txt", tmp_path / "versions.txt"
        )

        assert [str(v) for v in new_versions] == ["b.txt@@\\main\\0", "b.txt@@\\main\\1"]
        assert set(reader.elements_by_oid) == {"a", "d", "b"}
        assert isinstance(reader.elements_by_oid["d"].get_version("main", 0), DirectoryVersion)

    def test_files_read_before_directories(self, fake_cleartool, far_future):
        fake_cleartool.add_element("a.txt", "a", ["\\main\\0"])
        fake_cleartool.add_element("src", "d", ["\\main\\0"], is_directory=True)
        reader = HistoryReader(fake_cleartool, cutoff=far_future)
        reader.read(elements=["a.txt"], directories=["src"])
        oid_lookups = [c[1] for c in fake_cleartool.calls if c[0] == "get_oid"]
        assert oid_lookups == ["a.txt", "src"]

    def test_time_bound_holds(self, fake_cleartool):
        cutoff = datetime(2020, 1, 5, tzinfo=timezone.utc)
        fake_cleartool.add_element("a.txt", "a", [f"\\main\\{n}" for n in range(4)])
        fake_cleartool.add_element("b.txt", "b", [f"\\main\\{n}" for n in range(4)])
        reader = HistoryReader(fake_cleartool, cutoff=cutoff)
        new_versions = reader.read(elements=["a.txt"], versions=["b.txt@@\\main\\3"])
        all_versions = [v for e in reader.snapshot for v in e.versions()]
        assert all_versions
        assert all(v.date <= cutoff for v in all_versions)
        assert all(v.date <= cutoff for v in new_versions)

"""
Tests for the in-memory name index.
"""

import threading

import pytest

from imagestash.error_handling import DuplicateIdentifierError, ImageNotFoundError
from imagestash.storage.name_index import NameIndex


class TestNameIndexAdd:
    """Test adding identifiers."""

    def test_add_preserves_insertion_order(self):
        index = NameIndex()
        for name in ["a:1", "b:1", "c:1"]:
            index.add(name)

        assert index.names() == ["a:1", "b:1", "c:1"]
        assert len(index) == 3

    def test_duplicate_add_raises_and_leaves_index_unchanged(self):
        index = NameIndex(["a:1", "b:1"])

        with pytest.raises(DuplicateIdentifierError):
            index.add("a:1")

        assert index.names() == ["a:1", "b:1"]
        assert len(index) == 2
        assert "a:1" in index

    def test_duplicate_error_carries_identifier(self):
        index = NameIndex(["a:1"])

        with pytest.raises(DuplicateIdentifierError) as exc_info:
            index.add("a:1")

        assert exc_info.value.context == {"identifier": "a:1"}

    def test_constructor_rejects_duplicates(self):
        with pytest.raises(DuplicateIdentifierError):
            NameIndex(["a:1", "a:1"])


class TestNameIndexRemove:
    """Test removing identifiers."""

    def test_remove_absent_raises(self):
        index = NameIndex(["a:1"])

        with pytest.raises(ImageNotFoundError):
            index.remove("missing:1")

        assert index.names() == ["a:1"]

    def test_remove_from_empty_index_raises(self):
        with pytest.raises(ImageNotFoundError):
            NameIndex().remove("a:1")

    def test_remove_swaps_last_into_slot(self):
        index = NameIndex(["a:1", "b:1", "c:1", "d:1"])

        index.remove("b:1")

        assert index.names() == ["a:1", "d:1", "c:1"]

    def test_remove_last_element(self):
        index = NameIndex(["a:1", "b:1"])

        index.remove("b:1")

        assert index.names() == ["a:1"]

    def test_removed_identifier_can_be_added_again(self):
        index = NameIndex(["a:1", "b:1"])

        index.remove("a:1")
        index.add("a:1")

        assert sorted(index.names()) == ["a:1", "b:1"]

    def test_positions_stay_consistent_after_swaps(self):
        index = NameIndex(["a", "b", "c", "d", "e"])

        index.remove("a")  # e moves to slot 0
        index.remove("e")  # d moves to slot 0
        index.remove("c")

        assert sorted(index.names()) == ["b", "d"]
        assert "e" not in index
        index.remove("d")
        index.remove("b")
        assert index.names() == []


class TestNameIndexSnapshot:
    """Test names() isolation."""

    def test_names_returns_copy(self):
        index = NameIndex(["a:1"])

        names = index.names()
        names.append("b:1")

        assert index.names() == ["a:1"]


class TestNameIndexConcurrency:
    """Concurrent mutation must keep list and membership in step."""

    def test_concurrent_adds_and_removes(self):
        index = NameIndex()
        errors = []

        def worker(worker_id):
            try:
                for i in range(200):
                    name = f"repo{worker_id}:{i}"
                    index.add(name)
                    if i % 2:
                        index.remove(name)
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        names = index.names()
        assert len(names) == len(set(names)) == len(index) == 8 * 100
        assert all(int(name.split(":")[1]) % 2 == 0 for name in names)

"""Tests for persistent stores."""

import tempfile
import threading
from pathlib import Path

import pytest  # type: ignore[import-not-found]

from jira_timekeeper.core.storage import JSONFileStore, MemoryStore, PersistentStore


@pytest.fixture  # type: ignore[misc]
def file_store() -> JSONFileStore:
    """Create a file store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield JSONFileStore(Path(tmpdir) / "cache" / "cache.json")


@pytest.fixture(params=["memory", "file"])  # type: ignore[misc]
def store(request: pytest.FixtureRequest, file_store: JSONFileStore) -> PersistentStore:
    """Run a test against every store implementation."""
    if request.param == "memory":
        return MemoryStore()
    return file_store


class TestPersistentStore:
    """Behaviour shared by every store."""

    def test_set_and_get(self, store: PersistentStore) -> None:
        """Test storing and reading a value."""
        store.set("jira_tasks_a", '{"x": 1}')
        assert store.get("jira_tasks_a") == '{"x": 1}'

    def test_get_missing(self, store: PersistentStore) -> None:
        """Test that a missing key gives None."""
        assert store.get("missing") is None

    def test_overwrite(self, store: PersistentStore) -> None:
        """Test that set replaces the previous value."""
        store.set("k", "one")
        store.set("k", "two")
        assert store.get("k") == "two"

    def test_delete(self, store: PersistentStore) -> None:
        """Test deleting keys, including missing ones."""
        store.set("k", "v")
        store.delete("k")
        store.delete("never-set")
        assert store.get("k") is None

    def test_keys_and_clear(self, store: PersistentStore) -> None:
        """Test enumerating and clearing keys."""
        store.set("a", "1")
        store.set("b", "2")
        assert sorted(store.keys()) == ["a", "b"]

        store.clear()
        assert store.keys() == []


class TestJSONFileStore:
    """Test JSONFileStore specifics."""

    def test_creates_parent_directory(self, file_store: JSONFileStore) -> None:
        """Test that the parent directory is created."""
        assert file_store.path.parent.exists()

    def test_persists_across_instances(self, file_store: JSONFileStore) -> None:
        """Test that data is visible to a new store on the same file."""
        file_store.set("k", "v")
        assert JSONFileStore(file_store.path).get("k") == "v"

    def test_no_temp_file_left(self, file_store: JSONFileStore) -> None:
        """Test that atomic writes clean up after themselves."""
        file_store.set("k", "v")
        leftovers = [p.name for p in file_store.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_corrupted_file_reads_as_empty(self, file_store: JSONFileStore) -> None:
        """Test that an unreadable file is treated as empty and then replaced."""
        file_store.path.write_text("{not json", encoding="utf-8")
        assert file_store.get("k") is None
        assert file_store.keys() == []

        file_store.set("k", "v")
        assert file_store.get("k") == "v"

    def test_non_string_values_ignored(self, file_store: JSONFileStore) -> None:
        """Test that values other than strings are not returned."""
        file_store.path.write_text('{"a": 1, "b": "ok"}', encoding="utf-8")
        assert file_store.keys() == ["b"]

    def test_concurrent_writers_keep_every_key(self, file_store: JSONFileStore) -> None:
        """Test that two stores on one file do not lose each other's writes."""
        errors: list[BaseException] = []

        def write_keys(prefix: str) -> None:
            store = JSONFileStore(file_store.path)
            try:
                for i in range(50):
                    store.set(f"{prefix}_{i}", str(i))
            except BaseException as e:  # reported below
                errors.append(e)

        threads = [threading.Thread(target=write_keys, args=(p,)) for p in ("watch", "log")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(file_store.keys()) == 100

    def test_delete_from_other_instance_sticks(self, file_store: JSONFileStore) -> None:
        """Test that a later write from another store does not restore a deleted key."""
        other = JSONFileStore(file_store.path)
        file_store.set("jira_worklogs", "old")
        other.delete("jira_worklogs")
        file_store.set("jira_tasks", "new")

        assert file_store.get("jira_worklogs") is None
        assert other.get("jira_tasks") == "new"

"""Unit tests for the SQLite index metadata store."""

import sqlite3
from pathlib import Path

import pytest

from semantic_index.core.exceptions import MetadataStoreError
from semantic_index.core.index_metadata import (
    IndexMetadataStore,
    compute_content_hash,
    compute_repo_id,
)


@pytest.fixture
def store(tmp_path: Path) -> IndexMetadataStore:
    return IndexMetadataStore(tmp_path / "nested" / "meta.db")


class TestHashes:
    def test_content_hash_is_sha256(self) -> None:
        assert compute_content_hash(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_repo_id_stable_for_equivalent_paths(self, tmp_path: Path) -> None:
        (tmp_path / "repo").mkdir()

        first = compute_repo_id(tmp_path / "repo")
        second = compute_repo_id(tmp_path / "repo" / ".." / "repo")

        assert first == second
        assert len(first) == 16
        assert compute_repo_id(tmp_path) != first


class TestRepoRecords:
    """Tests for repo_index rows."""

    def test_creates_database_and_parent(self, store: IndexMetadataStore) -> None:
        assert store.db_path.exists()
        with sqlite3.connect(store.db_path) as conn:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert {"repo_index", "file_index"} <= tables

    def test_missing_record_is_none(self, store: IndexMetadataStore) -> None:
        assert store.get("unknown") is None

    def test_update_round_trip(self, store: IndexMetadataStore) -> None:
        written = store.update("repo", "abc123", ignore_hash="ign")

        record = store.get("repo")

        assert record == written
        assert record.last_hash == "abc123"
        assert record.ignore_hash == "ign"
        assert record.last_indexed > 0

    def test_update_keeps_ignore_hash_when_omitted(
        self, store: IndexMetadataStore
    ) -> None:
        store.update("repo", "first", ignore_hash="ign")

        written = store.update("repo", "second")

        assert written.ignore_hash == "ign"
        assert store.get("repo").last_hash == "second"

    def test_remove_deletes_files_too(self, store: IndexMetadataStore) -> None:
        store.update("repo", "h")
        store.update_file("repo", "a.py", "hash-a", ["p1"])
        store.update_file("other", "a.py", "hash-a", ["p2"])

        store.remove("repo")

        assert store.get("repo") is None
        assert store.file_paths("repo") == []
        assert store.file_paths("other") == ["a.py"]

    def test_get_all(self, store: IndexMetadataStore) -> None:
        store.update("b", "h2")
        store.update("a", "h1")

        assert [r.repo_id for r in store.get_all()] == ["a", "b"]

    def test_records_survive_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "meta.db"
        IndexMetadataStore(db_path).update("repo", "persisted")

        assert IndexMetadataStore(db_path).get("repo").last_hash == "persisted"


class TestFileRecords:
    """Tests for file_index rows."""

    def test_update_and_read(self, store: IndexMetadataStore) -> None:
        store.update_file("repo", "src/a.py", "hash-1", ["id-1", "id-2"])

        record = store.get_file_record("repo", "src/a.py")

        assert record.content_hash == "hash-1"
        assert record.point_ids == ["id-1", "id-2"]
        assert store.get_file_hash("repo", "src/a.py") == "hash-1"
        assert store.get_file_hash("repo", "src/b.py") is None

    def test_update_replaces_point_ids(self, store: IndexMetadataStore) -> None:
        store.update_file("repo", "a.py", "old", ["1", "2", "3"])
        store.update_file("repo", "a.py", "new", ["1"])

        record = store.get_file_record("repo", "a.py")

        assert record.content_hash == "new"
        assert record.point_ids == ["1"]

    def test_remove_file(self, store: IndexMetadataStore) -> None:
        store.update_file("repo", "a.py", "h", [])
        store.update_file("repo", "b.py", "h", [])

        store.remove_file("repo", "a.py")

        assert store.file_paths("repo") == ["b.py"]

    def test_repo_digest_depends_on_contents(self, store: IndexMetadataStore) -> None:
        empty = store.compute_repo_digest("repo")
        store.update_file("repo", "a.py", "h1", [])
        first = store.compute_repo_digest("repo")
        store.update_file("repo", "a.py", "h2", [])

        assert empty != first
        assert store.compute_repo_digest("repo") != first


class TestFailures:
    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(MetadataStoreError):
            IndexMetadataStore(blocker / "meta.db")

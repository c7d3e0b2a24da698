"""SQLite-backed index metadata for change detection and staleness display.

The database lives in the host cache (not inside the indexed repository) and
holds two tables:

- ``repo_index``: one row per repository root (``repo_id``, ``last_hash``,
  ``last_indexed`` epoch millis, ``ignore_hash``)
- ``file_index``: one row per indexed file (``content_hash`` plus the ids of
  the points written for it)

Every mutation runs in a single transaction, so a crash leaves either the
previous or the new record, never a mix.
"""

import hashlib
import json
import sqlite3
import time
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path

from loguru import logger

from .exceptions import MetadataStoreError
from .models import FileIndexRecord, RepoIndexState


def compute_content_hash(data: bytes) -> str:
    """SHA-256 of raw file bytes, used for equality only."""
    return hashlib.sha256(data).hexdigest()


def compute_repo_id(project_root: Path) -> str:
    """Stable identifier for a repository root."""
    resolved = str(Path(project_root).expanduser().resolve())
    return hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]


def _now_ms() -> int:
    return int(time.time() * 1000)


class IndexMetadataStore:
    """Durable per-repository and per-file indexing records.

    Example:
        >>> store = IndexMetadataStore(Path("~/.cache/semantic-index/index_metadata.db"))
        >>> store.update_file(repo_id, "src/app.py", content_hash, point_ids)
        >>> store.get_file_hash(repo_id, "src/app.py") == content_hash
        True
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        """Initialize the metadata store.

        Args:
            db_path: SQLite database file (created with its parent directory)
        """
        self.db_path = Path(db_path).expanduser()
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.db_path, timeout=30)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def _init_db(self) -> None:
        """Create database and tables if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS repo_index (
                        repo_id TEXT PRIMARY KEY,
                        last_hash TEXT NOT NULL,
                        last_indexed INTEGER NOT NULL,
                        ignore_hash TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS file_index (
                        repo_id TEXT NOT NULL,
                        file_path TEXT NOT NULL,
                        content_hash TEXT NOT NULL,
                        point_ids TEXT NOT NULL,
                        indexed_at INTEGER NOT NULL,
                        PRIMARY KEY (repo_id, file_path)
                    )
                    """
                )
                conn.execute(f"PRAGMA user_version={self.SCHEMA_VERSION}")
        except (OSError, sqlite3.Error) as e:
            raise MetadataStoreError(
                f"Failed to initialize metadata store at {self.db_path}: {e}",
                context={"path": str(self.db_path)},
            ) from e
        logger.debug(f"Initialized index metadata store at {self.db_path}")

    # ------------------------------------------------------------------
    # Repository records
    # ------------------------------------------------------------------

    def get(self, repo_id: str) -> RepoIndexState | None:
        """Return the repository record, or None if never indexed."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT repo_id, last_hash, last_indexed, ignore_hash "
                    "FROM repo_index WHERE repo_id = ?",
                    (repo_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to read repo record: {e}") from e

        if row is None:
            return None
        return RepoIndexState(
            repo_id=row["repo_id"],
            last_hash=row["last_hash"],
            last_indexed=row["last_indexed"],
            ignore_hash=row["ignore_hash"],
        )

    def update(
        self, repo_id: str, last_hash: str, ignore_hash: str | None = None
    ) -> RepoIndexState:
        """Write the full repository record in one transaction.

        Args:
            repo_id: Repository identifier
            last_hash: Repo-level hash (HEAD commit or digest of file hashes)
            ignore_hash: Hash of the ignore file; existing value kept when None

        Returns:
            The record as written
        """
        now = _now_ms()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO repo_index (repo_id, last_hash, last_indexed, ignore_hash)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(repo_id) DO UPDATE SET
                        last_hash = excluded.last_hash,
                        last_indexed = excluded.last_indexed,
                        ignore_hash = COALESCE(excluded.ignore_hash, repo_index.ignore_hash)
                    """,
                    (repo_id, last_hash, now, ignore_hash),
                )
                row = conn.execute(
                    "SELECT ignore_hash FROM repo_index WHERE repo_id = ?", (repo_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise MetadataStoreError(
                f"Failed to update repo record: {e}", context={"repo_id": repo_id}
            ) from e

        logger.debug(f"Recorded repo {repo_id} at hash {last_hash[:12]}")
        return RepoIndexState(
            repo_id=repo_id,
            last_hash=last_hash,
            last_indexed=now,
            ignore_hash=row["ignore_hash"] if row else ignore_hash,
        )

    def remove(self, repo_id: str) -> None:
        """Delete the repository record and all of its file records."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM file_index WHERE repo_id = ?", (repo_id,))
                conn.execute("DELETE FROM repo_index WHERE repo_id = ?", (repo_id,))
        except sqlite3.Error as e:
            raise MetadataStoreError(
                f"Failed to remove repo record: {e}", context={"repo_id": repo_id}
            ) from e

    def get_all(self) -> list[RepoIndexState]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT repo_id, last_hash, last_indexed, ignore_hash "
                    "FROM repo_index ORDER BY repo_id"
                ).fetchall()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to list repo records: {e}") from e
        return [
            RepoIndexState(
                repo_id=row["repo_id"],
                last_hash=row["last_hash"],
                last_indexed=row["last_indexed"],
                ignore_hash=row["ignore_hash"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # File records
    # ------------------------------------------------------------------

    def get_file_record(self, repo_id: str, file_path: str) -> FileIndexRecord | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT file_path, content_hash, point_ids, indexed_at "
                    "FROM file_index WHERE repo_id = ? AND file_path = ?",
                    (repo_id, file_path),
                ).fetchone()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to read file record: {e}") from e
        return self._to_file_record(row) if row else None

    def get_file_hash(self, repo_id: str, file_path: str) -> str | None:
        record = self.get_file_record(repo_id, file_path)
        return record.content_hash if record else None

    def get_file_records(self, repo_id: str) -> dict[str, FileIndexRecord]:
        """Return every file record of a repository keyed by path."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT file_path, content_hash, point_ids, indexed_at "
                    "FROM file_index WHERE repo_id = ?",
                    (repo_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to read file records: {e}") from e
        return {row["file_path"]: self._to_file_record(row) for row in rows}

    def file_paths(self, repo_id: str) -> list[str]:
        return sorted(self.get_file_records(repo_id))

    def update_file(
        self,
        repo_id: str,
        file_path: str,
        content_hash: str,
        point_ids: list[str],
    ) -> None:
        """Record a file's content hash and point ids in one transaction."""
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO file_index
                        (repo_id, file_path, content_hash, point_ids, indexed_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(repo_id, file_path) DO UPDATE SET
                        content_hash = excluded.content_hash,
                        point_ids = excluded.point_ids,
                        indexed_at = excluded.indexed_at
                    """,
                    (repo_id, file_path, content_hash, json.dumps(point_ids), _now_ms()),
                )
        except sqlite3.Error as e:
            raise MetadataStoreError(
                f"Failed to update file record for {file_path}: {e}",
                context={"repo_id": repo_id, "file_path": file_path},
            ) from e

    def remove_file(self, repo_id: str, file_path: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "DELETE FROM file_index WHERE repo_id = ? AND file_path = ?",
                    (repo_id, file_path),
                )
        except sqlite3.Error as e:
            raise MetadataStoreError(
                f"Failed to remove file record for {file_path}: {e}",
                context={"repo_id": repo_id, "file_path": file_path},
            ) from e

    def compute_repo_digest(self, repo_id: str) -> str:
        """SHA-256 over the sorted (path, content_hash) pairs of a repository."""
        digest = hashlib.sha256()
        records = self.get_file_records(repo_id)
        for path in sorted(records):
            digest.update(path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(records[path].content_hash.encode("ascii"))
            digest.update(b"\n")
        return digest.hexdigest()

    @staticmethod
    def _to_file_record(row: sqlite3.Row) -> FileIndexRecord:
        return FileIndexRecord(
            file_path=row["file_path"],
            content_hash=row["content_hash"],
            point_ids=json.loads(row["point_ids"]),
            indexed_at=row["indexed_at"],
        )

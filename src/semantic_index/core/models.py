"""Data structures for the indexing pipeline and query path."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Namespace for deterministic point ids
POINT_ID_NAMESPACE = uuid.UUID("6f1d3c4e-2b7a-5e8f-9c0d-1a2b3c4d5e6f")


def make_point_id(repo_id: str, file_path: str, line_start: int) -> str:
    """Derive a stable point id so re-indexing a chunk overwrites it."""
    return str(uuid.uuid5(POINT_ID_NAMESPACE, f"{repo_id}:{file_path}:{line_start}"))


class IndexingStatus(str, Enum):
    """Status carried by progress events and run results."""

    STARTING = "starting"
    INDEXING = "indexing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class OrchestratorState(str, Enum):
    """Lifecycle of the indexing orchestrator."""

    IDLE = "idle"
    STARTING = "starting"
    INDEXING = "indexing"


class IndexState(str, Enum):
    """Freshness of a repository's index as shown by ``status``."""

    NOT_INDEXED = "not_indexed"
    INDEXING = "indexing"
    READY = "ready"
    STALE = "stale"


@dataclass
class Chunk:
    """Contiguous excerpt of a file that becomes one embedding unit."""

    id: str
    file_path: str  # relative to the project root, POSIX separators
    content: str
    line_start: int  # 1-based, inclusive
    line_end: int  # 1-based, inclusive


@dataclass
class PointPayload:
    """Payload stored alongside each vector."""

    file_path: str
    content: str
    line_start: int
    line_end: int
    repo_id: str
    commit: str | None = None
    type: str = "file"

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "content": self.content,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "repoId": self.repo_id,
            "commit": self.commit,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PointPayload":
        return cls(
            file_path=str(data.get("filePath", "")),
            content=str(data.get("content", "")),
            line_start=int(data.get("lineStart", 0)),
            line_end=int(data.get("lineEnd", 0)),
            repo_id=str(data.get("repoId", "")),
            commit=data.get("commit") or None,
            type=str(data.get("type", "file")),
        )


@dataclass
class IndexedPoint:
    """One embedded chunk as stored in the vector store."""

    id: str
    vector: list[float]
    payload: PointPayload


@dataclass
class PointFilter:
    """Equality filter over payload fields.

    Empty fields are not constrained; an empty filter matches everything.
    """

    repo_id: str | None = None
    file_path: str | None = None

    def conditions(self) -> dict[str, str]:
        """Return constrained payload fields keyed by their wire names."""
        result: dict[str, str] = {}
        if self.repo_id is not None:
            result["repoId"] = self.repo_id
        if self.file_path is not None:
            result["filePath"] = self.file_path
        return result

    def is_empty(self) -> bool:
        return not self.conditions()


@dataclass
class SearchHit:
    """Ranked vector store hit."""

    id: str
    score: float
    payload: PointPayload

    @property
    def file_path(self) -> str:
        return self.payload.file_path

    @property
    def content(self) -> str:
        return self.payload.content


@dataclass
class IndexingProgress:
    """Transient progress event broadcast to listeners."""

    current: int
    total: int
    status: IndexingStatus
    current_file: str | None = None
    message: str | None = None


@dataclass
class RepoIndexState:
    """Durable per-repository indexing record."""

    repo_id: str
    last_hash: str
    last_indexed: int  # epoch milliseconds
    ignore_hash: str | None = None


@dataclass
class FileIndexRecord:
    """Per-file change-detection record."""

    file_path: str
    content_hash: str
    point_ids: list[str] = field(default_factory=list)
    indexed_at: int = 0  # epoch milliseconds


@dataclass
class FileIndexOutcome:
    """What happened to one file during a pass."""

    file_path: str
    indexed: bool = False
    skipped: bool = False
    deleted: bool = False
    chunks: int = 0
    failed_chunks: int = 0
    error: str | None = None


@dataclass
class IndexRunResult:
    """Outcome of a full indexing run.

    ``error_code`` is one of ``config``, ``vector_store_unavailable``,
    ``vector_store``, ``metadata_store`` or ``internal`` when ``status``
    is ``error``; it is ``None`` otherwise.
    """

    status: IndexingStatus
    processed: int = 0
    total: int = 0
    skipped: int = 0
    failed: int = 0
    last_file: str | None = None
    message: str | None = None
    error_code: str | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == IndexingStatus.COMPLETED


@dataclass
class IndexStatusReport:
    """Snapshot used by the ``status`` command."""

    repo_id: str
    state: IndexState
    last_hash: str | None = None
    last_indexed: int | None = None
    current_commit: str | None = None
    indexed_files: int = 0
    point_count: int | None = None

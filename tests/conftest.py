"""Shared fixtures and in-memory fakes for semantic-index tests."""

import asyncio
import hashlib
import math
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from semantic_index.config.settings import IndexingSettings, ProjectConfig
from semantic_index.core.cancellation import CancellationToken
from semantic_index.core.exceptions import VectorStoreUnavailableError
from semantic_index.core.index_metadata import IndexMetadataStore
from semantic_index.core.indexer import SemanticIndexer
from semantic_index.core.models import IndexedPoint, PointFilter, SearchHit


def deterministic_vector(text: str, dimension: int = 8) -> list[float]:
    """Stable pseudo-embedding derived from the text's SHA-256."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i % len(digest)] + 1) / 256.0 for i in range(dimension)]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbeddingProvider:
    """Embedding provider double with call counting and failure injection."""

    def __init__(self, dimension: int = 8) -> None:
        self.dimension = dimension
        self.calls: list[str] = []
        self.fail_when: Callable[[str], bool] = lambda text: False
        self.on_embed: Callable[[str], None] | None = None
        self.gate: asyncio.Event | None = None
        self.unreachable = False
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return "fake-model"

    async def embed(
        self, text: str, token: CancellationToken | None = None
    ) -> list[float] | None:
        if token:
            token.check()
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append(text)
        if self.on_embed:
            self.on_embed(text)
        if self.fail_when(text):
            return None
        return deterministic_vector(text, self.dimension)

    async def detect_dimension(self, token: CancellationToken | None = None) -> int:
        return self.dimension

    async def validate_connection(self, token: CancellationToken | None = None) -> None:
        if self.unreachable:
            raise httpx.ConnectError("connection refused")

    async def aclose(self) -> None:
        self.closed = True


def _matches(point: IndexedPoint, filter: PointFilter | None) -> bool:
    if filter is None:
        return True
    payload = point.payload.to_dict()
    return all(payload.get(key) == value for key, value in filter.conditions().items())


class InMemoryVectorStore:
    """Vector store double keeping points in a dict."""

    def __init__(self) -> None:
        self.points: dict[str, IndexedPoint] = {}
        self.collections: dict[str, int] = {}
        self.upsert_calls: list[list[str]] = []
        self.deleted_ids: list[str] = []
        self.scripted_hits: list[SearchHit] | None = None
        self.unreachable = False
        self.fail_upserts = False
        self.closed = False

    @property
    def name(self) -> str:
        return "memory"

    async def health_check(self, token: CancellationToken | None = None) -> None:
        if self.unreachable:
            raise VectorStoreUnavailableError("memory store is down")

    async def ensure_collection(
        self, name: str, vector_size: int, token: CancellationToken | None = None
    ) -> None:
        self.collections.setdefault(name, vector_size)

    async def upsert(
        self,
        collection: str,
        points: list[IndexedPoint],
        token: CancellationToken | None = None,
    ) -> None:
        if token:
            token.check()
        if self.fail_upserts:
            raise VectorStoreUnavailableError("upsert failed: store unreachable")
        self.upsert_calls.append([p.id for p in points])
        for point in points:
            self.points[point.id] = point

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> list[SearchHit]:
        if self.scripted_hits is not None:
            return list(self.scripted_hits)[:limit]
        hits = [
            SearchHit(
                id=point.id,
                score=cosine_similarity(vector, point.vector),
                payload=point.payload,
            )
            for point in self.points.values()
            if _matches(point, filter)
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def delete_by_filter(
        self,
        collection: str,
        filter: PointFilter,
        token: CancellationToken | None = None,
    ) -> None:
        doomed = [pid for pid, point in self.points.items() if _matches(point, filter)]
        await self.delete_points(collection, doomed)

    async def delete_points(
        self,
        collection: str,
        ids: list[str],
        token: CancellationToken | None = None,
    ) -> None:
        for point_id in ids:
            if self.points.pop(point_id, None) is not None:
                self.deleted_ids.append(point_id)

    async def count_points(
        self,
        collection: str,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        return sum(1 for point in self.points.values() if _matches(point, filter))

    def paths(self) -> set[str]:
        return {point.payload.file_path for point in self.points.values()}

    async def aclose(self) -> None:
        self.closed = True


class FakeGitManager:
    """Git helper double returning a fixed commit."""

    def __init__(self, commit: str | None = "c0ffee") -> None:
        self.commit = commit

    def get_head_commit(self) -> str | None:
        return self.commit

    async def get_head_commit_async(self) -> str | None:
        return self.commit


def _write_lines(path: Path, count: int, prefix: str = "line") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{prefix} {i}\n" for i in range(1, count + 1)))
    return path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Small project with three indexable files and one excluded dependency."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text(
        "def main():\n    print('hello from app')\n"
    )
    (root / "src" / "util.py").write_text(
        "def add(a, b):\n    return a + b\n"
    )
    (root / "README.md").write_text("# Project\n\nSome documentation.\n")
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / "node_modules" / "dep" / "index.js").write_text("module.exports = 1;\n")
    return root


@pytest.fixture
def config(project_dir: Path, tmp_path: Path) -> ProjectConfig:
    return ProjectConfig(
        project_root=project_dir,
        metadata_path=tmp_path / "cache" / "index_metadata.db",
        indexing=IndexingSettings(file_extensions=[".py", ".md", ".js"]),
    )


@pytest.fixture
def metadata_store(tmp_path: Path) -> IndexMetadataStore:
    return IndexMetadataStore(tmp_path / "cache" / "index_metadata.db")


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def git_manager() -> FakeGitManager:
    return FakeGitManager()


@pytest.fixture
def indexer(
    config: ProjectConfig,
    embedding_provider: FakeEmbeddingProvider,
    vector_store: InMemoryVectorStore,
    metadata_store: IndexMetadataStore,
    git_manager: FakeGitManager,
) -> SemanticIndexer:
    return SemanticIndexer(
        config=config,
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        metadata_store=metadata_store,
        git_manager=git_manager,
    )


@pytest.fixture
def no_retry_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make every retry loop sleep zero seconds."""
    monkeypatch.setattr("semantic_index.core.indexer.VALIDATION_RETRY_DELAY", 0.0)
    monkeypatch.setattr("semantic_index.core.indexer.STORE_RETRY_DELAY", 0.0)
    monkeypatch.setattr("semantic_index.core.embeddings.EMBEDDING_RETRY_DELAY", 0.0)


@pytest.fixture
def write_lines() -> Callable[..., Path]:
    """Helper writing ``count`` distinct non-empty lines to a path."""
    return _write_lines

"""Unit tests for the query path."""

import warnings

import pytest

from semantic_index.config.settings import SearchSettings
from semantic_index.core.exceptions import SearchError, VectorStoreUnavailableError
from semantic_index.core.models import PointPayload, SearchHit
from semantic_index.core.search import SemanticSearchEngine, filter_hits


def make_hit(score: float, file_path: str = "src/a.py") -> SearchHit:
    return SearchHit(
        id=f"{file_path}-{score}",
        score=score,
        payload=PointPayload(
            file_path=file_path,
            content=f"content {score}",
            line_start=1,
            line_end=5,
            repo_id="repo",
        ),
    )


@pytest.fixture
def engine(embedding_provider, vector_store) -> SemanticSearchEngine:
    return SemanticSearchEngine(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        collection="codebase",
        repo_id="repo",
        settings=SearchSettings(limit=10, threshold=0.7, min_query_length=3),
    )


class TestFilterHits:
    """Tests for client-side threshold and glob filtering."""

    def test_threshold_keeps_hits_at_or_above(self) -> None:
        hits = [make_hit(0.3), make_hit(0.9), make_hit(0.7)]

        result = filter_hits(hits, threshold=0.5)

        assert [h.score for h in result] == [0.9, 0.7]

    def test_glob_filter(self) -> None:
        hits = [
            make_hit(0.9, "src/app.py"),
            make_hit(0.8, "docs/guide.md"),
            make_hit(0.7, "src/pkg/mod.py"),
        ]

        result = filter_hits(hits, threshold=0.0, glob_filter="src/**/*.py")

        assert [h.file_path for h in result] == ["src/app.py", "src/pkg/mod.py"]

    def test_extension_glob_matches_any_directory(self) -> None:
        hits = [make_hit(0.9, "src/app.py"), make_hit(0.8, "README.md")]

        result = filter_hits(hits, threshold=0.0, glob_filter="*.md")

        assert [h.file_path for h in result] == ["README.md"]

    def test_glob_matching_emits_no_deprecation_warning(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = filter_hits([make_hit(0.9, "a.py")], 0.0, glob_filter="*.py")

        assert len(result) == 1


class TestSemanticSearchEngine:
    """Tests for SemanticSearchEngine.search()."""

    @pytest.mark.asyncio
    async def test_scores_filtered_by_threshold_in_order(
        self, engine, vector_store
    ) -> None:
        """Hits scoring [0.9, 0.7, 0.3] with threshold 0.5 yield the first two."""
        vector_store.scripted_hits = [make_hit(0.9), make_hit(0.7), make_hit(0.3)]

        response = await engine.search("find something", threshold=0.5)

        assert [h.score for h in response.hits] == [0.9, 0.7]
        assert response.warning is None
        assert not response.skipped

    @pytest.mark.asyncio
    async def test_configured_threshold_is_default(self, engine, vector_store) -> None:
        vector_store.scripted_hits = [make_hit(0.9), make_hit(0.69)]

        response = await engine.search("find something")

        assert [h.score for h in response.hits] == [0.9]

    @pytest.mark.asyncio
    async def test_short_query_is_not_searched(
        self, engine, embedding_provider
    ) -> None:
        response = await engine.search("  ab  ")

        assert response.skipped
        assert response.hits == []
        assert embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_query_embedded_once(self, engine, embedding_provider, vector_store) -> None:
        vector_store.scripted_hits = []

        await engine.search("  retry logic  ")

        assert embedding_provider.calls == ["retry logic"]

    @pytest.mark.asyncio
    async def test_embedding_failure_returns_warning(
        self, engine, embedding_provider
    ) -> None:
        """A failed query embedding yields no hits and a warning, not an error."""
        embedding_provider.fail_when = lambda text: True

        response = await engine.search("find something")

        assert response.hits == []
        assert response.warning is not None
        assert "fake" in response.warning

    @pytest.mark.asyncio
    async def test_store_failure_raises_search_error(
        self, engine, vector_store, monkeypatch
    ) -> None:
        async def broken(*args, **kwargs):
            raise VectorStoreUnavailableError("store down")

        monkeypatch.setattr(vector_store, "search", broken)

        with pytest.raises(SearchError, match="store down"):
            await engine.search("find something")

    @pytest.mark.asyncio
    async def test_limit_passed_to_store(self, engine, vector_store) -> None:
        vector_store.scripted_hits = [make_hit(0.99 - i / 100) for i in range(10)]

        response = await engine.search("find something", limit=3)

        assert len(response) == 3

    @pytest.mark.asyncio
    async def test_results_scoped_to_repository(
        self, indexer, vector_store, embedding_provider
    ) -> None:
        await indexer.start_indexing()
        other = SemanticSearchEngine(
            embedding_provider, vector_store, indexer.collection, repo_id="other-repo"
        )
        mine = SemanticSearchEngine(
            embedding_provider, vector_store, indexer.collection, indexer.repo_id
        )
        query = "def add(a, b):\n    return a + b"

        assert (await other.search(query, threshold=0.0)).hits == []
        hits = (await mine.search(query, threshold=0.0)).hits
        assert hits[0].file_path == "src/util.py"
        assert hits[0].score == pytest.approx(1.0)

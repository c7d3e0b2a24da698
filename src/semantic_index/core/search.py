"""Semantic search over an indexed repository."""

import time
from dataclasses import dataclass, field

import pathspec
from loguru import logger

from ..config.settings import SearchSettings
from .cancellation import CancellationToken
from .embeddings import EmbeddingProvider
from .exceptions import OperationCancelledError, SearchError, VectorStoreError
from .models import PointFilter, SearchHit
from .vector_store import VectorStore


@dataclass
class SearchResponse:
    """Ranked hits plus an optional user-facing warning.

    ``warning`` is set when the query could not be embedded; ``hits`` is then
    empty.
    """

    query: str
    hits: list[SearchHit] = field(default_factory=list)
    warning: str | None = None
    skipped: bool = False  # query too short to search

    def __len__(self) -> int:
        return len(self.hits)


def filter_hits(
    hits: list[SearchHit],
    threshold: float,
    glob_filter: str | None = None,
) -> list[SearchHit]:
    """Drop hits scoring below ``threshold`` or outside ``glob_filter``.

    Returns:
        Remaining hits ordered by descending score
    """
    spec = pathspec.GitIgnoreSpec.from_lines([glob_filter]) if glob_filter else None
    kept = [
        hit
        for hit in hits
        if hit.score >= threshold
        and (spec is None or spec.match_file(hit.file_path))
    ]
    return sorted(kept, key=lambda hit: hit.score, reverse=True)


class SemanticSearchEngine:
    """Embeds a query once and asks the vector store for its nearest chunks."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        collection: str,
        repo_id: str,
        settings: SearchSettings | None = None,
    ) -> None:
        """Initialize semantic search engine.

        Args:
            embedding_provider: Provider used to embed the query
            vector_store: Store holding the indexed points
            collection: Collection name to query
            repo_id: Repository whose points are searched
            settings: Default limit, threshold and minimum query length
        """
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.collection = collection
        self.repo_id = repo_id
        self.settings = settings or SearchSettings()

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        glob_filter: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> SearchResponse:
        """Search the repository for chunks similar to ``query``.

        Args:
            query: Natural-language or code query
            limit: Maximum hits requested from the store (configured default)
            threshold: Minimum similarity score to keep (configured default)
            glob_filter: Optional gitignore-style pattern over file paths
            cancel_token: Optional cancellation token

        Returns:
            Search response; empty with ``skipped`` set for trivial queries

        Raises:
            SearchError: If the vector store query fails
        """
        query = query.strip()
        if len(query) < self.settings.min_query_length:
            logger.debug(f"Query too short to search: {query!r}")
            return SearchResponse(query=query, skipped=True)

        limit = limit if limit is not None else self.settings.limit
        threshold = threshold if threshold is not None else self.settings.threshold
        started = time.perf_counter()

        vector = await self.embedding_provider.embed(query, cancel_token)
        if vector is None:
            message = (
                f"Could not embed the query with {self.embedding_provider.name}; "
                "check that the embedding service is running"
            )
            logger.warning(message)
            return SearchResponse(query=query, warning=message)

        try:
            hits = await self.vector_store.search(
                self.collection,
                vector,
                limit,
                PointFilter(repo_id=self.repo_id),
                cancel_token,
            )
        except OperationCancelledError:
            raise
        except VectorStoreError as e:
            raise SearchError(
                f"Search failed: {e}",
                context={"query": query, "collection": self.collection},
            ) from e

        results = filter_hits(hits, threshold, glob_filter)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            f"Search returned {len(results)}/{len(hits)} hits above {threshold} "
            f"in {elapsed_ms:.0f}ms"
        )
        return SearchResponse(query=query, hits=results)

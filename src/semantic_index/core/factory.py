"""Component factory wiring configuration to providers, stores and services."""

from dataclasses import dataclass
from pathlib import Path

import httpx
from loguru import logger

from ..config.settings import ProjectConfig
from .embeddings import EmbeddingProvider, create_embedding_provider
from .index_metadata import IndexMetadataStore
from .indexer import SemanticIndexer
from .search import SemanticSearchEngine
from .vector_store import VectorStore, create_vector_store


@dataclass
class ComponentBundle:
    """Bundle of the components one command needs."""

    config: ProjectConfig
    embedding_provider: EmbeddingProvider
    vector_store: VectorStore
    metadata_store: IndexMetadataStore
    indexer: SemanticIndexer
    search_engine: SemanticSearchEngine

    async def aclose(self) -> None:
        """Release HTTP clients and store handles."""
        await self.embedding_provider.aclose()
        await self.vector_store.aclose()

    async def __aenter__(self) -> "ComponentBundle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class ComponentFactory:
    """Factory for creating commonly used components."""

    @staticmethod
    def load_config(project_root: Path) -> ProjectConfig:
        """Load project configuration (defaults when no config file exists)."""
        return ProjectConfig.load(project_root)

    @staticmethod
    def create_embedding_provider(
        config: ProjectConfig, client: httpx.AsyncClient | None = None
    ) -> EmbeddingProvider:
        return create_embedding_provider(config.embedding, client)

    @staticmethod
    def create_vector_store(
        config: ProjectConfig, client: httpx.AsyncClient | None = None
    ) -> VectorStore:
        return create_vector_store(config.vector_store, client)

    @staticmethod
    def create_metadata_store(config: ProjectConfig) -> IndexMetadataStore:
        return IndexMetadataStore(config.resolved_metadata_path())

    @staticmethod
    def create_indexer(
        config: ProjectConfig,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        metadata_store: IndexMetadataStore,
    ) -> SemanticIndexer:
        return SemanticIndexer(
            config=config,
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            metadata_store=metadata_store,
        )

    @staticmethod
    def create_search_engine(
        indexer: SemanticIndexer,
    ) -> SemanticSearchEngine:
        """Create a search engine scoped to the indexer's repository."""
        return SemanticSearchEngine(
            embedding_provider=indexer.embedding_provider,
            vector_store=indexer.vector_store,
            collection=indexer.collection,
            repo_id=indexer.repo_id,
            settings=indexer.config.search,
        )

    @staticmethod
    def create_standard_components(
        project_root: Path,
        config: ProjectConfig | None = None,
        embedding_client: httpx.AsyncClient | None = None,
        store_client: httpx.AsyncClient | None = None,
    ) -> ComponentBundle:
        """Create the standard set of components for CLI commands.

        Args:
            project_root: Project root directory
            config: Already loaded configuration (loaded from disk otherwise)
            embedding_client: Optional HTTP client for the embedding provider
            store_client: Optional HTTP client for REST vector stores

        Returns:
            ComponentBundle with every component wired together

        Raises:
            ConfigurationError: If the configuration cannot build a backend
        """
        config = config or ComponentFactory.load_config(project_root)

        embedding_provider = ComponentFactory.create_embedding_provider(
            config, embedding_client
        )
        vector_store = ComponentFactory.create_vector_store(config, store_client)
        metadata_store = ComponentFactory.create_metadata_store(config)
        indexer = ComponentFactory.create_indexer(
            config, embedding_provider, vector_store, metadata_store
        )
        search_engine = ComponentFactory.create_search_engine(indexer)

        logger.debug(
            f"Components ready: embedding={embedding_provider.name} "
            f"store={vector_store.name} collection={config.collection_name}"
        )
        return ComponentBundle(
            config=config,
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            metadata_store=metadata_store,
            indexer=indexer,
            search_engine=search_engine,
        )

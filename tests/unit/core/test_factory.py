"""Unit tests for ComponentFactory wiring."""

from pathlib import Path

import pytest

from semantic_index.config.settings import ProjectConfig, VectorStoreConfig
from semantic_index.core.embeddings import OllamaEmbeddingProvider
from semantic_index.core.exceptions import ConfigurationError
from semantic_index.core.factory import ComponentFactory
from semantic_index.core.qdrant_backend import QdrantVectorStore


@pytest.fixture
def project_config(tmp_path: Path) -> ProjectConfig:
    root = tmp_path / "project"
    root.mkdir()
    return ProjectConfig(
        project_root=root,
        collection_name="my-code",
        metadata_path=tmp_path / "cache" / "meta.db",
    )


class TestCreateStandardComponents:
    def test_default_bundle(self, project_config: ProjectConfig) -> None:
        bundle = ComponentFactory.create_standard_components(
            project_config.project_root, config=project_config
        )

        assert isinstance(bundle.embedding_provider, OllamaEmbeddingProvider)
        assert isinstance(bundle.vector_store, QdrantVectorStore)
        assert bundle.metadata_store.db_path == project_config.metadata_path
        assert bundle.indexer.collection == "my-code"
        assert bundle.search_engine.repo_id == bundle.indexer.repo_id
        assert bundle.search_engine.collection == "my-code"

    def test_loads_saved_config(self, project_config: ProjectConfig) -> None:
        project_config.save()

        bundle = ComponentFactory.create_standard_components(
            project_config.project_root
        )

        assert bundle.config.collection_name == "my-code"

    def test_invalid_backend_raises(self, project_config: ProjectConfig) -> None:
        project_config.vector_store = VectorStoreConfig(provider="pinecone", url=None)

        with pytest.raises(ConfigurationError):
            ComponentFactory.create_standard_components(
                project_config.project_root, config=project_config
            )

    @pytest.mark.asyncio
    async def test_bundle_closes_components(
        self, project_config: ProjectConfig, embedding_provider, vector_store
    ) -> None:
        bundle = ComponentFactory.create_standard_components(
            project_config.project_root, config=project_config
        )
        bundle.embedding_provider = embedding_provider
        bundle.vector_store = vector_store

        async with bundle:
            pass

        assert embedding_provider.closed
        assert vector_store.closed

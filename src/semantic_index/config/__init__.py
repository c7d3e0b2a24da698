"""Configuration management for semantic-index."""

from .settings import (
    EmbeddingConfig,
    IndexingSettings,
    ProjectConfig,
    SearchSettings,
    VectorStoreConfig,
)

__all__ = [
    "EmbeddingConfig",
    "IndexingSettings",
    "ProjectConfig",
    "SearchSettings",
    "VectorStoreConfig",
]

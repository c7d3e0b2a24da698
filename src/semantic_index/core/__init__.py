"""Core functionality for semantic-index."""

from .exceptions import (
    ConfigurationError,
    EmbeddingError,
    IndexingBusyError,
    IndexingError,
    MetadataStoreError,
    OperationCancelledError,
    SearchError,
    SemanticIndexError,
    VectorStoreAuthError,
    VectorStoreError,
    VectorStoreUnavailableError,
)

__all__ = [
    # Exceptions
    "ConfigurationError",
    "EmbeddingError",
    "IndexingBusyError",
    "IndexingError",
    "MetadataStoreError",
    "OperationCancelledError",
    "SearchError",
    "SemanticIndexError",
    "VectorStoreAuthError",
    "VectorStoreError",
    "VectorStoreUnavailableError",
]

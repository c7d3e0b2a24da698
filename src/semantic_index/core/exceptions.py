"""Typed exception hierarchy for semantic-index.

Hierarchy
---------
SemanticIndexError (base)
├── ConfigurationError        – missing/invalid settings, services unreachable at startup
├── EmbeddingError            – embedding provider HTTP failures
├── VectorStoreError          – vector store failures (status code attached)
│   ├── VectorStoreAuthError         – 401/403 responses
│   └── VectorStoreUnavailableError  – connect/timeout/DNS failures
├── MetadataStoreError        – index metadata persistence failures
├── IndexingError             – run-level (critical) indexing failures
│   └── IndexingBusyError     – a run is already in progress
├── SearchError               – query path failures
└── OperationCancelledError   – cooperative cancellation (not an error state)

``OperationCancelledError`` deliberately does not derive from ``IndexingError``:
a cancelled run ends in the ``cancelled`` state, never in ``error``.
"""

from typing import Any


class SemanticIndexError(Exception):
    """Base exception for semantic-index."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


# ── Configuration ───────────────────────────────────────────────────────


class ConfigurationError(SemanticIndexError):
    """Configuration / validation errors."""

    pass


# ── Embedding layer ─────────────────────────────────────────────────────


class EmbeddingError(SemanticIndexError):
    """Embedding generation errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code


# ── Vector store layer ──────────────────────────────────────────────────


class VectorStoreError(SemanticIndexError):
    """Vector store operation failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code


class VectorStoreAuthError(VectorStoreError):
    """Vector store rejected the credentials (401/403)."""

    pass


class VectorStoreUnavailableError(VectorStoreError):
    """Vector store could not be reached (connection, timeout, DNS)."""

    pass


# ── Metadata layer ──────────────────────────────────────────────────────


class MetadataStoreError(SemanticIndexError):
    """Index metadata could not be read or written."""

    pass


# ── Indexing layer ──────────────────────────────────────────────────────


class IndexingError(SemanticIndexError):
    """Indexing run failed in a way that makes continuing meaningless."""

    pass


class IndexingBusyError(IndexingError):
    """An indexing run is already in progress; retry later."""

    pass


# ── Search layer ────────────────────────────────────────────────────────


class SearchError(SemanticIndexError):
    """Search operation failed."""

    pass


# ── Cancellation ────────────────────────────────────────────────────────


class OperationCancelledError(SemanticIndexError):
    """Raised when a cancellation token is signalled."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)

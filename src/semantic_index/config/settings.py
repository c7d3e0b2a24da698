"""Pydantic configuration models for semantic-index."""

import os
from pathlib import Path
from typing import Any, Literal

import orjson
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..core.exceptions import ConfigurationError
from .defaults import (
    DEFAULT_COLLECTION_NAME,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_EMBEDDING_TIMEOUT,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_FILE_EXTENSIONS,
    DEFAULT_GEMINI_BASE_URL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_MAX_FILES,
    DEFAULT_MIN_QUERY_LENGTH,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_QDRANT_URL,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    DEFAULT_VECTOR_STORE_TIMEOUT,
    MAX_EMBEDDING_CONCURRENCY,
    get_default_config_path,
    get_default_lance_path,
    get_default_metadata_path,
)

EMBEDDING_API_KEY_ENV = "SEMANTIC_INDEX_EMBEDDING_API_KEY"
VECTOR_STORE_API_KEY_ENV = "SEMANTIC_INDEX_VECTOR_STORE_API_KEY"

EmbeddingProviderKind = Literal["ollama", "openai", "gemini"]
VectorStoreKind = Literal["qdrant", "pinecone", "lancedb"]

_PROVIDER_DEFAULTS: dict[str, tuple[str, str]] = {
    "ollama": (DEFAULT_OLLAMA_BASE_URL, DEFAULT_OLLAMA_MODEL),
    "openai": (DEFAULT_OPENAI_BASE_URL, DEFAULT_OPENAI_MODEL),
    "gemini": (DEFAULT_GEMINI_BASE_URL, DEFAULT_GEMINI_MODEL),
}


class EmbeddingConfig(BaseModel):
    """Embedding provider settings."""

    provider: EmbeddingProviderKind = "ollama"
    base_url: str | None = Field(
        default=None, description="Provider base URL (provider default when unset)"
    )
    model: str | None = Field(
        default=None, description="Embedding model name (provider default when unset)"
    )
    api_key: str | None = None
    timeout: float = Field(default=DEFAULT_EMBEDDING_TIMEOUT, gt=0)

    def resolved_base_url(self) -> str:
        return (self.base_url or _PROVIDER_DEFAULTS[self.provider][0]).rstrip("/")

    def resolved_model(self) -> str:
        return self.model or _PROVIDER_DEFAULTS[self.provider][1]


class VectorStoreConfig(BaseModel):
    """Vector store settings.

    For Pinecone, ``url`` is the index host (``https://<index>-<project>.svc...``).
    """

    provider: VectorStoreKind = "qdrant"
    url: str | None = Field(default=DEFAULT_QDRANT_URL)
    api_key: str | None = None
    path: Path | None = Field(
        default=None, description="LanceDB directory (host cache when unset)"
    )
    timeout: float = Field(default=DEFAULT_VECTOR_STORE_TIMEOUT, gt=0)

    def resolved_path(self) -> Path:
        return self.path or get_default_lance_path()


class IndexingSettings(BaseModel):
    """File selection and pipeline tuning."""

    file_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS)
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    max_files: int = Field(default=DEFAULT_MAX_FILES, gt=0)
    respect_gitignore: bool = True
    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0)
    embedding_concurrency: int = Field(default=1, ge=1, le=MAX_EMBEDDING_CONCURRENCY)
    max_file_bytes: int = Field(default=DEFAULT_MAX_FILE_BYTES, gt=0)

    @field_validator("file_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized


class SearchSettings(BaseModel):
    """Query path defaults."""

    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, gt=0)
    threshold: float = Field(default=DEFAULT_SEARCH_THRESHOLD, ge=0.0, le=1.0)
    min_query_length: int = Field(default=DEFAULT_MIN_QUERY_LENGTH, ge=0)


class ProjectConfig(BaseModel):
    """Complete configuration of one indexed project."""

    project_root: Path
    collection_name: str = DEFAULT_COLLECTION_NAME
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    indexing: IndexingSettings = Field(default_factory=IndexingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    metadata_path: Path | None = None

    @field_validator("project_root")
    @classmethod
    def _resolve_root(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def config_path(self) -> Path:
        return get_default_config_path(self.project_root)

    def resolved_metadata_path(self) -> Path:
        return self.metadata_path or get_default_metadata_path()

    def validate_backends(self) -> None:
        """Check provider-specific requirements before a run starts.

        Raises:
            ConfigurationError: If a selected backend is missing required settings
        """
        problems: list[str] = []

        if not self.collection_name.strip():
            problems.append("collection_name must not be empty")

        embedding = self.embedding
        if embedding.provider in ("openai", "gemini") and not embedding.api_key:
            problems.append(
                f"embedding provider '{embedding.provider}' requires an api_key"
            )

        store = self.vector_store
        if store.provider == "pinecone":
            if not store.api_key:
                problems.append("vector store 'pinecone' requires an api_key")
            if not store.url:
                problems.append("vector store 'pinecone' requires the index host url")
        elif store.provider == "qdrant" and not store.url:
            problems.append("vector store 'qdrant' requires a url")

        if problems:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(problems),
                context={"problems": problems},
            )

    def save(self, path: Path | None = None) -> Path:
        """Write the configuration as JSON.

        Args:
            path: Target file (defaults to ``<project>/.semantic-index/config.json``)

        Returns:
            Path the configuration was written to
        """
        target = path or self.config_path
        target.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        target.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
        logger.debug(f"Saved configuration to {target}")
        return target

    @classmethod
    def load(cls, project_root: Path, path: Path | None = None) -> "ProjectConfig":
        """Load configuration for a project.

        A missing config file yields the defaults. API keys missing from the
        file are filled from the environment.

        Args:
            project_root: Project root directory
            path: Explicit config file (defaults to the project's config.json)

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If the file exists but cannot be parsed
        """
        target = path or get_default_config_path(project_root.expanduser().resolve())
        data: dict[str, Any] = {}
        if target.exists():
            try:
                data = orjson.loads(target.read_bytes())
            except (OSError, orjson.JSONDecodeError) as e:
                raise ConfigurationError(
                    f"Failed to read configuration {target}: {e}",
                    context={"path": str(target)},
                ) from e
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Configuration {target} must be a JSON object",
                    context={"path": str(target)},
                )

        data["project_root"] = str(project_root)

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {target}: {e}",
                context={"path": str(target)},
            ) from e

        config.apply_environment()
        return config

    def apply_environment(self) -> None:
        """Fill missing API keys from environment variables."""
        if not self.embedding.api_key and os.environ.get(EMBEDDING_API_KEY_ENV):
            self.embedding.api_key = os.environ[EMBEDDING_API_KEY_ENV]
        if not self.vector_store.api_key and os.environ.get(VECTOR_STORE_API_KEY_ENV):
            self.vector_store.api_key = os.environ[VECTOR_STORE_API_KEY_ENV]

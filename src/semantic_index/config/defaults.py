"""Default configurations for semantic-index."""

import os
from pathlib import Path

# Directory holding per-project configuration (config.json)
PROJECT_DIR_NAME = ".semantic-index"

# Default file extensions to index
DEFAULT_FILE_EXTENSIONS = [
    ".py",
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".mjs",
    ".java",
    ".kt",
    ".kts",
    ".go",
    ".rs",
    ".c",
    ".h",
    ".cpp",
    ".hpp",
    ".cs",
    ".rb",
    ".php",
    ".swift",
    ".scala",
    ".dart",
    ".sh",
    ".json",
    ".md",
    ".txt",
    ".html",
    ".css",
]

# Glob patterns (relative to the project root) excluded from indexing
DEFAULT_EXCLUDE_PATTERNS = [
    "**/node_modules/**",
    "**/.git/**",
    "**/out/**",
    "**/dist/**",
    "**/build/**",
]

# Directory names never descended into, regardless of configured excludes
DEFAULT_IGNORE_DIRS = [
    # Version control
    ".git",
    ".hg",
    ".svn",
    # Python caches and environments
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".tox",
    ".venv",
    "venv",
    # JavaScript/Node.js
    "node_modules",
    "bower_components",
    ".yarn",
    # IDEs and editors
    ".idea",
    ".vscode",
    # Our own project directory
    PROJECT_DIR_NAME,
]

# Name of the ignore file whose changes trigger a full re-index + purge
IGNORE_FILE_NAME = ".gitignore"

# Embedding defaults
DEFAULT_EMBEDDING_PROVIDER = "ollama"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434/api"
DEFAULT_OLLAMA_MODEL = "nomic-embed-text"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "text-embedding-004"

# Vector dimension used when the probe embedding fails
FALLBACK_EMBEDDING_DIMENSION = 768

# Known dimensions by model name (used as the fallback for cloud models)
KNOWN_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "text-embedding-004": 768,
    "nomic-embed-text": 768,
}

# Probe text used to detect the embedding dimension
DIMENSION_PROBE_TEXT = "dimension detection test"

# Vector store defaults
DEFAULT_VECTOR_STORE = "qdrant"
DEFAULT_QDRANT_URL = "http://localhost:6333"
DEFAULT_COLLECTION_NAME = "codebase"

# Pinecone rejects metadata above 40KB; content is capped below that
PINECONE_MAX_CONTENT_BYTES = 35_000

# Request timeouts (seconds)
DEFAULT_EMBEDDING_TIMEOUT = 30.0
DEFAULT_VECTOR_STORE_TIMEOUT = 10.0

# Retry policy: attempts include the first call
EMBEDDING_MAX_ATTEMPTS = 3
EMBEDDING_RETRY_DELAY = 0.5
VALIDATION_MAX_ATTEMPTS = 3
VALIDATION_RETRY_DELAY = 1.0
STORE_MAX_ATTEMPTS = 3
STORE_RETRY_DELAY = 1.0

# HTTP status codes considered transient
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Chunking (line window)
DEFAULT_CHUNK_LINES = 50
DEFAULT_CHUNK_OVERLAP = 10

# Indexing limits
DEFAULT_MAX_FILES = 500
DEFAULT_MAX_FILE_BYTES = 1_000_000
MAX_EMBEDDING_CONCURRENCY = 4

# Watcher
DEFAULT_DEBOUNCE_SECONDS = 1.0

# Search
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SEARCH_THRESHOLD = 0.7
DEFAULT_MIN_QUERY_LENGTH = 3


def get_default_config_path(project_root: Path) -> Path:
    """Get the default configuration file path for a project."""
    return project_root / PROJECT_DIR_NAME / "config.json"


def get_default_cache_path() -> Path:
    """Get the host-scoped cache directory (shared by all projects).

    Honors ``SEMANTIC_INDEX_CACHE_DIR`` and ``XDG_CACHE_HOME``.
    """
    override = os.environ.get("SEMANTIC_INDEX_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".cache"
    return base / "semantic-index"


def get_default_metadata_path() -> Path:
    """Get the default SQLite path of the index metadata store."""
    return get_default_cache_path() / "index_metadata.db"


def get_default_lance_path() -> Path:
    """Get the default directory of the embedded LanceDB store."""
    return get_default_cache_path() / "lance"

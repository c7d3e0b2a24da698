"""semantic-index - incremental semantic code index with vector store sync."""

__version__ = "0.3.0"

from .core.exceptions import SemanticIndexError

__all__ = ["SemanticIndexError", "__version__"]

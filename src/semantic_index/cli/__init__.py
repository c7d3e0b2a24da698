"""Command-line interface for semantic-index."""

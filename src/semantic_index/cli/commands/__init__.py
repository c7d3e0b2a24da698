"""CLI commands for semantic-index."""

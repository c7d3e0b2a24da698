"""Init command: write a project configuration file."""

from pathlib import Path

import typer
from loguru import logger

from ...config.settings import (
    EmbeddingConfig,
    IndexingSettings,
    ProjectConfig,
    VectorStoreConfig,
)
from ...core.exceptions import ConfigurationError
from ..output import print_error, print_info, print_success, print_tip


def init_command(
    ctx: typer.Context,
    embedding_provider: str = typer.Option(
        "ollama",
        "--embedding-provider",
        "-e",
        help="Embedding backend: ollama, openai or gemini",
    ),
    embedding_model: str | None = typer.Option(
        None, "--embedding-model", help="Embedding model (provider default if unset)"
    ),
    embedding_url: str | None = typer.Option(
        None, "--embedding-url", help="Embedding service base URL"
    ),
    vector_store: str = typer.Option(
        "qdrant",
        "--vector-store",
        "-s",
        help="Vector store backend: qdrant, pinecone or lancedb",
    ),
    store_url: str | None = typer.Option(
        None, "--store-url", help="Qdrant URL or Pinecone index host"
    ),
    collection: str | None = typer.Option(
        None, "--collection", "-c", help="Collection (or namespace) name"
    ),
    extensions: str | None = typer.Option(
        None,
        "--extensions",
        help="Comma-separated file extensions to index (e.g. .py,.ts)",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration"
    ),
) -> None:
    """📝 Initialize semantic-index for a project.

    [bold cyan]Examples:[/bold cyan]

    [green]Local Ollama + Qdrant (defaults):[/green]
        $ semantic-index init

    [green]OpenAI embeddings with embedded LanceDB:[/green]
        $ semantic-index init -e openai -s lancedb
    """
    project_root: Path = ctx.obj["project_root"]
    config_path = ProjectConfig(project_root=project_root).config_path

    if config_path.exists() and not force:
        print_error(f"Project already initialized at {config_path}")
        print_tip("Use --force to overwrite the configuration")
        raise typer.Exit(1)

    try:
        indexing = IndexingSettings()
        if extensions:
            indexing = IndexingSettings(
                file_extensions=[ext for ext in extensions.split(",") if ext.strip()]
            )

        store_kwargs = {"provider": vector_store}
        if store_url:
            store_kwargs["url"] = store_url
        elif vector_store != "qdrant":
            store_kwargs["url"] = None

        config = ProjectConfig(
            project_root=project_root,
            embedding=EmbeddingConfig(
                provider=embedding_provider,
                model=embedding_model,
                base_url=embedding_url,
            ),
            vector_store=VectorStoreConfig(**store_kwargs),
            indexing=indexing,
            **({"collection_name": collection} if collection else {}),
        )
    except ValueError as e:
        print_error(f"Invalid option: {e}")
        raise typer.Exit(1)

    saved = config.save()
    logger.debug(f"Initialized project {project_root}")
    print_success(f"Project initialized: {saved}")

    try:
        config.validate_backends()
    except ConfigurationError as e:
        print_info(str(e))
        print_tip(
            "Set API keys in the config file or via SEMANTIC_INDEX_EMBEDDING_API_KEY / "
            "SEMANTIC_INDEX_VECTOR_STORE_API_KEY"
        )
    print_tip("Run 'semantic-index index' to build the index")

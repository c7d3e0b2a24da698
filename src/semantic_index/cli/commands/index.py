"""Index command: run a full indexing pass."""

import asyncio
import signal
from pathlib import Path

import typer
from loguru import logger

from ...core.exceptions import IndexingBusyError, SemanticIndexError
from ...core.factory import ComponentFactory
from ...core.models import IndexingStatus, IndexRunResult
from ...core.progress import ConsoleProgressReporter
from ..output import (
    err_console,
    print_error,
    print_run_result,
    print_success,
    print_tip,
    print_warning,
)

EXIT_CANCELLED = 130


def index_command(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Re-embed every file, ignoring stored content hashes",
    ),
) -> None:
    """📚 Index the project into the configured vector store.

    Unchanged files are skipped by content hash. Press Ctrl+C to stop; files
    already processed stay indexed.

    [bold cyan]Examples:[/bold cyan]

    [green]Incremental pass:[/green]
        $ semantic-index index

    [green]Re-embed everything:[/green]
        $ semantic-index index --force
    """
    project_root: Path = ctx.obj["project_root"]
    verbose: bool = ctx.obj.get("verbose", False)

    try:
        result = asyncio.run(_run_index(project_root, force=force, verbose=verbose))
    except IndexingBusyError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except SemanticIndexError as e:
        logger.error(f"Indexing failed: {e}")
        print_error(f"Indexing failed: {e}")
        raise typer.Exit(1)

    print_run_result(result)
    if result.status == IndexingStatus.COMPLETED:
        print_success(result.message or "Indexing complete")
        return
    if result.status == IndexingStatus.CANCELLED:
        print_warning(result.message or "Indexing cancelled")
        print_tip("Run 'semantic-index index' again to resume; finished files are kept")
        raise typer.Exit(EXIT_CANCELLED)

    print_error(f"Indexing failed [{result.error_code}]: {result.message}")
    raise typer.Exit(1)


async def _run_index(project_root: Path, force: bool, verbose: bool) -> IndexRunResult:
    bundle = ComponentFactory.create_standard_components(project_root)
    async with bundle:
        indexer = bundle.indexer
        indexer.add_progress_listener(
            "console", ConsoleProgressReporter(err_console, verbose=verbose)
        )

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, indexer.stop_indexing)
            handles_sigint = True
        except (NotImplementedError, RuntimeError, ValueError):
            # No loop signal support (Windows, non-main thread)
            handles_sigint = False

        try:
            return await indexer.start_indexing(force=force)
        finally:
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)
            indexer.remove_progress_listener("console")

"""Watch command: keep the index in sync with file changes."""

import asyncio
import signal
from pathlib import Path

import typer
from loguru import logger

from ...core.exceptions import SemanticIndexError
from ...core.factory import ComponentFactory
from ...core.models import IndexingStatus
from ...core.progress import ConsoleProgressReporter
from ...core.watcher import FileWatcher
from ..output import err_console, print_error, print_info, print_warning


def watch_command(
    ctx: typer.Context,
    initial_index: bool = typer.Option(
        True,
        "--initial-index/--no-initial-index",
        help="Run an incremental full pass before watching",
    ),
    debounce: float | None = typer.Option(
        None,
        "--debounce",
        min=0.0,
        help="Quiet period in seconds before changes are processed",
    ),
) -> None:
    """👀 Watch the project and re-index changed files. Stop with Ctrl+C."""
    project_root: Path = ctx.obj["project_root"]
    verbose: bool = ctx.obj.get("verbose", False)

    try:
        asyncio.run(_watch(project_root, initial_index, debounce, verbose))
    except SemanticIndexError as e:
        logger.error(f"Watch failed: {e}")
        print_error(f"Watch failed: {e}")
        raise typer.Exit(1)

    print_info("Stopped watching")


async def _watch(
    project_root: Path,
    initial_index: bool,
    debounce: float | None,
    verbose: bool,
) -> None:
    bundle = ComponentFactory.create_standard_components(project_root)
    async with bundle:
        indexer = bundle.indexer
        stop_event = asyncio.Event()

        def request_stop() -> None:
            indexer.stop_indexing()
            stop_event.set()

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, request_stop)
            handles_sigint = True
        except (NotImplementedError, RuntimeError, ValueError):
            handles_sigint = False

        try:
            if initial_index:
                indexer.add_progress_listener(
                    "console", ConsoleProgressReporter(err_console, verbose=verbose)
                )
                result = await indexer.start_indexing()
                indexer.remove_progress_listener("console")
                if result.status == IndexingStatus.CANCELLED:
                    return
                if result.status == IndexingStatus.ERROR:
                    print_warning(f"Initial index failed: {result.message}")

            async with FileWatcher(indexer, debounce_delay=debounce):
                print_info(f"Watching {project_root} for changes (Ctrl+C to stop)")
                try:
                    await stop_event.wait()
                except (KeyboardInterrupt, asyncio.CancelledError):
                    pass
        finally:
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)

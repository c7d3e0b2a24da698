"""Main CLI application for semantic-index."""

import sys
from pathlib import Path

import typer
from loguru import logger

from .. import __version__
from .commands.index import index_command
from .commands.init import init_command
from .commands.reset import reset_command
from .commands.search import search_command
from .commands.status import status_command
from .commands.watch import watch_command
from .output import console

app = typer.Typer(
    name="semantic-index",
    help="🔍 Incremental semantic code index synced to a vector store",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

app.command("init")(init_command)
app.command("index")(index_command)
app.command("search")(search_command)
app.command("watch")(watch_command)
app.command("status")(status_command)
app.command("reset")(reset_command)


def setup_logging(verbose: bool = False) -> None:
    """Route loguru output to stderr (warnings only unless verbose)."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"semantic-index version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    project_root: Path | None = typer.Option(
        None,
        "--project-root",
        "-p",
        help="Project root directory (current directory if not specified)",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """🔍 semantic-index: embed a codebase and keep its vectors in sync."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["project_root"] = (project_root or Path.cwd()).resolve()
    ctx.obj["verbose"] = verbose


if __name__ == "__main__":
    app()

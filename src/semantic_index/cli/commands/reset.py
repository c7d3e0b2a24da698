"""Reset command: drop the project's points and index records."""

import asyncio
from pathlib import Path

import typer
from loguru import logger

from ...core.exceptions import SemanticIndexError
from ...core.factory import ComponentFactory
from ..output import confirm_action, print_error, print_info, print_success


def reset_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """🗑️ Delete this project's vectors and metadata (config is kept)."""
    project_root: Path = ctx.obj["project_root"]

    if not yes and not confirm_action(
        f"Delete all indexed data for {project_root}?", default=False
    ):
        print_info("Reset cancelled")
        raise typer.Exit(0)

    try:
        asyncio.run(_reset(project_root))
    except SemanticIndexError as e:
        logger.error(f"Reset failed: {e}")
        print_error(f"Reset failed: {e}")
        raise typer.Exit(1)

    print_success("Index reset")


async def _reset(project_root: Path) -> None:
    bundle = ComponentFactory.create_standard_components(project_root)
    async with bundle:
        await bundle.indexer.reset()

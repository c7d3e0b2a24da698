"""Status command."""

import asyncio
from pathlib import Path

import typer

from ...core.exceptions import SemanticIndexError
from ...core.factory import ComponentFactory
from ...core.models import IndexState, IndexStatusReport
from ..output import print_error, print_status_report, print_tip


def status_command(ctx: typer.Context) -> None:
    """📊 Show whether the project index is ready, stale or missing."""
    project_root: Path = ctx.obj["project_root"]

    try:
        report = asyncio.run(_get_status(project_root))
    except SemanticIndexError as e:
        print_error(f"Could not read index status: {e}")
        raise typer.Exit(1)

    print_status_report(report, str(project_root))
    if report.state == IndexState.NOT_INDEXED:
        print_tip("Run 'semantic-index index' to build the index")
    elif report.state == IndexState.STALE:
        print_tip("HEAD moved since the last run; 'semantic-index index' refreshes it")


async def _get_status(project_root: Path) -> IndexStatusReport:
    bundle = ComponentFactory.create_standard_components(project_root)
    async with bundle:
        return await bundle.indexer.get_status()

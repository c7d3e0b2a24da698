"""Search command."""

import asyncio
from pathlib import Path

import orjson
import typer
from loguru import logger

from ...core.exceptions import SemanticIndexError
from ...core.factory import ComponentFactory
from ...core.search import SearchResponse
from ..output import console, print_error, print_search_results, print_warning


def search_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search query"),
    limit: int | None = typer.Option(
        None, "--limit", "-l", min=1, help="Maximum number of results"
    ),
    threshold: float | None = typer.Option(
        None,
        "--threshold",
        "-t",
        min=0.0,
        max=1.0,
        help="Minimum similarity score (configured default if unset)",
    ),
    glob: str | None = typer.Option(
        None, "--glob", "-g", help="Only return files matching this pattern"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print results as JSON"
    ),
    no_content: bool = typer.Option(
        False, "--no-content", help="Show locations only"
    ),
) -> None:
    """🔎 Search the indexed codebase.

    [bold cyan]Examples:[/bold cyan]

        $ semantic-index search "retry with exponential backoff"
        $ semantic-index search "parse config" --glob "src/**/*.py" -l 5
    """
    project_root: Path = ctx.obj["project_root"]

    try:
        response = asyncio.run(_run_search(project_root, query, limit, threshold, glob))
    except SemanticIndexError as e:
        logger.error(f"Search failed: {e}")
        print_error(f"Search failed: {e}")
        raise typer.Exit(1)

    if response.skipped:
        print_warning("Query is too short to search")
        return
    if response.warning:
        print_warning(response.warning)

    if json_output:
        console.print_json(orjson.dumps(_to_json(response)).decode())
    else:
        print_search_results(response, show_content=not no_content)


async def _run_search(
    project_root: Path,
    query: str,
    limit: int | None,
    threshold: float | None,
    glob: str | None,
) -> SearchResponse:
    bundle = ComponentFactory.create_standard_components(project_root)
    async with bundle:
        return await bundle.search_engine.search(
            query, limit=limit, threshold=threshold, glob_filter=glob
        )


def _to_json(response: SearchResponse) -> dict:
    return {
        "query": response.query,
        "warning": response.warning,
        "results": [
            {"id": hit.id, "score": hit.score, **hit.payload.to_dict()}
            for hit in response.hits
        ],
    }

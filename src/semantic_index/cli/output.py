"""Rich output helpers shared by CLI commands."""

from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.syntax import Syntax
from rich.table import Table

from ..core.models import IndexRunResult, IndexStatusReport, IndexState
from ..core.search import SearchResponse

console = Console()
# Progress bars and diagnostics go to stderr so search output stays pipeable
err_console = Console(stderr=True)

_STATE_STYLES = {
    IndexState.READY: "green",
    IndexState.STALE: "yellow",
    IndexState.INDEXING: "cyan",
    IndexState.NOT_INDEXED: "dim",
}


def print_error(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")


def print_success(message: str) -> None:
    console.print(f"[green]✓ {message}[/green]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str) -> None:
    console.print(f"[cyan]ℹ {message}[/cyan]")


def print_tip(message: str) -> None:
    console.print(f"[dim]💡 {message}[/dim]")


def confirm_action(message: str, default: bool = False) -> bool:
    """Ask a yes/no question on the console."""
    return Confirm.ask(message, default=default, console=console)


def _format_epoch_ms(value: int | None) -> str:
    if not value:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def print_run_result(result: IndexRunResult) -> None:
    """Summarize a finished indexing run."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Status", result.status.value)
    table.add_row("Files processed", f"{result.processed:,}/{result.total:,}")
    table.add_row("Unchanged", f"{result.skipped:,}")
    table.add_row("With failures", f"{result.failed:,}")
    if result.last_file:
        table.add_row("Last file", result.last_file)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    console.print(table)


def print_status_report(report: IndexStatusReport, project_root: str) -> None:
    """Render ``status`` output."""
    style = _STATE_STYLES.get(report.state, "white")
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Project", project_root)
    table.add_row("Repository id", report.repo_id)
    table.add_row("State", f"[{style}]{report.state.value}[/{style}]")
    table.add_row("Indexed files", f"{report.indexed_files:,}")
    table.add_row(
        "Points",
        f"{report.point_count:,}" if report.point_count is not None else "unavailable",
    )
    table.add_row("Last indexed", _format_epoch_ms(report.last_indexed))
    table.add_row("Last hash", report.last_hash or "-")
    table.add_row("Current commit", report.current_commit or "-")
    console.print(Panel(table, title="Index Status", border_style="blue"))


def _syntax_lexer(file_path: str) -> str:
    suffix = file_path.rsplit(".", 1)[-1] if "." in file_path else ""
    return suffix or "text"


def print_search_results(response: SearchResponse, show_content: bool = True) -> None:
    """Render ranked hits with file location and score."""
    if not response.hits:
        print_info(f"No results found for '{response.query}'")
        return

    console.print(
        f"\n[bold]Found {len(response.hits)} results for[/bold] '{response.query}'\n"
    )
    for rank, hit in enumerate(response.hits, start=1):
        payload = hit.payload
        console.print(
            f"[bold cyan]{rank}.[/bold cyan] [bold]{payload.file_path}[/bold]"
            f":{payload.line_start}-{payload.line_end} "
            f"[dim](score {hit.score:.3f})[/dim]"
        )
        if show_content:
            console.print(
                Syntax(
                    payload.content.rstrip(),
                    _syntax_lexer(payload.file_path),
                    line_numbers=True,
                    start_line=payload.line_start,
                    word_wrap=True,
                )
            )
            console.print()

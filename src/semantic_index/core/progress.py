"""Progress listeners for indexing runs.

The renderer prints with plain ``console.print`` and an in-place bar written
to the console's file, without Rich background threads (Progress, Live), so
it can be called from any task without extra synchronization.
"""

import time
from collections.abc import Callable

from rich.console import Console

from .models import IndexingProgress, IndexingStatus

ProgressListener = Callable[[IndexingProgress], None]


def format_eta(current: int, total: int, elapsed: float) -> str:
    """Format the remaining time as ``[MM:SS remaining]`` (or HH:MM:SS)."""
    if current <= 0 or current >= total or elapsed < 0.1:
        return ""
    remaining = (total - current) / (current / elapsed)
    if remaining >= 3600:
        hours = int(remaining // 3600)
        minutes = int((remaining % 3600) // 60)
        seconds = int(remaining % 60)
        return f" [{hours:02d}:{minutes:02d}:{seconds:02d} remaining]"
    minutes = int(remaining // 60)
    seconds = int(remaining % 60)
    return f" [{minutes:02d}:{seconds:02d} remaining]"


class ConsoleProgressReporter:
    """Render :class:`IndexingProgress` events on a Rich console.

    Example:
        reporter = ConsoleProgressReporter(Console(stderr=True))
        indexer.add_progress_listener("console", reporter)
    """

    def __init__(self, console: Console, width: int = 40, verbose: bool = False):
        """Initialize the reporter.

        Args:
            console: Rich Console instance for formatted output
            width: Width of the progress bar in characters
            verbose: Print the current file name on every event
        """
        self.console = console
        self.width = width
        self.verbose = verbose
        self._start_time: float | None = None
        self._bar_open = False

    def __call__(self, progress: IndexingProgress) -> None:
        status = progress.status
        if status == IndexingStatus.STARTING:
            self._start_time = time.time()
            self.console.print("\n[bold]Indexing[/bold]")
            self.console.print("━" * 50)
        elif status == IndexingStatus.INDEXING:
            if self.verbose and progress.current_file:
                self._close_bar()
                self.console.print(f"  [dim]→[/dim] {progress.current_file}")
            self.progress_bar(progress.current, progress.total, prefix="Indexing files")
        elif status == IndexingStatus.COMPLETED:
            self._close_bar()
            elapsed = time.time() - self._start_time if self._start_time else None
            self.console.print(
                f"\n[green]✓ Indexed {progress.current:,}/{progress.total:,} files[/green]"
            )
            if elapsed is not None:
                self.console.print(f"  Time: {elapsed:.1f}s")
        elif status == IndexingStatus.CANCELLED:
            self._close_bar()
            self.console.print(
                f"\n[yellow]⚠ Indexing cancelled after {progress.current:,} files[/yellow]"
            )
        elif status == IndexingStatus.ERROR:
            self._close_bar()
            detail = f": {progress.message}" if progress.message else ""
            self.console.print(f"\n[red]✗ Indexing failed{detail}[/red]")
            if progress.current_file:
                self.console.print(f"  Last file: {progress.current_file}")

    def progress_bar(self, current: int, total: int, prefix: str = "") -> None:
        """Display an inline progress bar that updates in place."""
        if total <= 0:
            return

        percentage = min(100, int((current / total) * 100))
        filled_width = min(self.width, int((current / total) * self.width))
        bar = "━" * filled_width + " " * (self.width - filled_width)

        elapsed = time.time() - self._start_time if self._start_time else 0.0
        eta = format_eta(current, total, elapsed)

        output = self.console.file
        output.write(f"\r  {prefix}... {bar} {percentage}% {current:,}/{total:,}{eta}")
        output.flush()
        self._bar_open = True

        if current >= total:
            self._close_bar()

    def _close_bar(self) -> None:
        if self._bar_open:
            self.console.file.write("\n")
            self.console.file.flush()
            self._bar_open = False

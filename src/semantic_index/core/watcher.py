"""Incremental sync: watchdog events debounced into per-file index updates."""

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from pathlib import Path

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import IndexingBusyError, OperationCancelledError
from .indexer import SemanticIndexer
from .models import IndexingStatus

CHANGE_CREATED = "created"
CHANGE_MODIFIED = "modified"
CHANGE_DELETED = "deleted"


class CodeFileHandler(FileSystemEventHandler):
    """Collects file events and hands them over in debounced batches.

    Events arrive on the observer thread. Changes are coalesced per path
    (the latest event type wins) and flushed to ``callback`` once no new
    event has arrived for ``debounce_delay`` seconds.
    """

    def __init__(
        self,
        should_process: Callable[[str], bool],
        callback: Callable[[dict[str, str]], Awaitable[None]],
        loop: asyncio.AbstractEventLoop,
        debounce_delay: float = 1.0,
    ):
        """Create a handler feeding changes to the watcher.

        Args:
            should_process: Predicate over absolute paths deciding what to track
            callback: Async callback receiving ``{path: change_type}`` batches
            loop: Event loop to schedule tasks on
            debounce_delay: Quiet period in seconds before a batch is processed
        """
        super().__init__()
        self.should_process = should_process
        self.callback = callback
        self.loop = loop
        self.debounce_delay = debounce_delay
        self.pending_changes: dict[str, str] = {}
        self.last_change_time: float = 0
        self.debounce_task: Future | None = None
        self._lock = threading.Lock()

    def on_modified(self, event: FileSystemEvent) -> None:
        """Queue a modified path."""
        if not event.is_directory and self.should_process(event.src_path):
            self._schedule_change(event.src_path, CHANGE_MODIFIED)

    def on_created(self, event: FileSystemEvent) -> None:
        """Queue a new path."""
        if not event.is_directory and self.should_process(event.src_path):
            self._schedule_change(event.src_path, CHANGE_CREATED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Queue a removed path."""
        if not event.is_directory and self.should_process(event.src_path):
            self._schedule_change(event.src_path, CHANGE_DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename as delete + create."""
        if event.is_directory:
            return
        if self.should_process(event.src_path):
            self._schedule_change(event.src_path, CHANGE_DELETED)
        dest_path = getattr(event, "dest_path", None)
        if dest_path and self.should_process(dest_path):
            self._schedule_change(dest_path, CHANGE_CREATED)

    def _schedule_change(self, file_path: str, change_type: str) -> None:
        """Record a change and restart the debounce timer."""
        with self._lock:
            self.pending_changes[str(file_path)] = change_type
            self.last_change_time = time.monotonic()

            # Earlier timers wake up, see the newer change time and return
            self.debounce_task = asyncio.run_coroutine_threadsafe(
                self._debounced_process(), self.loop
            )

    def requeue(self, changes: dict[str, str]) -> None:
        """Put changes back for a later batch (newer pending events win)."""
        with self._lock:
            for path, change_type in changes.items():
                self.pending_changes.setdefault(path, change_type)
            self.last_change_time = time.monotonic()
            self.debounce_task = asyncio.run_coroutine_threadsafe(
                self._debounced_process(), self.loop
            )

    async def _debounced_process(self) -> None:
        """Process pending changes after the quiet period."""
        await asyncio.sleep(self.debounce_delay)

        with self._lock:
            # More changes arrived during the wait; a newer task will handle them
            if time.monotonic() - self.last_change_time < self.debounce_delay:
                return
            changes = dict(self.pending_changes)
            self.pending_changes.clear()

        if not changes:
            return
        try:
            await self.callback(changes)
        except Exception as e:
            logger.error(f"Error processing {len(changes)} file changes: {e}")


class FileWatcher:
    """Feeds debounced file changes through the indexer."""

    def __init__(self, indexer: SemanticIndexer, debounce_delay: float | None = None):
        """Bind the watcher to an indexer.

        Args:
            indexer: Semantic indexer of the watched project
            debounce_delay: Quiet period override (configured value by default)
        """
        self.indexer = indexer
        self.project_root = indexer.project_root
        self.file_discovery = indexer.file_discovery
        self.debounce_delay = (
            debounce_delay
            if debounce_delay is not None
            else indexer.config.indexing.debounce_seconds
        )
        self.observer: Observer | None = None
        self.handler: CodeFileHandler | None = None
        self.is_running = False
        self._process_lock = asyncio.Lock()

    def is_ignore_file(self, path: str | Path) -> bool:
        return Path(path).resolve() == self.file_discovery.ignore_file.resolve()

    def should_process(self, path: str) -> bool:
        """Track the ignore file and every path the index filters accept."""
        if self.is_ignore_file(path):
            return True
        rel_path = self.file_discovery.relative_path(path)
        return rel_path is not None and self.file_discovery.should_index(rel_path)

    async def start(self) -> None:
        """Schedule the observer on the project root."""
        if self.is_running:
            logger.warning("Watcher already started; ignoring start()")
            return

        logger.info(f"Watching {self.project_root} for changes")

        loop = asyncio.get_running_loop()
        self.handler = CodeFileHandler(
            should_process=self.should_process,
            callback=self.process_changes,
            loop=loop,
            debounce_delay=self.debounce_delay,
        )

        self.observer = Observer()
        self.observer.schedule(self.handler, str(self.project_root), recursive=True)
        self.observer.start()
        self.is_running = True

        logger.debug("Observer thread running")

    async def stop(self) -> None:
        """Stop the observer and cancel any pending batch."""
        if not self.is_running:
            return

        logger.debug("Shutting down observer")

        if self.observer:
            self.observer.stop()
            await asyncio.to_thread(self.observer.join)
            self.observer = None

        if self.handler and self.handler.debounce_task:
            self.handler.debounce_task.cancel()
        self.handler = None
        self.is_running = False

        logger.info("Stopped watching for changes")

    async def process_changes(self, changes: dict[str, str]) -> None:
        """Apply one debounced batch of ``{absolute path: change type}``."""
        async with self._process_lock:
            ignore_changed = any(self.is_ignore_file(path) for path in changes)
            file_changes = {
                path: change
                for path, change in changes.items()
                if not self.is_ignore_file(path)
            }

            if ignore_changed and await self._handle_ignore_file_change(changes):
                # The full re-index already covered every pending file
                return

            for path, change_type in sorted(file_changes.items()):
                await self._handle_file_change(path, change_type)

            if file_changes:
                await self.indexer.refresh_repo_state()

    async def _handle_file_change(self, path: str, change_type: str) -> None:
        try:
            if change_type == CHANGE_DELETED or not Path(path).exists():
                await self.indexer.remove_single_file(path)
                logger.info(f"Removed {path} from the index")
            else:
                outcome = await self.indexer.index_single_file(path)
                if outcome.indexed:
                    logger.info(f"Re-indexed {path} ({outcome.chunks} chunks)")
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.error(f"Error processing file change {path}: {e}")

    async def _handle_ignore_file_change(self, changes: dict[str, str]) -> bool:
        """Re-index and purge when the ignore file content changed.

        Returns:
            True if a full re-index ran
        """
        record = await asyncio.to_thread(
            self.indexer.metadata.get, self.indexer.repo_id
        )
        new_hash = self.indexer.current_ignore_hash()
        if record is not None and record.ignore_hash == new_hash:
            logger.debug("Ignore file touched without content change")
            return False

        logger.info("Ignore rules changed; re-indexing and purging ignored files")
        self.file_discovery.reload_ignore_rules()
        try:
            result = await self.indexer.start_indexing()
        except IndexingBusyError:
            logger.warning("Indexing already running; will retry ignore-file change")
            if self.handler:
                self.handler.requeue(changes)
            return True

        if result.status != IndexingStatus.COMPLETED:
            logger.warning(
                f"Re-index after ignore change ended with {result.status.value}; "
                "applying file changes individually"
            )
            return False

        purged = await self.indexer.purge_ignored_files()
        logger.info(f"Re-index finished; purged {len(purged)} ignored files")
        return True

    async def __aenter__(self) -> "FileWatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

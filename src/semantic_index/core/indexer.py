"""Indexing orchestrator: change detection, chunking, embedding and store sync.

State machine::

    idle -> starting -> indexing -> {completed | error | cancelled} -> idle

Files are processed sequentially. For each file the chunks are embedded
first and upserted as one batch, so a search never sees half of a file's
chunks fresh and half stale. Cancellation is checked before reading a file,
before each embedding call and before the batch upsert.
"""

import asyncio
import time
from pathlib import Path

import aiofiles
from loguru import logger

from ..config.defaults import (
    STORE_MAX_ATTEMPTS,
    STORE_RETRY_DELAY,
    VALIDATION_MAX_ATTEMPTS,
    VALIDATION_RETRY_DELAY,
)
from ..config.settings import ProjectConfig
from .cancellation import CancellationToken
from .chunker import Chunker, LineChunker
from .embeddings import EmbeddingProvider
from .exceptions import (
    ConfigurationError,
    IndexingBusyError,
    MetadataStoreError,
    OperationCancelledError,
    VectorStoreAuthError,
    VectorStoreError,
    VectorStoreUnavailableError,
)
from .file_discovery import FileDiscovery
from .git import GitManager
from .index_metadata import IndexMetadataStore, compute_content_hash, compute_repo_id
from .models import (
    Chunk,
    FileIndexOutcome,
    IndexedPoint,
    IndexingProgress,
    IndexingStatus,
    IndexRunResult,
    IndexState,
    IndexStatusReport,
    OrchestratorState,
    PointFilter,
    PointPayload,
    make_point_id,
)
from .progress import ProgressListener
from .retry import retry_with_backoff
from .vector_store import VectorStore

# Stored in place of the content hash when some chunks failed to embed, so the
# file is retried on the next pass
PARTIAL_HASH_PREFIX = "partial:"
MISSING_IGNORE_FILE_HASH = ""


class SemanticIndexer:
    """Owns one repository's indexing runs, listeners and run state."""

    def __init__(
        self,
        config: ProjectConfig,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        metadata_store: IndexMetadataStore,
        chunker: Chunker | None = None,
        file_discovery: FileDiscovery | None = None,
        git_manager: GitManager | None = None,
    ) -> None:
        """Initialize semantic indexer.

        Args:
            config: Project configuration
            embedding_provider: Provider used to embed chunks
            vector_store: Store receiving the points
            metadata_store: Durable per-repo and per-file records
            chunker: Callable splitting file text into chunks (line windows by default)
            file_discovery: File discovery collaborator (built from config by default)
            git_manager: Git helper for commit ids (built from config by default)
        """
        self.config = config
        self.project_root = config.project_root
        self.collection = config.collection_name
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.metadata = metadata_store
        self.chunker: Chunker = chunker or LineChunker()
        self.file_discovery = file_discovery or FileDiscovery(
            self.project_root, config.indexing
        )
        self.git = git_manager or GitManager(self.project_root)
        self.repo_id = compute_repo_id(self.project_root)

        self._state = OrchestratorState.IDLE
        self._listeners: dict[str, ProgressListener] = {}
        self._cancel_token: CancellationToken | None = None
        self._vector_size: int | None = None

    # ------------------------------------------------------------------
    # Run state and listeners
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_indexing(self) -> bool:
        return self._state != OrchestratorState.IDLE

    def add_progress_listener(self, listener_id: str, listener: ProgressListener) -> None:
        self._listeners[listener_id] = listener

    def remove_progress_listener(self, listener_id: str) -> None:
        self._listeners.pop(listener_id, None)

    def _emit(self, progress: IndexingProgress) -> None:
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(progress)
            except Exception as e:
                logger.error(f"Progress listener '{listener_id}' failed: {e}")

    def stop_indexing(self) -> bool:
        """Request cancellation of the running full index.

        Returns:
            True if a run was in progress and has been signalled
        """
        token = self._cancel_token
        if token is None:
            return False
        logger.info("Stop requested; cancelling indexing run")
        token.cancel()
        return True

    # ------------------------------------------------------------------
    # Full index
    # ------------------------------------------------------------------

    async def start_indexing(
        self,
        force: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> IndexRunResult:
        """Run a full indexing pass over the project.

        Args:
            force: Ignore stored per-file hashes and re-embed every file
            cancel_token: Token to use for this run (a fresh one by default)

        Returns:
            Outcome of the run (completed, cancelled or error)

        Raises:
            IndexingBusyError: If a run is already in progress
        """
        if self._state != OrchestratorState.IDLE:
            raise IndexingBusyError(
                "Indexing is already in progress; try again later",
                context={"repo_id": self.repo_id, "state": self._state.value},
            )

        self._state = OrchestratorState.STARTING
        token = cancel_token or CancellationToken()
        self._cancel_token = token
        started = time.perf_counter()
        result = IndexRunResult(status=IndexingStatus.STARTING)

        try:
            self._emit(IndexingProgress(0, 0, IndexingStatus.STARTING))
            await self._validate_configuration(token)
            await self._ensure_collection(token)
            files = await self.file_discovery.find_indexable_files(token)

            self._state = OrchestratorState.INDEXING
            result.total = len(files)
            logger.info(f"Indexing {len(files)} files in {self.project_root}")
            self._emit(IndexingProgress(0, len(files), IndexingStatus.INDEXING))

            commit = await self.git.get_head_commit_async()
            for position, rel_path in enumerate(files, start=1):
                token.check()
                outcome = await self._index_file_isolated(
                    rel_path, commit, token, force
                )
                result.processed += 1
                result.last_file = rel_path
                if outcome.skipped:
                    result.skipped += 1
                if outcome.error or outcome.failed_chunks:
                    result.failed += 1
                self._emit(
                    IndexingProgress(
                        position, len(files), IndexingStatus.INDEXING, rel_path
                    )
                )

            token.check()
            await self._remove_vanished_files(token)
            await self._record_repo_state(commit, update_ignore_hash=True)

            result.status = IndexingStatus.COMPLETED
            result.message = (
                f"Indexed {result.processed - result.skipped} files, "
                f"skipped {result.skipped} unchanged, {result.failed} with failures"
            )
            logger.info(result.message)
            self._emit(
                IndexingProgress(
                    result.processed,
                    result.total,
                    IndexingStatus.COMPLETED,
                    result.last_file,
                    result.message,
                )
            )

        except OperationCancelledError:
            result.status = IndexingStatus.CANCELLED
            result.message = f"Indexing cancelled after {result.processed} files"
            logger.info(result.message)
            self._emit(
                IndexingProgress(
                    result.processed,
                    result.total,
                    IndexingStatus.CANCELLED,
                    result.last_file,
                    result.message,
                )
            )

        except Exception as e:
            result.status = IndexingStatus.ERROR
            result.error_code = self._error_code(e)
            result.message = str(e)
            if result.error_code == "internal":
                logger.exception(f"Indexing failed unexpectedly: {e}")
            else:
                logger.error(f"Indexing failed ({result.error_code}): {e}")
            self._emit(
                IndexingProgress(
                    result.processed,
                    result.total,
                    IndexingStatus.ERROR,
                    result.last_file,
                    result.message,
                )
            )

        finally:
            result.duration_seconds = time.perf_counter() - started
            self._cancel_token = None
            self._state = OrchestratorState.IDLE

        return result

    @staticmethod
    def _error_code(error: Exception) -> str:
        if isinstance(error, ConfigurationError):
            return "config"
        if isinstance(error, VectorStoreUnavailableError):
            return "vector_store_unavailable"
        if isinstance(error, VectorStoreError):
            return "vector_store"
        if isinstance(error, MetadataStoreError):
            return "metadata_store"
        return "internal"

    async def _validate_configuration(self, token: CancellationToken) -> None:
        """Check settings and service reachability before heavy work.

        Raises:
            ConfigurationError: If settings are invalid or a service is unreachable
        """
        self.config.validate_backends()

        checks = {
            f"embedding provider '{self.embedding_provider.name}'": (
                self.embedding_provider.validate_connection
            ),
            f"vector store '{self.vector_store.name}'": self.vector_store.health_check,
        }
        for label, check in checks.items():
            try:
                await retry_with_backoff(
                    lambda check=check: check(token),
                    max_attempts=VALIDATION_MAX_ATTEMPTS,
                    base_delay=VALIDATION_RETRY_DELAY,
                    exponential=True,
                    token=token,
                    description=f"{label} validation",
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                raise ConfigurationError(
                    f"Cannot reach {label}: {e}", context={"service": label}
                ) from e

    async def _ensure_collection(self, token: CancellationToken | None) -> None:
        if self._vector_size is None:
            self._vector_size = await self.embedding_provider.detect_dimension(token)
        await self.vector_store.ensure_collection(
            self.collection, self._vector_size, token
        )

    # ------------------------------------------------------------------
    # Per-file work
    # ------------------------------------------------------------------

    async def _read_file(self, rel_path: str) -> bytes:
        async with aiofiles.open(self.project_root / rel_path, "rb") as f:
            return await f.read()

    async def _index_file_isolated(
        self,
        rel_path: str,
        commit: str | None,
        token: CancellationToken | None,
        force: bool = False,
    ) -> FileIndexOutcome:
        """Index one file, turning store errors scoped to it into a failed outcome.

        An unreachable store, rejected credentials and cancellation still end
        the run. The file's record is left as it was, so it is retried next time.
        """
        try:
            return await self._index_file(rel_path, commit, token, force)
        except (VectorStoreUnavailableError, VectorStoreAuthError):
            raise
        except (VectorStoreError, MetadataStoreError) as e:
            logger.error(f"Failed to index {rel_path}: {e}")
            return FileIndexOutcome(file_path=rel_path, error=str(e))

    async def _index_file(
        self,
        rel_path: str,
        commit: str | None,
        token: CancellationToken | None,
        force: bool = False,
    ) -> FileIndexOutcome:
        """Bring one file's points up to date.

        Read and embedding failures are soft (logged, reported in the
        outcome). Vector store and metadata failures propagate.
        """
        outcome = FileIndexOutcome(file_path=rel_path)
        if token:
            token.check()

        try:
            data = await self._read_file(rel_path)
        except OSError as e:
            logger.warning(f"Skipping {rel_path}: cannot read file ({e})")
            outcome.error = str(e)
            return outcome

        record = await asyncio.to_thread(
            self.metadata.get_file_record, self.repo_id, rel_path
        )
        unindexable = None
        if len(data) > self.config.indexing.max_file_bytes:
            unindexable = f"{len(data)} bytes exceeds size limit"
        elif b"\0" in data:
            unindexable = "binary content"
        if unindexable:
            logger.debug(f"Skipping {rel_path}: {unindexable}")
            if record:
                await self._delete_file_points(rel_path, token)
                outcome.deleted = True
            outcome.skipped = True
            return outcome

        content_hash = compute_content_hash(data)
        if not force and record and record.content_hash == content_hash:
            outcome.skipped = True
            return outcome

        text = data.decode("utf-8", errors="replace")
        chunks = [c for c in self.chunker(rel_path, text) if c.content.strip()]
        vectors = await self._embed_chunks(chunks, token)

        points = [
            IndexedPoint(
                id=make_point_id(self.repo_id, rel_path, chunk.line_start),
                vector=vector,
                payload=PointPayload(
                    file_path=rel_path,
                    content=chunk.content,
                    line_start=chunk.line_start,
                    line_end=chunk.line_end,
                    repo_id=self.repo_id,
                    commit=commit,
                ),
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
            if vector is not None
        ]
        outcome.chunks = len(points)
        outcome.failed_chunks = len(chunks) - len(points)
        if outcome.failed_chunks:
            logger.warning(
                f"{outcome.failed_chunks}/{len(chunks)} chunks of {rel_path} "
                "failed to embed and were dropped"
            )

        if token:
            token.check()
        if points:
            await self._upsert(points, token)

        new_ids = [p.id for p in points]
        old_ids = set(record.point_ids) if record else set()
        if outcome.failed_chunks:
            # Keep previous points for chunks that could not be re-embedded
            recorded_ids = sorted(old_ids | set(new_ids))
            stored_hash = f"{PARTIAL_HASH_PREFIX}{content_hash}"
        else:
            stale_ids = sorted(old_ids - set(new_ids))
            if stale_ids:
                await self.vector_store.delete_points(self.collection, stale_ids)
            recorded_ids = new_ids
            stored_hash = content_hash

        await asyncio.to_thread(
            self.metadata.update_file, self.repo_id, rel_path, stored_hash, recorded_ids
        )
        outcome.indexed = True
        logger.debug(f"Indexed {len(points)} chunks from {rel_path}")
        return outcome

    async def _embed_chunks(
        self, chunks: list[Chunk], token: CancellationToken | None
    ) -> list[list[float] | None]:
        """Embed chunks sequentially, or with a small bounded pool."""
        concurrency = self.config.indexing.embedding_concurrency

        if concurrency <= 1:
            vectors: list[list[float] | None] = []
            for chunk in chunks:
                if token:
                    token.check()
                vectors.append(await self.embedding_provider.embed(chunk.content, token))
            return vectors

        semaphore = asyncio.Semaphore(concurrency)

        async def embed_one(chunk: Chunk) -> list[float] | None:
            async with semaphore:
                if token:
                    token.check()
                return await self.embedding_provider.embed(chunk.content, token)

        tasks = [asyncio.ensure_future(embed_one(chunk)) for chunk in chunks]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _upsert(
        self, points: list[IndexedPoint], token: CancellationToken | None
    ) -> None:
        await retry_with_backoff(
            lambda: self.vector_store.upsert(self.collection, points, token),
            max_attempts=STORE_MAX_ATTEMPTS,
            base_delay=STORE_RETRY_DELAY,
            token=token,
            description="vector store upsert",
        )

    async def _delete_file_points(
        self, rel_path: str, token: CancellationToken | None
    ) -> None:
        await self.vector_store.delete_by_filter(
            self.collection,
            PointFilter(repo_id=self.repo_id, file_path=rel_path),
            token,
        )
        await asyncio.to_thread(self.metadata.remove_file, self.repo_id, rel_path)

    async def _remove_vanished_files(self, token: CancellationToken | None) -> int:
        """Drop points and records of files that no longer exist on disk."""
        paths = await asyncio.to_thread(self.metadata.file_paths, self.repo_id)
        removed = 0
        for rel_path in paths:
            if (self.project_root / rel_path).exists():
                continue
            if token:
                token.check()
            await self._delete_file_points(rel_path, token)
            removed += 1
        if removed:
            logger.info(f"Removed points of {removed} deleted files")
        return removed

    def current_ignore_hash(self) -> str:
        ignore_file = self.file_discovery.ignore_file
        try:
            return compute_content_hash(ignore_file.read_bytes())
        except OSError:
            return MISSING_IGNORE_FILE_HASH

    async def _record_repo_state(
        self, commit: str | None, update_ignore_hash: bool = False
    ) -> None:
        last_hash = commit or await asyncio.to_thread(
            self.metadata.compute_repo_digest, self.repo_id
        )
        ignore_hash = self.current_ignore_hash() if update_ignore_hash else None
        await asyncio.to_thread(self.metadata.update, self.repo_id, last_hash, ignore_hash)

    # ------------------------------------------------------------------
    # Incremental operations (watcher)
    # ------------------------------------------------------------------

    async def index_single_file(
        self, path: Path | str, cancel_token: CancellationToken | None = None
    ) -> FileIndexOutcome:
        """Re-index one file exactly as one iteration of a full run.

        Files failing the include/exclude filters are skipped untouched.
        """
        rel_path = self.file_discovery.relative_path(path)
        if rel_path is None or not self.file_discovery.should_index(rel_path):
            return FileIndexOutcome(file_path=str(path), skipped=True)

        await self._ensure_collection(cancel_token)
        commit = await self.git.get_head_commit_async()
        return await self._index_file(rel_path, commit, cancel_token)

    async def remove_single_file(
        self, path: Path | str, cancel_token: CancellationToken | None = None
    ) -> FileIndexOutcome:
        """Delete every point of a removed file and forget its record."""
        rel_path = self.file_discovery.relative_path(path)
        if rel_path is None:
            return FileIndexOutcome(file_path=str(path), skipped=True)
        await self._delete_file_points(rel_path, cancel_token)
        logger.debug(f"Removed points for deleted file {rel_path}")
        return FileIndexOutcome(file_path=rel_path, deleted=True)

    async def purge_ignored_files(
        self, cancel_token: CancellationToken | None = None
    ) -> list[str]:
        """Delete points of recorded files that the current filters now exclude.

        Returns:
            Root-relative paths that were purged
        """
        self.file_discovery.reload_ignore_rules()
        paths = await asyncio.to_thread(self.metadata.file_paths, self.repo_id)
        purged = []
        for rel_path in paths:
            if self.file_discovery.should_index(rel_path):
                continue
            if cancel_token:
                cancel_token.check()
            await self._delete_file_points(rel_path, cancel_token)
            purged.append(rel_path)
        if purged:
            logger.info(f"Purged {len(purged)} newly ignored files from the index")
        return purged

    async def refresh_repo_state(self) -> None:
        """Update the repo record after incremental changes (if indexed before)."""
        existing = await asyncio.to_thread(self.metadata.get, self.repo_id)
        if existing is None:
            return
        commit = await self.git.get_head_commit_async()
        await self._record_repo_state(commit)

    # ------------------------------------------------------------------
    # Status and reset
    # ------------------------------------------------------------------

    async def get_status(self) -> IndexStatusReport:
        """Summarize index freshness for this repository."""
        record = await asyncio.to_thread(self.metadata.get, self.repo_id)
        commit = await self.git.get_head_commit_async()
        files = await asyncio.to_thread(self.metadata.file_paths, self.repo_id)

        if self.is_indexing:
            state = IndexState.INDEXING
        elif record is None:
            state = IndexState.NOT_INDEXED
        elif commit and commit != record.last_hash:
            state = IndexState.STALE
        else:
            state = IndexState.READY

        point_count: int | None = None
        try:
            point_count = await self.vector_store.count_points(
                self.collection, PointFilter(repo_id=self.repo_id)
            )
        except VectorStoreError as e:
            logger.warning(f"Could not count points: {e}")

        return IndexStatusReport(
            repo_id=self.repo_id,
            state=state,
            last_hash=record.last_hash if record else None,
            last_indexed=record.last_indexed if record else None,
            current_commit=commit,
            indexed_files=len(files),
            point_count=point_count,
        )

    async def reset(self) -> None:
        """Delete this repository's points and metadata.

        Raises:
            IndexingBusyError: If a run is in progress
        """
        if self.is_indexing:
            raise IndexingBusyError("Cannot reset while indexing is in progress")
        await self.vector_store.delete_by_filter(
            self.collection, PointFilter(repo_id=self.repo_id)
        )
        await asyncio.to_thread(self.metadata.remove, self.repo_id)
        logger.info(f"Reset index for {self.project_root}")

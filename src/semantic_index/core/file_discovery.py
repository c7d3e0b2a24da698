"""File discovery and filtering for semantic indexing."""

import asyncio
import os
from pathlib import Path

import pathspec
from loguru import logger

from ..config.defaults import DEFAULT_IGNORE_DIRS, IGNORE_FILE_NAME
from ..config.settings import IndexingSettings
from .cancellation import CancellationToken


class FileDiscovery:
    """Finds files to index under a project root.

    Applies, in order: ignored directory names, the extension allow-list,
    configured exclude globs and (optionally) the root ``.gitignore``.
    Returned paths are relative to the root with POSIX separators.
    """

    def __init__(self, project_root: Path, settings: IndexingSettings) -> None:
        """Initialize file discovery.

        Args:
            project_root: Project root directory
            settings: Indexing settings (extensions, excludes, max file cap)
        """
        self.project_root = Path(project_root).resolve()
        self.settings = settings
        self.file_extensions = {ext.lower() for ext in settings.file_extensions}
        self._ignore_dirs = set(DEFAULT_IGNORE_DIRS)
        self._exclude_spec = pathspec.GitIgnoreSpec.from_lines(
            settings.exclude_patterns
        )
        self.gitignore_spec: pathspec.GitIgnoreSpec | None = None
        self.reload_ignore_rules()

    @property
    def ignore_file(self) -> Path:
        return self.project_root / IGNORE_FILE_NAME

    def reload_ignore_rules(self) -> None:
        """(Re)load ``.gitignore`` patterns from the project root."""
        self.gitignore_spec = None
        if not self.settings.respect_gitignore:
            logger.debug("Gitignore filtering disabled by configuration")
            return
        if not self.ignore_file.is_file():
            return
        try:
            lines = self.ignore_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Failed to load gitignore patterns: {e}")
            return
        self.gitignore_spec = pathspec.GitIgnoreSpec.from_lines(lines)
        logger.debug(f"Loaded {len(lines)} gitignore lines from {self.ignore_file}")

    def relative_path(self, path: Path | str) -> str | None:
        """Return ``path`` relative to the root, or None if it lies outside."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        try:
            return candidate.resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            return None

    def is_ignored_by_gitignore(self, rel_path: str) -> bool:
        return bool(self.gitignore_spec and self.gitignore_spec.match_file(rel_path))

    def should_index(self, rel_path: str) -> bool:
        """Check whether a root-relative path passes every filter."""
        path = Path(rel_path)
        if path.suffix.lower() not in self.file_extensions:
            return False
        if any(part in self._ignore_dirs for part in path.parts[:-1]):
            return False
        if self._exclude_spec.match_file(rel_path):
            return False
        if self.is_ignored_by_gitignore(rel_path):
            return False
        return True

    def _should_descend(self, rel_dir: str, name: str) -> bool:
        if name in self._ignore_dirs:
            return False
        # Directory-only gitignore rules ("build/") need the trailing slash
        dir_path = f"{rel_dir}/{name}/" if rel_dir else f"{name}/"
        if self._exclude_spec.match_file(dir_path):
            return False
        return not self.is_ignored_by_gitignore(dir_path)

    def scan_files(self, cancel_token: CancellationToken | None = None) -> list[str]:
        """Walk the tree synchronously and return up to ``max_files`` paths.

        Raises:
            OperationCancelledError: If cancelled via cancel_token
        """
        max_files = self.settings.max_files
        files: list[str] = []
        truncated = False

        for dirpath, dirnames, filenames in os.walk(self.project_root):
            # Check for cancellation periodically (every directory)
            if cancel_token:
                cancel_token.check()

            rel_dir = Path(dirpath).relative_to(self.project_root).as_posix()
            if rel_dir == ".":
                rel_dir = ""
            dirnames[:] = sorted(d for d in dirnames if self._should_descend(rel_dir, d))

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if not self.should_index(rel_path):
                    continue
                if len(files) >= max_files:
                    truncated = True
                    break
                files.append(rel_path)
            if truncated:
                break

        if truncated:
            logger.warning(
                f"File limit reached: indexing the first {max_files} files only"
            )
        logger.debug(f"Discovered {len(files)} indexable files in {self.project_root}")
        return files

    async def find_indexable_files(
        self, cancel_token: CancellationToken | None = None
    ) -> list[str]:
        """Scan the project off the event loop.

        Raises:
            OperationCancelledError: If cancelled via cancel_token
        """
        return await asyncio.to_thread(self.scan_files, cancel_token)

"""Git integration: HEAD commit lookup for payloads and staleness checks.

Uses subprocess to call git (no extra dependency). Every lookup degrades to
``None`` when git is missing or the root is not a work tree, so indexing
works on plain directories too.
"""

import asyncio
import subprocess
from pathlib import Path

from loguru import logger


class GitManager:
    """Read-only git queries against a project root.

    Example:
        >>> manager = GitManager(Path("~/src/app").expanduser())
        >>> commit = manager.get_head_commit()
        >>> print(commit or "not a git work tree")
    """

    def __init__(self, project_root: Path):
        """Bind to a working tree.

        Args:
            project_root: Directory inside the work tree
        """
        self.project_root = Path(project_root).resolve()

    def _run(self, *args: str) -> str | None:
        try:
            result = subprocess.run(  # nosec B607 - git is intentionally called via PATH
                ["git", *args],
                cwd=self.project_root,
                capture_output=True,
                text=True,
                check=True,
                timeout=5,
            )
        except FileNotFoundError:
            logger.debug("Git binary not found; commit tracking disabled")
            return None
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired):
            return None
        return result.stdout.strip() or None

    def is_git_repo(self) -> bool:
        """Check if project directory is inside a git work tree."""
        return self._run("rev-parse", "--is-inside-work-tree") == "true"

    def get_head_commit(self) -> str | None:
        """Get the HEAD commit id.

        Returns:
            Full commit hash, or None when unavailable (no git, no commits)
        """
        return self._run("rev-parse", "HEAD")

    async def get_head_commit_async(self) -> str | None:
        return await asyncio.to_thread(self.get_head_commit)

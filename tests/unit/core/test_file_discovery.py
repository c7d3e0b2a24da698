"""Unit tests for file discovery and filtering."""

import warnings
from pathlib import Path

import pytest

from semantic_index.config.settings import IndexingSettings
from semantic_index.core.cancellation import CancellationToken
from semantic_index.core.exceptions import OperationCancelledError
from semantic_index.core.file_discovery import FileDiscovery


def make_tree(root: Path, files: list[str]) -> None:
    for rel in files:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("content\n")


def discovery(root: Path, **overrides) -> FileDiscovery:
    settings = IndexingSettings(file_extensions=[".py", ".md"], **overrides)
    return FileDiscovery(root, settings)


class TestScanFiles:
    """Tests for FileDiscovery.scan_files()."""

    def test_filters_by_extension_and_ignored_dirs(self, tmp_path: Path) -> None:
        make_tree(
            tmp_path,
            [
                "main.py",
                "README.md",
                "image.png",
                "pkg/mod.py",
                "node_modules/lib/index.py",
                ".git/hooks/pre-commit.py",
                "__pycache__/main.py",
            ],
        )

        files = discovery(tmp_path).scan_files()

        assert files == ["README.md", "main.py", "pkg/mod.py"]

    def test_gitignore_respected(self, tmp_path: Path) -> None:
        make_tree(tmp_path, ["keep.py", "secret.py", "generated/out.py", "docs/a.md"])
        (tmp_path / ".gitignore").write_text("secret.py\ngenerated/\n*.md\n")

        files = discovery(tmp_path).scan_files()

        assert files == ["keep.py"]

    def test_gitignore_can_be_disabled(self, tmp_path: Path) -> None:
        make_tree(tmp_path, ["keep.py", "secret.py"])
        (tmp_path / ".gitignore").write_text("secret.py\n")

        files = discovery(tmp_path, respect_gitignore=False).scan_files()

        assert files == ["keep.py", "secret.py"]

    def test_exclude_patterns(self, tmp_path: Path) -> None:
        make_tree(tmp_path, ["src/a.py", "dist/bundle.py", "tests/test_a.py"])

        files = discovery(
            tmp_path, exclude_patterns=["**/dist/**", "tests/"]
        ).scan_files()

        assert files == ["src/a.py"]

    def test_max_files_cap(self, tmp_path: Path) -> None:
        make_tree(tmp_path, [f"m{i}.py" for i in range(5)])

        files = discovery(tmp_path, max_files=3).scan_files()

        assert files == ["m0.py", "m1.py", "m2.py"]

    def test_cancelled_scan_raises(self, tmp_path: Path) -> None:
        make_tree(tmp_path, ["a.py"])
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            discovery(tmp_path).scan_files(token)

    @pytest.mark.asyncio
    async def test_async_scan(self, tmp_path: Path) -> None:
        make_tree(tmp_path, ["a.py"])

        assert await discovery(tmp_path).find_indexable_files() == ["a.py"]


class TestIgnoreRules:
    def test_pattern_compilation_emits_no_deprecation_warning(
        self, tmp_path: Path
    ) -> None:
        (tmp_path / ".gitignore").write_text("build/\n*.log\n")
        make_tree(tmp_path, ["build/gen.py", "main.py"])

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            found = discovery(tmp_path, exclude_patterns=["**/skip_*.py"])

        assert found.should_index("main.py")
        assert not found.should_index("build/gen.py")
        assert not found.should_index("pkg/skip_me.py")


class TestPathHelpers:
    def test_relative_path(self, tmp_path: Path) -> None:
        finder = discovery(tmp_path)

        assert finder.relative_path(tmp_path / "pkg" / "a.py") == "pkg/a.py"
        assert finder.relative_path("pkg/a.py") == "pkg/a.py"
        assert finder.relative_path(tmp_path.parent / "elsewhere.py") is None

    def test_reload_picks_up_new_rules(self, tmp_path: Path) -> None:
        finder = discovery(tmp_path)
        assert finder.should_index("notes.md")

        (tmp_path / ".gitignore").write_text("*.md\n")
        finder.reload_ignore_rules()

        assert not finder.should_index("notes.md")
        assert finder.should_index("main.py")

    def test_extension_match_is_case_insensitive(self, tmp_path: Path) -> None:
        assert discovery(tmp_path).should_index("Main.PY")

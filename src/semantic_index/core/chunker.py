"""Default chunker: fixed-size, overlapping line windows."""

from collections.abc import Callable

from ..config.defaults import DEFAULT_CHUNK_LINES, DEFAULT_CHUNK_OVERLAP
from .models import Chunk

# (file_path, content) -> chunks; any callable with this shape can be plugged in
Chunker = Callable[[str, str], list[Chunk]]


class LineChunker:
    """Split text into windows of ``chunk_lines`` lines overlapping by ``overlap``.

    Windows containing only whitespace are dropped so embedding providers
    never see empty text.
    """

    def __init__(
        self,
        chunk_lines: int = DEFAULT_CHUNK_LINES,
        overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        if chunk_lines < 1:
            raise ValueError("chunk_lines must be positive")
        if not 0 <= overlap < chunk_lines:
            raise ValueError("overlap must be in [0, chunk_lines)")
        self.chunk_lines = chunk_lines
        self.overlap = overlap

    def __call__(self, file_path: str, content: str) -> list[Chunk]:
        lines = content.splitlines()
        if not lines:
            return []

        step = self.chunk_lines - self.overlap
        chunks: list[Chunk] = []
        start = 0
        while start < len(lines):
            end = min(start + self.chunk_lines, len(lines))
            text = "\n".join(lines[start:end])
            if text.strip():
                chunks.append(
                    Chunk(
                        id=f"{file_path}:{start + 1}-{end}",
                        file_path=file_path,
                        content=text,
                        line_start=start + 1,
                        line_end=end,
                    )
                )
            if end == len(lines):
                break
            start += step
        return chunks

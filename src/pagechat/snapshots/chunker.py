"""Boundary-aware overlapping text splitter."""

from __future__ import annotations

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP",
    "MAX_CHUNKS",
    "split_into_chunks",
]

DEFAULT_CHUNK_SIZE = 2_000
DEFAULT_OVERLAP = 200
MAX_CHUNKS = 100
# A boundary only counts when it sits past this fraction of the window.
_MIN_BOUNDARY_FRACTION = 0.5


def split_into_chunks(
    text: str | None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[str]:
    """Split ``text`` into overlapping chunks of at most ``chunk_size`` characters.

    Each window ``[start, start + chunk_size)`` is shortened to the last paragraph
    break (``"\\n\\n"``) or, failing that, the last line break that lies beyond half
    the window; otherwise it is cut hard at the window edge. Chunks are stripped of
    surrounding whitespace. The next window starts ``overlap`` characters before the
    previous one ended, advancing by at least one character. At most
    :data:`MAX_CHUNKS` chunks are produced.

    Text that fits in a single window is returned as-is, unstripped.
    """

    if not text:
        return []
    chunk_size = max(1, int(chunk_size))
    if len(text) <= chunk_size:
        return [text]

    overlap = max(0, int(overlap))
    min_boundary = chunk_size * _MIN_BOUNDARY_FRACTION
    chunks: list[str] = []
    start = 0
    while start < len(text) and len(chunks) < MAX_CHUNKS:
        window_end = min(start + chunk_size, len(text))
        end = _find_split_index(text, start, window_end, min_boundary)
        chunks.append(text[start:end].strip())
        start += max(end - start - overlap, 1)
    return chunks


def _find_split_index(text: str, start: int, end: int, min_boundary: float) -> int:
    if end >= len(text):
        return end
    window = text[start:end]
    paragraph = window.rfind("\n\n")
    if paragraph > min_boundary:
        return start + paragraph + 2
    newline = window.rfind("\n")
    if newline > min_boundary:
        return start + newline + 1
    return end

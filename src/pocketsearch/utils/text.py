"""Text helpers including positional chunking."""

from __future__ import annotations

from typing import Iterable, List

DEFAULT_CHUNK_CHARS = 2000


def chunk_text(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> List[str]:
    """Split text into consecutive, non-overlapping character windows.

    Boundaries are plain character offsets into the trimmed text, so the same
    input always yields the same chunks. Windows that are blank after trimming
    are dropped.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    trimmed = text.strip()
    if not trimmed:
        return []
    if len(trimmed) <= max_chars:
        return [trimmed]

    chunks: List[str] = []
    for start in range(0, len(trimmed), max_chars):
        window = trimmed[start : start + max_chars].strip()
        if window:
            chunks.append(window)
    return chunks


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())

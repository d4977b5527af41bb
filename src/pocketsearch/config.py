"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet

from pocketsearch.embedding.encoder import DEFAULT_DIMENSION, DEFAULT_NGRAM_SIZE
from pocketsearch.index.indexer import DEFAULT_EXTENSIONS
from pocketsearch.index.manifest import DEFAULT_MANIFEST_NAME
from pocketsearch.index.search import DEFAULT_MIN_SIMILARITY
from pocketsearch.utils.text import DEFAULT_CHUNK_CHARS


def _get_default_data_dir() -> Path:
    """Get the default data directory based on platform and execution context."""
    user_dir = Path.home() / "Documents" / "PocketSearch"

    # Frozen builds always keep their data in the user's Documents folder
    if getattr(sys, "frozen", False):
        return user_dir

    # When running from source, prefer local data/ if it exists
    local_dir = Path("data")
    if local_dir.is_dir():
        return local_dir

    return user_dir


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    manifest_path: Path | None = None
    dimension: int = DEFAULT_DIMENSION
    ngram_size: int = DEFAULT_NGRAM_SIZE
    chunk_chars: int = DEFAULT_CHUNK_CHARS
    top_k: int = 10
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    allowed_extensions: FrozenSet[str] = field(default_factory=lambda: DEFAULT_EXTENSIONS)

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_data_dir() / "pocketsearch.db"
        if self.manifest_path is None:
            self.manifest_path = Path(self.db_path).parent / DEFAULT_MANIFEST_NAME

    @staticmethod
    def _resolve(path: Path, base_dir: Path | None) -> Path:
        if Path(path).is_absolute() or base_dir is None:
            return Path(path)
        return base_dir / path

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        return self._resolve(self.db_path, base_dir)

    def resolve_manifest_path(self, base_dir: Path | None = None) -> Path:
        return self._resolve(self.manifest_path, base_dir)

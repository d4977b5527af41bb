"""Wiring of store, index, indexer and searcher for one database."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Collection, List

from pocketsearch.config import AppConfig
from pocketsearch.embedding.encoder import EmbeddingConfig, HashingEmbedder
from pocketsearch.index.indexer import Indexer
from pocketsearch.index.manifest import ManifestStore
from pocketsearch.index.repository import RecordRepository
from pocketsearch.index.search import Searcher
from pocketsearch.index.storage import SQLiteRecordStore
from pocketsearch.index.vectors import VectorIndex
from pocketsearch.models import SearchResult, SyncResult

LOGGER = logging.getLogger(__name__)


class PocketSearch:
    """Owns every component for one database and its manifest.

    Opening a ``PocketSearch`` rebuilds the in-memory vector index from the
    record store.
    """

    def __init__(self, config: AppConfig, *, base_dir: Path | None = None) -> None:
        self.config = config
        self.db_path = config.resolve_db_path(base_dir)
        self.manifest_path = config.resolve_manifest_path(base_dir)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.embedder = HashingEmbedder(
            EmbeddingConfig(dimension=config.dimension, ngram_size=config.ngram_size)
        )
        self.store = SQLiteRecordStore(self.db_path, dimension=self.embedder.dimension)
        self.index = VectorIndex()
        self.manifest_store = ManifestStore(self.manifest_path)
        self.repository = RecordRepository(self.store, self.index, self.embedder)
        self.indexer = Indexer(
            self.repository, self.manifest_store, chunk_chars=config.chunk_chars
        )
        self.searcher = Searcher(self.embedder, self.index)
        self.repository.load_vectors()

    def sync(self, path: Path, allowed_extensions: Collection[str] | None = None) -> SyncResult:
        return self.indexer.sync_folder(
            path,
            self.config.allowed_extensions if allowed_extensions is None else allowed_extensions,
        )

    def search(
        self, query: str, *, top_k: int | None = None, min_similarity: float | None = None
    ) -> List[SearchResult]:
        return self.searcher.search(
            query,
            top_k=self.config.top_k if top_k is None else top_k,
            min_similarity=(
                self.config.min_similarity if min_similarity is None else min_similarity
            ),
        )

    def clear(self) -> int:
        """Delete every record and forget the manifest so the next sync starts over."""
        removed = self.repository.delete_all()
        self.manifest_store.clear()
        LOGGER.info("Cleared %d records", removed)
        return removed

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "PocketSearch":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

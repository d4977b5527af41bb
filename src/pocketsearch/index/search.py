"""Semantic search interface."""

from __future__ import annotations

import logging
from typing import List

from pocketsearch.embedding.encoder import HashingEmbedder
from pocketsearch.index.vectors import VectorIndex
from pocketsearch.models import SearchResult

LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.1


class Searcher:
    """High-level API to query the vector index."""

    def __init__(self, embedder: HashingEmbedder, index: VectorIndex) -> None:
        self.embedder = embedder
        self.index = index

    def search(
        self,
        query: str,
        *,
        top_k: int = 10,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> List[SearchResult]:
        if not query.strip():
            return []
        try:
            embedding = self.embedder.embed_query(query)
        except Exception as exc:
            LOGGER.error("Failed to embed query %r: %s", query, exc)
            return []
        return self.index.search_with_display(embedding, top_k, min_similarity)

"""In-memory exact k-NN index over record embeddings."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Set, Tuple

import numpy as np

from pocketsearch.models import Record, SearchResult


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 when the lengths differ or either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    if a.shape != b.shape:
        return 0.0
    denominator = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denominator <= 0.0:
        return 0.0
    score = float(np.dot(a, b)) / denominator
    return min(max(score, -1.0), 1.0)


class VectorIndex:
    """Brute-force cosine search over every stored vector.

    The index is a derived cache of the record store: it is rebuilt from a full
    scan at startup and may be cleared at any time. Each mutation holds the
    lock, so readers never observe a half-applied upsert or remove.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._vectors: Dict[int, np.ndarray] = {}
        self._records: Dict[int, Record] = {}

    def upsert(self, record_id: int, vector: np.ndarray, record: Record | None = None) -> None:
        stored = np.asarray(vector, dtype=np.float32).ravel()
        with self._lock:
            self._vectors[record_id] = stored
            if record is not None:
                self._records[record_id] = record

    def upsert_records(self, records: Iterable[Record]) -> None:
        with self._lock:
            for record in records:
                if record.id is None:
                    raise ValueError("Cannot index a record without an id")
                self.upsert(record.id, record.embedding, record)

    def remove(self, record_id: int) -> None:
        with self._lock:
            self._vectors.pop(record_id, None)
            self._records.pop(record_id, None)

    def clear(self) -> None:
        with self._lock:
            self._vectors.clear()
            self._records.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._vectors)

    def __len__(self) -> int:
        return self.size()

    def is_empty(self) -> bool:
        return self.size() == 0

    def all_ids(self) -> Set[int]:
        with self._lock:
            return set(self._vectors)

    def get_record(self, record_id: int) -> Record | None:
        with self._lock:
            return self._records.get(record_id)

    def knn(
        self, query: np.ndarray, k: int = 10, min_similarity: float = 0.0
    ) -> List[Tuple[int, float]]:
        """Return up to ``k`` (id, score) pairs, best first."""
        if k <= 0:
            return []
        with self._lock:
            snapshot = list(self._vectors.items())
        if not snapshot:
            return []

        scored = [(record_id, cosine_similarity(query, vector)) for record_id, vector in snapshot]
        kept = [pair for pair in scored if pair[1] >= min_similarity]
        # sorted() is stable, so equal scores keep insertion order
        kept.sort(key=lambda pair: pair[1], reverse=True)
        return kept[:k]

    def search_with_display(
        self, query: np.ndarray, k: int = 10, min_similarity: float = 0.0
    ) -> List[SearchResult]:
        """k-NN search resolved to cached records; uncached ids are dropped."""
        results: List[SearchResult] = []
        for record_id, score in self.knn(query, k, min_similarity):
            record = self.get_record(record_id)
            if record is not None:
                results.append(SearchResult(record=record, score=score))
        return results

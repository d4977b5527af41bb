"""Keeps the record store and the in-memory vector index in lockstep."""

from __future__ import annotations

import logging
from typing import List, Sequence

from pocketsearch.embedding.encoder import HashingEmbedder
from pocketsearch.index.storage import SQLiteRecordStore
from pocketsearch.index.vectors import VectorIndex
from pocketsearch.models import Record

LOGGER = logging.getLogger(__name__)


class RecordRepository:
    """Single write path for records.

    Every store mutation is mirrored into the vector index right after the
    store call succeeds.
    """

    def __init__(
        self, store: SQLiteRecordStore, index: VectorIndex, embedder: HashingEmbedder
    ) -> None:
        self.store = store
        self.index = index
        self.embedder = embedder

    def load_vectors(self) -> int:
        """Rebuild the vector index from a full scan of the store."""
        records = self.store.all_records()
        self.index.clear()
        self.index.upsert_records(records)
        LOGGER.info("Loaded %d vectors into the search index", len(records))
        return len(records)

    def add_records(self, records: Sequence[Record]) -> List[int]:
        ids = self.store.insert_records(records)
        self.index.upsert_records(records)
        return ids

    def delete_by_ids(self, ids: Sequence[int]) -> int:
        removed = self.store.delete_by_ids(ids)
        for record_id in ids:
            self.index.remove(record_id)
        return removed

    def add_note(self, title: str, content: str) -> Record:
        record = Record(
            title=title,
            content=content,
            embedding=self.embedder.embed_text(f"{title} {content}"),
        )
        self.add_records([record])
        return record

    def update_note(self, record_id: int, title: str, content: str) -> Record | None:
        record = self.store.get(record_id)
        if record is None:
            return None
        record.title = title
        record.content = content
        record.embedding = self.embedder.embed_text(f"{title} {content}")
        self.store.update_record(record)
        self.index.upsert(record_id, record.embedding, record)
        return record

    def delete_note(self, record_id: int) -> bool:
        return self.delete_by_ids([record_id]) > 0

    def delete_all(self) -> int:
        removed = self.store.delete_all()
        self.index.clear()
        return removed

    def get(self, record_id: int) -> Record | None:
        return self.store.get(record_id)

    def list_records(self) -> List[Record]:
        return self.store.all_records()

    def count(self) -> int:
        return self.store.count()

"""SQLite record store."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np

from pocketsearch.errors import StoreError
from pocketsearch.models import Record, now_millis


class SQLiteRecordStore:
    """Durable table of records with their embeddings.

    Every public method runs under one lock so the connection can be shared by
    the sync worker and concurrent search requests.
    """

    def __init__(self, db_path: Path, *, dimension: int) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open database {self.db_path}: {exc}") from exc
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    embedding BLOB NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_documents_updated_at
                    ON documents(updated_at)
                """
            )

    def _encode(self, vector: np.ndarray) -> sqlite3.Binary:
        array = np.asarray(vector, dtype="float32").ravel()
        if array.shape[0] != self.dimension:
            raise ValueError(
                f"Embedding has {array.shape[0]} dimensions, expected {self.dimension}"
            )
        return sqlite3.Binary(array.tobytes())

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            embedding=np.frombuffer(row["embedding"], dtype="float32").copy(),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def insert_records(self, records: Sequence[Record]) -> List[int]:
        """Insert records and assign their ids in place."""
        ids: List[int] = []
        with self.transaction() as conn:
            for record in records:
                record_id = conn.execute(
                    """
                    INSERT INTO documents(title, content, embedding, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record.title,
                        record.content,
                        self._encode(record.embedding),
                        record.created_at,
                        record.updated_at,
                    ),
                ).lastrowid
                ids.append(int(record_id))
        for record, record_id in zip(records, ids):
            record.id = record_id
        return ids

    def update_record(self, record: Record) -> bool:
        if record.id is None:
            raise ValueError("Cannot update a record without an id")
        record.updated_at = now_millis()
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE documents
                SET title = ?, content = ?, embedding = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    record.title,
                    record.content,
                    self._encode(record.embedding),
                    record.updated_at,
                    record.id,
                ),
            )
        return cursor.rowcount > 0

    def delete_by_ids(self, ids: Sequence[int]) -> int:
        if not ids:
            return 0
        with self.transaction() as conn:
            cursor = conn.executemany(
                "DELETE FROM documents WHERE id = ?", [(int(value),) for value in ids]
            )
        return cursor.rowcount

    def delete_all(self) -> int:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents")
        return cursor.rowcount

    def get(self, record_id: int) -> Record | None:
        with self._lock:
            row = self._query(
                "SELECT * FROM documents WHERE id = ?", (record_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def all_records(self) -> List[Record]:
        """Full scan, most recently updated first."""
        with self._lock:
            rows = self._query(
                "SELECT * FROM documents ORDER BY updated_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            return int(self._query("SELECT COUNT(*) FROM documents").fetchone()[0])

    def _query(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

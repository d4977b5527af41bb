"""Core PocketSearch data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

MANIFEST_VERSION = 2


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True, eq=False)
class Record:
    """A retrievable text fragment and its embedding."""

    title: str
    content: str
    embedding: np.ndarray
    id: int | None = None
    created_at: int = field(default_factory=now_millis)
    updated_at: int = field(default_factory=now_millis)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            self.id == other.id
            and self.title == other.title
            and self.content == other.content
            and np.array_equal(self.embedding, other.embedding)
        )

    def snippet(self, limit: int = 180) -> str:
        return self.content.replace("\n", " ")[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class ManifestEntry:
    """Fingerprint of one indexed source file."""

    path: str
    sha256: str
    mtime: int
    document_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "sha256": self.sha256,
            "mtime": self.mtime,
            "documentIds": list(self.document_ids),
        }

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            path=str(data.get("path", key)),
            sha256=str(data["sha256"]).lower(),
            mtime=int(data.get("mtime", 0)),
            document_ids=[int(value) for value in data.get("documentIds", [])],
        )


@dataclass(slots=True)
class Manifest:
    """Everything that has been indexed so far, keyed by source file."""

    version: int = MANIFEST_VERSION
    entries: Dict[str, ManifestEntry] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "entries": {key: entry.to_dict() for key, entry in self.entries.items()},
        }


@dataclass(slots=True)
class SyncResult:
    """Counters and record ids produced by one sync run."""

    files_added: int = 0
    files_updated: int = 0
    files_removed: int = 0
    records_added: int = 0
    records_removed: int = 0
    upserted_record_ids: List[int] = field(default_factory=list)
    removed_record_ids: List[int] = field(default_factory=list)
    files_skipped: List[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return self.files_added + self.files_updated + self.files_removed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_added": self.files_added,
            "files_updated": self.files_updated,
            "files_removed": self.files_removed,
            "records_added": self.records_added,
            "records_removed": self.records_removed,
            "upserted_record_ids": list(self.upserted_record_ids),
            "removed_record_ids": list(self.removed_record_ids),
            "files_skipped": list(self.files_skipped),
        }


@dataclass(slots=True)
class SearchResult:
    record: Record
    score: float

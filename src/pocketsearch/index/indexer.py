"""Incremental sync of a source tree into the record store."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Collection, List

from pocketsearch.embedding.encoder import HashingEmbedder
from pocketsearch.errors import StoreError, SyncError
from pocketsearch.index.manifest import ManifestStore
from pocketsearch.index.repository import RecordRepository
from pocketsearch.ingestion.extractors import extract_text
from pocketsearch.ingestion.sources import SourceFile, SourceTree, open_tree
from pocketsearch.models import Manifest, ManifestEntry, Record, SyncResult
from pocketsearch.utils.files import is_allowed, sha256_hex
from pocketsearch.utils.text import DEFAULT_CHUNK_CHARS, chunk_text

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = frozenset({"txt", "md", "pdf", "docx"})


def chunk_title(name: str, ordinal: int, total: int) -> str:
    """Title of a chunk: the file name, numbered from 1 when there are several."""
    return name if total == 1 else f"{name} #{ordinal + 1}"


class Indexer:
    """Reconciles a source tree with the manifest.

    Unchanged files (same SHA-256) are never re-extracted; changed files have their
    old records deleted before the new chunks are inserted; files that
    disappeared from the tree lose their records and manifest entry. The
    manifest is written once per run, including runs cut short by a store
    error, so it always describes the records that were committed.
    """

    def __init__(
        self,
        repository: RecordRepository,
        manifest_store: ManifestStore,
        *,
        chunk_chars: int = DEFAULT_CHUNK_CHARS,
    ) -> None:
        self.repository = repository
        self.manifest_store = manifest_store
        self.chunk_chars = chunk_chars
        self._sync_lock = threading.Lock()

    @property
    def embedder(self) -> HashingEmbedder:
        return self.repository.embedder

    def sync_folder(
        self, path: Path, allowed_extensions: Collection[str] | None = None
    ) -> SyncResult:
        return self.sync(open_tree(path), allowed_extensions)

    def sync(
        self, tree: SourceTree, allowed_extensions: Collection[str] | None = None
    ) -> SyncResult:
        """Bring the store in line with the current content of ``tree``."""
        if allowed_extensions is None:
            allowed_extensions = DEFAULT_EXTENSIONS
        extensions = {ext.lower().lstrip(".") for ext in allowed_extensions}
        with self._sync_lock:
            manifest = self.manifest_store.load()
            try:
                scanned = [f for f in tree.iter_files() if is_allowed(f.name, extensions)]
            except OSError as exc:
                raise SyncError(f"Unable to enumerate {tree.identity}: {exc}") from exc

            LOGGER.info("Scanned %d files in %s", len(scanned), tree.identity)
            result = SyncResult()
            try:
                self._remove_deleted(tree, manifest, {f.key for f in scanned}, result)
                for source in scanned:
                    self._sync_file(source, manifest, result)
            except StoreError as exc:
                raise SyncError(f"Sync of {tree.identity} failed: {exc}") from exc
            finally:
                self.manifest_store.save(manifest)

        LOGGER.info(
            "Sync done: %d added, %d updated, %d removed files (%d records added, %d removed)",
            result.files_added,
            result.files_updated,
            result.files_removed,
            result.records_added,
            result.records_removed,
        )
        return result

    def _remove_deleted(
        self, tree: SourceTree, manifest: Manifest, scanned_keys: set, result: SyncResult
    ) -> None:
        deleted = sorted(
            key for key in manifest.entries if tree.owns(key) and key not in scanned_keys
        )
        for key in deleted:
            entry = manifest.entries[key]
            self.repository.delete_by_ids(entry.document_ids)
            result.records_removed += len(entry.document_ids)
            result.removed_record_ids.extend(entry.document_ids)
            del manifest.entries[key]
            result.files_removed += 1
            LOGGER.debug("Removed %s (%d records)", key, len(entry.document_ids))

    def _sync_file(self, source: SourceFile, manifest: Manifest, result: SyncResult) -> None:
        try:
            data = source.read_bytes()
        except OSError as exc:
            LOGGER.warning("Skipping %s: %s", source.key, exc)
            result.files_skipped.append(source.key)
            return

        # Hash and text both come from this one read.
        sha256 = sha256_hex(data)
        existing = manifest.entries.get(source.key)
        if existing is not None and existing.sha256 == sha256:
            return

        outcome = extract_text(source.name, data)
        if not outcome.ok:
            LOGGER.debug("No text extracted from %s (%s)", source.key, outcome.status)
        chunks = chunk_text(outcome.text_or_empty, self.chunk_chars)
        if not chunks:
            LOGGER.debug("Skipping %s: no content", source.key)
            return

        if existing is not None:
            self.repository.delete_by_ids(existing.document_ids)
            result.records_removed += len(existing.document_ids)
            result.removed_record_ids.extend(existing.document_ids)
            existing.document_ids = []

        records: List[Record] = []
        for ordinal, chunk in enumerate(chunks):
            title = chunk_title(source.name, ordinal, len(chunks))
            records.append(
                Record(
                    title=title,
                    content=chunk,
                    embedding=self.embedder.embed_text(f"{title} {chunk}"),
                )
            )

        ids = self.repository.add_records(records)
        result.records_added += len(ids)
        result.upserted_record_ids.extend(ids)

        manifest.entries[source.key] = ManifestEntry(
            path=source.key, sha256=sha256, mtime=source.mtime, document_ids=ids
        )
        if existing is None:
            result.files_added += 1
        else:
            result.files_updated += 1
        LOGGER.info("Indexed %s into %d records", source.key, len(ids))

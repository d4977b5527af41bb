"""Tests for the incremental Indexer."""

from __future__ import annotations

import io
import os
import zipfile
from pathlib import Path
from typing import Iterator
from unittest.mock import patch

import pytest

from pocketsearch.embedding.encoder import HashingEmbedder
from pocketsearch.errors import StoreError, SyncError
from pocketsearch.index.indexer import Indexer, chunk_title
from pocketsearch.index.manifest import ManifestStore
from pocketsearch.index.repository import RecordRepository
from pocketsearch.index.storage import SQLiteRecordStore
from pocketsearch.index.vectors import VectorIndex
from pocketsearch.ingestion.sources import DirectoryTree, SourceFile


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    path = tmp_path / "docs"
    path.mkdir()
    return path


@pytest.fixture
def repository(tmp_path: Path):
    embedder = HashingEmbedder()
    store = SQLiteRecordStore(tmp_path / "records.db", dimension=embedder.dimension)
    yield RecordRepository(store, VectorIndex(), embedder)
    store.close()


@pytest.fixture
def manifest_store(tmp_path: Path) -> ManifestStore:
    return ManifestStore(tmp_path / "manifest.json")


@pytest.fixture
def indexer(repository: RecordRepository, manifest_store: ManifestStore) -> Indexer:
    return Indexer(repository, manifest_store, chunk_chars=2000)


def _key(path: Path) -> str:
    return str(path.resolve())


class _FakeTree:
    """In-memory tree where some files fail to open."""

    identity = "fake://tree"

    def __init__(self, files: dict[str, bytes], broken: set[str]) -> None:
        self.files = files
        self.broken = broken

    def owns(self, key: str) -> bool:
        return key.startswith(self.identity)

    def _opener(self, name: str):
        def open_file():
            if name in self.broken:
                raise PermissionError(f"denied: {name}")
            return io.BytesIO(self.files[name])

        return open_file

    def iter_files(self) -> Iterator[SourceFile]:
        for name in sorted(self.files):
            yield SourceFile(
                key=f"{self.identity}|{name}", name=name, mtime=1, opener=self._opener(name)
            )


class TestChunkTitle:
    def test_single_chunk_uses_file_name(self) -> None:
        assert chunk_title("a.txt", 0, 1) == "a.txt"

    def test_multi_chunk_numbered_from_one(self) -> None:
        assert chunk_title("a.txt", 0, 3) == "a.txt #1"
        assert chunk_title("a.txt", 2, 3) == "a.txt #3"


class TestNewFiles:
    """Test first-time indexing."""

    def test_single_file(self, indexer: Indexer, docs: Path, manifest_store: ManifestStore) -> None:
        (docs / "fox.txt").write_text("The quick brown fox")

        result = indexer.sync_folder(docs)

        assert result.files_added == 1
        assert result.records_added == 1
        assert result.files_updated == result.files_removed == result.records_removed == 0
        assert len(result.upserted_record_ids) == 1

        entry = manifest_store.load().entries[_key(docs / "fox.txt")]
        assert entry.document_ids == result.upserted_record_ids
        assert len(entry.sha256) == 64
        assert indexer.repository.index.all_ids() == set(result.upserted_record_ids)

        record = indexer.repository.get(result.upserted_record_ids[0])
        assert record.title == "fox.txt"
        assert record.content == "The quick brown fox"

    def test_record_embeds_title_and_chunk(self, indexer: Indexer, docs: Path) -> None:
        (docs / "fox.txt").write_text("The quick brown fox")

        result = indexer.sync_folder(docs)

        record = indexer.repository.get(result.upserted_record_ids[0])
        expected = indexer.embedder.embed_text("fox.txt The quick brown fox")
        assert record.embedding.tobytes() == expected.tobytes()

    def test_multi_chunk_titles(
        self, repository: RecordRepository, manifest_store: ManifestStore, docs: Path
    ) -> None:
        indexer = Indexer(repository, manifest_store, chunk_chars=10)
        (docs / "long.md").write_text("a" * 10 + "b" * 10 + "c" * 5)

        result = indexer.sync_folder(docs)

        records = [repository.get(i) for i in result.upserted_record_ids]
        assert [r.title for r in records] == ["long.md #1", "long.md #2", "long.md #3"]
        assert [r.content for r in records] == ["a" * 10, "b" * 10, "c" * 5]

    def test_extension_filter(self, indexer: Indexer, docs: Path) -> None:
        (docs / "keep.TXT").write_text("upper case extension")
        (docs / "image.png").write_bytes(b"\x89PNG")
        (docs / "README").write_text("no extension")

        result = indexer.sync_folder(docs)

        assert result.files_added == 1

    def test_custom_extensions(self, indexer: Indexer, docs: Path) -> None:
        (docs / "a.txt").write_text("text file")
        (docs / "b.md").write_text("markdown file")

        result = indexer.sync_folder(docs, allowed_extensions={".md"})

        assert result.files_added == 1

    def test_empty_extension_set_allows_nothing(self, indexer: Indexer, docs: Path) -> None:
        (docs / "a.txt").write_text("text file")

        result = indexer.sync_folder(docs, allowed_extensions=set())

        assert result.files_added == 0
        assert indexer.repository.count() == 0

    def test_blank_file_is_skipped(
        self, indexer: Indexer, docs: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "blank.txt").write_text("   \n\n  ")

        result = indexer.sync_folder(docs)

        assert result.files_added == 0
        assert result.files_skipped == []
        assert manifest_store.load().entries == {}

    def test_corrupt_document_does_not_abort(
        self, indexer: Indexer, docs: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "broken.docx").write_bytes(b"not a zip archive")
        (docs / "ok.txt").write_text("still indexed")

        result = indexer.sync_folder(docs)

        assert result.files_added == 1
        assert list(manifest_store.load().entries) == [_key(docs / "ok.txt")]


class TestIncrementalSync:
    """Test change detection across runs."""

    def test_idempotent(self, indexer: Indexer, docs: Path, manifest_store: ManifestStore) -> None:
        (docs / "a.txt").write_text("alpha")
        (docs / "sub").mkdir()
        (docs / "sub" / "b.md").write_text("beta")
        indexer.sync_folder(docs)
        before = manifest_store.path.read_bytes()

        result = indexer.sync_folder(docs)

        assert result.to_dict() == {
            "files_added": 0,
            "files_updated": 0,
            "files_removed": 0,
            "records_added": 0,
            "records_removed": 0,
            "upserted_record_ids": [],
            "removed_record_ids": [],
            "files_skipped": [],
        }
        assert manifest_store.path.read_bytes() == before

    def test_content_change_with_same_mtime(self, indexer: Indexer, docs: Path) -> None:
        path = docs / "a.txt"
        path.write_text("first version")
        first = indexer.sync_folder(docs)
        stat = path.stat()

        path.write_text("second version")
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))
        result = indexer.sync_folder(docs)

        assert result.files_updated == 1
        assert result.files_added == 0
        assert result.removed_record_ids == first.upserted_record_ids
        assert indexer.repository.get(first.upserted_record_ids[0]) is None
        assert indexer.repository.index.all_ids() == set(result.upserted_record_ids)
        assert indexer.repository.get(result.upserted_record_ids[0]).content == "second version"

    def test_touch_does_not_reembed(self, indexer: Indexer, docs: Path) -> None:
        path = docs / "a.txt"
        path.write_text("unchanged")
        indexer.sync_folder(docs)
        os.utime(path, (1_000_000, 1_000_000))

        with patch.object(indexer.embedder, "embed_text") as embed:
            result = indexer.sync_folder(docs)

        embed.assert_not_called()
        assert result.total_changes == 0

    def test_shrunk_document_leaves_no_stale_chunks(
        self, repository: RecordRepository, manifest_store: ManifestStore, docs: Path
    ) -> None:
        indexer = Indexer(repository, manifest_store, chunk_chars=5)
        path = docs / "a.txt"
        path.write_text("aaaaabbbbbccccc")
        indexer.sync_folder(docs)

        path.write_text("zzz")
        result = indexer.sync_folder(docs)

        assert result.records_removed == 3
        assert result.records_added == 1
        assert repository.count() == 1
        assert repository.index.size() == 1

    def test_deleted_file(self, indexer: Indexer, docs: Path, manifest_store: ManifestStore) -> None:
        (docs / "a.txt").write_text("alpha")
        (docs / "b.txt").write_text("beta")
        first = indexer.sync_folder(docs)
        (docs / "b.txt").unlink()

        result = indexer.sync_folder(docs)

        assert result.files_removed == 1
        assert result.records_removed == 1
        assert _key(docs / "b.txt") not in manifest_store.load().entries
        assert indexer.repository.count() == 1
        for record_id in result.removed_record_ids:
            assert record_id in first.upserted_record_ids
            assert indexer.repository.get(record_id) is None
            assert record_id not in indexer.repository.index.all_ids()

    def test_emptied_file_keeps_previous_records(self, indexer: Indexer, docs: Path) -> None:
        """A file whose new content is blank is skipped, not treated as deleted."""
        path = docs / "a.txt"
        path.write_text("content")
        first = indexer.sync_folder(docs)

        path.write_text("")
        result = indexer.sync_folder(docs)

        assert result.total_changes == 0
        assert indexer.repository.get(first.upserted_record_ids[0]) is not None

    def test_corrupt_manifest_forces_full_reindex(
        self, indexer: Indexer, docs: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "a.txt").write_text("alpha")
        indexer.sync_folder(docs)
        manifest_store.path.write_text("{broken")

        result = indexer.sync_folder(docs)

        assert result.files_added == 1


class TestTrees:
    """Test syncing through different source tree adapters."""

    def test_archive_sync(self, indexer: Indexer, tmp_path: Path) -> None:
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("notes/a.txt", "archived note")
            zf.writestr("photo.jpg", "binary")

        result = indexer.sync_folder(archive)

        assert result.files_added == 1
        assert indexer.sync_folder(archive).total_changes == 0

    def test_trees_do_not_delete_each_others_entries(
        self, indexer: Indexer, docs: Path, tmp_path: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "a.txt").write_text("from folder")
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("a.txt", "from archive")

        indexer.sync_folder(docs)
        result = indexer.sync_folder(archive)

        assert result.files_removed == 0
        assert len(manifest_store.load().entries) == 2

    def test_folder_sync_keeps_archive_entries(
        self, indexer: Indexer, docs: Path, tmp_path: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "a.txt").write_text("from folder")
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("a.txt", "from archive")

        indexer.sync_folder(archive)
        result = indexer.sync_folder(docs)

        assert result.files_removed == 0
        assert len(manifest_store.load().entries) == 2

    def test_renamed_root_prunes_old_entries(
        self, indexer: Indexer, docs: Path, tmp_path: Path, manifest_store: ManifestStore
    ) -> None:
        (docs / "a.txt").write_text("alpha")
        (docs / "b.txt").write_text("beta")
        first = indexer.sync_folder(docs)
        moved = docs.rename(tmp_path / "docs2")
        (moved / "a.txt").unlink()
        (moved / "c.txt").write_text("gamma")

        result = indexer.sync_folder(moved)

        assert result.files_removed == 2
        assert sorted(result.removed_record_ids) == sorted(first.upserted_record_ids)
        assert result.files_added == 2
        titles = sorted(record.title for record in indexer.repository.list_records())
        assert titles == ["b.txt", "c.txt"]
        assert sorted(manifest_store.load().entries) == [
            _key(moved / "b.txt"),
            _key(moved / "c.txt"),
        ]

    def test_unreadable_file_is_skipped(
        self, indexer: Indexer, manifest_store: ManifestStore
    ) -> None:
        tree = _FakeTree({"a.txt": b"alpha", "b.txt": b"beta"}, broken={"a.txt"})

        result = indexer.sync(tree)

        assert result.files_added == 1
        assert result.files_skipped == ["fake://tree|a.txt"]
        assert list(manifest_store.load().entries) == ["fake://tree|b.txt"]

    def test_unreadable_file_keeps_its_entry(
        self, indexer: Indexer, manifest_store: ManifestStore
    ) -> None:
        tree = _FakeTree({"a.txt": b"alpha"}, broken=set())
        first = indexer.sync(tree)
        tree.broken.add("a.txt")

        result = indexer.sync(tree)

        assert result.files_removed == 0
        assert result.files_skipped == ["fake://tree|a.txt"]
        entry = manifest_store.load().entries["fake://tree|a.txt"]
        assert entry.document_ids == first.upserted_record_ids


class TestFailures:
    """Test failures that abort the whole sync."""

    def test_missing_root(self, indexer: Indexer, tmp_path: Path, manifest_store: ManifestStore) -> None:
        with pytest.raises(SyncError):
            indexer.sync(DirectoryTree(tmp_path / "missing"))
        assert not manifest_store.path.exists()

    def test_store_failure_keeps_committed_work(
        self, indexer: Indexer, docs: Path, manifest_store: ManifestStore
    ) -> None:
        """A retry after a store failure must not duplicate already indexed files."""
        (docs / "a.txt").write_text("alpha")
        (docs / "b.txt").write_text("beta")
        add_records = indexer.repository.add_records
        calls = []

        def fail_second_call(records):
            calls.append(records)
            if len(calls) == 2:
                raise StoreError("database is locked")
            return add_records(records)

        with patch.object(indexer.repository, "add_records", side_effect=fail_second_call):
            with pytest.raises(SyncError) as excinfo:
                indexer.sync_folder(docs)

        assert isinstance(excinfo.value.__cause__, StoreError)
        assert list(manifest_store.load().entries) == [_key(docs / "a.txt")]

        result = indexer.sync_folder(docs)

        assert result.files_added == 1
        titles = sorted(record.title for record in indexer.repository.list_records())
        assert titles == ["a.txt", "b.txt"]
        assert indexer.repository.index.size() == 2

    def test_store_failure_on_changed_file_is_recovered(
        self, indexer: Indexer, docs: Path, manifest_store: ManifestStore
    ) -> None:
        path = docs / "a.txt"
        path.write_text("first version")
        indexer.sync_folder(docs)
        path.write_text("second version")

        with patch.object(
            indexer.repository, "add_records", side_effect=StoreError("disk full")
        ):
            with pytest.raises(SyncError):
                indexer.sync_folder(docs)

        assert manifest_store.load().entries[_key(path)].document_ids == []

        result = indexer.sync_folder(docs)

        assert result.files_updated == 1
        assert result.records_removed == 0
        assert [r.content for r in indexer.repository.list_records()] == ["second version"]

"""Source trees the indexer can sync from.

A tree enumerates its files with a stable key, a display name, a modification
time and a way to read the raw bytes. The indexer only talks to this
interface, so a plain directory and a zip archive are synced by the same code.
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Protocol


@dataclass(frozen=True, slots=True)
class SourceFile:
    key: str
    name: str
    mtime: int
    opener: Callable[[], BinaryIO]

    def open(self) -> BinaryIO:
        return self.opener()

    def read_bytes(self) -> bytes:
        with self.open() as handle:
            return handle.read()


class SourceTree(Protocol):
    @property
    def identity(self) -> str: ...

    def iter_files(self) -> Iterator[SourceFile]: ...

    def owns(self, key: str) -> bool: ...


class DirectoryTree:
    """A folder on the local filesystem, keyed by absolute file path."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    @property
    def identity(self) -> str:
        return str(self.root)

    def owns(self, key: str) -> bool:
        # Any filesystem path, including ones under a renamed or moved root.
        # Archive keys carry a scheme prefix and are left to their own tree.
        return "://" not in key

    def iter_files(self) -> Iterator[SourceFile]:
        if not self.root.is_dir():
            raise NotADirectoryError(f"Not a directory: {self.root}")
        yield from self._walk(self.root)

    def _walk(self, directory: Path) -> Iterator[SourceFile]:
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            if child.is_dir():
                yield from self._walk(child)
            elif child.is_file():
                yield SourceFile(
                    key=str(child),
                    name=child.name,
                    mtime=int(child.stat().st_mtime * 1000),
                    opener=lambda path=child: path.open("rb"),
                )


class ArchiveTree:
    """A zip archive treated as a read-only document tree.

    Keys combine the archive identity with the member path, so the same
    relative path inside two different archives never collides.
    """

    def __init__(self, archive_path: Path) -> None:
        self.archive_path = Path(archive_path).expanduser().resolve()

    @property
    def identity(self) -> str:
        return f"zip://{self.archive_path}"

    def key_for(self, member: str) -> str:
        return f"{self.identity}|{member}"

    def owns(self, key: str) -> bool:
        return key.startswith(self.identity + "|")

    def iter_files(self) -> Iterator[SourceFile]:
        with zipfile.ZipFile(self.archive_path) as archive:
            members = sorted(
                (info for info in archive.infolist() if not info.is_dir()),
                key=lambda info: info.filename,
            )
        for info in members:
            yield SourceFile(
                key=self.key_for(info.filename),
                name=info.filename.rsplit("/", 1)[-1],
                mtime=int(datetime(*info.date_time).timestamp() * 1000),
                opener=lambda member=info.filename: self._open_member(member),
            )

    def _open_member(self, member: str) -> BinaryIO:
        with zipfile.ZipFile(self.archive_path) as archive:
            return io.BytesIO(archive.read(member))


def open_tree(path: Path) -> SourceTree:
    """Pick the tree adapter for a path: zip archives or plain directories."""
    path = Path(path)
    if path.is_file() and zipfile.is_zipfile(path):
        return ArchiveTree(path)
    return DirectoryTree(path)

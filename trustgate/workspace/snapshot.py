"""Point-in-time snapshots of a source tree.

A FileSnapshot records a file's mtime, size and content hash. Comparing a
live file against its snapshot checks mtime and size first and confirms
any difference with the content hash, so a touched-but-identical file is
not reported as changed.
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from ..audit.hashing import hash_file
from .excludes import ExcludePatterns

logger = logging.getLogger("trustgate.workspace")


class FileSnapshot(BaseModel):
    """Recorded state of one file."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Relative posix path")
    mtime_ns: int
    content_hash: str
    size_bytes: int

    @classmethod
    def capture(cls, root: Path, relative_path: str) -> FileSnapshot | None:
        """Snapshot a file under ``root``; None if it does not exist."""
        full = Path(root) / relative_path
        try:
            st = full.stat()
        except FileNotFoundError:
            return None
        if not full.is_file():
            return None
        return cls(
            path=relative_path,
            mtime_ns=st.st_mtime_ns,
            content_hash=hash_file(full),
            size_bytes=st.st_size,
        )

    def differs_from(self, live: FileSnapshot | None) -> bool:
        """True if the live file's content differs from this snapshot."""
        if live is None:
            return True
        if live.mtime_ns == self.mtime_ns and live.size_bytes == self.size_bytes:
            return False
        return live.content_hash != self.content_hash


class SourceSnapshot(BaseModel):
    """Snapshot of every included file in a source tree."""

    files: dict[str, FileSnapshot] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def capture(cls, root: Path, excludes: ExcludePatterns | None = None) -> SourceSnapshot:
        """Walk and hash a tree."""
        files = {}
        for rel in walk_files(root, excludes or ExcludePatterns.defaults()):
            snap = FileSnapshot.capture(root, rel)
            if snap is not None:
                files[rel] = snap
        return cls(files=files)

    def get(self, path: str) -> FileSnapshot | None:
        return self.files.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self.files

    def __len__(self) -> int:
        return len(self.files)


def walk_files(root: Path, excludes: ExcludePatterns) -> Iterator[str]:
    """Yield relative posix paths of regular files, honoring excludes.

    Symlinks are skipped; they are neither copied nor snapshotted.
    """
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if not excludes.is_excluded(d, is_dir=True) and not (current / d).is_symlink()
        )
        for name in sorted(filenames):
            full = current / name
            if excludes.is_excluded(name, is_dir=False) or full.is_symlink():
                continue
            yield full.relative_to(root).as_posix()


__all__ = ["FileSnapshot", "SourceSnapshot", "walk_files"]

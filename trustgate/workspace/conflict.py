"""Detect source changes made after an overlay was created.

At apply time the live source is re-snapshotted for every path a draft
touches and compared with the snapshot taken at workspace creation. A path
that moved underneath the staged work is a conflict, unless the live file
already holds the staged result (both sides converged) or both sides
deleted it. Detection never modifies anything.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol

from pydantic import BaseModel

from ..draft.models import Artifact, ChangeKind, Disposition, DraftPackage
from .snapshot import FileSnapshot, SourceSnapshot

logger = logging.getLogger("trustgate.workspace")


class ConflictKind(str, Enum):
    MODIFIED_IN_SOURCE = "modified_in_source"
    DELETED_IN_SOURCE = "deleted_in_source"
    CREATED_IN_SOURCE = "created_in_source"


class ConflictResolution(str, Enum):
    """What apply does when conflicts are found."""

    ABORT = "abort"
    FORCE_OVERWRITE = "force_overwrite"
    MERGE = "merge"


class ConflictRecord(BaseModel):
    path: str
    resource_uri: str
    kind: ConflictKind
    snapshot_hash: str | None = None
    live_hash: str | None = None
    snapshot_mtime_ns: int | None = None
    live_mtime_ns: int | None = None
    description: str = ""


class ConflictDetector:
    """Compares the live source with a workspace's creation snapshot."""

    def __init__(self, source_root: Path | str, snapshot: SourceSnapshot):
        self.source_root = Path(source_root)
        self.snapshot = snapshot

    def check(
        self,
        draft: DraftPackage,
        only_approved: bool = False,
        uris: Iterable[str] | None = None,
    ) -> list[ConflictRecord]:
        """Return conflicts for the draft's artifacts, in artifact order.

        Args:
            draft: Draft whose artifacts to check
            only_approved: Only check artifacts with an approved disposition
            uris: Only check these artifact URIs
        """
        wanted = set(uris) if uris is not None else None
        conflicts = []
        for artifact in draft.artifacts:
            if only_approved and artifact.disposition != Disposition.APPROVED:
                continue
            if wanted is not None and artifact.resource_uri not in wanted:
                continue
            record = self.check_artifact(artifact)
            if record is not None:
                conflicts.append(record)

        if conflicts:
            logger.warning(f"Draft {draft.draft_id}: {len(conflicts)} source conflicts")
        return conflicts

    def check_artifact(self, artifact: Artifact) -> ConflictRecord | None:
        path = artifact.path
        base = self.snapshot.get(path)
        live = FileSnapshot.capture(self.source_root, path)

        def record(kind: ConflictKind, description: str) -> ConflictRecord:
            return ConflictRecord(
                path=path,
                resource_uri=artifact.resource_uri,
                kind=kind,
                snapshot_hash=base.content_hash if base else None,
                live_hash=live.content_hash if live else None,
                snapshot_mtime_ns=base.mtime_ns if base else None,
                live_mtime_ns=live.mtime_ns if live else None,
                description=description,
            )

        if base is None:
            if live is None or live.content_hash == artifact.content_hash:
                return None
            return record(ConflictKind.CREATED_IN_SOURCE, f"{path} was created in the source after the snapshot")

        if not base.differs_from(live):
            return None

        if live is None:
            if artifact.change_kind == ChangeKind.DELETED:
                return None
            return record(ConflictKind.DELETED_IN_SOURCE, f"{path} was deleted in the source after the snapshot")

        if artifact.content_hash is not None and live.content_hash == artifact.content_hash:
            return None
        return record(ConflictKind.MODIFIED_IN_SOURCE, f"{path} was modified in the source after the snapshot")


# -----------------------------------------------------------------------------
# Merging
# -----------------------------------------------------------------------------


class MergeResult(BaseModel):
    clean: bool
    merged: bytes | None = None
    message: str = ""


class MergeDriver(Protocol):
    """Three-way merges staged content with live source content."""

    def merge(self, path: str, base: bytes, staged: bytes, live: bytes) -> MergeResult: ...


class GitMergeFileDriver:
    """Merges with ``git merge-file``; unresolved hunks are reported, never guessed."""

    def __init__(self, git: str = "git", timeout: float = 30.0):
        self.git = git
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.git) is not None

    def merge(self, path: str, base: bytes, staged: bytes, live: bytes) -> MergeResult:
        if not self.available():
            return MergeResult(clean=False, message="git is not available")

        with tempfile.TemporaryDirectory(prefix="trustgate-merge-") as tmp:
            tmp_dir = Path(tmp)
            files = {"staged": staged, "base": base, "live": live}
            for name, data in files.items():
                (tmp_dir / name).write_bytes(data)
            try:
                proc = subprocess.run(
                    [self.git, "merge-file", "-p", "staged", "base", "live"],
                    cwd=tmp_dir,
                    capture_output=True,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"git merge-file failed for {path}: {e}")
                return MergeResult(clean=False, message=str(e))

        if proc.returncode == 0:
            logger.debug(f"Clean merge for {path}")
            return MergeResult(clean=True, merged=proc.stdout)
        if proc.returncode > 0:
            return MergeResult(clean=False, message=f"{proc.returncode} conflicting hunks")
        return MergeResult(clean=False, message=proc.stderr.decode("utf-8", errors="replace").strip())


__all__ = [
    "ConflictDetector",
    "ConflictKind",
    "ConflictRecord",
    "ConflictResolution",
    "GitMergeFileDriver",
    "MergeDriver",
    "MergeResult",
]

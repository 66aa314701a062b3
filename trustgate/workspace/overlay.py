"""Overlay workspaces: isolated copies of a source tree.

Layout under the staging root::

    <staging_root>/<workspace_id>/
        workspace.json   # record + source snapshot (outside the overlay)
        tree/            # the overlay the agent works in
        baseline/        # pristine copies, when retained

The snapshot is captured from the same bytes that were copied into the
overlay, so it describes exactly what the agent started from.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, Field, ValidationError

from ..audit.hashing import hash_bytes
from ..audit.log import AuditEventType, AuditLog
from ..exceptions import WorkspaceError
from .excludes import ExcludePatterns
from .snapshot import FileSnapshot, SourceSnapshot, walk_files

logger = logging.getLogger("trustgate.workspace")

RECORD_FILE = "workspace.json"
TREE_DIR = "tree"
BASELINE_DIR = "baseline"


class WorkspaceRecord(BaseModel):
    """Persisted description of an overlay workspace."""

    workspace_id: str
    source_root: Path
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    retain_baseline: bool = False
    exclude_patterns: list[str] = Field(default_factory=list)
    snapshot: SourceSnapshot = Field(default_factory=SourceSnapshot)


def _safe_relative(relative_path: str) -> str:
    """Reject absolute paths and parent segments."""
    rel = PurePosixPath(relative_path)
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        raise WorkspaceError("Path escapes the workspace", relative_path)
    return rel.as_posix()


class OverlayWorkspace:
    """An isolated copy of a source tree plus the snapshot it started from."""

    def __init__(self, record: WorkspaceRecord, staging_root: Path):
        self.record = record
        self.staging_root = Path(staging_root)
        self.home = self.staging_root / record.workspace_id
        self.excludes = ExcludePatterns.from_lines(record.exclude_patterns)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        source_root: Path | str,
        staging_root: Path | str,
        workspace_id: str | None = None,
        excludes: ExcludePatterns | None = None,
        retain_baseline: bool = False,
    ) -> OverlayWorkspace:
        """Copy ``source_root`` into a new overlay and snapshot it in one pass.

        Raises:
            WorkspaceError: If the source is missing or the workspace exists
        """
        source_root = Path(source_root).resolve()
        staging_root = Path(staging_root).resolve()
        if not source_root.is_dir():
            raise WorkspaceError("Source root is not a directory", str(source_root))
        excludes = excludes if excludes is not None else ExcludePatterns.load(source_root)
        if staging_root.is_relative_to(source_root):
            # allowed only when the copy walk would skip it, e.g. .trustgate/staging
            parts = staging_root.relative_to(source_root).parts
            if not parts or not excludes.is_excluded(parts[0], is_dir=True):
                raise WorkspaceError("Staging root must not be inside the source tree", str(staging_root))

        workspace_id = workspace_id or uuid.uuid4().hex[:12]
        home = staging_root / workspace_id
        if home.exists():
            raise WorkspaceError("Workspace already exists", str(home))

        tree = home / TREE_DIR
        baseline = home / BASELINE_DIR
        files: dict[str, FileSnapshot] = {}
        try:
            tree.mkdir(parents=True)
            for rel in walk_files(source_root, excludes):
                src = source_root / rel
                st = src.stat()
                data = src.read_bytes()
                targets = [tree / rel] + ([baseline / rel] if retain_baseline else [])
                for target in targets:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(data)
                    shutil.copystat(src, target)
                files[rel] = FileSnapshot(
                    path=rel,
                    mtime_ns=st.st_mtime_ns,
                    content_hash=hash_bytes(data),
                    size_bytes=len(data),
                )
        except OSError as e:
            shutil.rmtree(home, ignore_errors=True)
            raise WorkspaceError(f"Failed to copy source tree: {e}", str(source_root)) from e

        record = WorkspaceRecord(
            workspace_id=workspace_id,
            source_root=source_root,
            retain_baseline=retain_baseline,
            exclude_patterns=excludes.to_lines(),
            snapshot=SourceSnapshot(files=files),
        )
        workspace = cls(record, staging_root)
        workspace.save()
        logger.info(f"Workspace {workspace_id} created from {source_root} ({len(files)} files)")
        return workspace

    @classmethod
    def open(cls, workspace_id: str, staging_root: Path | str) -> OverlayWorkspace:
        """Reopen a workspace from its persisted record.

        Raises:
            WorkspaceError: If the record is missing or unreadable
        """
        staging_root = Path(staging_root).resolve()
        record_path = staging_root / workspace_id / RECORD_FILE
        try:
            record = WorkspaceRecord.model_validate_json(record_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise WorkspaceError("Workspace not found", str(record_path)) from e
        except (OSError, ValidationError) as e:
            raise WorkspaceError(f"Unreadable workspace record: {e}", str(record_path)) from e
        return cls(record, staging_root)

    def save(self) -> None:
        path = self.home / RECORD_FILE
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(self.record.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def workspace_id(self) -> str:
        return self.record.workspace_id

    @property
    def source_root(self) -> Path:
        return self.record.source_root

    @property
    def snapshot(self) -> SourceSnapshot:
        return self.record.snapshot

    @property
    def root(self) -> Path:
        """The overlay directory the agent works in."""
        return self.home / TREE_DIR

    @property
    def baseline_dir(self) -> Path | None:
        return self.home / BASELINE_DIR if self.record.retain_baseline else None

    def staging_path(self, relative_path: str) -> Path:
        return self.root / _safe_relative(relative_path)

    def source_path(self, relative_path: str) -> Path:
        return self.source_root / _safe_relative(relative_path)

    def baseline_path(self, relative_path: str) -> Path | None:
        if self.baseline_dir is None:
            return None
        path = self.baseline_dir / _safe_relative(relative_path)
        return path if path.is_file() else None

    def read_baseline(self, relative_path: str) -> bytes | None:
        path = self.baseline_path(relative_path)
        return path.read_bytes() if path is not None else None

    def list_files(self) -> list[str]:
        """Relative paths of every included file currently in the overlay."""
        return sorted(walk_files(self.root, self.excludes))

    def cleanup(self) -> None:
        """Remove the overlay, its baseline and its record."""
        if self.home.exists():
            shutil.rmtree(self.home)
            logger.info(f"Workspace {self.workspace_id} removed")


def create_workspace(
    source_root: Path | str,
    staging_root: Path | str,
    workspace_id: str | None = None,
    excludes: ExcludePatterns | None = None,
    retain_baseline: bool = False,
    audit_log: AuditLog | None = None,
) -> tuple[OverlayWorkspace, SourceSnapshot]:
    """Create an overlay workspace and return it with its source snapshot."""
    workspace = OverlayWorkspace.create(
        source_root,
        staging_root,
        workspace_id=workspace_id,
        excludes=excludes,
        retain_baseline=retain_baseline,
    )
    if audit_log is not None:
        audit_log.log_event(
            AuditEventType.WORKSPACE_CREATED,
            workspace_id=workspace.workspace_id,
            source_root=str(workspace.source_root),
            files=len(workspace.snapshot),
            retain_baseline=retain_baseline,
        )
    return workspace, workspace.snapshot


__all__ = ["OverlayWorkspace", "WorkspaceRecord", "create_workspace"]

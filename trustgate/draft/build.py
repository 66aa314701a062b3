"""Build a DraftPackage from an overlay workspace.

The overlay is compared against the snapshot taken when it was created.
Every added, modified or deleted file becomes an Artifact, sorted by path.
Building is read-only: running it twice on an unchanged overlay yields the
same artifacts and diffs.
"""

from __future__ import annotations

import difflib
import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from ..audit.hashing import canonical_json, hash_bytes, hash_str
from ..audit.log import AuditEventType, AuditLog
from ..uri import fs_uri
from ..workspace.overlay import OverlayWorkspace
from ..workspace.snapshot import FileSnapshot, SourceSnapshot
from .models import (
    Artifact,
    BinarySummary,
    ChangeDependency,
    ChangeKind,
    CreateFile,
    DeleteFile,
    DependencyKind,
    DraftPackage,
    UnifiedDiff,
)

logger = logging.getLogger("trustgate.draft")

BINARY_SNIFF_BYTES = 8192
CHANGE_SUMMARY_PATH = Path(".trustgate") / "change_summary.json"


# -----------------------------------------------------------------------------
# Agent change summary
# -----------------------------------------------------------------------------


class ChangeEntry(BaseModel):
    path: str
    rationale: str | None = None
    depends_on: list[str] = Field(default_factory=list)
    depended_by: list[str] = Field(default_factory=list)


class ChangeSummary(BaseModel):
    """Optional agent-written description of its changes.

    Read from ``.trustgate/change_summary.json`` inside the overlay. It is
    untrusted input: dependency edges are validated by the Supervisor.
    """

    summary: str = ""
    changes: list[ChangeEntry] = Field(default_factory=list)

    def entry_for(self, path: str) -> ChangeEntry | None:
        for entry in self.changes:
            if entry.path.removeprefix("./") == path:
                return entry
        return None


def load_change_summary(overlay_root: Path) -> ChangeSummary | None:
    """Read the agent's change summary; invalid files are logged and ignored."""
    path = Path(overlay_root) / CHANGE_SUMMARY_PATH
    if not path.is_file():
        return None
    try:
        return ChangeSummary.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Ignoring invalid change summary {path}: {e}")
        return None


def _to_uri(target: str) -> str:
    return target if "://" in target else fs_uri(target.removeprefix("./"))


def _dependencies(entry: ChangeEntry | None) -> list[ChangeDependency]:
    if entry is None:
        return []
    deps = [ChangeDependency(target_uri=_to_uri(t), kind=DependencyKind.DEPENDS_ON) for t in entry.depends_on]
    deps += [ChangeDependency(target_uri=_to_uri(t), kind=DependencyKind.DEPENDED_BY) for t in entry.depended_by]
    return deps


# -----------------------------------------------------------------------------
# Diffing
# -----------------------------------------------------------------------------


def is_binary(data: bytes) -> bool:
    """Binary if a NUL byte appears in the first 8 KiB."""
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


def diff_ref_for(diff: BaseModel) -> str:
    """Content-addressed reference for a diff body."""
    return "sha256:" + hash_str(canonical_json(diff.model_dump(mode="json")))


def _base_content(workspace: OverlayWorkspace, path: str, base: FileSnapshot) -> bytes | None:
    """Original bytes for a path: the baseline copy, else the live source if unchanged."""
    data = workspace.read_baseline(path)
    if data is not None:
        return data
    source = workspace.source_path(path)
    if source.is_file():
        live = source.read_bytes()
        if hash_bytes(live) == base.content_hash:
            return live
    return None


def unified_diff(path: str, old: bytes, new: bytes) -> str:
    old_lines = old.decode("utf-8", errors="replace").splitlines(keepends=True)
    new_lines = new.decode("utf-8", errors="replace").splitlines(keepends=True)
    return "".join(difflib.unified_diff(old_lines, new_lines, fromfile=f"a/{path}", tofile=f"b/{path}"))


# -----------------------------------------------------------------------------
# Build
# -----------------------------------------------------------------------------


def build_draft(
    workspace: OverlayWorkspace,
    snapshot: SourceSnapshot | None = None,
    summary: str | None = None,
    draft_id: str | None = None,
    audit_log: AuditLog | None = None,
) -> DraftPackage:
    """Diff the overlay against its snapshot and package the changes.

    Args:
        workspace: The overlay to read
        snapshot: Snapshot to diff against (defaults to the workspace's own)
        summary: Draft summary; falls back to the agent's change summary
        draft_id: Explicit draft id
        audit_log: Records a draft_built event when given

    Returns:
        DraftPackage in ``draft`` status with artifacts sorted by path
    """
    snapshot = snapshot or workspace.snapshot
    change_summary = load_change_summary(workspace.root)
    staged = set(workspace.list_files())

    artifacts: list[Artifact] = []
    diffs = {}

    for path in sorted(staged | set(snapshot.files)):
        base = snapshot.get(path)
        entry = change_summary.entry_for(path) if change_summary else None

        if path in staged:
            data = workspace.staging_path(path).read_bytes()
            new_hash = hash_bytes(data)
            if base is not None and base.content_hash == new_hash:
                continue
            binary = is_binary(data)
            if base is None:
                kind = ChangeKind.ADDED
                diff = CreateFile(
                    content=None if binary else data.decode("utf-8", errors="replace"),
                    size_bytes=len(data),
                    is_binary=binary,
                )
            else:
                kind = ChangeKind.MODIFIED
                old = _base_content(workspace, path, base)
                if old is not None and is_binary(old):
                    binary = True
                if binary or old is None:
                    diff = BinarySummary(
                        base_hash=base.content_hash,
                        new_hash=new_hash,
                        base_size_bytes=base.size_bytes,
                        new_size_bytes=len(data),
                    )
                else:
                    diff = UnifiedDiff(diff=unified_diff(path, old, data))
            size = len(data)
        else:
            kind = ChangeKind.DELETED
            new_hash = None
            size = None
            old = _base_content(workspace, path, base)
            binary = old is not None and is_binary(old)
            diff = DeleteFile(size_bytes=base.size_bytes)

        ref = diff_ref_for(diff)
        diffs[ref] = diff
        artifacts.append(
            Artifact(
                resource_uri=fs_uri(path),
                change_kind=kind,
                diff_ref=ref,
                content_hash=new_hash,
                base_hash=base.content_hash if base else None,
                size_bytes=size,
                base_size_bytes=base.size_bytes if base else None,
                is_binary=binary,
                rationale=entry.rationale if entry else None,
                dependencies=_dependencies(entry),
            )
        )

    if summary is None:
        summary = change_summary.summary if change_summary else ""

    kwargs = {"draft_id": draft_id} if draft_id else {}
    draft = DraftPackage(
        workspace_id=workspace.workspace_id,
        source_root=str(workspace.source_root),
        summary=summary,
        artifacts=artifacts,
        diffs=diffs,
        **kwargs,
    )
    logger.info(f"Draft {draft.draft_id} built from workspace {workspace.workspace_id}: {len(artifacts)} artifacts")

    if audit_log is not None:
        audit_log.log_event(
            AuditEventType.DRAFT_BUILT,
            draft_id=draft.draft_id,
            workspace_id=workspace.workspace_id,
            artifacts=[{"uri": a.resource_uri, "change": a.change_kind.value, "hash": a.content_hash} for a in artifacts],
        )
    return draft


__all__ = [
    "BINARY_SNIFF_BYTES",
    "CHANGE_SUMMARY_PATH",
    "ChangeEntry",
    "ChangeSummary",
    "build_draft",
    "diff_ref_for",
    "is_binary",
    "load_change_summary",
    "unified_diff",
]

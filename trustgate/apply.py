"""Selective apply of reviewed drafts back to the source tree.

Only artifacts with an approved disposition are copied. Before anything is
written the draft's dependency graph is validated and the live source is
checked for conflicts; either can abort the attempt. Copies then happen one
artifact at a time, and a failure part-way leaves the already-copied
artifacts in place, flagged ``applied``, so a later attempt or a manual
reconciliation can finish the job. Every attempt is audited.
"""

from __future__ import annotations

import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from .audit.hashing import hash_bytes
from .audit.log import AuditLog
from .draft.models import Artifact, ChangeKind, Disposition, DraftPackage, DraftStatus
from .draft.selection import Selection, apply_selection
from .draft.store import DraftStore
from .supervisor import Supervisor, SupervisorWarning, blocking_warnings
from .uri import fs_uri
from .workspace.conflict import (
    ConflictDetector,
    ConflictKind,
    ConflictRecord,
    ConflictResolution,
    MergeDriver,
)
from .workspace.overlay import OverlayWorkspace
from .workspace.snapshot import FileSnapshot

logger = logging.getLogger("trustgate.draft")


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    PARTIALLY_APPLIED = "partially_applied"
    ABORTED = "aborted"


class ApplyFailure(BaseModel):
    resource_uri: str
    error: str


class ApplyResult(BaseModel):
    """What an apply attempt did."""

    draft_id: str
    outcome: ApplyOutcome
    applied: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    merged: list[str] = Field(default_factory=list)
    conflicts: list[ConflictRecord] = Field(default_factory=list)
    warnings: list[SupervisorWarning] = Field(default_factory=list)
    failures: list[ApplyFailure] = Field(default_factory=list)
    dispositions: dict[str, Disposition] = Field(default_factory=dict)
    resolution: ConflictResolution = ConflictResolution.ABORT
    abort_reason: str | None = None

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def succeeded(self) -> bool:
        return self.outcome == ApplyOutcome.APPLIED


# -----------------------------------------------------------------------------
# Conflict resolution
# -----------------------------------------------------------------------------


def _merge_conflicts(
    conflicts: list[ConflictRecord],
    draft: DraftPackage,
    workspace: OverlayWorkspace,
    merge_driver: MergeDriver | None,
) -> tuple[dict[str, bytes], list[ConflictRecord]]:
    """Try to merge each conflict; return merged content and what is left."""
    merged: dict[str, bytes] = {}
    unresolved = []
    for conflict in conflicts:
        artifact = draft.artifact(conflict.resource_uri)
        reason = None
        if merge_driver is None:
            reason = "no merge driver configured"
        elif conflict.kind != ConflictKind.MODIFIED_IN_SOURCE or artifact.change_kind != ChangeKind.MODIFIED:
            reason = f"cannot merge a {conflict.kind.value} conflict"
        elif artifact.is_binary:
            reason = "binary content cannot be merged"
        else:
            base = workspace.read_baseline(conflict.path)
            if base is None:
                reason = "no baseline copy retained"
            else:
                result = merge_driver.merge(
                    conflict.path,
                    base,
                    workspace.staging_path(conflict.path).read_bytes(),
                    workspace.source_path(conflict.path).read_bytes(),
                )
                if result.clean and result.merged is not None:
                    merged[conflict.path] = result.merged
                    continue
                reason = result.message or "merge left conflicts"

        logger.info(f"Unresolved conflict on {conflict.path}: {reason}")
        unresolved.append(conflict.model_copy(update={"description": f"{conflict.description}; {reason}"}))
    return merged, unresolved


# -----------------------------------------------------------------------------
# Copy-back
# -----------------------------------------------------------------------------


def _copy_artifact(artifact: Artifact, workspace: OverlayWorkspace, content: bytes | None) -> None:
    """Write one artifact into the source tree (raises OSError)."""
    target = workspace.source_path(artifact.path)
    if artifact.change_kind == ChangeKind.DELETED:
        target.unlink(missing_ok=True)
        return

    staged = workspace.staging_path(artifact.path)
    if content is None:
        content = staged.read_bytes()
        if hash_bytes(content) != artifact.content_hash:
            raise OSError(f"staged content of {artifact.path} changed after the draft was built")

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.trustgate-tmp")
    tmp.write_bytes(content)
    shutil.copymode(staged, tmp)
    os.replace(tmp, target)


def apply_draft(
    draft: DraftPackage,
    workspace: OverlayWorkspace,
    selection: Selection | None = None,
    audit_log: AuditLog | None = None,
    resolution: ConflictResolution = ConflictResolution.ABORT,
    acknowledged_warnings: Iterable[str] = (),
    override_all_warnings: bool = False,
    merge_driver: MergeDriver | None = None,
    store: DraftStore | None = None,
    actor: str | None = None,
) -> ApplyResult:
    """Apply a draft's approved artifacts to the source tree.

    Args:
        draft: An approved draft
        workspace: The overlay the draft was built from
        selection: Dispositions to set before applying
        audit_log: Receives the apply attempt and any status change
        resolution: What to do when the source changed underneath the overlay
        acknowledged_warnings: Supervisor warning codes the reviewer accepted
        override_all_warnings: Accept every supervisor warning
        merge_driver: Used with ``ConflictResolution.MERGE``
        store: Persists the updated draft
        actor: Who requested the apply

    Returns:
        ApplyResult; conflicts, warnings and copy failures are reported here

    Raises:
        AuditError: If the attempt cannot be recorded
    """
    resolution = ConflictResolution(resolution)
    result = ApplyResult(draft_id=draft.draft_id, outcome=ApplyOutcome.ABORTED, resolution=resolution)

    def finish(abort_reason: str | None = None) -> ApplyResult:
        result.abort_reason = abort_reason
        result.dispositions = {a.resource_uri: a.disposition for a in draft.artifacts}
        if abort_reason:
            logger.warning(f"Apply of draft {draft.draft_id} aborted: {abort_reason}")
        # persist applied flags before the audit append can fail
        if store is not None:
            store.save(draft)
        if audit_log is not None:
            audit_log.log_apply_attempt(
                draft.draft_id,
                result.outcome.value,
                actor=actor,
                resolution=resolution.value,
                applied=result.applied,
                skipped=result.skipped,
                dispositions={uri: d.value for uri, d in result.dispositions.items()},
                merged=result.merged,
                conflicts=[c.model_dump(mode="json") for c in result.conflicts],
                warnings=[w.model_dump(mode="json") for w in result.warnings],
                failures=[f.model_dump() for f in result.failures],
                abort_reason=abort_reason,
            )
        return result

    if draft.status != DraftStatus.APPROVED:
        return finish(f"draft status is '{draft.status.value}', expected 'approved'")

    if selection is not None and not selection.is_empty():
        apply_selection(draft, selection, audit_log, actor)

    approved = [a for a in draft.artifacts if a.disposition == Disposition.APPROVED and not a.applied]
    result.skipped = [a.resource_uri for a in draft.artifacts if a.disposition != Disposition.APPROVED]
    if not approved:
        return finish("no approved artifacts to apply")

    result.warnings = Supervisor().validate(draft)
    blocking = blocking_warnings(result.warnings, acknowledged_warnings, override_all_warnings)
    if blocking:
        return finish("unacknowledged dependency warnings: " + ", ".join(w.code for w in blocking))

    detector = ConflictDetector(workspace.source_root, workspace.snapshot)
    result.conflicts = detector.check(draft, uris=[a.resource_uri for a in approved])
    merged: dict[str, bytes] = {}
    if result.conflicts:
        if resolution == ConflictResolution.ABORT:
            return finish(f"{len(result.conflicts)} paths changed in the source since the workspace was created")
        if resolution == ConflictResolution.MERGE:
            merged, unresolved = _merge_conflicts(result.conflicts, draft, workspace, merge_driver)
            result.merged = sorted(fs_uri(p) for p in merged)
            if unresolved:
                result.conflicts = unresolved
                return finish(f"{len(unresolved)} conflicts could not be merged")
        else:
            logger.warning(f"Overwriting {len(result.conflicts)} conflicting paths in {workspace.source_root}")

    for artifact in approved:
        try:
            _copy_artifact(artifact, workspace, merged.get(artifact.path))
        except OSError as e:
            logger.error(f"Failed to apply {artifact.resource_uri}: {e}")
            result.failures.append(ApplyFailure(resource_uri=artifact.resource_uri, error=str(e)))
            continue
        artifact.applied = True
        result.applied.append(artifact.resource_uri)

    all_done = all(a.applied for a in draft.artifacts if a.disposition == Disposition.APPROVED)
    if not result.failures and all_done:
        result.outcome = ApplyOutcome.APPLIED
        if store is not None:
            store.mark_applied(draft)
        else:
            change = draft.mark_applied()
            if audit_log is not None:
                audit_log.log_status_change(draft.draft_id, change.from_status.value, change.to_status.value, actor)
        logger.info(f"Draft {draft.draft_id} applied ({result.applied_count} artifacts)")
        return finish()

    if result.applied:
        result.outcome = ApplyOutcome.PARTIALLY_APPLIED
        logger.warning(
            f"Draft {draft.draft_id} partially applied: {result.applied_count} applied, "
            f"{len(result.failures)} failed"
        )
        return finish()
    return finish("no artifact could be copied")


# -----------------------------------------------------------------------------
# Reconciliation
# -----------------------------------------------------------------------------


class ReconcileReport(BaseModel):
    """Mismatches between ``applied`` flags and the live source."""

    draft_id: str
    applied_but_unmarked: list[str] = Field(default_factory=list)
    marked_but_missing: list[str] = Field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (self.applied_but_unmarked or self.marked_but_missing)


def _in_source(artifact: Artifact, source_root: Path) -> bool:
    live = FileSnapshot.capture(source_root, artifact.path)
    if artifact.change_kind == ChangeKind.DELETED:
        return live is None
    return live is not None and live.content_hash == artifact.content_hash


def reconcile(draft: DraftPackage, workspace: OverlayWorkspace) -> ReconcileReport:
    """Compare approved artifacts' ``applied`` flags against the source tree."""
    report = ReconcileReport(draft_id=draft.draft_id)
    for artifact in draft.artifacts:
        if artifact.disposition != Disposition.APPROVED and not artifact.applied:
            continue
        present = _in_source(artifact, workspace.source_root)
        if present and not artifact.applied:
            report.applied_but_unmarked.append(artifact.resource_uri)
        elif artifact.applied and not present:
            report.marked_but_missing.append(artifact.resource_uri)
    return report


__all__ = [
    "ApplyFailure",
    "ApplyOutcome",
    "ApplyResult",
    "ReconcileReport",
    "apply_draft",
    "reconcile",
]

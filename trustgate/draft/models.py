"""Draft package models.

A DraftPackage is the unit of review: the ordered list of changes an agent
made in its overlay, each carrying a disposition a human sets, plus the
package-level status that moves through the review lifecycle.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import DraftError, DraftStateError
from ..uri import path_from_uri


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class Disposition(str, Enum):
    """Per-artifact review decision."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISCUSS = "discuss"


class DependencyKind(str, Enum):
    DEPENDS_ON = "depends_on"
    DEPENDED_BY = "depended_by"


class DraftStatus(str, Enum):
    """Draft lifecycle status."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    DENIED = "denied"
    APPLIED = "applied"
    SUPERSEDED = "superseded"


# Legal status transitions. Applied and superseded drafts are history.
TRANSITIONS: dict[DraftStatus, frozenset[DraftStatus]] = {
    DraftStatus.DRAFT: frozenset({DraftStatus.PENDING_REVIEW, DraftStatus.SUPERSEDED}),
    DraftStatus.PENDING_REVIEW: frozenset({DraftStatus.APPROVED, DraftStatus.DENIED, DraftStatus.SUPERSEDED}),
    DraftStatus.APPROVED: frozenset({DraftStatus.APPLIED, DraftStatus.SUPERSEDED}),
    DraftStatus.DENIED: frozenset({DraftStatus.SUPERSEDED}),
    DraftStatus.APPLIED: frozenset(),
    DraftStatus.SUPERSEDED: frozenset(),
}


class ChangeDependency(BaseModel):
    """An agent-declared edge from one artifact to another."""

    model_config = ConfigDict(frozen=True)

    target_uri: str
    kind: DependencyKind = DependencyKind.DEPENDS_ON


class Artifact(BaseModel):
    """One changed resource in a draft.

    Attributes:
        resource_uri: ``fs://workspace/<path>`` of the changed file
        change_kind: added, modified or deleted
        diff_ref: Content-addressed key into ``DraftPackage.diffs``
        content_hash: sha256 of the new content (None when deleted)
        base_hash: sha256 from the source snapshot (None when added)
        size_bytes: Size of the new content
        base_size_bytes: Size recorded in the snapshot
        is_binary: Content was detected as binary
        rationale: Agent-supplied explanation
        dependencies: Agent-declared dependency edges
        disposition: Reviewer decision
        applied: Content has been copied back to the source
    """

    resource_uri: str
    change_kind: ChangeKind
    diff_ref: str
    content_hash: str | None = None
    base_hash: str | None = None
    size_bytes: int | None = None
    base_size_bytes: int | None = None
    is_binary: bool = False
    rationale: str | None = None
    dependencies: list[ChangeDependency] = Field(default_factory=list)
    disposition: Disposition = Disposition.PENDING
    applied: bool = False

    @property
    def path(self) -> str:
        return path_from_uri(self.resource_uri)


# -----------------------------------------------------------------------------
# Diff content
# -----------------------------------------------------------------------------


class UnifiedDiff(BaseModel):
    type: Literal["unified_diff"] = "unified_diff"
    diff: str


class CreateFile(BaseModel):
    type: Literal["create_file"] = "create_file"
    content: str | None = Field(default=None, description="Text content; None for binary files")
    size_bytes: int
    is_binary: bool = False


class DeleteFile(BaseModel):
    type: Literal["delete_file"] = "delete_file"
    size_bytes: int | None = None


class BinarySummary(BaseModel):
    type: Literal["binary_summary"] = "binary_summary"
    base_hash: str | None = None
    new_hash: str | None = None
    base_size_bytes: int | None = None
    new_size_bytes: int | None = None


DiffContent = Annotated[
    Union[UnifiedDiff, CreateFile, DeleteFile, BinarySummary],
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Draft package
# -----------------------------------------------------------------------------


class StatusChange(BaseModel):
    from_status: DraftStatus
    to_status: DraftStatus
    at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    actor: str | None = None
    reason: str | None = None


class DraftPackage(BaseModel):
    """Ordered artifacts plus review state for one workspace's changes."""

    draft_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    workspace_id: str
    source_root: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    summary: str = ""
    artifacts: list[Artifact] = Field(default_factory=list)
    diffs: dict[str, DiffContent] = Field(default_factory=dict)
    status: DraftStatus = DraftStatus.DRAFT
    superseded_by: str | None = None
    reviewed_by: str | None = None
    decision_reason: str | None = None
    applied_at: datetime | None = None
    history: list[StatusChange] = Field(default_factory=list)

    # --- lookup ---

    def artifact(self, resource_uri: str) -> Artifact | None:
        for artifact in self.artifacts:
            if artifact.resource_uri == resource_uri:
                return artifact
        return None

    def diff_for(self, artifact: Artifact) -> UnifiedDiff | CreateFile | DeleteFile | BinarySummary | None:
        return self.diffs.get(artifact.diff_ref)

    def with_disposition(self, disposition: Disposition) -> list[Artifact]:
        return [a for a in self.artifacts if a.disposition == disposition]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    # --- lifecycle ---

    def can_transition_to(self, status: DraftStatus) -> bool:
        return status in TRANSITIONS[self.status]

    def transition_to(
        self,
        status: DraftStatus,
        actor: str | None = None,
        reason: str | None = None,
    ) -> StatusChange:
        """Move to a new status.

        Raises:
            DraftStateError: If the transition is not allowed
        """
        if not self.can_transition_to(status):
            raise DraftStateError(self.draft_id, self.status.value, DraftStatus(status).value)
        change = StatusChange(from_status=self.status, to_status=status, actor=actor, reason=reason)
        self.status = status
        self.history.append(change)
        return change

    def submit_for_review(self) -> StatusChange:
        return self.transition_to(DraftStatus.PENDING_REVIEW)

    def approve(self, reviewer: str, reason: str | None = None) -> StatusChange:
        change = self.transition_to(DraftStatus.APPROVED, reviewer, reason)
        self.reviewed_by = reviewer
        self.decision_reason = reason
        return change

    def deny(self, reviewer: str, reason: str) -> StatusChange:
        change = self.transition_to(DraftStatus.DENIED, reviewer, reason)
        self.reviewed_by = reviewer
        self.decision_reason = reason
        return change

    def supersede(self, by_draft_id: str) -> StatusChange:
        change = self.transition_to(DraftStatus.SUPERSEDED, reason=f"superseded by {by_draft_id}")
        self.superseded_by = by_draft_id
        return change

    def mark_applied(self) -> StatusChange:
        change = self.transition_to(DraftStatus.APPLIED)
        self.applied_at = change.at
        return change

    # --- dispositions ---

    def set_disposition(self, resource_uri: str, disposition: Disposition) -> Disposition:
        """Set one artifact's disposition and return the previous value.

        Raises:
            DraftStateError: If the draft is applied or superseded
            DraftError: If no artifact has that URI
        """
        if self.is_terminal:
            raise DraftStateError(self.draft_id, self.status.value, "set_disposition")
        artifact = self.artifact(resource_uri)
        if artifact is None:
            raise DraftError(f"Draft {self.draft_id} has no artifact {resource_uri}")
        previous = artifact.disposition
        artifact.disposition = Disposition(disposition)
        return previous


__all__ = [
    "TRANSITIONS",
    "Artifact",
    "BinarySummary",
    "ChangeDependency",
    "ChangeKind",
    "CreateFile",
    "DeleteFile",
    "DependencyKind",
    "DiffContent",
    "Disposition",
    "DraftPackage",
    "DraftStatus",
    "StatusChange",
    "UnifiedDiff",
]

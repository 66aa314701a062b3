"""Draft packages: the reviewable unit of agent changes."""

from .models import (
    TRANSITIONS,
    Artifact,
    BinarySummary,
    ChangeDependency,
    ChangeKind,
    CreateFile,
    DeleteFile,
    DependencyKind,
    DiffContent,
    Disposition,
    DraftPackage,
    DraftStatus,
    StatusChange,
    UnifiedDiff,
)
from .build import ChangeSummary, build_draft, is_binary, load_change_summary
from .selection import Selection, apply_selection, resolve_selection
from .store import DraftStore

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
    "ChangeSummary",
    "build_draft",
    "is_binary",
    "load_change_summary",
    "Selection",
    "apply_selection",
    "resolve_selection",
    "DraftStore",
]

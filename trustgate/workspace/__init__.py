"""Overlay workspaces and source conflict detection.

An agent never touches the real source tree. It works in an overlay copy
whose creation snapshot later tells the draft builder what changed and the
conflict detector whether the source moved in the meantime.
"""

from .excludes import DEFAULT_EXCLUDES, IGNORE_FILE, INFRA_DIRS, ExcludePatterns
from .snapshot import FileSnapshot, SourceSnapshot, walk_files
from .overlay import OverlayWorkspace, WorkspaceRecord, create_workspace
from .conflict import (
    ConflictDetector,
    ConflictKind,
    ConflictRecord,
    ConflictResolution,
    GitMergeFileDriver,
    MergeDriver,
    MergeResult,
)

__all__ = [
    "DEFAULT_EXCLUDES",
    "IGNORE_FILE",
    "INFRA_DIRS",
    "ExcludePatterns",
    "FileSnapshot",
    "SourceSnapshot",
    "walk_files",
    "OverlayWorkspace",
    "WorkspaceRecord",
    "create_workspace",
    "ConflictDetector",
    "ConflictKind",
    "ConflictRecord",
    "ConflictResolution",
    "GitMergeFileDriver",
    "MergeDriver",
    "MergeResult",
]

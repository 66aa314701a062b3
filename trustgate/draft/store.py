"""JSON-file persistence for draft packages.

One document per draft, ``<store_dir>/<draft_id>.json``, written atomically
via a temp file and rename.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from pydantic import ValidationError

from ..audit.log import AuditEventType, AuditLog
from ..exceptions import DraftError, DraftNotFoundError
from .models import DraftPackage, StatusChange

logger = logging.getLogger("trustgate.draft")

_DRAFT_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


class DraftStore:
    """Stores drafts and records their status changes in the audit log."""

    def __init__(self, store_dir: Path | str, audit_log: AuditLog | None = None):
        self.store_dir = Path(store_dir)
        self.audit_log = audit_log
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, draft_id: str) -> Path:
        if not _DRAFT_ID_RE.match(draft_id) or draft_id.startswith("."):
            raise DraftError(f"Invalid draft id: {draft_id!r}")
        return self.store_dir / f"{draft_id}.json"

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, draft: DraftPackage) -> Path:
        path = self._path(draft.draft_id)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(draft.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)
        logger.debug(f"Draft {draft.draft_id} saved ({draft.status.value})")
        return path

    def load(self, draft_id: str) -> DraftPackage:
        """Load a draft.

        Raises:
            DraftNotFoundError: If no such draft is stored
            DraftError: If the stored document is unreadable
        """
        path = self._path(draft_id)
        try:
            return DraftPackage.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise DraftNotFoundError(draft_id) from e
        except ValidationError as e:
            raise DraftError(f"Corrupt draft document {path}: {e}") from e

    def exists(self, draft_id: str) -> bool:
        return self._path(draft_id).is_file()

    def list(self, workspace_id: str | None = None) -> list[DraftPackage]:
        """All stored drafts, oldest first, optionally for one workspace."""
        drafts = []
        for path in self.store_dir.glob("*.json"):
            draft = self.load(path.stem)
            if workspace_id is None or draft.workspace_id == workspace_id:
                drafts.append(draft)
        return sorted(drafts, key=lambda d: (d.created_at, d.draft_id))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def register(self, draft: DraftPackage) -> list[str]:
        """Store a new draft, superseding older open drafts of its workspace.

        Returns:
            Ids of the drafts that were superseded
        """
        superseded = []
        for previous in self.list(draft.workspace_id):
            if previous.draft_id == draft.draft_id or previous.is_terminal:
                continue
            previous.supersede(draft.draft_id)
            self.save(previous)
            superseded.append(previous.draft_id)
            logger.info(f"Draft {previous.draft_id} superseded by {draft.draft_id}")
            if self.audit_log is not None:
                self.audit_log.log_event(
                    AuditEventType.DRAFT_SUPERSEDED,
                    draft_id=previous.draft_id,
                    superseded_by=draft.draft_id,
                    workspace_id=draft.workspace_id,
                )
        self.save(draft)
        return superseded

    def _record(self, draft: DraftPackage, change: StatusChange) -> StatusChange:
        self.save(draft)
        if self.audit_log is not None:
            self.audit_log.log_status_change(
                draft.draft_id,
                change.from_status.value,
                change.to_status.value,
                actor=change.actor,
                reason=change.reason,
            )
        return change

    def submit(self, draft: DraftPackage) -> StatusChange:
        return self._record(draft, draft.submit_for_review())

    def approve(self, draft: DraftPackage, reviewer: str, reason: str | None = None) -> StatusChange:
        return self._record(draft, draft.approve(reviewer, reason))

    def deny(self, draft: DraftPackage, reviewer: str, reason: str) -> StatusChange:
        return self._record(draft, draft.deny(reviewer, reason))

    def mark_applied(self, draft: DraftPackage) -> StatusChange:
        return self._record(draft, draft.mark_applied())


__all__ = ["DraftStore"]

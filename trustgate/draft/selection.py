"""Reviewer selections: which artifacts to approve, reject or discuss.

Each group holds entries that are artifact URIs, workspace-relative paths,
glob patterns, or one of two keywords:

- ``all`` matches every artifact
- ``rest`` matches artifacts still pending when its group is applied

Groups are applied in the order approve, reject, discuss, so a later group
overrides an earlier one. Malformed patterns match nothing.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from ..audit.log import AuditEventType, AuditLog
from ..uri import matches_uri, resolve_pattern
from .models import Disposition, DraftPackage

logger = logging.getLogger("trustgate.draft")

ALL = "all"
REST = "rest"


class Selection(BaseModel):
    approve: list[str] = Field(default_factory=list)
    reject: list[str] = Field(default_factory=list)
    discuss: list[str] = Field(default_factory=list)

    @classmethod
    def approve_all(cls) -> Selection:
        return cls(approve=[ALL])

    def is_empty(self) -> bool:
        return not (self.approve or self.reject or self.discuss)

    def groups(self) -> list[tuple[Disposition, list[str]]]:
        return [
            (Disposition.APPROVED, self.approve),
            (Disposition.REJECTED, self.reject),
            (Disposition.DISCUSS, self.discuss),
        ]


def _entry_matches(entry: str, uri: str) -> bool:
    if entry == uri or resolve_pattern(entry) == uri:
        return True
    return matches_uri(entry, uri)


def resolve_selection(draft: DraftPackage, selection: Selection) -> dict[str, Disposition]:
    """Compute the dispositions a selection would produce, without mutating."""
    result = {a.resource_uri: a.disposition for a in draft.artifacts}

    for disposition, entries in selection.groups():
        explicit = [e for e in entries if e not in (ALL, REST)]
        targets: set[str] = set()
        if ALL in entries:
            targets.update(result)
        for entry in explicit:
            matched = [uri for uri in result if _entry_matches(entry, uri)]
            if not matched:
                logger.warning(f"Selection entry {entry!r} matches no artifact in draft {draft.draft_id}")
            targets.update(matched)
        for uri in targets:
            result[uri] = disposition
        if REST in entries:
            for uri, current in result.items():
                if current == Disposition.PENDING:
                    result[uri] = disposition

    return result


def apply_selection(
    draft: DraftPackage,
    selection: Selection,
    audit_log: AuditLog | None = None,
    actor: str | None = None,
) -> list[str]:
    """Set dispositions from a selection; returns URIs whose disposition changed.

    Raises:
        DraftStateError: If the draft is applied or superseded
    """
    changed = []
    for uri, disposition in resolve_selection(draft, selection).items():
        previous = draft.set_disposition(uri, disposition)
        if previous != disposition:
            changed.append(uri)
            if audit_log is not None:
                audit_log.log_event(
                    AuditEventType.DISPOSITION_CHANGED,
                    draft_id=draft.draft_id,
                    resource_uri=uri,
                    from_disposition=previous.value,
                    to_disposition=disposition.value,
                    actor=actor,
                )
    return changed


__all__ = ["ALL", "REST", "Selection", "apply_selection", "resolve_selection"]

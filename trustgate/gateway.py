"""Process-level entry point wiring the TrustGate components together.

A Gateway owns the audit log handle, the policy engine and the draft store
for one process. Open it once at startup and close it on shutdown:

    with Gateway.open() as gate:
        workspace, _ = gate.create_workspace("~/src/project")
        ...  # agent works in workspace.root
        draft = gate.build_draft(workspace)
        gate.submit(draft)
        gate.approve(draft, reviewer="alice")
        result = gate.apply(draft.draft_id, Selection(approve=["all"]))
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .apply import ApplyResult, ReconcileReport, apply_draft, reconcile
from .audit.log import AuditLog, AuditLogConfig, ChainVerification
from .config.settings import Settings, get_settings
from .draft.build import build_draft
from .draft.models import DraftPackage
from .draft.selection import Selection, apply_selection
from .draft.store import DraftStore
from .policy.engine import PolicyEngine
from .policy.loader import load_manifests_from_dir
from .policy.models import PolicyDecision, PolicyRequest
from .supervisor import Supervisor, SupervisorWarning
from .workspace.conflict import ConflictResolution, GitMergeFileDriver, MergeDriver
from .workspace.excludes import ExcludePatterns
from .workspace.overlay import OverlayWorkspace, create_workspace
from .workspace.snapshot import SourceSnapshot

logger = logging.getLogger("trustgate")


class Gateway:
    """Explicit handle on the audit log, policy engine and draft store."""

    def __init__(
        self,
        settings: Settings,
        audit_log: AuditLog,
        engine: PolicyEngine,
        store: DraftStore,
    ):
        self.settings = settings
        self.audit_log = audit_log
        self.engine = engine
        self.store = store
        self.supervisor = Supervisor()

    @classmethod
    def open(cls, settings: Settings | None = None) -> Gateway:
        """Open the audit log and build the engine and store from settings."""
        settings = settings or get_settings()
        audit_log = AuditLog(
            AuditLogConfig(
                log_path=settings.audit_log_path,
                redact_sensitive=settings.redact_audit,
                fsync=settings.fsync_audit,
            )
        )
        try:
            engine = PolicyEngine(audit_log=audit_log)
            if settings.manifest_dir is not None:
                for manifest in load_manifests_from_dir(settings.manifest_dir):
                    engine.load_manifest(manifest)
            store = DraftStore(settings.drafts_dir, audit_log=audit_log)
        except Exception:
            audit_log.close()
            raise
        logger.info(f"TrustGate gateway opened (home={settings.home_dir})")
        return cls(settings, audit_log, engine, store)

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def evaluate(self, request: PolicyRequest, now: datetime | None = None) -> PolicyDecision:
        return self.engine.evaluate(request, now=now)

    # -------------------------------------------------------------------------
    # Workspaces & drafts
    # -------------------------------------------------------------------------

    def create_workspace(
        self,
        source_root: Path | str,
        workspace_id: str | None = None,
        excludes: ExcludePatterns | None = None,
    ) -> tuple[OverlayWorkspace, SourceSnapshot]:
        return create_workspace(
            Path(source_root).expanduser(),
            self.settings.staging_root,
            workspace_id=workspace_id,
            excludes=excludes,
            retain_baseline=self.settings.retain_baseline,
            audit_log=self.audit_log,
        )

    def open_workspace(self, workspace_id: str) -> OverlayWorkspace:
        return OverlayWorkspace.open(workspace_id, self.settings.staging_root)

    def build_draft(self, workspace: OverlayWorkspace, summary: str | None = None) -> DraftPackage:
        """Build a draft and register it, superseding older open drafts."""
        draft = build_draft(workspace, summary=summary, audit_log=self.audit_log)
        self.store.register(draft)
        return draft

    def validate(self, draft: DraftPackage) -> list[SupervisorWarning]:
        return self.supervisor.validate(draft)

    def select(self, draft: DraftPackage, selection: Selection, actor: str | None = None) -> list[str]:
        changed = apply_selection(draft, selection, self.audit_log, actor)
        self.store.save(draft)
        return changed

    def submit(self, draft: DraftPackage) -> None:
        self.store.submit(draft)

    def approve(self, draft: DraftPackage, reviewer: str, reason: str | None = None) -> None:
        self.store.approve(draft, reviewer, reason)

    def deny(self, draft: DraftPackage, reviewer: str, reason: str) -> None:
        self.store.deny(draft, reviewer, reason)

    def apply(
        self,
        draft_id: str,
        selection: Selection | None = None,
        resolution: ConflictResolution | None = None,
        acknowledged_warnings: Iterable[str] = (),
        override_all_warnings: bool = False,
        merge_driver: MergeDriver | None = None,
        actor: str | None = None,
    ) -> ApplyResult:
        """Load a stored draft and apply it to its source tree."""
        draft = self.store.load(draft_id)
        workspace = self.open_workspace(draft.workspace_id)
        resolution = ConflictResolution(resolution or self.settings.conflict_resolution)
        if resolution == ConflictResolution.MERGE and merge_driver is None:
            merge_driver = GitMergeFileDriver()
        return apply_draft(
            draft,
            workspace,
            selection=selection,
            audit_log=self.audit_log,
            resolution=resolution,
            acknowledged_warnings=acknowledged_warnings,
            override_all_warnings=override_all_warnings,
            merge_driver=merge_driver,
            store=self.store,
            actor=actor,
        )

    def reconcile(self, draft_id: str) -> ReconcileReport:
        draft = self.store.load(draft_id)
        return reconcile(draft, self.open_workspace(draft.workspace_id))

    # -------------------------------------------------------------------------
    # Audit & lifecycle
    # -------------------------------------------------------------------------

    def verify_audit(self) -> ChainVerification:
        return self.audit_log.verify()

    def close(self) -> None:
        self.audit_log.close()
        logger.info("TrustGate gateway closed")

    def __enter__(self) -> Gateway:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_gateway(settings: Settings | None = None) -> Gateway:
    return Gateway.open(settings)


__all__ = ["Gateway", "open_gateway"]

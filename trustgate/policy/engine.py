"""Capability policy engine for TrustGate.

The PolicyEngine evaluates every attempted action against the agent's
CapabilityManifest. The default posture is deny: a request is only allowed
when a grant explicitly covers both its action and its target URI.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from ..audit.log import AuditEventType, AuditLog
from ..exceptions import PolicyError
from ..uri import has_path_traversal
from .loader import load_manifest_from_file
from .models import (
    CapabilityManifest,
    DecisionOutcome,
    EvaluationTrace,
    GrantVerdict,
    PolicyDecision,
    PolicyRequest,
)

logger = logging.getLogger("trustgate.policy")


class PolicyViolationError(PolicyError):
    """Raised by ``enforce`` when a request is not allowed outright."""

    def __init__(self, decision: PolicyDecision):
        self.decision = decision
        super().__init__(f"Policy {decision.outcome.value}: {decision.reason}")


class PolicyEngine:
    """Evaluates PolicyRequests against capability manifests.

    Evaluation order:
    1. Path traversal in the target URI denies immediately
    2. The agent must have a manifest
    3. The manifest must be inside its validity window
    4. Grants are checked in manifest order; the first match wins.
       Expired, not-yet-valid and exhausted grants are skipped but recorded
    5. No match denies
    6. A match on an escalation verb, or on a grant flagged
       ``require_approval``, requires human approval

    Every evaluation is written to the audit log with its full trace. A
    failed audit write propagates; an unrecorded decision is never returned.

    Usage:
        engine = PolicyEngine(audit_log=log)
        engine.load_manifest(manifest)
        decision = engine.evaluate(request)
        print(engine.explain_decision(decision))
    """

    def __init__(self, audit_log: AuditLog | None = None):
        self.audit_log = audit_log
        self._manifests: dict[str, CapabilityManifest] = {}
        self._usage: dict[tuple[str, int], int] = {}
        self._usage_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Manifests
    # -------------------------------------------------------------------------

    def load_manifest(self, manifest: CapabilityManifest) -> None:
        """Register a manifest for its agent, replacing any earlier one."""
        previous = self._manifests.get(manifest.agent_id)
        self._manifests[manifest.agent_id] = manifest
        if previous is not None and previous.manifest_id != manifest.manifest_id:
            self._clear_usage(previous.manifest_id)

        logger.info(
            f"Manifest loaded: {manifest.manifest_id} for agent {manifest.agent_id} "
            f"({len(manifest.grants)} grants)"
        )
        if self.audit_log is not None:
            self.audit_log.log_event(
                AuditEventType.MANIFEST_LOADED,
                manifest_id=manifest.manifest_id,
                agent_id=manifest.agent_id,
                grants=len(manifest.grants),
            )

    def load_manifest_file(self, path: Path | str) -> CapabilityManifest:
        manifest = load_manifest_from_file(path)
        self.load_manifest(manifest)
        return manifest

    def get_manifest(self, agent_id: str) -> CapabilityManifest | None:
        return self._manifests.get(agent_id)

    def unload_manifest(self, agent_id: str) -> None:
        manifest = self._manifests.pop(agent_id, None)
        if manifest is not None:
            self._clear_usage(manifest.manifest_id)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def usage(self, manifest_id: str, grant_index: int) -> int:
        """Number of matches consumed by a grant."""
        with self._usage_lock:
            return self._usage.get((manifest_id, grant_index), 0)

    def reset_usage(self) -> None:
        with self._usage_lock:
            self._usage.clear()

    def _clear_usage(self, manifest_id: str) -> None:
        with self._usage_lock:
            for key in [k for k in self._usage if k[0] == manifest_id]:
                del self._usage[key]

    def _consume(self, manifest_id: str, index: int, max_uses: int | None) -> bool:
        """Check and consume one use of a grant atomically."""
        key = (manifest_id, index)
        with self._usage_lock:
            used = self._usage.get(key, 0)
            if max_uses is not None and used >= max_uses:
                return False
            self._usage[key] = used + 1
            return True

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(
        self,
        request: PolicyRequest,
        manifest: CapabilityManifest | None = None,
        now: datetime | None = None,
    ) -> PolicyDecision:
        """Evaluate a request and record the decision in the audit log.

        Args:
            request: The attempted action
            manifest: Manifest to evaluate against. Defaults to the one loaded
                for ``request.agent_id``
            now: Evaluation instant (defaults to the current UTC time)

        Returns:
            PolicyDecision carrying the evaluation trace

        Raises:
            AuditError: If the decision cannot be recorded
        """
        decision = self._decide(request, manifest, now or datetime.now(UTC))
        logger.debug(
            f"Policy {decision.outcome.value} for {request.agent_id} "
            f"{request.action.label()} on {request.target_uri}: {decision.reason}"
        )
        if self.audit_log is not None:
            self.audit_log.log_policy_evaluation(
                request=request.model_dump(mode="json"),
                decision=decision.model_dump(mode="json"),
            )
        return decision

    def enforce(
        self,
        request: PolicyRequest,
        manifest: CapabilityManifest | None = None,
        now: datetime | None = None,
    ) -> PolicyDecision:
        """Evaluate and raise ``PolicyViolationError`` unless allowed."""
        decision = self.evaluate(request, manifest, now)
        if not decision.allowed:
            raise PolicyViolationError(decision)
        return decision

    def _decide(
        self,
        request: PolicyRequest,
        manifest: CapabilityManifest | None,
        now: datetime,
    ) -> PolicyDecision:
        trace = EvaluationTrace()

        if has_path_traversal(request.target_uri):
            trace.step("path_traversal", "traversal segment in target", terminal=True)
            return PolicyDecision.deny("Path traversal in target URI", trace)
        trace.step("path_traversal", "clean")

        if manifest is None:
            manifest = self._manifests.get(request.agent_id)
        if manifest is None:
            trace.step("manifest_lookup", "no manifest", terminal=True)
            return PolicyDecision.deny(f"No manifest for agent '{request.agent_id}'", trace)
        if manifest.agent_id != request.agent_id:
            trace.step("manifest_lookup", f"manifest belongs to '{manifest.agent_id}'", terminal=True)
            return PolicyDecision.deny(
                f"Manifest {manifest.manifest_id} was not issued to '{request.agent_id}'",
                trace,
                manifest_id=manifest.manifest_id,
            )
        trace.step("manifest_lookup", manifest.manifest_id)

        if not manifest.is_active(now):
            state = "not yet valid" if now < manifest.issued_at else "expired"
            trace.step("manifest_validity", state, terminal=True)
            return PolicyDecision.deny(
                f"Manifest {manifest.manifest_id} is {state}",
                trace,
                manifest_id=manifest.manifest_id,
            )
        trace.step("manifest_validity", "active")

        for index, grant in enumerate(manifest.grants):
            label = grant.label(index)

            if grant.expires_at is not None and now >= grant.expires_at:
                trace.grant(index, label, GrantVerdict.EXPIRED, f"expired at {grant.expires_at.isoformat()}")
                continue
            if grant.not_before is not None and now < grant.not_before:
                trace.grant(index, label, GrantVerdict.NOT_YET_VALID, f"valid from {grant.not_before.isoformat()}")
                continue
            if grant.action != request.action:
                trace.grant(index, label, GrantVerdict.ACTION_MISMATCH, grant.action.label())
                continue
            if not grant.matches_uri(request.target_uri):
                trace.grant(index, label, GrantVerdict.PATTERN_MISMATCH, grant.resource_pattern)
                continue
            if not self._consume(manifest.manifest_id, index, grant.max_uses):
                trace.grant(index, label, GrantVerdict.BUDGET_EXHAUSTED, f"max_uses={grant.max_uses}")
                continue

            trace.grant(index, label, GrantVerdict.MATCHED, grant.resource_pattern)
            return self._matched(request, manifest, index, trace)

        trace.step("grants", "no grant matched", terminal=True)
        return PolicyDecision.deny(
            f"No grant covers {request.action.label()} on {request.target_uri}",
            trace,
            manifest_id=manifest.manifest_id,
        )

    def _matched(
        self,
        request: PolicyRequest,
        manifest: CapabilityManifest,
        index: int,
        trace: EvaluationTrace,
    ) -> PolicyDecision:
        grant = manifest.grants[index]
        label = grant.label(index)
        common = {"matched_grant": grant, "matched_grant_index": index, "manifest_id": manifest.manifest_id}

        if request.action.verb in manifest.escalation_verbs:
            trace.step("escalation", f"verb '{request.action.verb}' requires approval", terminal=True)
            return PolicyDecision.require_approval(
                f"Granted by {label}; '{request.action.verb}' requires human approval",
                trace,
                **common,
            )
        if grant.require_approval:
            trace.step("escalation", f"{label} requires approval", terminal=True)
            return PolicyDecision.require_approval(f"Granted by {label}, which requires approval", trace, **common)

        trace.step("escalation", "none", terminal=True)
        return PolicyDecision.allow(f"Granted by {label}", trace, **common)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def explain_decision(self, decision: PolicyDecision) -> str:
        """Generate a human-readable explanation of a policy decision."""
        headline = {
            DecisionOutcome.ALLOW: "ALLOWED",
            DecisionOutcome.DENY: "DENIED",
            DecisionOutcome.REQUIRE_APPROVAL: "APPROVAL REQUIRED",
        }[decision.outcome]
        lines = [f"{headline}: {decision.reason}"]

        if decision.manifest_id:
            lines.append(f"Manifest: {decision.manifest_id}")
        for step in decision.trace.steps:
            marker = " (final)" if step.terminal else ""
            lines.append(f"  {step.check}: {step.outcome}{marker}")
        for g in decision.trace.grants_considered:
            detail = f" ({g.reason})" if g.reason else ""
            lines.append(f"  #{g.index} {g.label}: {g.verdict.value}{detail}")

        return "\n".join(lines)


__all__ = ["PolicyEngine", "PolicyViolationError"]

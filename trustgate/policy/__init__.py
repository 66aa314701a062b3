"""Capability policy for TrustGate.

Every action an agent attempts is evaluated against its CapabilityManifest.
Nothing is allowed unless a grant covers it, and some verbs always go to a
human for approval.

Key components:
- PolicyEngine: evaluates requests, tracks grant budgets, audits decisions
- CapabilityManifest / Grant: what an agent may do
- PolicyDecision / EvaluationTrace: the outcome and its reasoning

Usage:
    from trustgate.policy import PolicyEngine, PolicyRequest, ToolVerbAction

    engine = PolicyEngine(audit_log=log)
    engine.load_manifest_file("manifests/refactor-bot.yaml")
    decision = engine.evaluate(
        PolicyRequest(
            agent_id="refactor-bot",
            action=ToolVerbAction(tool="fs", verb="write"),
            target_uri="fs://workspace/src/main.py",
        )
    )
"""

from .engine import PolicyEngine, PolicyViolationError
from .loader import (
    load_manifest_from_file,
    load_manifests_from_dir,
    manifest_from_dict,
    save_manifest_to_file,
)
from .models import (
    DEFAULT_ESCALATION_VERBS,
    Action,
    CapabilityManifest,
    DecisionOutcome,
    EvaluationTrace,
    ExecAction,
    Grant,
    GrantEvaluation,
    GrantVerdict,
    PolicyDecision,
    PolicyRequest,
    ToolVerbAction,
    ToolVerbQualifierAction,
    TraceStep,
)

__all__ = [
    "PolicyEngine",
    "PolicyViolationError",
    "load_manifest_from_file",
    "load_manifests_from_dir",
    "manifest_from_dict",
    "save_manifest_to_file",
    "DEFAULT_ESCALATION_VERBS",
    "Action",
    "CapabilityManifest",
    "DecisionOutcome",
    "EvaluationTrace",
    "ExecAction",
    "Grant",
    "GrantEvaluation",
    "GrantVerdict",
    "PolicyDecision",
    "PolicyRequest",
    "ToolVerbAction",
    "ToolVerbQualifierAction",
    "TraceStep",
]

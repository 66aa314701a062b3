"""Policy models for TrustGate capability manifests.

This module defines:
- Action kinds: the closed set of things an agent can ask to do
- Grant / CapabilityManifest: what an agent is allowed to do
- PolicyRequest: a single attempted action
- PolicyDecision / EvaluationTrace: the outcome and how it was reached
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..exceptions import InvalidPatternError
from ..uri import compile_pattern

DEFAULT_ESCALATION_VERBS = ["apply", "commit", "send", "post"]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# -----------------------------------------------------------------------------
# Action kinds
# -----------------------------------------------------------------------------


class ToolVerbAction(BaseModel):
    """A verb on a tool, e.g. ``fs`` / ``write``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_verb"] = "tool_verb"
    tool: str = Field(..., min_length=1)
    verb: str = Field(..., min_length=1)

    def label(self) -> str:
        return f"{self.tool}.{self.verb}"


class ToolVerbQualifierAction(BaseModel):
    """A verb on a tool narrowed by a qualifier, e.g. ``git`` / ``push`` / ``main``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_verb_qualifier"] = "tool_verb_qualifier"
    tool: str = Field(..., min_length=1)
    verb: str = Field(..., min_length=1)
    qualifier: str = Field(..., min_length=1)

    def label(self) -> str:
        return f"{self.tool}.{self.verb}:{self.qualifier}"


class ExecAction(BaseModel):
    """A literal shell command."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["exec"] = "exec"
    command: str = Field(..., min_length=1)

    @property
    def verb(self) -> str:
        return "exec"

    def label(self) -> str:
        return f"exec:{self.command}"


Action = Annotated[
    Union[ToolVerbAction, ToolVerbQualifierAction, ExecAction],
    Field(discriminator="kind"),
]


# -----------------------------------------------------------------------------
# Grants & manifests
# -----------------------------------------------------------------------------


class Grant(BaseModel):
    """A single capability: an action on resources matching a pattern.

    Grants are immutable. Usage budgets are tracked by the engine, never on
    the grant itself.

    Attributes:
        grant_id: Optional stable identifier used in traces
        action: The exact action this grant permits
        resource_pattern: Scheme-scoped glob over resource URIs
        not_before: Grant is inactive before this instant
        expires_at: Grant is inactive from this instant on
        max_uses: Maximum number of matching evaluations
        require_approval: Matches always need human approval
    """

    model_config = ConfigDict(frozen=True)

    grant_id: str | None = None
    action: Action
    resource_pattern: str = Field(..., description="Glob pattern over resource URIs")
    not_before: datetime | None = None
    expires_at: datetime | None = None
    max_uses: int | None = Field(default=None, ge=0)
    require_approval: bool = False
    description: str = ""

    @field_validator("resource_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Compile the pattern so malformed ones fail at load time."""
        try:
            compile_pattern(v)
        except InvalidPatternError as e:
            raise ValueError(e.message) from e
        return v

    @field_validator("not_before", "expires_at")
    @classmethod
    def normalize_tz(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    def label(self, index: int) -> str:
        return self.grant_id or f"grant[{index}]"

    def matches_uri(self, uri: str) -> bool:
        return compile_pattern(self.resource_pattern).matches(uri)


class CapabilityManifest(BaseModel):
    """The complete, ordered set of grants issued to one agent.

    Anything not granted is denied. Grants are evaluated in order and the
    first match wins.
    """

    manifest_id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    grants: list[Grant] = Field(default_factory=list)
    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None
    escalation_verbs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ESCALATION_VERBS),
        description="Verbs that always require human approval when granted",
    )
    description: str = ""

    @field_validator("issued_at", "expires_at")
    @classmethod
    def normalize_tz(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_window(self) -> CapabilityManifest:
        if self.expires_at is not None and self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        return self

    def is_active(self, now: datetime) -> bool:
        return self.issued_at <= now and (self.expires_at is None or now < self.expires_at)


# -----------------------------------------------------------------------------
# Requests & decisions
# -----------------------------------------------------------------------------


class PolicyRequest(BaseModel):
    """An agent's attempt to perform an action on a resource."""

    agent_id: str
    action: Action
    target_uri: str
    context: dict[str, Any] = Field(default_factory=dict)


class DecisionOutcome(str, Enum):
    """Outcome of a policy evaluation."""

    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"


class GrantVerdict(str, Enum):
    """Why a grant did or didn't match."""

    MATCHED = "matched"
    ACTION_MISMATCH = "action_mismatch"
    PATTERN_MISMATCH = "pattern_mismatch"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    BUDGET_EXHAUSTED = "budget_exhausted"


class TraceStep(BaseModel):
    check: str
    outcome: str
    terminal: bool = False


class GrantEvaluation(BaseModel):
    index: int
    label: str
    verdict: GrantVerdict
    reason: str = ""


class EvaluationTrace(BaseModel):
    """Ordered record of every check made while evaluating a request."""

    steps: list[TraceStep] = Field(default_factory=list)
    grants_considered: list[GrantEvaluation] = Field(default_factory=list)

    def step(self, check: str, outcome: str, terminal: bool = False) -> None:
        self.steps.append(TraceStep(check=check, outcome=outcome, terminal=terminal))

    def grant(self, index: int, label: str, verdict: GrantVerdict, reason: str = "") -> None:
        self.grants_considered.append(GrantEvaluation(index=index, label=label, verdict=verdict, reason=reason))


class PolicyDecision(BaseModel):
    """Result of evaluating a PolicyRequest.

    Attributes:
        outcome: allow, deny or require_approval
        reason: Human-readable explanation
        matched_grant: The grant that matched, if any
        matched_grant_index: Position of that grant in the manifest
        manifest_id: Manifest the request was evaluated against
        trace: Ordered evaluation trace
    """

    outcome: DecisionOutcome
    reason: str
    matched_grant: Grant | None = None
    matched_grant_index: int | None = None
    manifest_id: str | None = None
    trace: EvaluationTrace = Field(default_factory=EvaluationTrace)

    @property
    def allowed(self) -> bool:
        return self.outcome == DecisionOutcome.ALLOW

    @property
    def requires_approval(self) -> bool:
        return self.outcome == DecisionOutcome.REQUIRE_APPROVAL

    @property
    def denied(self) -> bool:
        return self.outcome == DecisionOutcome.DENY

    @classmethod
    def allow(cls, reason: str, trace: EvaluationTrace, **kwargs: Any) -> PolicyDecision:
        """Create an allow decision."""
        return cls(outcome=DecisionOutcome.ALLOW, reason=reason, trace=trace, **kwargs)

    @classmethod
    def deny(cls, reason: str, trace: EvaluationTrace, **kwargs: Any) -> PolicyDecision:
        """Create a deny decision."""
        return cls(outcome=DecisionOutcome.DENY, reason=reason, trace=trace, **kwargs)

    @classmethod
    def require_approval(cls, reason: str, trace: EvaluationTrace, **kwargs: Any) -> PolicyDecision:
        """Create an approval-required decision."""
        return cls(outcome=DecisionOutcome.REQUIRE_APPROVAL, reason=reason, trace=trace, **kwargs)


__all__ = [
    "DEFAULT_ESCALATION_VERBS",
    "Action",
    "ToolVerbAction",
    "ToolVerbQualifierAction",
    "ExecAction",
    "Grant",
    "CapabilityManifest",
    "PolicyRequest",
    "DecisionOutcome",
    "GrantVerdict",
    "TraceStep",
    "GrantEvaluation",
    "EvaluationTrace",
    "PolicyDecision",
]

"""Exception hierarchy for TrustGate."""

from __future__ import annotations


class TrustGateError(Exception):
    """Base exception for all TrustGate errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# -----------------------------------------------------------------------------
# Policy
# -----------------------------------------------------------------------------


class PolicyError(TrustGateError):
    """Raised when policy input is unusable."""


class InvalidPatternError(PolicyError):
    """Raised when a resource pattern cannot be compiled."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid resource pattern {pattern!r}: {reason}")


class ManifestLoadError(PolicyError):
    """Raised when a capability manifest cannot be loaded or validated."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


# -----------------------------------------------------------------------------
# Audit
# -----------------------------------------------------------------------------


class AuditError(TrustGateError):
    """Base exception for audit log failures.

    Audit failures are hard failures: an operation that cannot be recorded
    must not be reported as having happened.
    """


class AuditWriteError(AuditError):
    """Raised when the audit log cannot be opened or appended to."""

    def __init__(self, message: str, path: str | None = None, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        super().__init__(f"{message} ({path})" if path else message)


class AuditIntegrityError(AuditError):
    """Raised when hash-chain verification finds a broken link."""

    def __init__(self, broken_at: int, reason: str):
        self.broken_at = broken_at
        self.reason = reason
        super().__init__(f"Audit chain broken at seq {broken_at}: {reason}")


# -----------------------------------------------------------------------------
# Workspace & drafts
# -----------------------------------------------------------------------------


class WorkspaceError(TrustGateError):
    """Raised when an overlay workspace cannot be created or read."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{message}: {path}" if path else message)


class DraftError(TrustGateError):
    """Base exception for draft package errors."""


class DraftStateError(DraftError):
    """Raised on an illegal draft status transition."""

    def __init__(self, draft_id: str, current: str, requested: str):
        self.draft_id = draft_id
        self.current = current
        self.requested = requested
        super().__init__(f"Draft {draft_id}: cannot transition from '{current}' to '{requested}'")


class DraftNotFoundError(DraftError):
    """Raised when a draft id is not present in the store."""

    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Draft not found: {draft_id}")


__all__ = [
    "TrustGateError",
    "PolicyError",
    "InvalidPatternError",
    "ManifestLoadError",
    "AuditError",
    "AuditWriteError",
    "AuditIntegrityError",
    "WorkspaceError",
    "DraftError",
    "DraftStateError",
    "DraftNotFoundError",
]

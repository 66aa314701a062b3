"""Tamper-evident audit logging for TrustGate.

Every policy evaluation, draft status change and apply attempt is appended
to a hash-chained JSONL log. Each entry commits to the hash of its payload
and to the previous entry's chain hash, so any edit, deletion or reordering
is detected by ``AuditLog.verify()``.

Usage:
    from trustgate.audit import AuditLog, AuditEventType

    log = AuditLog.open("audit.jsonl")
    log.log_event(AuditEventType.DRAFT_BUILT, draft_id="d-1", artifacts=3)
    log.verify().raise_if_broken()
"""

from .hashing import canonical_json, hash_bytes, hash_file, hash_payload, hash_str
from .log import (
    GENESIS_HASH,
    AuditEntry,
    AuditEventType,
    AuditLog,
    AuditLogConfig,
    ChainVerification,
    compute_chain_hash,
)
from .redaction import RedactionConfig, RedactionPattern, Redactor, SecretType

__all__ = [
    "GENESIS_HASH",
    "AuditEntry",
    "AuditEventType",
    "AuditLog",
    "AuditLogConfig",
    "ChainVerification",
    "compute_chain_hash",
    "canonical_json",
    "hash_bytes",
    "hash_file",
    "hash_payload",
    "hash_str",
    "RedactionConfig",
    "RedactionPattern",
    "Redactor",
    "SecretType",
]

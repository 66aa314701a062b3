"""Append-only, hash-chained audit log.

Each line of the log file is one JSON entry:

    {"seq": 0, "timestamp": "...", "payload": {...},
     "payload_hash": "<sha256>", "chain_hash": "<sha256>"}

``payload_hash`` is the sha256 of the canonical JSON payload and
``chain_hash`` binds it to the previous entry:

    chain_hash = sha256(prev_chain_hash | seq | timestamp | payload_hash)

The first entry chains from ``GENESIS_HASH``. Any edit, deletion or
reordering of a past entry breaks every later link, which ``verify()``
reports. The log never repairs itself, offers no update or delete and is
never rotated.
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import threading
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import AuditIntegrityError, AuditWriteError
from .hashing import canonical_json, hash_payload, hash_str
from .redaction import Redactor

logger = logging.getLogger("trustgate.audit")

GENESIS_HASH = "0" * 64


class AuditEventType(str, Enum):
    """Types of events written to the audit log."""

    POLICY_EVALUATION = "policy_evaluation"
    MANIFEST_LOADED = "manifest_loaded"
    WORKSPACE_CREATED = "workspace_created"
    DRAFT_BUILT = "draft_built"
    DRAFT_STATUS_CHANGED = "draft_status_changed"
    DISPOSITION_CHANGED = "disposition_changed"
    DRAFT_SUPERSEDED = "draft_superseded"
    APPLY_ATTEMPT = "apply_attempt"


class AuditEntry(BaseModel):
    """A single committed audit log entry. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    seq: int = Field(..., ge=0, description="Gap-free sequence number starting at 0")
    timestamp: str = Field(..., description="ISO-8601 UTC timestamp")
    payload: dict[str, Any] = Field(default_factory=dict)
    payload_hash: str = Field(..., description="sha256 of the canonical JSON payload")
    chain_hash: str = Field(..., description="sha256 linking this entry to the previous one")


class AuditLogConfig(BaseModel):
    """Configuration for the audit log.

    Attributes:
        log_path: Path to the JSONL log file
        redact_sensitive: Redact secrets from payloads before hashing
        fsync: fsync after every append, not just flush
    """

    log_path: Path = Field(default=Path("./logs/audit.jsonl"))
    redact_sensitive: bool = True
    fsync: bool = False


class ChainVerification(BaseModel):
    """Result of verifying the hash chain."""

    valid: bool
    entries_checked: int = 0
    broken_at: int | None = None
    reason: str | None = None

    def raise_if_broken(self) -> None:
        if not self.valid:
            raise AuditIntegrityError(self.broken_at if self.broken_at is not None else -1, self.reason or "")


def compute_chain_hash(prev_chain_hash: str, seq: int, timestamp: str, payload_hash: str) -> str:
    """Compute the chain hash for an entry."""
    return hash_str(f"{prev_chain_hash}|{seq}|{timestamp}|{payload_hash}")


class AuditLog:
    """Hash-chained JSONL audit log.

    Appends are serialized by one lock per instance, so sequence numbers are
    gap-free and totally ordered even with concurrent writers. The in-memory
    chain head only advances after the entry has been flushed to disk; a
    failed write raises ``AuditWriteError`` and leaves the chain unchanged.

    Usage:
        with AuditLog.open(Path("audit.jsonl")) as log:
            log.log_event(AuditEventType.DRAFT_BUILT, draft_id="...")
            log.verify().raise_if_broken()
    """

    def __init__(self, config: AuditLogConfig | None = None):
        self.config = config or AuditLogConfig()
        self._redactor = Redactor() if self.config.redact_sensitive else None
        self._lock = threading.Lock()
        self._file_handle: Any | None = None
        self._next_seq = 0
        self._head = GENESIS_HASH

        self._recover()
        self._open_handle()
        atexit.register(self.close)
        logger.info(f"Audit log opened: {self.config.log_path} (next seq {self._next_seq})")

    @classmethod
    def open(cls, path: Path | str, redact_sensitive: bool = True, fsync: bool = False) -> AuditLog:
        return cls(AuditLogConfig(log_path=Path(path), redact_sensitive=redact_sensitive, fsync=fsync))

    @property
    def path(self) -> Path:
        return self.config.log_path

    @property
    def next_seq(self) -> int:
        return self._next_seq

    @property
    def head(self) -> str:
        """Chain hash of the last committed entry (genesis if empty)."""
        return self._head

    # -------------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------------

    def _recover(self) -> None:
        """Restore seq and chain head from the last line of an existing log."""
        path = self.config.log_path
        if not path.exists():
            return
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise AuditWriteError("Failed to read audit log", str(path), e) from e

        if not data.strip():
            return
        if not data.endswith(b"\n"):
            raise AuditWriteError("Audit log ends with a torn write", str(path))

        last_line = data.rstrip(b"\n").rsplit(b"\n", 1)[-1]
        try:
            entry = AuditEntry.model_validate_json(last_line)
        except ValidationError as e:
            raise AuditWriteError("Audit log has an unparsable last entry", str(path), e) from e

        self._next_seq = entry.seq + 1
        self._head = entry.chain_hash

    def _open_handle(self) -> None:
        path = self.config.log_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(path, "a", encoding="utf-8")
        except OSError as e:
            raise AuditWriteError("Failed to open audit log", str(path), e) from e

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def append(self, payload: dict[str, Any]) -> AuditEntry:
        """Append one payload to the log and return the committed entry.

        Raises:
            AuditWriteError: If the log is closed or the write fails
        """
        if self._redactor:
            payload = self._redactor.redact_value(payload)
        # Round-trip so the stored payload is exactly what was hashed
        normalized = json.loads(canonical_json(payload))
        payload_hash = hash_payload(normalized)

        with self._lock:
            if self._file_handle is None:
                raise AuditWriteError("Audit log is closed", str(self.config.log_path))

            seq = self._next_seq
            timestamp = datetime.now(UTC).isoformat()
            entry = AuditEntry(
                seq=seq,
                timestamp=timestamp,
                payload=normalized,
                payload_hash=payload_hash,
                chain_hash=compute_chain_hash(self._head, seq, timestamp, payload_hash),
            )
            line = canonical_json(entry.model_dump()) + "\n"
            self._write_line(line)

            self._next_seq = seq + 1
            self._head = entry.chain_hash

        logger.debug(f"Audit entry {seq} appended ({normalized.get('event_type', 'raw')})")
        return entry

    def _write_line(self, line: str) -> None:
        """Write and flush one line (must be called with lock held)."""
        handle = self._file_handle
        try:
            start = handle.tell()
        except OSError:
            start = None
        try:
            handle.write(line)
            handle.flush()
            if self.config.fsync:
                os.fsync(handle.fileno())
        except OSError as e:
            logger.error(f"Audit write failed: {e}")
            if start is not None:
                self._truncate_to(start)
            raise AuditWriteError("Failed to append audit entry", str(self.config.log_path), e) from e

    def _truncate_to(self, size: int) -> None:
        """Best-effort removal of a partially written line."""
        try:
            self._file_handle.truncate(size)
        except OSError as e:
            logger.error(f"Could not truncate torn audit write: {e}")

    def log_event(self, event_type: AuditEventType, **fields: Any) -> AuditEntry:
        """Append a typed event."""
        return self.append({"event_type": AuditEventType(event_type).value, **fields})

    def log_policy_evaluation(self, request: dict[str, Any], decision: dict[str, Any]) -> AuditEntry:
        return self.log_event(AuditEventType.POLICY_EVALUATION, request=request, decision=decision)

    def log_status_change(
        self,
        draft_id: str,
        from_status: str,
        to_status: str,
        actor: str | None = None,
        reason: str | None = None,
    ) -> AuditEntry:
        return self.log_event(
            AuditEventType.DRAFT_STATUS_CHANGED,
            draft_id=draft_id,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            reason=reason,
        )

    def log_apply_attempt(self, draft_id: str, outcome: str, **details: Any) -> AuditEntry:
        return self.log_event(AuditEventType.APPLY_ATTEMPT, draft_id=draft_id, outcome=outcome, **details)

    # -------------------------------------------------------------------------
    # Reading & verification
    # -------------------------------------------------------------------------

    def _iter_lines(self) -> Iterator[str]:
        if not self.config.log_path.exists():
            return
        with open(self.config.log_path, encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    yield line

    def iter_entries(self) -> Iterator[AuditEntry]:
        """Iterate over committed entries in order."""
        self.flush()
        for line in self._iter_lines():
            yield AuditEntry.model_validate_json(line)

    def read_entries(self) -> list[AuditEntry]:
        return list(self.iter_entries())

    def verify(self) -> ChainVerification:
        """Recompute the chain from entry 0 and report the first broken link."""
        self.flush()
        prev = GENESIS_HASH
        expected_seq = 0

        for line in self._iter_lines():
            try:
                entry = AuditEntry.model_validate_json(line)
            except ValidationError:
                return ChainVerification(
                    valid=False,
                    entries_checked=expected_seq,
                    broken_at=expected_seq,
                    reason="entry cannot be parsed",
                )

            if entry.seq != expected_seq:
                reason = f"expected seq {expected_seq}, found {entry.seq}"
            elif hash_payload(entry.payload) != entry.payload_hash:
                reason = "payload hash mismatch"
            elif compute_chain_hash(prev, entry.seq, entry.timestamp, entry.payload_hash) != entry.chain_hash:
                reason = "chain hash mismatch"
            else:
                reason = None

            if reason is not None:
                logger.warning(f"Audit chain broken at seq {expected_seq}: {reason}")
                return ChainVerification(
                    valid=False,
                    entries_checked=expected_seq,
                    broken_at=expected_seq,
                    reason=reason,
                )

            prev = entry.chain_hash
            expected_seq += 1

        return ChainVerification(valid=True, entries_checked=expected_seq)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        with self._lock:
            if self._file_handle is not None:
                self._file_handle.flush()

    def close(self) -> None:
        """Close the log file. Further appends raise ``AuditWriteError``."""
        with self._lock:
            if self._file_handle is not None:
                self._file_handle.close()
                self._file_handle = None
                logger.debug(f"Audit log closed: {self.config.log_path}")
        atexit.unregister(self.close)

    @property
    def closed(self) -> bool:
        return self._file_handle is None

    def __enter__(self) -> AuditLog:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = [
    "GENESIS_HASH",
    "AuditEventType",
    "AuditEntry",
    "AuditLogConfig",
    "AuditLog",
    "ChainVerification",
    "compute_chain_hash",
]

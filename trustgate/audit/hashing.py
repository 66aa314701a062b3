"""Content hashing helpers shared by the audit log and the workspace."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

CHUNK_SIZE = 64 * 1024


def canonical_json(value: Any) -> str:
    """Serialize a value to canonical JSON (sorted keys, no whitespace)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_str(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_payload(payload: Any) -> str:
    """Hash the canonical JSON form of a payload."""
    return hash_str(canonical_json(payload))


def hash_file(path: Path) -> str:
    """Stream a file through sha256."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


__all__ = ["canonical_json", "hash_bytes", "hash_str", "hash_payload", "hash_file"]

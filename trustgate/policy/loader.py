"""Capability manifest loader.

Manifests are YAML or JSON documents:

    manifest_id: m-1
    agent_id: refactor-bot
    expires_at: 2030-01-01T00:00:00Z
    grants:
      - grant_id: read-src
        action: {kind: tool_verb, tool: fs, verb: read}
        resource_pattern: "src/**"
      - action: {kind: exec, command: "pytest -q"}
        resource_pattern: "exec://local/**"
        max_uses: 10
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..exceptions import ManifestLoadError
from .models import CapabilityManifest

logger = logging.getLogger("trustgate.policy")

MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


def manifest_from_dict(data: Any, source: str | None = None) -> CapabilityManifest:
    """Validate a parsed document into a CapabilityManifest.

    Raises:
        ManifestLoadError: If the document is not a valid manifest
    """
    if not isinstance(data, dict):
        raise ManifestLoadError("Manifest must be a mapping", source)
    try:
        return CapabilityManifest.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ManifestLoadError(f"Invalid manifest: {errors}", source) from e


def load_manifest_from_file(path: str | Path) -> CapabilityManifest:
    """Load a capability manifest from a YAML or JSON file.

    Raises:
        ManifestLoadError: If the file cannot be read, parsed or validated
    """
    path = Path(path).expanduser().resolve()

    if not path.is_file():
        raise ManifestLoadError("Manifest file not found", str(path))

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ManifestLoadError(f"Cannot parse manifest: {e}", str(path)) from e
    except OSError as e:
        raise ManifestLoadError(f"Cannot read manifest: {e}", str(path)) from e

    manifest = manifest_from_dict(data, str(path))
    logger.info(f"Loaded manifest from {path}: {manifest.manifest_id} ({len(manifest.grants)} grants)")
    return manifest


def load_manifests_from_dir(directory: str | Path) -> list[CapabilityManifest]:
    """Load every manifest file in a directory, sorted by file name."""
    directory = Path(directory).expanduser()
    if not directory.is_dir():
        return []
    return [
        load_manifest_from_file(p)
        for p in sorted(directory.iterdir())
        if p.is_file() and p.suffix in MANIFEST_SUFFIXES
    ]


def save_manifest_to_file(manifest: CapabilityManifest, path: str | Path) -> None:
    """Save a manifest as YAML (or JSON for a ``.json`` path)."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = manifest.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        if path.suffix == ".json":
            json.dump(data, f, indent=2)
        else:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved manifest to {path}")


__all__ = [
    "load_manifest_from_file",
    "load_manifests_from_dir",
    "manifest_from_dict",
    "save_manifest_to_file",
]

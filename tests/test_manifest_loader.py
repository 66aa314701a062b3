"""Tests for loading and saving capability manifests."""

from __future__ import annotations

import json

import pytest

from trustgate.exceptions import ManifestLoadError, PolicyError
from trustgate.policy import (
    CapabilityManifest,
    ExecAction,
    Grant,
    ToolVerbAction,
    load_manifest_from_file,
    load_manifests_from_dir,
    manifest_from_dict,
    save_manifest_to_file,
)

MANIFEST_YAML = """
manifest_id: m-yaml
agent_id: refactor-bot
issued_at: 2026-01-01T00:00:00Z
expires_at: 2030-01-01T00:00:00Z
grants:
  - grant_id: read-src
    action: {kind: tool_verb, tool: fs, verb: read}
    resource_pattern: "src/**"
  - action: {kind: exec, command: "pytest -q"}
    resource_pattern: "exec://local/**"
    max_uses: 10
"""


class TestLoadManifest:
    """Tests for manifest files."""

    def test_load_yaml(self, tmp_path):
        """Test load YAML."""
        path = tmp_path / "bot.yaml"
        path.write_text(MANIFEST_YAML)

        manifest = load_manifest_from_file(path)

        assert manifest.manifest_id == "m-yaml"
        assert len(manifest.grants) == 2
        assert manifest.grants[0].action == ToolVerbAction(tool="fs", verb="read")
        assert isinstance(manifest.grants[1].action, ExecAction)
        assert manifest.grants[1].max_uses == 10

    def test_load_json(self, tmp_path):
        """Test load JSON."""
        path = tmp_path / "bot.json"
        path.write_text(
            json.dumps(
                {
                    "manifest_id": "m-json",
                    "agent_id": "bot",
                    "grants": [{"action": {"kind": "tool_verb", "tool": "fs", "verb": "write"}, "resource_pattern": "**"}],
                }
            )
        )
        assert load_manifest_from_file(path).manifest_id == "m-json"

    def test_missing_file(self, tmp_path):
        """Test missing file."""
        with pytest.raises(ManifestLoadError):
            load_manifest_from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test invalid YAML."""
        path = tmp_path / "bad.yaml"
        path.write_text("grants: [unclosed")
        with pytest.raises(ManifestLoadError):
            load_manifest_from_file(path)

    def test_not_a_mapping(self, tmp_path):
        """Test that a non-mapping document is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ManifestLoadError):
            load_manifest_from_file(path)

    def test_malformed_pattern_fails_at_load(self, tmp_path):
        """Test malformed pattern fails at load."""
        path = tmp_path / "bad-pattern.yaml"
        path.write_text(MANIFEST_YAML.replace('"src/**"', '"src/[oops"'))
        with pytest.raises(ManifestLoadError) as exc_info:
            load_manifest_from_file(path)
        assert isinstance(exc_info.value, PolicyError)
        assert "resource_pattern" in str(exc_info.value)

    def test_unknown_action_kind(self):
        """Test unknown action kind."""
        with pytest.raises(ManifestLoadError):
            manifest_from_dict(
                {
                    "manifest_id": "m",
                    "agent_id": "a",
                    "grants": [{"action": {"kind": "teleport"}, "resource_pattern": "**"}],
                }
            )


class TestSaveManifest:
    """Tests for writing manifests."""

    def test_save_and_reload_yaml(self, tmp_path):
        """Test save and reload YAML."""
        manifest = CapabilityManifest(
            manifest_id="m-save",
            agent_id="bot",
            grants=[Grant(grant_id="g", action=ToolVerbAction(tool="fs", verb="read"), resource_pattern="src/*.py")],
        )
        path = tmp_path / "out" / "bot.yaml"
        save_manifest_to_file(manifest, path)

        loaded = load_manifest_from_file(path)
        assert loaded.grants == manifest.grants
        assert loaded.issued_at == manifest.issued_at

    def test_load_directory_sorted(self, tmp_path):
        """Test load directory sorted."""
        for name in ("b", "a"):
            save_manifest_to_file(
                CapabilityManifest(manifest_id=f"m-{name}", agent_id=name),
                tmp_path / f"{name}.yaml",
            )
        (tmp_path / "notes.txt").write_text("ignored")

        manifests = load_manifests_from_dir(tmp_path)
        assert [m.manifest_id for m in manifests] == ["m-a", "m-b"]

    def test_load_missing_directory(self, tmp_path):
        """Test load missing directory."""
        assert load_manifests_from_dir(tmp_path / "none") == []

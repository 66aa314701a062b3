"""End-to-end tests through the Gateway."""

from __future__ import annotations

import pytest

from trustgate.apply import ApplyOutcome
from trustgate.config import Settings
from trustgate.draft import DraftStatus, Selection
from trustgate.exceptions import DraftNotFoundError, ManifestLoadError
from trustgate.gateway import Gateway, open_gateway
from trustgate.policy import DecisionOutcome, PolicyRequest, ToolVerbAction
from trustgate.uri import fs_uri

MANIFEST_YAML = """
manifest_id: m-bot
agent_id: refactor-bot
issued_at: 2026-01-01T00:00:00Z
grants:
  - action: {kind: tool_verb, tool: fs, verb: write}
    resource_pattern: "src/**"
"""


@pytest.fixture
def settings(tmp_path):
    manifests = tmp_path / "manifests"
    manifests.mkdir()
    (manifests / "bot.yaml").write_text(MANIFEST_YAML)
    return Settings(home_dir=tmp_path / "home", manifest_dir=manifests)


@pytest.fixture
def source(tmp_path):
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.py").write_text("print('v1')\n")
    (root / "setup.cfg").write_text("[metadata]\n")
    return root


@pytest.fixture
def gate(settings):
    gateway = Gateway.open(settings)
    yield gateway
    gateway.close()


class TestGateway:
    """Tests for the wired-up components."""

    def test_open_loads_manifests(self, gate):
        """Test open loads manifests."""
        assert gate.engine.get_manifest("refactor-bot").manifest_id == "m-bot"

    def test_evaluate_uses_loaded_manifest(self, gate):
        """Test evaluate uses loaded manifest."""
        write = ToolVerbAction(tool="fs", verb="write")
        allowed = gate.evaluate(PolicyRequest(agent_id="refactor-bot", action=write, target_uri=fs_uri("src/a.py")))
        denied = gate.evaluate(PolicyRequest(agent_id="refactor-bot", action=write, target_uri=fs_uri("setup.cfg")))
        unknown = gate.evaluate(PolicyRequest(agent_id="stranger", action=write, target_uri=fs_uri("src/a.py")))

        assert allowed.outcome == DecisionOutcome.ALLOW
        assert denied.outcome == DecisionOutcome.DENY
        assert unknown.outcome == DecisionOutcome.DENY

    def test_full_flow(self, gate, source):
        """Test full flow."""
        workspace, _ = gate.create_workspace(source, workspace_id="ws1")
        (workspace.root / "src" / "main.py").write_text("print('v2')\n")
        (workspace.root / "setup.cfg").write_text("[metadata]\nname = x\n")

        draft = gate.build_draft(workspace, summary="bump version")
        assert gate.validate(draft) == []
        gate.submit(draft)
        gate.approve(draft, reviewer="alice")

        result = gate.apply(draft.draft_id, Selection(approve=["src/**"], reject=["rest"]), actor="alice")

        assert result.outcome == ApplyOutcome.APPLIED
        assert (source / "src" / "main.py").read_text() == "print('v2')\n"
        assert (source / "setup.cfg").read_text() == "[metadata]\n"
        assert gate.store.load(draft.draft_id).status == DraftStatus.APPLIED
        assert gate.reconcile(draft.draft_id).consistent

        verification = gate.verify_audit()
        assert verification.valid
        events = [e.payload["event_type"] for e in gate.audit_log.read_entries()]
        assert events[0] == "manifest_loaded"
        assert "workspace_created" in events
        assert "draft_built" in events
        assert events[-1] == "apply_attempt"

    def test_new_draft_supersedes_open_one(self, gate, source):
        """Test new draft supersedes open one."""
        workspace, _ = gate.create_workspace(source)
        (workspace.root / "src" / "main.py").write_text("print('v2')\n")
        first = gate.build_draft(workspace)
        (workspace.root / "src" / "main.py").write_text("print('v3')\n")
        second = gate.build_draft(workspace)

        stored = gate.store.load(first.draft_id)
        assert stored.status == DraftStatus.SUPERSEDED
        assert stored.superseded_by == second.draft_id

    def test_reopen_workspace(self, gate, source):
        """Test reopen workspace."""
        workspace, _ = gate.create_workspace(source, workspace_id="ws1")
        assert gate.open_workspace("ws1").source_root == workspace.source_root

    def test_apply_unknown_draft(self, gate):
        """Test apply unknown draft."""
        with pytest.raises(DraftNotFoundError):
            gate.apply("0" * 32)

    def test_chain_continues_across_reopen(self, settings, source):
        """Test chain continues across reopen."""
        with open_gateway(settings) as gate:
            gate.create_workspace(source)
        with open_gateway(settings) as gate:
            assert gate.verify_audit().valid
            assert gate.verify_audit().entries_checked == 3

    def test_bad_manifest_closes_log(self, settings):
        """Test bad manifest closes log."""
        (settings.manifest_dir / "broken.yaml").write_text("grants: [")
        with pytest.raises(ManifestLoadError):
            Gateway.open(settings)

"""Basic tests for TrustGate."""

import trustgate


def test_version() -> None:
    """Test that version is defined and follows semver format."""
    assert hasattr(trustgate, "__version__")
    assert isinstance(trustgate.__version__, str)
    parts = trustgate.__version__.split(".")
    assert len(parts) >= 2, f"Version should be semver format: {trustgate.__version__}"
    assert all(p.isdigit() for p in parts[:2]), f"Version parts should be numeric: {trustgate.__version__}"


def test_imports() -> None:
    """Test that main modules can be imported."""
    from trustgate.apply import apply_draft
    from trustgate.audit import AuditLog
    from trustgate.draft import DraftPackage
    from trustgate.gateway import Gateway
    from trustgate.policy import PolicyEngine
    from trustgate.supervisor import Supervisor
    from trustgate.workspace import OverlayWorkspace

    assert all([apply_draft, AuditLog, DraftPackage, Gateway, PolicyEngine, Supervisor, OverlayWorkspace])

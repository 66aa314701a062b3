"""Tests for dependency validation of drafts."""

from __future__ import annotations

import itertools
import time

from trustgate.draft import (
    Artifact,
    ChangeDependency,
    ChangeKind,
    DependencyKind,
    Disposition,
    DraftPackage,
)
from trustgate.supervisor import Supervisor, WarningKind, blocking_warnings, normalize_cycle
from trustgate.uri import fs_uri


def artifact(path: str, depends_on=(), depended_by=(), disposition=Disposition.PENDING) -> Artifact:
    deps = [ChangeDependency(target_uri=fs_uri(t), kind=DependencyKind.DEPENDS_ON) for t in depends_on]
    deps += [ChangeDependency(target_uri=fs_uri(t), kind=DependencyKind.DEPENDED_BY) for t in depended_by]
    return Artifact(
        resource_uri=fs_uri(path),
        change_kind=ChangeKind.MODIFIED,
        diff_ref=f"sha256:{path}",
        dependencies=deps,
        disposition=disposition,
    )


def draft(*artifacts: Artifact) -> DraftPackage:
    return DraftPackage(workspace_id="ws", source_root="/src", artifacts=list(artifacts))


def kinds(warnings) -> list[WarningKind]:
    return [w.kind for w in warnings]


class TestGraph:
    """Tests for graph construction."""

    def test_no_dependencies_no_warnings(self):
        """Test no dependencies no warnings."""
        assert Supervisor().validate(draft(artifact("a"), artifact("b"))) == []

    def test_depended_by_edges_are_reversed(self):
        """Test depended by edges are reversed."""
        graph, _ = Supervisor().build_graph(draft(artifact("a", depended_by=["b"]), artifact("b")))
        assert graph.has_edge(fs_uri("b"), fs_uri("a"))
        assert not graph.has_edge(fs_uri("a"), fs_uri("b"))

    def test_transitive_dependents(self):
        """Test transitive dependents."""
        d = draft(artifact("a", depends_on=["b"]), artifact("b", depends_on=["c"]), artifact("c"))
        assert Supervisor().dependents(d, fs_uri("c")) == [fs_uri("a"), fs_uri("b")]


class TestCycles:
    """Cycles are detected and reported deterministically."""

    def test_two_node_cycle(self):
        """Test two node cycle."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["b"]), artifact("b", depends_on=["a"])))
        assert kinds(warnings) == [WarningKind.CYCLE]
        assert warnings[0].artifacts == [fs_uri("a"), fs_uri("b")]
        assert warnings[0].requires_override

    def test_depended_by_matching_depends_on_is_not_a_cycle(self):
        """Test depended by matching depends on is not a cycle."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["b"]), artifact("b", depended_by=["a"])))
        assert warnings == []

    def test_cycle_via_depended_by(self):
        """Test cycle via depended by."""
        warnings = Supervisor().validate(draft(artifact("a", depended_by=["b"]), artifact("b", depended_by=["a"])))
        assert kinds(warnings) == [WarningKind.CYCLE]

    def test_report_independent_of_insertion_order(self):
        """Test report independent of insertion order."""
        items = [
            artifact("a", depends_on=["b"]),
            artifact("b", depends_on=["c"]),
            artifact("c", depends_on=["a"]),
            artifact("x", depends_on=["y"]),
            artifact("y", depends_on=["x"]),
        ]
        reports = {
            tuple(w.code for w in Supervisor().validate(draft(*perm)))
            for perm in itertools.permutations(items)
        }
        assert len(reports) == 1
        codes = next(iter(reports))
        assert codes[0] == "cycle:" + "|".join(fs_uri(p) for p in ("a", "b", "c"))

    def test_dense_graph_reports_one_cycle(self):
        """Test that a fully connected graph validates quickly with a single cycle warning."""
        names = [f"m{i:02d}" for i in range(15)]
        d = draft(*(artifact(n, depends_on=[o for o in names if o != n]) for n in names))

        started = time.monotonic()
        warnings = Supervisor().validate(d)

        assert time.monotonic() - started < 5
        assert kinds(warnings) == [WarningKind.CYCLE]
        assert warnings[0].artifacts == [fs_uri(n) for n in names]

    def test_cycle_message_names_a_loop(self):
        """Test that the cycle message walks back to its first node."""
        warnings = Supervisor().validate(
            draft(artifact("a", depends_on=["b"]), artifact("b", depends_on=["c"]), artifact("c", depends_on=["a"]))
        )
        expected = " -> ".join(fs_uri(p) for p in ("a", "b", "c", "a"))
        assert warnings[0].message == f"Dependency cycle: {expected}"

    def test_normalize_cycle(self):
        """Test normalize cycle."""
        assert normalize_cycle(["c", "a", "b"]) == ["a", "b", "c"]

    def test_self_dependency(self):
        """Test self dependency."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["a"])))
        assert kinds(warnings) == [WarningKind.SELF_DEPENDENCY]
        assert warnings[0].requires_override


class TestDispositionConsistency:
    """Rejected or discussed artifacts that others depend on."""

    def test_coupled_rejection(self):
        """Test coupled rejection."""
        d = draft(
            artifact("api", depends_on=["model"], disposition=Disposition.APPROVED),
            artifact("model", disposition=Disposition.REJECTED),
        )
        warnings = Supervisor().validate(d)
        assert kinds(warnings) == [WarningKind.COUPLED_REJECTION]
        assert warnings[0].artifacts == [fs_uri("model"), fs_uri("api")]

    def test_pending_dependent_also_coupled(self):
        """Test pending dependent also coupled."""
        d = draft(
            artifact("api", depends_on=["model"]),
            artifact("model", disposition=Disposition.REJECTED),
        )
        assert kinds(Supervisor().validate(d)) == [WarningKind.COUPLED_REJECTION]

    def test_rejecting_both_is_consistent(self):
        """Test rejecting both is consistent."""
        d = draft(
            artifact("api", depends_on=["model"], disposition=Disposition.REJECTED),
            artifact("model", disposition=Disposition.REJECTED),
        )
        assert Supervisor().validate(d) == []

    def test_discuss_blocking_approved_dependent(self):
        """Test discuss blocking approved dependent."""
        d = draft(
            artifact("api", depends_on=["model"], disposition=Disposition.APPROVED),
            artifact("model", disposition=Disposition.DISCUSS),
        )
        assert kinds(Supervisor().validate(d)) == [WarningKind.DISCUSS_BLOCKING]

    def test_dangling_dependency_not_blocking(self):
        """Test dangling dependency not blocking."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["elsewhere"])))
        assert kinds(warnings) == [WarningKind.DANGLING_DEPENDENCY]
        assert not warnings[0].requires_override
        assert blocking_warnings(warnings) == []

    def test_duplicate_declarations_reported_once(self):
        """Test duplicate declarations reported once."""
        d = draft(artifact("a", depends_on=["a", "a"]))
        assert len(Supervisor().validate(d)) == 1


class TestBlocking:
    """Acknowledgement of warnings."""

    def test_acknowledged_codes_unblock(self):
        """Test acknowledged codes unblock."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["b"]), artifact("b", depends_on=["a"])))
        assert blocking_warnings(warnings) == warnings
        assert blocking_warnings(warnings, acknowledged=[warnings[0].code]) == []

    def test_override_all(self):
        """Test override all."""
        warnings = Supervisor().validate(draft(artifact("a", depends_on=["a"])))
        assert blocking_warnings(warnings, override_all=True) == []

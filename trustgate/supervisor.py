"""Dependency validation for draft packages.

Agents may declare that one change depends on another. Those declarations
are untrusted input: the Supervisor builds a directed graph from them
(edge A -> B means "A depends on B") and reports anything that would make a
selective apply inconsistent or that cannot be ordered:

- cycle: artifacts that depend on each other in a loop
- self_dependency: an artifact that depends on itself
- coupled_rejection: a rejected artifact that others still rely on
- discuss_blocking: an artifact under discussion that approved ones rely on
- dangling_dependency: a dependency on something not in the draft

All but dangling dependencies block apply until explicitly acknowledged.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

import networkx as nx
from pydantic import BaseModel, Field

from .draft.models import DependencyKind, Disposition, DraftPackage

logger = logging.getLogger("trustgate.supervisor")


class WarningKind(str, Enum):
    CYCLE = "cycle"
    SELF_DEPENDENCY = "self_dependency"
    COUPLED_REJECTION = "coupled_rejection"
    DISCUSS_BLOCKING = "discuss_blocking"
    DANGLING_DEPENDENCY = "dangling_dependency"


_KIND_ORDER = {kind: i for i, kind in enumerate(WarningKind)}


class SupervisorWarning(BaseModel):
    """A dependency problem found in a draft.

    ``code`` is stable across runs for the same problem, so a reviewer's
    acknowledgement can be recorded and replayed.
    """

    kind: WarningKind
    code: str
    artifacts: list[str] = Field(default_factory=list)
    message: str
    requires_override: bool = True


def _warning(kind: WarningKind, artifacts: list[str], message: str, requires_override: bool = True) -> SupervisorWarning:
    return SupervisorWarning(
        kind=kind,
        code=f"{kind.value}:{'|'.join(artifacts)}",
        artifacts=artifacts,
        message=message,
        requires_override=requires_override,
    )


def normalize_cycle(cycle: list[str]) -> list[str]:
    """Rotate a cycle so it starts at its smallest node."""
    start = cycle.index(min(cycle))
    return cycle[start:] + cycle[:start]


def _representative_cycle(graph: nx.DiGraph, nodes: list[str]) -> list[str]:
    """One cycle inside a strongly connected component, found in sorted order."""
    component = nx.DiGraph()
    component.add_nodes_from(nodes)
    component.add_edges_from(sorted(graph.subgraph(nodes).edges))
    edges = nx.find_cycle(component, source=nodes[0])
    return normalize_cycle([u for u, _ in edges])


class Supervisor:
    """Validates the dependency graph of a draft."""

    def build_graph(self, draft: DraftPackage) -> tuple[nx.DiGraph, list[SupervisorWarning]]:
        """Build the dependency graph; self and dangling edges become warnings."""
        graph = nx.DiGraph()
        warnings = []
        known = {a.resource_uri for a in draft.artifacts}
        graph.add_nodes_from(sorted(known))

        for artifact in draft.artifacts:
            uri = artifact.resource_uri
            for dep in artifact.dependencies:
                target = dep.target_uri
                if target == uri:
                    warnings.append(
                        _warning(WarningKind.SELF_DEPENDENCY, [uri], f"{uri} declares a dependency on itself")
                    )
                    continue
                if target not in known:
                    warnings.append(
                        _warning(
                            WarningKind.DANGLING_DEPENDENCY,
                            [uri, target],
                            f"{uri} references {target}, which is not part of this draft",
                            requires_override=False,
                        )
                    )
                    continue
                if dep.kind == DependencyKind.DEPENDS_ON:
                    graph.add_edge(uri, target)
                else:
                    graph.add_edge(target, uri)

        return graph, warnings

    def validate(self, draft: DraftPackage) -> list[SupervisorWarning]:
        """Return all dependency warnings in a deterministic order."""
        graph, warnings = self.build_graph(draft)
        dispositions = {a.resource_uri: a.disposition for a in draft.artifacts}

        # one warning per strongly connected component, not per elementary cycle
        for component in nx.strongly_connected_components(graph):
            if len(component) < 2:
                continue
            nodes = sorted(component)
            path = _representative_cycle(graph, nodes)
            warnings.append(
                _warning(WarningKind.CYCLE, nodes, "Dependency cycle: " + " -> ".join(path + [path[0]]))
            )

        for uri in sorted(graph.nodes):
            dependents = sorted(graph.predecessors(uri))
            disposition = dispositions[uri]
            if disposition == Disposition.REJECTED:
                affected = [d for d in dependents if dispositions[d] != Disposition.REJECTED]
                if affected:
                    warnings.append(
                        _warning(
                            WarningKind.COUPLED_REJECTION,
                            [uri] + affected,
                            f"{uri} is rejected but {', '.join(affected)} depend on it",
                        )
                    )
            elif disposition == Disposition.DISCUSS:
                affected = [d for d in dependents if dispositions[d] == Disposition.APPROVED]
                if affected:
                    warnings.append(
                        _warning(
                            WarningKind.DISCUSS_BLOCKING,
                            [uri] + affected,
                            f"{uri} is under discussion but approved {', '.join(affected)} depend on it",
                        )
                    )

        # duplicate declarations produce duplicate warnings; keep one per code
        unique = {w.code: w for w in warnings}
        result = sorted(unique.values(), key=lambda w: (_KIND_ORDER[w.kind], w.code))
        if result:
            logger.info(f"Draft {draft.draft_id}: {len(result)} dependency warnings")
        return result

    def dependents(self, draft: DraftPackage, resource_uri: str) -> list[str]:
        """Artifacts that directly or transitively depend on ``resource_uri``."""
        graph, _ = self.build_graph(draft)
        if resource_uri not in graph:
            return []
        return sorted(nx.ancestors(graph, resource_uri))


def blocking_warnings(
    warnings: Iterable[SupervisorWarning],
    acknowledged: Iterable[str] = (),
    override_all: bool = False,
) -> list[SupervisorWarning]:
    """Warnings that still block apply after acknowledgements."""
    if override_all:
        return []
    acked = set(acknowledged)
    return [w for w in warnings if w.requires_override and w.code not in acked]


__all__ = [
    "Supervisor",
    "SupervisorWarning",
    "WarningKind",
    "blocking_warnings",
    "normalize_cycle",
]

"""Typed dependency graph over issue records with dense integer node indices."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import networkx as nx

from issue_graph.core.errors import AnalysisWarning, ErrorKind
from issue_graph.core.models import (
    BLOCKING_KINDS,
    DependencyKind,
    Issue,
)

logger = logging.getLogger(__name__)

Adjacency = tuple[tuple[int, ...], ...]


@dataclass(frozen=True, slots=True)
class DanglingEdge:
    source: str
    target: str
    kind: DependencyKind


@dataclass(slots=True)
class IssueGraph:
    """Immutable-by-convention adjacency view of one records snapshot.

    Node ``i`` is ``ids[i]``; ids are assigned in sorted order so every
    traversal over indices is also a traversal in sorted-id order. Edges point
    from the issue holding the dependency (the dependent) to its target.
    """

    ids: tuple[str, ...]
    index: dict[str, int]
    issues: tuple[Issue, ...]
    successors: dict[DependencyKind, Adjacency]
    predecessors: dict[DependencyKind, Adjacency]
    blocking_successors: Adjacency
    blocking_predecessors: Adjacency
    dangling: tuple[DanglingEdge, ...] = ()
    warnings: list[AnalysisWarning] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, issue_id: object) -> bool:
        return issue_id in self.index

    def issue(self, issue_id: str) -> Issue:
        return self.issues[self.index[issue_id]]

    def get(self, issue_id: str) -> Issue | None:
        idx = self.index.get(issue_id)
        return None if idx is None else self.issues[idx]

    def _ids(self, indices: Iterable[int]) -> list[str]:
        return [self.ids[i] for i in indices]

    def successor_ids(self, issue_id: str, kind: DependencyKind) -> list[str]:
        return self._ids(self.successors[kind][self.index[issue_id]])

    def predecessor_ids(self, issue_id: str, kind: DependencyKind) -> list[str]:
        return self._ids(self.predecessors[kind][self.index[issue_id]])

    def blocking_successor_ids(self, issue_id: str) -> list[str]:
        """Present issues that ``issue_id`` depends on."""
        return self._ids(self.blocking_successors[self.index[issue_id]])

    def blocking_predecessor_ids(self, issue_id: str) -> list[str]:
        """Present issues that depend on ``issue_id``."""
        return self._ids(self.blocking_predecessors[self.index[issue_id]])

    def parent_ids(self, issue_id: str) -> list[str]:
        return self.successor_ids(issue_id, DependencyKind.PARENT_CHILD)

    def children_ids(self, issue_id: str) -> list[str]:
        return self.predecessor_ids(issue_id, DependencyKind.PARENT_CHILD)

    def neighbors(self, issue_id: str, kinds: Iterable[DependencyKind]) -> list[str]:
        """Ids joined to ``issue_id`` by any of ``kinds`` in either direction, sorted."""
        idx = self.index[issue_id]
        found: set[int] = set()
        for kind in kinds:
            found.update(self.successors[kind][idx])
            found.update(self.predecessors[kind][idx])
        return self._ids(sorted(found))

    def dangling_for(self, issue_id: str) -> list[DanglingEdge]:
        return [edge for edge in self.dangling if edge.source == issue_id]

    def edges(self, kinds: Iterable[DependencyKind] = BLOCKING_KINDS) -> list[tuple[int, int]]:
        out: list[tuple[int, int]] = []
        for kind in kinds:
            for src, targets in enumerate(self.successors[kind]):
                out.extend((src, dst) for dst in targets)
        return sorted(set(out))

    def to_networkx(self, kinds: Iterable[DependencyKind] = BLOCKING_KINDS) -> nx.DiGraph:
        """Directed networkx view over node indices (dependent -> target)."""
        graph = nx.DiGraph()
        graph.add_nodes_from(range(len(self.ids)))
        graph.add_edges_from(self.edges(kinds))
        return graph


def _freeze(adj: Sequence[set[int]]) -> Adjacency:
    return tuple(tuple(sorted(targets)) for targets in adj)


def build_graph(records: Iterable[Issue]) -> IssueGraph:
    """Build the typed dependency graph for a records snapshot.

    Parameters
    ----------
    records : Iterable[Issue]
        Issue records; the first occurrence of a duplicated id wins.

    Returns
    -------
    IssueGraph
        Graph with per-kind successor/predecessor lists, blocking aggregates,
        and the dangling edges whose targets are not in the snapshot.

    Raises
    ------
    MalformedInput
        If any dependency carries an unknown kind.
    """
    warnings: list[AnalysisWarning] = []
    by_id: dict[str, Issue] = {}
    for issue in records:
        if issue.id in by_id:
            logger.warning("Duplicate issue id %s; keeping first record", issue.id)
            warnings.append(
                AnalysisWarning(
                    kind=ErrorKind.MALFORMED_INPUT,
                    message=f"Duplicate issue id {issue.id}",
                    issue_id=issue.id,
                )
            )
            continue
        by_id[issue.id] = issue

    ids = tuple(sorted(by_id))
    index = {issue_id: i for i, issue_id in enumerate(ids)}
    n = len(ids)
    succ: dict[DependencyKind, list[set[int]]] = {k: [set() for _ in range(n)] for k in DependencyKind}
    pred: dict[DependencyKind, list[set[int]]] = {k: [set() for _ in range(n)] for k in DependencyKind}
    dangling: set[DanglingEdge] = set()

    for src_id in ids:
        src = index[src_id]
        for dep in by_id[src_id].dependencies:
            kind = DependencyKind.parse(dep.kind)
            target_id = dep.depends_on_id
            if target_id == src_id:
                continue
            dst = index.get(target_id)
            if dst is None:
                dangling.add(DanglingEdge(source=src_id, target=target_id, kind=kind))
                continue
            succ[kind][src].add(dst)
            pred[kind][dst].add(src)

    ordered_dangling = tuple(sorted(dangling, key=lambda e: (e.source, e.target, str(e.kind))))
    for edge in ordered_dangling:
        warnings.append(
            AnalysisWarning(
                kind=ErrorKind.MISSING_DEPENDENCY_TARGET,
                message=f"{edge.source} -> {edge.target} ({edge.kind}) targets a missing issue",
                issue_id=edge.source,
            )
        )

    successors = {kind: _freeze(succ[kind]) for kind in DependencyKind}
    predecessors = {kind: _freeze(pred[kind]) for kind in DependencyKind}
    logger.debug("Built graph with %s nodes and %s dangling edges", n, len(ordered_dangling))
    return IssueGraph(
        ids=ids,
        index=index,
        issues=tuple(by_id[i] for i in ids),
        successors=successors,
        predecessors=predecessors,
        blocking_successors=successors[DependencyKind.BLOCKS],
        blocking_predecessors=predecessors[DependencyKind.BLOCKS],
        dangling=ordered_dangling,
        warnings=warnings,
    )


def blocking_state(graph: IssueGraph, issue_id: str) -> list[str]:
    """Present, non-closed blocking targets of ``issue_id`` (empty means satisfied)."""
    return [
        target
        for target in graph.blocking_successor_ids(issue_id)
        if not graph.issue(target).is_closed
    ]

"""Cross-label dependency flow: flow matrix, bottlenecks, and label-level paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from issue_graph.analytics.graph.builder import IssueGraph
from issue_graph.core.config import (
    MAX_LABEL_PATH_EXPANSIONS,
    MAX_LABEL_PATH_LENGTH,
    MAX_LABEL_PATHS,
)
from issue_graph.core.mappers import normalize_labels

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BlockingPair:
    blocker_id: str
    blocked_id: str
    blocker_label: str
    blocked_label: str


@dataclass(slots=True)
class LabelDependency:
    from_label: str
    to_label: str
    issue_count: int = 0
    issue_ids: list[str] = field(default_factory=list)
    blocking_pairs: list[BlockingPair] = field(default_factory=list)


@dataclass(slots=True)
class LabelPath:
    """A chain of labels joined by flow; ``length`` counts transitions, not labels."""

    labels: list[str]
    length: int
    issue_count: int
    total_weight: int


@dataclass(slots=True)
class CrossLabelFlow:
    labels: list[str] = field(default_factory=list)
    flow_matrix: list[list[int]] = field(default_factory=list)
    dependencies: list[LabelDependency] = field(default_factory=list)
    critical_paths: list[LabelPath] = field(default_factory=list)
    bottleneck_labels: list[str] = field(default_factory=list)
    total_cross_label_deps: int = 0

    def flow(self, from_label: str, to_label: str) -> int:
        try:
            i = self.labels.index(from_label)
            j = self.labels.index(to_label)
        except ValueError:
            return 0
        return self.flow_matrix[i][j]

    def out_flow(self, label: str) -> int:
        if label not in self.labels:
            return 0
        return sum(self.flow_matrix[self.labels.index(label)])

    def in_flow(self, label: str) -> int:
        if label not in self.labels:
            return 0
        j = self.labels.index(label)
        return sum(row[j] for row in self.flow_matrix)


def compute_cross_label_flow(
    graph: IssueGraph,
    *,
    include_closed: bool = False,
    max_paths: int = MAX_LABEL_PATHS,
    max_path_length: int = MAX_LABEL_PATH_LENGTH,
) -> CrossLabelFlow:
    """Aggregate blocking edges into label-to-label flow.

    Flow runs from the blocker's labels to the blocked issue's labels: for an
    edge where ``source`` depends on ``target``, each label A carried by the
    target but not the source, and each label B carried by the source but not
    the target, adds one unit to ``flow[A][B]``.
    """
    labels = sorted({label for issue in graph.issues for label in normalize_labels(issue.labels)})
    position = {label: i for i, label in enumerate(labels)}
    matrix = np.zeros((len(labels), len(labels)), dtype=np.int64)
    deps: dict[tuple[str, str], LabelDependency] = {}
    total = 0

    for source_idx, targets in enumerate(graph.blocking_successors):
        blocked = graph.issues[source_idx]
        for target_idx in targets:
            blocker = graph.issues[target_idx]
            if not include_closed and (blocked.is_closed or blocker.is_closed):
                continue
            blocked_labels = set(normalize_labels(blocked.labels))
            blocker_labels = set(normalize_labels(blocker.labels))
            counted = False
            for a in sorted(blocker_labels - blocked_labels):
                for b in sorted(blocked_labels - blocker_labels):
                    matrix[position[a], position[b]] += 1
                    counted = True
                    dep = deps.setdefault((a, b), LabelDependency(from_label=a, to_label=b))
                    dep.blocking_pairs.append(
                        BlockingPair(
                            blocker_id=blocker.id,
                            blocked_id=blocked.id,
                            blocker_label=a,
                            blocked_label=b,
                        )
                    )
                    for issue_id in (blocker.id, blocked.id):
                        if issue_id not in dep.issue_ids:
                            dep.issue_ids.append(issue_id)
            if counted:
                total += 1

    dependencies = []
    for key in sorted(deps):
        dep = deps[key]
        dep.issue_ids.sort()
        dep.issue_count = len(dep.issue_ids)
        dependencies.append(dep)

    result = CrossLabelFlow(
        labels=labels,
        flow_matrix=matrix.tolist(),
        dependencies=dependencies,
        total_cross_label_deps=total,
    )
    net_flow = matrix.sum(axis=1) - matrix.sum(axis=0)
    net = {label: int(net_flow[i]) for i, label in enumerate(labels)}
    result.bottleneck_labels = sorted((lbl for lbl in labels if net[lbl] > 0), key=lambda lbl: (-net[lbl], lbl))
    result.critical_paths = label_paths(result, deps, max_paths=max_paths, max_length=max_path_length)
    return result


def label_paths(
    flow: CrossLabelFlow,
    deps: dict[tuple[str, str], LabelDependency],
    *,
    max_paths: int = MAX_LABEL_PATHS,
    max_length: int = MAX_LABEL_PATH_LENGTH,
) -> list[LabelPath]:
    """Longest simple label sequences connected by non-zero flow.

    Only maximal paths (those that cannot be extended within ``max_length``)
    are kept; ranking is by length, then total flow, then label order.
    """
    adjacency = {
        label: [other for other in flow.labels if other != label and flow.flow(label, other) > 0]
        for label in flow.labels
    }
    found: list[list[str]] = []
    expansions = 0
    truncated = False

    def walk(path: list[str]) -> None:
        nonlocal expansions, truncated
        if expansions >= MAX_LABEL_PATH_EXPANSIONS:
            truncated = True
            return
        expansions += 1
        extensions = [nxt for nxt in adjacency[path[-1]] if nxt not in path]
        if len(path) >= max_length or not extensions:
            if len(path) >= 2:
                found.append(list(path))
            return
        for nxt in extensions:
            walk([*path, nxt])

    for start in flow.labels:
        walk([start])
    if truncated:
        logger.warning("Label path search truncated after %s expansions", MAX_LABEL_PATH_EXPANSIONS)

    paths: list[LabelPath] = []
    for labels in found:
        pairs = list(zip(labels, labels[1:]))
        issues: set[str] = set()
        for pair in pairs:
            issues.update(deps[pair].issue_ids)
        paths.append(
            LabelPath(
                labels=labels,
                length=len(labels) - 1,
                issue_count=len(issues),
                total_weight=sum(flow.flow(a, b) for a, b in pairs),
            )
        )
    paths.sort(key=lambda p: (-p.length, -p.total_weight, p.labels))
    return paths[:max_paths]

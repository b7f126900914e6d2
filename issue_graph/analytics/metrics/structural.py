"""Structural graph metrics: PageRank, betweenness, cycles, depth, and triage.

All algorithms run on the blocking-edge view of an ``IssueGraph`` through
networkx over dense node indices. Because indices follow sorted id order, the
networkx iteration order (and therefore every output) is deterministic.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime

import networkx as nx

from issue_graph.analytics.graph.builder import IssueGraph
from issue_graph.analytics.metrics.aging import add_aging_metrics, days_since_update_by_id
from issue_graph.core.config import (
    AGE_DECAY_DAYS,
    BETWEENNESS_BATCH_SIZE,
    BETWEENNESS_SAMPLE_SIZE,
    BETWEENNESS_SAMPLE_THRESHOLD,
    BETWEENNESS_SEED,
    PAGERANK_DAMPING,
    PAGERANK_MAX_ITER,
    PAGERANK_TOLERANCE,
    TRIAGE_WEIGHT_AGE,
    TRIAGE_WEIGHT_BETWEENNESS,
    TRIAGE_WEIGHT_PAGERANK,
    TRIAGE_WEIGHT_PRIORITY,
)
from issue_graph.core.deadline import Deadline
from issue_graph.core.errors import AnalysisWarning, ComputationDeadlineExceeded, ErrorKind
from issue_graph.core.mappers import issues_to_dataframe

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NodeMetrics:
    pagerank: float = 0.0
    betweenness: float = 0.0
    critical_path_depth: int = 0
    blocks_count: int = 0
    blocked_by_count: int = 0
    triage_score: float = 0.0


@dataclass(slots=True)
class BetweennessResult:
    scores: list[float]
    sampled: bool
    sources_processed: int
    sources_planned: int
    partial: bool


@dataclass(slots=True)
class StructuralMetrics:
    nodes: dict[str, NodeMetrics] = field(default_factory=dict)
    cycles: list[list[str]] = field(default_factory=list)
    critical_path: list[str] = field(default_factory=list)
    max_depth: int = 0
    pagerank_converged: bool = True
    betweenness_sampled: bool = False
    betweenness_sources: int = 0
    partial: bool = False
    warnings: list[AnalysisWarning] = field(default_factory=list)

    def get(self, issue_id: str) -> NodeMetrics:
        return self.nodes.get(issue_id) or NodeMetrics()

    @property
    def max_pagerank(self) -> float:
        return max((m.pagerank for m in self.nodes.values()), default=0.0)

    @property
    def max_betweenness(self) -> float:
        return max((m.betweenness for m in self.nodes.values()), default=0.0)


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _normalized(value: float, max_value: float) -> float:
    if max_value <= 0 or not math.isfinite(max_value):
        return 0.0
    return _finite(value / max_value)


# ------------------ PageRank ------------------
def compute_pagerank(graph: IssueGraph) -> tuple[list[float], bool]:
    """PageRank with rank flowing from dependents to the issues they wait on.

    Returns the per-index scores and whether power iteration converged. On
    non-convergence the uniform vector is returned.
    """
    n = len(graph)
    if n == 0:
        return [], True
    g = graph.to_networkx()
    uniform = 1.0 / n
    try:
        ranks = nx.pagerank(
            g,
            alpha=PAGERANK_DAMPING,
            tol=PAGERANK_TOLERANCE,
            max_iter=PAGERANK_MAX_ITER,
            nstart={i: uniform for i in range(n)},
        )
    except nx.PowerIterationFailedConvergence:
        logger.warning("PageRank failed to converge in %s iterations", PAGERANK_MAX_ITER)
        return [uniform] * n, False
    return [_finite(float(ranks[i])) for i in range(n)], True


# ------------------ Betweenness ------------------
def betweenness_sources(
    n: int,
    *,
    threshold: int = BETWEENNESS_SAMPLE_THRESHOLD,
    sample_size: int = BETWEENNESS_SAMPLE_SIZE,
    seed: int = BETWEENNESS_SEED,
) -> tuple[list[int], bool]:
    """Source nodes for Brandes accumulation; a seeded uniform sample above ``threshold``."""
    nodes = list(range(n))
    if n <= threshold:
        return nodes, False
    k = min(n, sample_size)
    return sorted(random.Random(seed).sample(nodes, k)), True


def compute_betweenness(
    graph: IssueGraph,
    *,
    deadline: Deadline | None = None,
    threshold: int = BETWEENNESS_SAMPLE_THRESHOLD,
    sample_size: int = BETWEENNESS_SAMPLE_SIZE,
    seed: int = BETWEENNESS_SEED,
    batch_size: int = BETWEENNESS_BATCH_SIZE,
) -> BetweennessResult:
    """Betweenness on the undirected projection of blocking edges.

    Sources are processed in batches through
    ``networkx.betweenness_centrality_subset`` (targets = all nodes), which is
    additive over sources. When sampling, or when the deadline cuts the run
    short, the accumulated sum is scaled by ``N / sources_processed``.
    """
    n = len(graph)
    if n == 0:
        return BetweennessResult([], False, 0, 0, False)
    undirected = nx.Graph()
    undirected.add_nodes_from(range(n))
    undirected.add_edges_from(graph.edges())
    sources, sampled = betweenness_sources(n, threshold=threshold, sample_size=sample_size, seed=seed)
    totals = [0.0] * n
    processed = 0
    partial = False
    targets = list(range(n))
    for start in range(0, len(sources), max(1, batch_size)):
        if deadline is not None:
            try:
                deadline.check("betweenness")
            except ComputationDeadlineExceeded:
                logger.warning(
                    "Betweenness deadline hit after %s of %s sources", processed, len(sources)
                )
                partial = True
                break
        batch = sources[start : start + max(1, batch_size)]
        scores = nx.betweenness_centrality_subset(
            undirected, sources=batch, targets=targets, normalized=False
        )
        for node, value in scores.items():
            totals[node] += value
        processed += len(batch)

    if processed and (sampled or partial):
        scale = n / processed
        totals = [value * scale for value in totals]
    return BetweennessResult(
        scores=[_finite(v) for v in totals],
        sampled=sampled,
        sources_processed=processed,
        sources_planned=len(sources),
        partial=partial,
    )


# ------------------ SCC / cycles / depth ------------------
def _discovery_order(g: nx.DiGraph, members: set[int], start: int) -> list[int]:
    order: list[int] = []
    seen: set[int] = set()
    stack = [start]
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen.add(node)
        order.append(node)
        # Reverse so the smallest successor is popped (discovered) first
        for nxt in sorted((s for s in g.successors(node) if s in members), reverse=True):
            if nxt not in seen:
                stack.append(nxt)
    return order


def find_cycles(graph: IssueGraph, g: nx.DiGraph | None = None) -> list[list[str]]:
    """Strongly connected components of size >= 2, each starting at its smallest id."""
    g = g if g is not None else graph.to_networkx()
    cycles: list[list[str]] = []
    for component in nx.strongly_connected_components(g):
        if len(component) < 2:
            continue
        start = min(component)
        cycles.append([graph.ids[i] for i in _discovery_order(g, component, start)])
    cycles.sort(key=lambda cycle: cycle[0])
    return cycles


def compute_depths(graph: IssueGraph, g: nx.DiGraph | None = None) -> tuple[list[int], list[str]]:
    """Critical-path depth per node and one longest chain (smaller ids win ties).

    Depth is computed on the SCC condensation, each component counting as one
    step; a node with no present blockers has depth 1.
    """
    n = len(graph)
    if n == 0:
        return [], []
    g = g if g is not None else graph.to_networkx()
    condensed = nx.condensation(g)
    mapping: dict[int, int] = condensed.graph["mapping"]
    comp_depth: dict[int, int] = {}
    for comp in reversed(list(nx.topological_sort(condensed))):
        below = [comp_depth[s] for s in condensed.successors(comp)]
        comp_depth[comp] = 1 + max(below, default=0)
    depths = [comp_depth[mapping[i]] for i in range(n)]

    def rep(comp: int) -> int:
        return min(condensed.nodes[comp]["members"])

    best = max(condensed.nodes, key=lambda c: (comp_depth[c], -rep(c)))
    path = [graph.ids[rep(best)]]
    current = best
    while comp_depth[current] > 1:
        nxt = [s for s in condensed.successors(current) if comp_depth[s] == comp_depth[current] - 1]
        current = min(nxt, key=rep)
        path.append(graph.ids[rep(current)])
    return depths, path


# ------------------ Triage ------------------
def priority_weight(priority: int, max_priority: int) -> float:
    """``(max_priority - priority + 1) / max_priority`` clamped to [0, 1].

    Priorities 0 and 1 both map to 1. A snapshot whose highest number is 0
    (or less) gives every issue the full weight.
    """
    if max_priority <= 0:
        return 1.0
    weight = (max_priority - priority + 1) / max_priority
    return min(1.0, max(0.0, weight))


def age_decay(days_since_update: float) -> float:
    return math.exp(-max(0.0, days_since_update) / AGE_DECAY_DAYS)


def triage_score(
    pagerank_norm: float,
    betweenness_norm: float,
    prio_weight: float,
    days_since_update: float,
) -> float:
    score = (
        TRIAGE_WEIGHT_PAGERANK * pagerank_norm
        + TRIAGE_WEIGHT_BETWEENNESS * betweenness_norm
        + TRIAGE_WEIGHT_PRIORITY * prio_weight
        + TRIAGE_WEIGHT_AGE * (1.0 - age_decay(days_since_update))
    )
    return min(1.0, max(0.0, _finite(score)))


def compute_metrics(
    graph: IssueGraph,
    *,
    now: datetime | None = None,
    deadline: Deadline | None = None,
    sample_threshold: int = BETWEENNESS_SAMPLE_THRESHOLD,
    sample_size: int = BETWEENNESS_SAMPLE_SIZE,
    seed: int = BETWEENNESS_SEED,
) -> StructuralMetrics:
    """Decorate every node of ``graph`` with its structural metrics.

    Parameters
    ----------
    graph : IssueGraph
        Graph built from the records snapshot.
    now : datetime, optional
        Reference time for the age term of the triage score.
    deadline : Deadline, optional
        Bounds betweenness; on expiry the result is flagged ``partial``.

    Returns
    -------
    StructuralMetrics
        Per-node metrics keyed by id (sorted), cycles, and the critical path.
    """
    result = StructuralMetrics()
    n = len(graph)
    if n == 0:
        return result

    g = graph.to_networkx()
    ranks, converged = compute_pagerank(graph)
    if not converged:
        result.pagerank_converged = False
        result.warnings.append(
            AnalysisWarning(
                kind=ErrorKind.NON_CONVERGENCE,
                message="PageRank did not converge; using uniform ranks",
            )
        )
    between = compute_betweenness(
        graph, deadline=deadline, threshold=sample_threshold, sample_size=sample_size, seed=seed
    )
    if between.partial:
        result.partial = True
        result.warnings.append(
            AnalysisWarning(
                kind=ErrorKind.COMPUTATION_DEADLINE_EXCEEDED,
                message=(
                    f"Betweenness estimated from {between.sources_processed} of "
                    f"{between.sources_planned} sources"
                ),
            )
        )
    result.betweenness_sampled = between.sampled
    result.betweenness_sources = between.sources_processed
    result.cycles = find_cycles(graph, g)
    depths, path = compute_depths(graph, g)
    result.critical_path = path
    result.max_depth = max(depths, default=0)

    aged = add_aging_metrics(issues_to_dataframe(graph.issues), now)
    staleness = days_since_update_by_id(aged)
    max_priority = max(int(issue.priority) for issue in graph.issues)
    max_rank = max(ranks, default=0.0)
    max_between = max(between.scores, default=0.0)

    for i, issue_id in enumerate(graph.ids):
        issue = graph.issues[i]
        metrics = NodeMetrics(
            pagerank=ranks[i],
            betweenness=between.scores[i],
            critical_path_depth=depths[i],
            blocks_count=len(graph.blocking_predecessors[i]),
            blocked_by_count=len(graph.blocking_successors[i]),
        )
        metrics.triage_score = triage_score(
            _normalized(ranks[i], max_rank),
            _normalized(between.scores[i], max_between),
            priority_weight(int(issue.priority), max_priority),
            staleness.get(issue_id, 0.0),
        )
        result.nodes[issue_id] = metrics
    logger.debug(
        "Computed metrics for %s nodes (%s cycles, max depth %s)", n, len(result.cycles), result.max_depth
    )
    return result

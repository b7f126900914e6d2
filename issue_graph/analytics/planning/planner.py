"""Execution planning: readiness, impact scoring, parallel tracks, and recommendations."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum

from issue_graph.analytics.graph.builder import IssueGraph, blocking_state
from issue_graph.analytics.metrics.structural import StructuralMetrics, priority_weight
from issue_graph.core.config import (
    IMPACT_PRIORITY_FACTOR,
    MAX_START_NEXT,
    MAX_TRACKS,
    UNBLOCK_MIN_DEPENDENTS,
)
from issue_graph.core.models import CONNECTING_KINDS, IssueStatus
from issue_graph.core.status import empty_status_counts, is_actionable_status

logger = logging.getLogger(__name__)


class RecommendationKind(StrEnum):
    START_NEXT = "start_next"
    UNBLOCK = "unblock"
    INVESTIGATE_CYCLE = "investigate_cycle"


@dataclass(slots=True)
class Recommendation:
    kind: RecommendationKind
    issue_id: str
    confidence: float
    reason: str
    issue_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ImpactScore:
    issue_id: str
    impact: float
    unblocks: list[str] = field(default_factory=list)
    pagerank: float = 0.0


@dataclass(slots=True)
class PlanSummary:
    total: int = 0
    status_counts: dict[str, int] = field(default_factory=empty_status_counts)
    ready_count: int = 0
    blocked_count: int = 0
    in_progress_count: int = 0
    closed_count: int = 0
    track_count: int = 0
    backlog_count: int = 0
    cycle_count: int = 0


@dataclass(slots=True)
class ExecutionPlan:
    ready: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)
    in_progress: list[str] = field(default_factory=list)
    blocked_by: dict[str, list[str]] = field(default_factory=dict)
    impacts: list[ImpactScore] = field(default_factory=list)
    tracks: list[list[str]] = field(default_factory=list)
    backlog: list[str] = field(default_factory=list)
    highest_impact: str | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    summary: PlanSummary = field(default_factory=PlanSummary)


def _ancestor_blockers(graph: IssueGraph, issue_id: str, direct: dict[str, list[str]]) -> list[str]:
    """Unresolved blockers of any parent-child ancestor of ``issue_id``."""
    found: list[str] = []
    seen = {issue_id}
    queue = deque(graph.parent_ids(issue_id))
    while queue:
        parent = queue.popleft()
        if parent in seen:
            continue
        seen.add(parent)
        blockers = direct.get(parent)
        if blockers is None:
            blockers = blocking_state(graph, parent)
        found.extend(b for b in blockers if b not in found)
        queue.extend(graph.parent_ids(parent))
    return sorted(found)


def partition_readiness(
    graph: IssueGraph, *, honor_parent_blocking: bool = False
) -> tuple[list[str], list[str], list[str], dict[str, list[str]]]:
    """Split issues into ready, blocked, and in-progress lists (all sorted by id).

    Missing targets never block. With ``honor_parent_blocking`` an issue is also
    blocked while any parent-child ancestor waits on an unresolved blocker.
    """
    ready: list[str] = []
    blocked: list[str] = []
    in_progress: list[str] = []
    blocked_by: dict[str, list[str]] = {}
    direct = {issue_id: blocking_state(graph, issue_id) for issue_id in graph.ids}
    for issue_id in graph.ids:
        issue = graph.issue(issue_id)
        if issue.is_in_progress:
            in_progress.append(issue_id)
            continue
        if not is_actionable_status(issue.status):
            continue
        blockers = list(direct[issue_id])
        if honor_parent_blocking:
            blockers.extend(b for b in _ancestor_blockers(graph, issue_id, direct) if b not in blockers)
        if blockers:
            blocked.append(issue_id)
            blocked_by[issue_id] = blockers
        else:
            ready.append(issue_id)
    return ready, blocked, in_progress, blocked_by


def _reverse_closure(graph: IssueGraph, issue_id: str) -> list[str]:
    seen: set[str] = set()
    queue = deque(graph.blocking_predecessor_ids(issue_id))
    while queue:
        current = queue.popleft()
        if current in seen or current == issue_id:
            continue
        seen.add(current)
        queue.extend(graph.blocking_predecessor_ids(current))
    return sorted(seen)


def score_impacts(
    graph: IssueGraph,
    metrics: StructuralMetrics,
    ready: list[str],
    blocked_by: dict[str, list[str]],
) -> list[ImpactScore]:
    """Impact of each ready issue, ordered by impact, then PageRank, then id."""
    max_priority = max((int(i.priority) for i in graph.issues), default=0)
    scores: list[ImpactScore] = []
    for issue_id in ready:
        unblocks = [
            dependent
            for dependent in _reverse_closure(graph, issue_id)
            if blocked_by.get(dependent) == [issue_id]
        ]
        weight = sum(priority_weight(int(graph.issue(d).priority), max_priority) for d in unblocks)
        scores.append(
            ImpactScore(
                issue_id=issue_id,
                impact=len(unblocks) + IMPACT_PRIORITY_FACTOR * weight,
                unblocks=unblocks,
                pagerank=metrics.get(issue_id).pagerank,
            )
        )
    scores.sort(key=lambda s: (-s.impact, -s.pagerank, s.issue_id))
    return scores


def build_tracks(
    graph: IssueGraph, ordered_ids: list[str], *, max_tracks: int = MAX_TRACKS
) -> tuple[list[list[str]], list[str]]:
    """Greedy first-fit of issues into mutually non-adjacent tracks.

    Adjacency covers blocking and parent-child edges in both directions.
    Candidates that fit no track once ``max_tracks`` exist spill to the backlog.
    """
    tracks: list[list[str]] = []
    members: list[set[str]] = []
    backlog: list[str] = []
    for issue_id in ordered_ids:
        conflicts = set(graph.neighbors(issue_id, CONNECTING_KINDS))
        for track, member_set in zip(tracks, members, strict=True):
            if not conflicts & member_set:
                track.append(issue_id)
                member_set.add(issue_id)
                break
        else:
            if len(tracks) < max_tracks:
                tracks.append([issue_id])
                members.append({issue_id})
            else:
                backlog.append(issue_id)
    return tracks, backlog


def _open_dependents(graph: IssueGraph, issue_id: str) -> list[str]:
    return [d for d in _reverse_closure(graph, issue_id) if not graph.issue(d).is_closed]


def build_recommendations(
    graph: IssueGraph,
    metrics: StructuralMetrics,
    impacts: list[ImpactScore],
) -> list[Recommendation]:
    recommendations: list[Recommendation] = []
    max_priority = max((int(i.priority) for i in graph.issues), default=0)
    max_rank = metrics.max_pagerank or 1.0
    max_impact = max((s.impact for s in impacts), default=0.0)

    for score in impacts[:MAX_START_NEXT]:
        issue = graph.issue(score.issue_id)
        impact_norm = score.impact / max_impact if max_impact > 0 else 0.0
        confidence = (
            0.5 * impact_norm
            + 0.3 * (score.pagerank / max_rank)
            + 0.2 * priority_weight(int(issue.priority), max_priority)
        )
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.START_NEXT,
                issue_id=score.issue_id,
                confidence=round(min(1.0, max(0.0, confidence)), 6),
                reason=f"Ready; unblocks {len(score.unblocks)} issue(s) when closed",
                issue_ids=list(score.unblocks),
            )
        )

    unblockers: list[tuple[str, list[str]]] = []
    for issue_id in graph.ids:
        if graph.issue(issue_id).is_closed:
            continue
        dependents = _open_dependents(graph, issue_id)
        if len(dependents) >= UNBLOCK_MIN_DEPENDENTS:
            unblockers.append((issue_id, dependents))
    unblockers.sort(key=lambda item: (-len(item[1]), item[0]))
    max_dependents = max((len(d) for _, d in unblockers), default=1)
    for issue_id, dependents in unblockers:
        confidence = 0.6 * len(dependents) / max_dependents + 0.4 * metrics.get(issue_id).pagerank / max_rank
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.UNBLOCK,
                issue_id=issue_id,
                confidence=round(min(1.0, max(0.0, confidence)), 6),
                reason=f"Closing this transitively unblocks {len(dependents)} issues",
                issue_ids=dependents,
            )
        )

    for cycle in metrics.cycles:
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.INVESTIGATE_CYCLE,
                issue_id=cycle[0],
                confidence=1.0,
                reason=f"Dependency cycle of {len(cycle)} issues: {' -> '.join(cycle)}",
                issue_ids=list(cycle),
            )
        )
    return recommendations


def build_plan(
    graph: IssueGraph,
    metrics: StructuralMetrics,
    *,
    honor_parent_blocking: bool = False,
    max_tracks: int = MAX_TRACKS,
) -> ExecutionPlan:
    """Derive the execution plan for a graph and its structural metrics."""
    ready, blocked, in_progress, blocked_by = partition_readiness(
        graph, honor_parent_blocking=honor_parent_blocking
    )
    impacts = score_impacts(graph, metrics, ready, blocked_by)
    tracks, backlog = build_tracks(graph, [s.issue_id for s in impacts], max_tracks=max_tracks)

    summary = PlanSummary(total=len(graph))
    for issue in graph.issues:
        summary.status_counts[str(IssueStatus(issue.status))] += 1
    summary.ready_count = len(ready)
    summary.blocked_count = len(blocked)
    summary.in_progress_count = len(in_progress)
    summary.closed_count = summary.status_counts[str(IssueStatus.CLOSED)]
    summary.track_count = len(tracks)
    summary.backlog_count = len(backlog)
    summary.cycle_count = len(metrics.cycles)

    plan = ExecutionPlan(
        ready=ready,
        blocked=blocked,
        in_progress=in_progress,
        blocked_by=blocked_by,
        impacts=impacts,
        tracks=tracks,
        backlog=backlog,
        highest_impact=impacts[0].issue_id if impacts else None,
        recommendations=build_recommendations(graph, metrics, impacts),
        summary=summary,
    )
    logger.debug(
        "Plan: %s ready, %s blocked, %s tracks, %s backlog",
        len(ready),
        len(blocked),
        len(tracks),
        len(backlog),
    )
    return plan

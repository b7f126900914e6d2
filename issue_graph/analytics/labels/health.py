"""Label health composite: velocity, freshness, flow, and criticality sub-scores.

Every sub-score is an integer in [0, 100]; the composite is the weighted sum of
the four (weights from ``LabelHealthConfig``), truncated and clamped. Bands:
healthy >= 70, warning >= 40, critical below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from issue_graph.analytics.graph.builder import IssueGraph, blocking_state
from issue_graph.analytics.labels.flow import CrossLabelFlow, compute_cross_label_flow
from issue_graph.analytics.metrics.aging import add_aging_metrics, compute_stale, resolve_now
from issue_graph.analytics.metrics.structural import StructuralMetrics
from issue_graph.core.config import (
    BOTTLENECK_BLOCKS_COUNT,
    HEALTH_LEVEL_CRITICAL,
    HEALTH_LEVEL_HEALTHY,
    HEALTH_LEVEL_WARNING,
    HEALTHY_THRESHOLD,
    NEUTRAL_CRITICALITY,
    SECONDS_PER_DAY,
    TREND_SCORE_ADJUSTMENT,
    TREND_THRESHOLD_PERCENT,
    WARNING_THRESHOLD,
    LabelHealthConfig,
)
from issue_graph.core.errors import MalformedInput
from issue_graph.core.mappers import issues_to_dataframe, normalize_labels
from issue_graph.core.models import IssueStatus

logger = logging.getLogger(__name__)

_CLOSED = str(IssueStatus.CLOSED)

TREND_IMPROVING = "improving"
TREND_STABLE = "stable"
TREND_DECLINING = "declining"


@dataclass(slots=True)
class VelocityMetrics:
    closed_last_7_days: int = 0
    closed_last_30_days: int = 0
    closed_prior_7_days: int = 0
    avg_days_to_close: float = 0.0
    trend_direction: str = TREND_STABLE
    trend_percent: float = 0.0
    velocity_score: int = 100


@dataclass(slots=True)
class FreshnessMetrics:
    most_recent_update: datetime | None = None
    oldest_open_issue: datetime | None = None
    avg_days_since_update: float = 0.0
    stale_count: int = 0
    stale_threshold_days: int = 0
    freshness_score: int = 100


@dataclass(slots=True)
class FlowMetrics:
    incoming_deps: int = 0
    outgoing_deps: int = 0
    incoming_labels: list[str] = field(default_factory=list)
    outgoing_labels: list[str] = field(default_factory=list)
    blocked_by_external: int = 0
    blocking_external: int = 0
    flow_score: int = 100


@dataclass(slots=True)
class CriticalityMetrics:
    avg_pagerank: float = 0.0
    avg_betweenness: float = 0.0
    max_betweenness: float = 0.0
    critical_path_count: int = 0
    bottleneck_count: int = 0
    criticality_score: int = NEUTRAL_CRITICALITY


@dataclass(slots=True)
class LabelHealth:
    label: str
    issue_count: int = 0
    open_count: int = 0
    closed_count: int = 0
    health: int = 100
    health_level: str = HEALTH_LEVEL_HEALTHY
    velocity: VelocityMetrics = field(default_factory=VelocityMetrics)
    freshness: FreshnessMetrics = field(default_factory=FreshnessMetrics)
    flow: FlowMetrics = field(default_factory=FlowMetrics)
    criticality: CriticalityMetrics = field(default_factory=CriticalityMetrics)
    issues: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LabelSummary:
    label: str
    issue_count: int
    open_count: int
    health: int
    health_level: str
    top_issue: str | None
    needs_attention: bool


@dataclass(slots=True)
class LabelAnalysisResult:
    generated_at: datetime | None = None
    total_labels: int = 0
    healthy_count: int = 0
    warning_count: int = 0
    critical_count: int = 0
    labels: list[LabelHealth] = field(default_factory=list)
    summaries: list[LabelSummary] = field(default_factory=list)
    cross_label_flow: CrossLabelFlow = field(default_factory=CrossLabelFlow)
    attention_needed: list[str] = field(default_factory=list)


def _clamp_score(value: float) -> int:
    if value != value:  # NaN
        return 0
    return int(min(100.0, max(0.0, value)))


def health_level(score: int) -> str:
    if score >= HEALTHY_THRESHOLD:
        return HEALTH_LEVEL_HEALTHY
    if score >= WARNING_THRESHOLD:
        return HEALTH_LEVEL_WARNING
    return HEALTH_LEVEL_CRITICAL


def needs_attention(score: int) -> bool:
    return score < HEALTHY_THRESHOLD


def validate_weights(config: LabelHealthConfig) -> None:
    if abs(config.weight_total() - 1.0) > 1e-6:
        raise MalformedInput(f"Label health weights must sum to 1, got {config.weight_total():.3f}")


def composite_health(
    velocity: int, freshness: int, flow: int, criticality: int, config: LabelHealthConfig | None = None
) -> int:
    """Weighted composite of the four sub-scores.

    Examples
    --------
    >>> composite_health(100, 0, 100, 0)
    50
    """
    config = config or LabelHealthConfig()
    total = (
        config.velocity_weight * velocity
        + config.freshness_weight * freshness
        + config.flow_weight * flow
        + config.criticality_weight * criticality
    )
    return _clamp_score(total)


def trend(last_7: int, prior_7: int) -> tuple[str, float]:
    if prior_7 == 0:
        percent = 100.0 if last_7 > 0 else 0.0
    else:
        percent = (last_7 - prior_7) / prior_7 * 100.0
    if percent > TREND_THRESHOLD_PERCENT:
        return TREND_IMPROVING, percent
    if percent < -TREND_THRESHOLD_PERCENT:
        return TREND_DECLINING, percent
    return TREND_STABLE, percent


def compute_velocity(rows: pd.DataFrame, now: datetime) -> VelocityMetrics:
    metrics = VelocityMetrics()
    now_ts = pd.Timestamp(now)
    closed = rows[rows["status"] == _CLOSED]
    closed_at = closed["closed_dt"].dropna()
    age = (now_ts - closed_at).dt.total_seconds() / SECONDS_PER_DAY
    metrics.closed_last_7_days = int(((age >= 0) & (age <= 7)).sum())
    metrics.closed_last_30_days = int(((age >= 0) & (age <= 30)).sum())
    metrics.closed_prior_7_days = int(((age > 7) & (age <= 14)).sum())
    to_close = closed["days_to_close"].dropna()
    metrics.avg_days_to_close = round(float(to_close.mean()), 6) if not to_close.empty else 0.0
    metrics.trend_direction, metrics.trend_percent = trend(
        metrics.closed_last_7_days, metrics.closed_prior_7_days
    )
    open_count = int((rows["status"] != _CLOSED).sum())
    if open_count == 0:
        base = 100.0
    else:
        base = min(100.0, 100.0 * metrics.closed_last_30_days / open_count)
    if metrics.trend_direction == TREND_IMPROVING:
        base += TREND_SCORE_ADJUSTMENT
    elif metrics.trend_direction == TREND_DECLINING:
        base -= TREND_SCORE_ADJUSTMENT
    metrics.velocity_score = _clamp_score(base)
    return metrics


def compute_freshness(rows: pd.DataFrame, stale_days: int) -> FreshnessMetrics:
    metrics = FreshnessMetrics(stale_threshold_days=stale_days)
    updated = rows["updated_dt"].dropna()
    if not updated.empty:
        metrics.most_recent_update = updated.max().to_pydatetime()
    open_rows = rows[rows["status"] != _CLOSED]
    if open_rows.empty:
        return metrics
    created = open_rows["created_dt"].dropna()
    if not created.empty:
        metrics.oldest_open_issue = created.min().to_pydatetime()
    days = open_rows["days_since_update"].astype(float)
    metrics.avg_days_since_update = round(float(days.mean()), 6)
    metrics.stale_count = len(compute_stale(open_rows, stale_days))
    stale_fraction = metrics.stale_count / len(open_rows)
    base = max(0.0, 1.0 - metrics.avg_days_since_update / (2.0 * max(1, stale_days)))
    metrics.freshness_score = _clamp_score(100.0 * base * (1.0 - 0.5 * stale_fraction))
    return metrics


def compute_flow_metrics(graph: IssueGraph, label: str, member_ids: list[str]) -> FlowMetrics:
    metrics = FlowMetrics()
    members = set(member_ids)
    incoming: set[str] = set()
    outgoing: set[str] = set()
    blocked_external: set[str] = set()
    blocking_external: set[str] = set()
    open_count = 0
    for issue_id in member_ids:
        issue = graph.issue(issue_id)
        if not issue.is_closed:
            open_count += 1
        for blocker_id in graph.blocking_successor_ids(issue_id):
            if blocker_id in members:
                continue
            metrics.incoming_deps += 1
            incoming.update(normalize_labels(graph.issue(blocker_id).labels))
        for dependent_id in graph.blocking_predecessor_ids(issue_id):
            if dependent_id in members:
                continue
            metrics.outgoing_deps += 1
            dependent = graph.issue(dependent_id)
            outgoing.update(normalize_labels(dependent.labels))
            if not dependent.is_closed and not issue.is_closed:
                blocking_external.add(dependent_id)
        if not issue.is_closed and any(b not in members for b in blocking_state(graph, issue_id)):
            blocked_external.add(issue_id)
    incoming.discard(label)
    outgoing.discard(label)
    metrics.incoming_labels = sorted(incoming)
    metrics.outgoing_labels = sorted(outgoing)
    metrics.blocked_by_external = len(blocked_external)
    metrics.blocking_external = len(blocking_external)
    if open_count:
        metrics.flow_score = _clamp_score(100.0 * (1.0 - metrics.blocked_by_external / open_count))
    return metrics


def _raw_criticality(metrics: StructuralMetrics, member_ids: list[str]) -> CriticalityMetrics:
    out = CriticalityMetrics()
    if not member_ids:
        return out
    nodes = [metrics.get(i) for i in member_ids]
    out.avg_pagerank = sum(n.pagerank for n in nodes) / len(nodes)
    out.avg_betweenness = sum(n.betweenness for n in nodes) / len(nodes)
    out.max_betweenness = max(n.betweenness for n in nodes)
    on_path = set(metrics.critical_path)
    out.critical_path_count = sum(1 for i in member_ids if i in on_path)
    out.bottleneck_count = sum(1 for n in nodes if n.blocks_count >= BOTTLENECK_BLOCKS_COUNT)
    return out


def score_criticality(per_label: dict[str, CriticalityMetrics]) -> None:
    """Fill ``criticality_score`` by normalizing averages across all labels (in place)."""
    max_pr = max((c.avg_pagerank for c in per_label.values()), default=0.0)
    max_bw = max((c.avg_betweenness for c in per_label.values()), default=0.0)
    for crit in per_label.values():
        if max_pr <= 0 and max_bw <= 0:
            crit.criticality_score = NEUTRAL_CRITICALITY
            continue
        pr_part = crit.avg_pagerank / max_pr if max_pr > 0 else 0.0
        bw_part = crit.avg_betweenness / max_bw if max_bw > 0 else 0.0
        crit.criticality_score = _clamp_score(100.0 * (0.5 * pr_part + 0.5 * bw_part))


def _top_issue(graph: IssueGraph, metrics: StructuralMetrics, member_ids: list[str]) -> str | None:
    candidates = [i for i in member_ids if not graph.issue(i).is_closed] or list(member_ids)
    if not candidates:
        return None
    return min(candidates, key=lambda i: (-metrics.get(i).pagerank, i))


def analyze_label_health(
    graph: IssueGraph,
    metrics: StructuralMetrics,
    *,
    config: LabelHealthConfig | None = None,
    now: datetime | None = None,
) -> LabelAnalysisResult:
    """Health, summaries, and cross-label flow for every label in the graph.

    Parameters
    ----------
    graph : IssueGraph
        Graph of the snapshot (labels are read from its issues).
    metrics : StructuralMetrics
        PageRank/betweenness used by the criticality sub-score.
    config : LabelHealthConfig, optional
        Weights and thresholds; weights must sum to 1.
    now : datetime, optional
        Reference time for velocity and freshness windows.
    """
    config = config or LabelHealthConfig()
    validate_weights(config)
    now = resolve_now(now)
    result = LabelAnalysisResult(generated_at=now)
    result.cross_label_flow = compute_cross_label_flow(graph, include_closed=config.include_closed_in_flow)

    aged = add_aging_metrics(issues_to_dataframe(graph.issues), now)
    if aged.empty:
        return result
    exploded = aged.explode("labels").rename(columns={"labels": "label"})
    exploded = exploded[exploded["label"].notna()]

    members: dict[str, list[str]] = {}
    for label, group in exploded.groupby("label", sort=True):
        ids = sorted(str(i) for i in group["id"])
        if len(ids) < config.min_issues_for_health:
            continue
        members[str(label)] = ids

    criticality = {label: _raw_criticality(metrics, ids) for label, ids in members.items()}
    score_criticality(criticality)

    for label, ids in members.items():
        rows = exploded[exploded["label"] == label]
        health = LabelHealth(
            label=label,
            issue_count=len(ids),
            open_count=int((rows["status"] != _CLOSED).sum()),
            closed_count=int((rows["status"] == _CLOSED).sum()),
            velocity=compute_velocity(rows, now),
            freshness=compute_freshness(rows, config.stale_threshold_days),
            flow=compute_flow_metrics(graph, label, ids),
            criticality=criticality[label],
            issues=ids,
        )
        health.health = composite_health(
            health.velocity.velocity_score,
            health.freshness.freshness_score,
            health.flow.flow_score,
            health.criticality.criticality_score,
            config,
        )
        health.health_level = health_level(health.health)
        result.labels.append(health)
        result.summaries.append(
            LabelSummary(
                label=label,
                issue_count=health.issue_count,
                open_count=health.open_count,
                health=health.health,
                health_level=health.health_level,
                top_issue=_top_issue(graph, metrics, ids),
                needs_attention=needs_attention(health.health),
            )
        )

    result.total_labels = len(result.labels)
    result.healthy_count = sum(1 for h in result.labels if h.health_level == HEALTH_LEVEL_HEALTHY)
    result.warning_count = sum(1 for h in result.labels if h.health_level == HEALTH_LEVEL_WARNING)
    result.critical_count = sum(1 for h in result.labels if h.health_level == HEALTH_LEVEL_CRITICAL)
    result.attention_needed = [
        h.label for h in sorted(result.labels, key=lambda h: (h.health, h.label)) if needs_attention(h.health)
    ]
    logger.debug(
        "Label health: %s labels (%s need attention)", result.total_labels, len(result.attention_needed)
    )
    return result

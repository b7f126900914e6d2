from datetime import UTC, datetime, timedelta

import pytest

from issue_graph.analytics.graph.builder import build_graph
from issue_graph.analytics.labels.health import (
    analyze_label_health,
    composite_health,
    health_level,
    trend,
)
from issue_graph.analytics.metrics.structural import compute_metrics
from issue_graph.core.config import LabelHealthConfig
from issue_graph.core.errors import MalformedInput
from issue_graph.core.models import Dependency, Issue, IssueStatus

NOW = datetime(2025, 3, 1, tzinfo=UTC)


def _issue(issue_id, labels, *, status=IssueStatus.OPEN, age_days=1, closed_days_ago=None, deps=()):
    created = NOW - timedelta(days=age_days + 10)
    closed = NOW - timedelta(days=closed_days_ago) if closed_days_ago is not None else None
    return Issue(
        id=issue_id,
        title=f"Issue {issue_id}",
        status=status,
        labels=list(labels),
        created_at=created,
        updated_at=NOW - timedelta(days=age_days),
        closed_at=closed,
        dependencies=[Dependency(issue_id=issue_id, depends_on_id=d) for d in deps],
    )


def _analyze(records, config=None):
    graph = build_graph(records)
    return analyze_label_health(graph, compute_metrics(graph, now=NOW), config=config, now=NOW)


@pytest.mark.parametrize(
    ("score", "level"),
    [(100, "healthy"), (70, "healthy"), (69, "warning"), (40, "warning"), (39, "critical"), (0, "critical")],
)
def test_health_bands(score, level):
    assert health_level(score) == level


def test_composite_uses_equal_weights_by_default():
    assert composite_health(100, 0, 100, 0) == 50
    assert composite_health(100, 100, 100, 100) == 100
    assert composite_health(0, 0, 0, 0) == 0


def test_composite_honors_custom_weights():
    config = LabelHealthConfig(velocity_weight=0.7, freshness_weight=0.1, flow_weight=0.1, criticality_weight=0.1)
    assert composite_health(100, 0, 0, 0, config) == 70


def test_weights_must_sum_to_one():
    config = LabelHealthConfig(velocity_weight=0.5)
    with pytest.raises(MalformedInput):
        _analyze([_issue("a", ["x"])], config=config)


def test_trend_direction():
    assert trend(5, 2)[0] == "improving"
    assert trend(2, 5)[0] == "declining"
    assert trend(5, 5)[0] == "stable"
    assert trend(0, 0) == ("stable", 0.0)


def test_scores_stay_in_range():
    records = [
        _issue("a", ["api"], age_days=40),
        _issue("b", ["api"], status=IssueStatus.CLOSED, closed_days_ago=2),
        _issue("c", ["ui"], deps=["a"]),
    ]
    result = _analyze(records)
    assert result.total_labels == 2
    for health in result.labels:
        for score in (
            health.health,
            health.velocity.velocity_score,
            health.freshness.freshness_score,
            health.flow.flow_score,
            health.criticality.criticality_score,
        ):
            assert 0 <= score <= 100
    assert result.healthy_count + result.warning_count + result.critical_count == result.total_labels


def test_stale_label_scores_below_fresh_label():
    records = [
        _issue("old1", ["legacy"], age_days=60),
        _issue("old2", ["legacy"], age_days=45),
        _issue("new1", ["fresh"], age_days=0),
        _issue("new2", ["fresh"], age_days=1),
    ]
    by_label = {h.label: h for h in _analyze(records).labels}
    assert by_label["legacy"].freshness.stale_count == 2
    assert by_label["fresh"].freshness.stale_count == 0
    assert by_label["legacy"].freshness.freshness_score < by_label["fresh"].freshness.freshness_score


def test_externally_blocked_label_loses_flow_score():
    records = [_issue("a", ["api"]), _issue("b", ["ui"], deps=["a"])]
    by_label = {h.label: h for h in _analyze(records).labels}
    assert by_label["ui"].flow.blocked_by_external == 1
    assert by_label["ui"].flow.flow_score == 0
    assert by_label["ui"].flow.incoming_labels == ["api"]
    assert by_label["api"].flow.blocking_external == 1
    assert by_label["api"].flow.flow_score == 100


def test_attention_list_is_sorted_by_health():
    result = _analyze([_issue("a", ["api"]), _issue("b", ["ui"], deps=["a"], age_days=90)])
    healths = {h.label: h.health for h in result.labels}
    expected = sorted((lbl for lbl, score in healths.items() if score < 70), key=lambda lbl: (healths[lbl], lbl))
    assert result.attention_needed == expected


def test_no_labels_gives_empty_result():
    result = _analyze([])
    assert result.total_labels == 0
    assert result.labels == []
    assert result.cross_label_flow.labels == []

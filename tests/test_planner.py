from datetime import UTC, datetime

from issue_graph.analytics.graph.builder import build_graph
from issue_graph.analytics.metrics.structural import compute_metrics
from issue_graph.analytics.planning.planner import (
    RecommendationKind,
    build_plan,
    build_tracks,
    partition_readiness,
)
from issue_graph.core.models import Dependency, DependencyKind, Issue, IssueStatus

NOW = datetime(2025, 1, 15, tzinfo=UTC)


def _issue(issue_id, deps=(), status=IssueStatus.OPEN, priority=1, parents=()):
    dependencies = [Dependency(issue_id=issue_id, depends_on_id=d) for d in deps]
    dependencies += [
        Dependency(issue_id=issue_id, depends_on_id=p, kind=DependencyKind.PARENT_CHILD) for p in parents
    ]
    return Issue(
        id=issue_id, title=f"Issue {issue_id}", status=status, priority=priority, dependencies=dependencies
    )


def _plan(records, **kwargs):
    graph = build_graph(records)
    return build_plan(graph, compute_metrics(graph, now=NOW), **kwargs)


def test_empty_records_give_empty_plan():
    plan = _plan([])
    assert plan.tracks == []
    assert plan.recommendations == []
    assert plan.highest_impact is None
    assert plan.summary.total == 0
    assert sum(plan.summary.status_counts.values()) == 0


def test_chain_of_three():
    plan = _plan([_issue("A", ["B"]), _issue("B", ["C"]), _issue("C")])
    assert plan.ready == ["C"]
    assert plan.blocked == ["A", "B"]
    assert plan.tracks == [["C"]]
    assert plan.blocked_by == {"A": ["B"], "B": ["C"]}
    unblock = [r for r in plan.recommendations if r.kind == RecommendationKind.UNBLOCK]
    assert [r.issue_id for r in unblock] == ["C"]
    assert unblock[0].issue_ids == ["A", "B"]


def test_ready_and_blocked_are_disjoint_and_cover_actionable_issues():
    records = [
        _issue("a", ["b"]),
        _issue("b"),
        _issue("c", status=IssueStatus.IN_PROGRESS),
        _issue("d", status=IssueStatus.CLOSED),
        _issue("e", status=IssueStatus.BLOCKED),
    ]
    plan = _plan(records)
    assert set(plan.ready).isdisjoint(plan.blocked)
    assert sorted(plan.ready + plan.blocked) == ["a", "b", "e"]
    assert plan.in_progress == ["c"]
    assert sum(plan.summary.status_counts.values()) == len(records)
    assert plan.summary.closed_count == 1


def test_missing_blocker_counts_as_satisfied():
    plan = _plan([_issue("a", ["ghost"])])
    assert plan.ready == ["a"]


def test_parent_blocking_is_opt_in():
    records = [_issue("epic", ["blocker"]), _issue("blocker"), _issue("child", parents=["epic"])]
    graph = build_graph(records)
    ready, blocked, _, _ = partition_readiness(graph)
    assert "child" in ready
    ready, blocked, _, blocked_by = partition_readiness(graph, honor_parent_blocking=True)
    assert "child" in blocked
    assert blocked_by["child"] == ["blocker"]


def test_tracks_never_hold_adjacent_issues():
    records = [_issue(f"i{n}") for n in range(4)] + [_issue("x", ["i0"])]
    graph = build_graph(records)
    tracks, backlog = build_tracks(graph, ["i0", "i1", "i2", "i3", "x"])
    assert backlog == []
    for track in tracks:
        assert not ({"i0", "x"} <= set(track))


def test_tracks_spill_to_backlog_beyond_limit():
    # A star: every leaf is adjacent to the hub, and the hub to every leaf.
    records = [_issue("hub", [f"leaf{n}" for n in range(3)])] + [_issue(f"leaf{n}") for n in range(3)]
    graph = build_graph(records)
    tracks, backlog = build_tracks(graph, ["leaf0", "hub", "leaf1"], max_tracks=1)
    assert tracks == [["leaf0", "leaf1"]]
    assert backlog == ["hub"]


def test_highest_impact_unblocks_most_work():
    records = [
        _issue("root"),
        _issue("d1", ["root"]),
        _issue("d2", ["root"]),
        _issue("solo"),
    ]
    plan = _plan(records)
    assert plan.highest_impact == "root"
    assert plan.impacts[0].unblocks == ["d1", "d2"]
    start_next = [r for r in plan.recommendations if r.kind == RecommendationKind.START_NEXT]
    assert start_next[0].issue_id == "root"
    assert all(0.0 <= r.confidence <= 1.0 for r in plan.recommendations)


def test_cycles_produce_investigate_recommendation():
    plan = _plan([_issue("a", ["b"]), _issue("b", ["a"])])
    cycles = [r for r in plan.recommendations if r.kind == RecommendationKind.INVESTIGATE_CYCLE]
    assert len(cycles) == 1
    assert cycles[0].issue_ids == ["a", "b"]
    assert cycles[0].confidence == 1.0
    assert plan.summary.cycle_count == 1

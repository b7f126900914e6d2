import pytest

from issue_graph.analytics.temporal.diff import (
    ChangeKind,
    DriftSeverity,
    classify_change,
    diff_snapshots,
    drift_severity,
)
from issue_graph.core.baseline import capture_baseline
from issue_graph.core.config import DriftThresholds
from issue_graph.core.fingerprint import hash_records
from issue_graph.core.models import Issue, IssueStatus


def _issue(issue_id, status=IssueStatus.OPEN, priority=2):
    return Issue(id=issue_id, title=f"Issue {issue_id}", status=status, priority=priority)


def test_closure_and_new_issue_against_baseline():
    baseline = capture_baseline([_issue("A"), _issue("B")])
    current = [_issue("A", IssueStatus.CLOSED), _issue("B"), _issue("C")]
    diff = diff_snapshots(baseline, current, current_fingerprint=hash_records(current))
    assert diff.new_ids == ["C"]
    assert diff.closed_ids == ["A"]
    assert diff.unchanged_ids == ["B"]
    assert diff.deleted_ids == []
    assert [c.issue_id for c in diff.changes] == ["A", "B", "C"]
    # one closure among three current issues
    assert diff.changed_ratio == pytest.approx(1 / 3)
    # 1/3 is past the 0.30 medium cutoff, so high is expected; see the drift
    # decision in DESIGN.md before reading this as a regression
    assert diff.severity == DriftSeverity.HIGH
    assert diff.baseline_fingerprint == baseline.fingerprint
    assert diff.current_fingerprint == hash_records(current)


def test_identical_snapshot_has_no_drift():
    records = [_issue("A"), _issue("B")]
    diff = diff_snapshots(capture_baseline(records), records)
    assert diff.unchanged_ids == ["A", "B"]
    assert diff.changed_ratio == 0.0
    assert diff.severity == DriftSeverity.NONE


def test_only_new_issues_is_not_drift():
    diff = diff_snapshots(capture_baseline([_issue("A")]), [_issue("A"), _issue("B")])
    assert diff.new_ids == ["B"]
    assert diff.severity == DriftSeverity.NONE


def test_reopened_issue():
    baseline = capture_baseline([_issue("A", IssueStatus.CLOSED)])
    diff = diff_snapshots(baseline, [_issue("A", IssueStatus.IN_PROGRESS)])
    assert diff.reopened_ids == ["A"]
    assert diff.changes[0].old_status == "closed"
    assert diff.changes[0].new_status == "in_progress"


def test_priority_change_direction():
    baseline = capture_baseline([_issue("up", priority=3), _issue("down", priority=1)])
    diff = diff_snapshots(baseline, [_issue("up", priority=0), _issue("down", priority=2)])
    directions = {c.issue_id: c.priority_direction for c in diff.changes}
    assert directions == {"down": "lowered", "up": "raised"}
    assert diff.ids_for(ChangeKind.PRIORITY_CHANGED) == ["down", "up"]


def test_deleted_issues_count_towards_drift():
    baseline = capture_baseline([_issue("A"), _issue("B")])
    diff = diff_snapshots(baseline, [_issue("A")])
    assert diff.deleted_ids == ["B"]
    assert diff.changed_ratio == pytest.approx(0.5)
    assert diff.severity == DriftSeverity.HIGH


def test_empty_snapshots():
    diff = diff_snapshots(capture_baseline([]), [])
    assert diff.changes == []
    assert diff.severity == DriftSeverity.NONE


def test_classification_precedence():
    assert classify_change("open", "closed", 1, 3) == ChangeKind.CLOSED
    assert classify_change("closed", "open", 1, 3) == ChangeKind.REOPENED
    assert classify_change("open", "blocked", 1, 3) == ChangeKind.PRIORITY_CHANGED
    assert classify_change("open", "blocked", 1, 1) == ChangeKind.STATUS_CHANGED
    assert classify_change("open", "open", 1, 1) == ChangeKind.UNCHANGED


@pytest.mark.parametrize(
    ("changed", "total", "severity"),
    [(0, 10, "none"), (1, 20, "low"), (1, 10, "medium"), (2, 10, "medium"), (3, 10, "high")],
)
def test_drift_bands(changed, total, severity):
    assert drift_severity(changed, total, DriftThresholds())[1] == severity

from datetime import UTC, datetime

from issue_graph.analytics.labels.stats import (
    blocked_by_label,
    common_labels,
    extract_labels,
    issues_for_label,
    label_cooccurrence,
    labels_for_issue,
)
from issue_graph.core.models import Issue, IssueStatus, IssueType

NOW = datetime(2025, 3, 1, tzinfo=UTC)


def _sample_records():
    return [
        Issue(
            id="a",
            title="A",
            labels=["api", "backend"],
            priority=1,
            issue_type=IssueType.BUG,
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
            updated_at=datetime(2025, 1, 2, tzinfo=UTC),
        ),
        Issue(
            id="b",
            title="B",
            labels=["api"],
            status=IssueStatus.CLOSED,
            created_at=datetime(2025, 2, 1, tzinfo=UTC),
            updated_at=datetime(2025, 2, 27, tzinfo=UTC),
            closed_at=datetime(2025, 2, 27, tzinfo=UTC),
        ),
        Issue(
            id="c",
            title="C",
            labels=["backend"],
            status=IssueStatus.IN_PROGRESS,
            created_at=datetime(2025, 2, 20, tzinfo=UTC),
            updated_at=datetime(2025, 2, 28, tzinfo=UTC),
        ),
        Issue(id="d", title="D"),
    ]


def test_extract_labels_counts_by_status():
    result = extract_labels(_sample_records(), now=NOW, stale_days=14)
    assert result.labels == ["api", "backend"]
    assert result.issue_count == 4
    assert result.unlabeled_count == 1
    api = result.stats["api"]
    assert (api.total, api.open, api.closed) == (2, 1, 1)
    assert api.issue_ids == ["a", "b"]
    backend = result.stats["backend"]
    assert backend.in_progress == 1
    assert backend.by_type == {"bug": 1, "task": 1}


def test_stale_count_ignores_closed_issues():
    result = extract_labels(_sample_records(), now=NOW, stale_days=14)
    # "a" was last touched 58 days ago; "b" is old too but closed.
    assert result.stats["api"].stale_count == 1
    assert result.stats["backend"].stale_count == 1


def test_top_labels_ordered_by_count_then_name():
    records = _sample_records() + [Issue(id="e", title="E", labels=["backend"])]
    result = extract_labels(records, now=NOW)
    assert result.top_labels == ["backend", "api"]


def test_empty_records_have_no_labels():
    result = extract_labels([], now=NOW)
    assert result.label_count == 0
    assert result.stats == {}


def test_cooccurrence_is_symmetric():
    pairs = label_cooccurrence(_sample_records())
    assert pairs == {"api": {"backend": 1}, "backend": {"api": 1}}


def test_label_lookups():
    records = _sample_records()
    assert [r.id for r in issues_for_label(records, "api")] == ["a", "b"]
    assert labels_for_issue(records, "a") == ["api", "backend"]
    assert labels_for_issue(records, "zzz") == []
    assert common_labels(records, ["a", "b"]) == ["api"]
    assert blocked_by_label(records, ["a", "c"]) == {"api": 1, "backend": 2}

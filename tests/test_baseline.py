from datetime import UTC, datetime

import pytest

from issue_graph.core.baseline import BaselineSnapshot, capture_baseline, load_baseline, save_baseline
from issue_graph.core.errors import MalformedInput
from issue_graph.core.models import Issue, IssueStatus, IssueType


def _sample_records():
    return [
        Issue(id="b", title="Second", priority=0, labels=["ui", " api "]),
        Issue(id="a", title="First", status=IssueStatus.CLOSED, issue_type=IssueType.BUG),
    ]


def test_capture_records_per_issue_state():
    snapshot = capture_baseline(_sample_records(), description="before sprint")
    assert list(snapshot.per_issue) == ["a", "b"]
    assert snapshot.per_issue["a"].status == "closed"
    assert snapshot.per_issue["a"].issue_type == "bug"
    assert snapshot.per_issue["b"].priority == 0
    assert snapshot.per_issue["b"].labels == ["api", "ui"]
    assert len(snapshot.fingerprint) == 12


def test_fingerprint_ignores_record_order():
    records = _sample_records()
    assert capture_baseline(records).fingerprint == capture_baseline(records[::-1]).fingerprint


def test_save_and_load(tmp_path):
    created = datetime(2025, 1, 1, 12, tzinfo=UTC)
    snapshot = capture_baseline(_sample_records(), description="nightly", created_at=created)
    path = save_baseline(snapshot, tmp_path / "baselines" / "nightly.json")
    loaded = load_baseline(path)
    assert loaded == snapshot


def test_load_rejects_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(MalformedInput):
        load_baseline(path)


def test_from_dict_rejects_bad_shape():
    with pytest.raises(MalformedInput):
        BaselineSnapshot.from_dict(["not", "a", "dict"])
    with pytest.raises(MalformedInput):
        BaselineSnapshot.from_dict({"per_issue": {"a": {"priority": "high"}}})

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from issue_graph.core.errors import MalformedInput
from issue_graph.core.mappers import issues_to_dataframe, map_issue, map_issues, parse_dt, to_plain
from issue_graph.core.models import DependencyKind, IssueStatus, IssueType


def _raw(**overrides):
    raw = {
        "id": "bv-1",
        "title": "Parser crash",
        "status": "In Progress",
        "priority": "1",
        "issue_type": "Bug",
        "labels": ["parser", "parser ", None],
        "created_at": "2025-01-01T10:00:00Z",
        "updated_at": "2025-01-02T10:00:00+02:00",
        "dependencies": [{"depends_on_id": "bv-0"}, {"depends_on_id": "bv-9", "type": "related"}],
        "comments": [{"author": "ana", "text": "seen on CI"}],
    }
    raw.update(overrides)
    return raw


def test_map_issue_normalizes_fields():
    issue = map_issue(_raw())
    assert issue.status == IssueStatus.IN_PROGRESS
    assert issue.priority == 1
    assert issue.issue_type == IssueType.BUG
    assert issue.labels == ["parser"]
    assert issue.created_at == datetime(2025, 1, 1, 10, tzinfo=UTC)
    assert issue.updated_at == datetime(2025, 1, 2, 8, tzinfo=UTC)
    assert [d.kind for d in issue.dependencies] == [DependencyKind.BLOCKS, DependencyKind.RELATED]
    assert issue.comments[0].author == "ana"


@pytest.mark.parametrize(
    "overrides",
    [
        {"id": ""},
        {"title": "  "},
        {"status": "archived"},
        {"priority": "urgent"},
        {"issue_type": "story"},
        {"dependencies": [{"depends_on_id": "bv-0", "type": "supersedes"}]},
        {"updated_at": "2024-12-31T00:00:00Z"},
    ],
)
def test_map_issue_rejects_invalid_records(overrides):
    with pytest.raises(MalformedInput):
        map_issue(_raw(**overrides))


def test_map_issues_collects_warnings():
    issues, warnings = map_issues([_raw(), _raw(id="bv-2", status="nope"), "not a dict"])
    assert [i.id for i in issues] == ["bv-1"]
    assert len(warnings) == 2
    assert warnings[0].issue_id == "bv-2"


def test_parse_dt_handles_blanks_and_garbage():
    assert parse_dt(None) is None
    assert parse_dt("") is None
    assert parse_dt("not a date") is None
    aware = datetime(2025, 1, 1, tzinfo=UTC)
    assert parse_dt(aware) is aware


def test_dataframe_is_sorted_by_id():
    df = issues_to_dataframe([map_issue(_raw(id="b")), map_issue(_raw(id="a", assignee="ana"))])
    assert list(df["id"]) == ["a", "b"]
    assert list(df["assignee"]) == ["ana", "Unassigned"]
    assert df.loc[0, "label_count"] == 1


def test_to_plain_converts_nested_values():
    @dataclass
    class Sample:
        status: IssueStatus
        when: datetime
        took: timedelta
        tags: frozenset
        counts: dict

    plain = to_plain(
        Sample(
            status=IssueStatus.CLOSED,
            when=datetime(2025, 1, 1, tzinfo=UTC),
            took=timedelta(minutes=2),
            tags=frozenset({"b", "a"}),
            counts={1: float("nan")},
        )
    )
    assert plain == {
        "status": "closed",
        "when": "2025-01-01T00:00:00+00:00",
        "took": 120.0,
        "tags": ["a", "b"],
        "counts": {"1": None},
    }

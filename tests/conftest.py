"""Shared fixtures; also puts the project root on sys.path so `import issue_graph`
works when pytest runs without an editable install.
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from issue_graph.core.config import AnalysisOptions  # noqa: E402
from issue_graph.core.models import Dependency, Issue, IssueStatus  # noqa: E402


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 1, 15, 12, tzinfo=UTC)


@pytest.fixture
def fixed_options(fixed_now) -> AnalysisOptions:
    return AnalysisOptions(now=fixed_now)


@pytest.fixture
def project_records() -> list[Issue]:
    """A small tracker: db work blocks api work, which blocks the ui."""

    def issue(issue_id, labels, deps=(), status=IssueStatus.OPEN, priority=2):
        return Issue(
            id=issue_id,
            title=f"Issue {issue_id}",
            status=status,
            priority=priority,
            labels=list(labels),
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
            updated_at=datetime(2025, 1, 10, tzinfo=UTC),
            dependencies=[Dependency(issue_id=issue_id, depends_on_id=d) for d in deps],
        )

    return [
        issue("db-1", ["db"], priority=0),
        issue("api-1", ["api"], deps=["db-1"]),
        issue("api-2", ["api"], deps=["db-1"]),
        issue("ui-1", ["ui"], deps=["api-1", "api-2"]),
        issue("docs-1", ["docs"], status=IssueStatus.CLOSED),
    ]

"""Label-based aggregations: per-label statistics, co-occurrence, and lookups."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from issue_graph.analytics.metrics.aging import add_aging_metrics
from issue_graph.core.config import DEFAULT_STALE_DAYS
from issue_graph.core.mappers import issues_to_dataframe, normalize_labels
from issue_graph.core.models import Issue, IssueStatus

LABEL_FRAME_COLUMNS: tuple[str, ...] = (
    "id",
    "label",
    "status",
    "priority",
    "issue_type",
    "days_since_update",
)


@dataclass(slots=True)
class LabelStats:
    label: str
    total: int = 0
    open: int = 0
    closed: int = 0
    in_progress: int = 0
    blocked: int = 0
    stale_count: int = 0
    by_priority: dict[int, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    issue_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LabelExtraction:
    labels: list[str] = field(default_factory=list)
    stats: dict[str, LabelStats] = field(default_factory=dict)
    issue_count: int = 0
    unlabeled_count: int = 0
    top_labels: list[str] = field(default_factory=list)

    @property
    def label_count(self) -> int:
        return len(self.labels)


def label_frame(records: Sequence[Issue], now: datetime | None = None) -> pd.DataFrame:
    """One row per (issue, label) pair with status and aging columns."""
    aged = add_aging_metrics(issues_to_dataframe(records), now)
    if aged.empty:
        return pd.DataFrame(columns=list(LABEL_FRAME_COLUMNS))
    exploded = aged.explode("labels").rename(columns={"labels": "label"})
    exploded = exploded[exploded["label"].notna() & (exploded["label"] != "")]
    if exploded.empty:
        return pd.DataFrame(columns=list(LABEL_FRAME_COLUMNS))
    return exploded[list(LABEL_FRAME_COLUMNS)].sort_values(by=["label", "id"], kind="stable")


def extract_labels(
    records: Sequence[Issue],
    *,
    now: datetime | None = None,
    stale_days: int = DEFAULT_STALE_DAYS,
) -> LabelExtraction:
    """Per-label statistics for a records snapshot.

    Parameters
    ----------
    records : Sequence[Issue]
        Snapshot to aggregate.
    now : datetime, optional
        Reference time for staleness.
    stale_days : int
        Non-closed issues not updated for at least this many days count as stale.

    Returns
    -------
    LabelExtraction
        Sorted labels, their stats, and the top labels by issue count.
    """
    result = LabelExtraction(issue_count=len(records))
    result.unlabeled_count = sum(1 for r in records if not normalize_labels(r.labels))
    frame = label_frame(records, now)
    if frame.empty:
        return result

    frame = frame.assign(
        is_open=frame["status"] == str(IssueStatus.OPEN),
        is_closed=frame["status"] == str(IssueStatus.CLOSED),
        is_in_progress=frame["status"] == str(IssueStatus.IN_PROGRESS),
        is_blocked=frame["status"] == str(IssueStatus.BLOCKED),
    )
    frame["is_stale"] = (~frame["is_closed"]) & (
        pd.to_numeric(frame["days_since_update"], errors="coerce").fillna(0) >= float(stale_days)
    )
    agg = frame.groupby("label", sort=True).agg(
        total=("id", "count"),
        open=("is_open", "sum"),
        closed=("is_closed", "sum"),
        in_progress=("is_in_progress", "sum"),
        blocked=("is_blocked", "sum"),
        stale_count=("is_stale", "sum"),
    )
    by_priority = frame.groupby(["label", "priority"]).size()
    by_type = frame.groupby(["label", "issue_type"]).size()
    ids = frame.groupby("label")["id"].agg(list)

    for label, row in agg.iterrows():
        label = str(label)
        result.stats[label] = LabelStats(
            label=label,
            total=int(row["total"]),
            open=int(row["open"]),
            closed=int(row["closed"]),
            in_progress=int(row["in_progress"]),
            blocked=int(row["blocked"]),
            stale_count=int(row["stale_count"]),
            by_priority={int(p): int(c) for p, c in by_priority.loc[label].sort_index().items()},
            by_type={str(t): int(c) for t, c in by_type.loc[label].sort_index().items()},
            issue_ids=sorted(str(i) for i in ids.loc[label]),
        )
    result.labels = sorted(result.stats)
    result.top_labels = sorted(result.labels, key=lambda lbl: (-result.stats[lbl].total, lbl))
    return result


def label_cooccurrence(records: Sequence[Issue]) -> dict[str, dict[str, int]]:
    """Symmetric counts of label pairs appearing on the same issue."""
    rows = [(r.id, label) for r in records for label in normalize_labels(r.labels)]
    if not rows:
        return {}
    df = pd.DataFrame(rows, columns=["id", "label"])
    incidence = (pd.crosstab(df["id"], df["label"]) > 0).astype(int)
    pairs = incidence.T.dot(incidence)
    out: dict[str, dict[str, int]] = {}
    for a in sorted(pairs.index):
        row = {str(b): int(pairs.at[a, b]) for b in sorted(pairs.columns) if b != a and pairs.at[a, b] > 0}
        if row:
            out[str(a)] = row
    return out


def issues_for_label(records: Iterable[Issue], label: str) -> list[Issue]:
    return sorted((r for r in records if label in r.labels), key=lambda r: r.id)


def labels_for_issue(records: Iterable[Issue], issue_id: str) -> list[str]:
    for record in records:
        if record.id == issue_id:
            return normalize_labels(record.labels)
    return []


def common_labels(records: Iterable[Issue], issue_ids: Iterable[str]) -> list[str]:
    """Labels carried by every listed issue."""
    wanted = set(issue_ids)
    label_sets = [set(normalize_labels(r.labels)) for r in records if r.id in wanted]
    if not label_sets:
        return []
    return sorted(set.intersection(*label_sets))


def blocked_by_label(records: Sequence[Issue], blocked_ids: Iterable[str]) -> dict[str, int]:
    """Number of blocked issues per label (given the planner's blocked set)."""
    blocked = set(blocked_ids)
    counts: dict[str, int] = {}
    for record in sorted(records, key=lambda r: r.id):
        if record.id not in blocked:
            continue
        for label in normalize_labels(record.labels):
            counts[label] = counts.get(label, 0) + 1
    return dict(sorted(counts.items()))

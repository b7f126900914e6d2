"""Snapshot diff between a stored baseline and the current records."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import pandas as pd

from issue_graph.core.baseline import BaselineSnapshot
from issue_graph.core.config import DriftThresholds
from issue_graph.core.models import Issue, IssueStatus

logger = logging.getLogger(__name__)

_CLOSED = str(IssueStatus.CLOSED)


class ChangeKind(StrEnum):
    NEW = "new"
    CLOSED = "closed"
    REOPENED = "reopened"
    PRIORITY_CHANGED = "priority_changed"
    STATUS_CHANGED = "status_changed"
    UNCHANGED = "unchanged"


class DriftSeverity(StrEnum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class IssueChange:
    issue_id: str
    kind: ChangeKind
    old_status: str | None = None
    new_status: str | None = None
    old_priority: int | None = None
    new_priority: int | None = None
    priority_direction: str | None = None


@dataclass(slots=True)
class SnapshotDiff:
    baseline_fingerprint: str
    current_fingerprint: str | None = None
    changes: list[IssueChange] = field(default_factory=list)
    new_ids: list[str] = field(default_factory=list)
    closed_ids: list[str] = field(default_factory=list)
    reopened_ids: list[str] = field(default_factory=list)
    priority_changed_ids: list[str] = field(default_factory=list)
    status_changed_ids: list[str] = field(default_factory=list)
    unchanged_ids: list[str] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    changed_ratio: float = 0.0
    severity: DriftSeverity = DriftSeverity.NONE

    def ids_for(self, kind: ChangeKind) -> list[str]:
        return [c.issue_id for c in self.changes if c.kind == kind]


def _baseline_frame(baseline: BaselineSnapshot) -> pd.DataFrame:
    rows = [
        {"id": issue_id, "status": entry.status, "priority": entry.priority}
        for issue_id, entry in baseline.per_issue.items()
    ]
    return pd.DataFrame(rows, columns=["id", "status", "priority"])


def _current_frame(current: Sequence[Issue]) -> pd.DataFrame:
    rows = [{"id": r.id, "status": str(r.status), "priority": int(r.priority)} for r in current]
    return pd.DataFrame(rows, columns=["id", "status", "priority"]).drop_duplicates("id", keep="first")


def classify_change(old_status: str, new_status: str, old_priority: int, new_priority: int) -> ChangeKind:
    """Change kind for an id present in both snapshots (first matching rule wins)."""
    was_closed = old_status == _CLOSED
    is_closed = new_status == _CLOSED
    if is_closed and not was_closed:
        return ChangeKind.CLOSED
    if was_closed and not is_closed:
        return ChangeKind.REOPENED
    if old_priority != new_priority:
        return ChangeKind.PRIORITY_CHANGED
    if old_status != new_status:
        return ChangeKind.STATUS_CHANGED
    return ChangeKind.UNCHANGED


def drift_severity(changed: int, denominator: int, thresholds: DriftThresholds) -> tuple[float, DriftSeverity]:
    if changed == 0 or denominator == 0:
        return 0.0, DriftSeverity.NONE
    ratio = changed / denominator
    if ratio < thresholds.low:
        return ratio, DriftSeverity.LOW
    if ratio < thresholds.medium:
        return ratio, DriftSeverity.MEDIUM
    return ratio, DriftSeverity.HIGH


def diff_snapshots(
    baseline: BaselineSnapshot,
    current: Sequence[Issue],
    *,
    current_fingerprint: str | None = None,
    thresholds: DriftThresholds | None = None,
) -> SnapshotDiff:
    """Classify every current issue against ``baseline`` and grade the drift.

    Parameters
    ----------
    baseline : BaselineSnapshot
        Previously captured per-issue state.
    current : Sequence[Issue]
        Current records snapshot.
    current_fingerprint : str, optional
        Fingerprint of ``current``, echoed on the result.
    thresholds : DriftThresholds, optional
        Ratio bounds for the low and medium bands.

    Returns
    -------
    SnapshotDiff
        Per-issue changes sorted by id, deleted ids, ratio and severity.
    """
    thresholds = thresholds or DriftThresholds()
    merged = pd.merge(
        _baseline_frame(baseline),
        _current_frame(current),
        on="id",
        how="outer",
        suffixes=("_old", "_new"),
        indicator="presence",
    ).sort_values("id", kind="stable")

    result = SnapshotDiff(baseline_fingerprint=baseline.fingerprint, current_fingerprint=current_fingerprint)
    buckets = {
        ChangeKind.NEW: result.new_ids,
        ChangeKind.CLOSED: result.closed_ids,
        ChangeKind.REOPENED: result.reopened_ids,
        ChangeKind.PRIORITY_CHANGED: result.priority_changed_ids,
        ChangeKind.STATUS_CHANGED: result.status_changed_ids,
        ChangeKind.UNCHANGED: result.unchanged_ids,
    }
    for row in merged.itertuples(index=False):
        issue_id = str(row.id)
        if row.presence == "left_only":
            result.deleted_ids.append(issue_id)
            continue
        new_priority = int(row.priority_new)
        if row.presence == "right_only":
            change = IssueChange(
                issue_id=issue_id, kind=ChangeKind.NEW, new_status=row.status_new, new_priority=new_priority
            )
        else:
            old_priority = int(row.priority_old)
            kind = classify_change(row.status_old, row.status_new, old_priority, new_priority)
            change = IssueChange(
                issue_id=issue_id,
                kind=kind,
                old_status=row.status_old,
                new_status=row.status_new,
                old_priority=old_priority,
                new_priority=new_priority,
            )
            if kind == ChangeKind.PRIORITY_CHANGED:
                change.priority_direction = "raised" if new_priority < old_priority else "lowered"
        result.changes.append(change)
        buckets[change.kind].append(issue_id)

    changed = (
        len(result.closed_ids)
        + len(result.reopened_ids)
        + len(result.priority_changed_ids)
        + len(result.status_changed_ids)
        + len(result.deleted_ids)
    )
    result.changed_ratio, result.severity = drift_severity(
        changed, len(result.changes) + len(result.deleted_ids), thresholds
    )
    logger.debug(
        "Diff against %s: %s changed of %s (%s)",
        baseline.fingerprint,
        changed,
        len(result.changes) + len(result.deleted_ids),
        result.severity,
    )
    return result

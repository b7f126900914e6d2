"""Mapping raw issue JSON into Issue models, DataFrames, and plain result structures."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import pandas as pd

from .config import DEFAULT_PRIORITY
from .errors import AnalysisWarning, MalformedInput
from .models import Comment, Dependency, DependencyKind, Issue, IssueType
from .status import normalize_status

logger = logging.getLogger(__name__)

ISSUE_FRAME_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "status",
    "priority",
    "issue_type",
    "assignee",
    "created",
    "updated",
    "closed",
    "labels",
    "label_count",
)


def parse_dt(val: Any) -> datetime | None:
    if val is None or val == "":
        return None
    if isinstance(val, datetime) and val.tzinfo is not None:
        return val
    ts = pd.to_datetime(val, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def normalize_labels(values: Iterable[Any] | None) -> list[str]:
    """Strip, drop empties, and deduplicate labels; sorted for stable output."""
    if not values:
        return []
    cleaned = {str(v).strip() for v in values if v is not None}
    return sorted(v for v in cleaned if v)


def _parse_priority(value: Any, issue_id: str) -> int:
    if value is None or value == "":
        return DEFAULT_PRIORITY
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedInput(f"Invalid priority {value!r}", issue_id=issue_id) from None


def _parse_issue_type(value: Any, issue_id: str) -> IssueType:
    text = str(value or IssueType.TASK).strip().lower()
    try:
        return IssueType(text)
    except ValueError:
        raise MalformedInput(f"Invalid issue type {value!r}", issue_id=issue_id) from None


def map_dependency(raw: dict[str, Any], issue_id: str) -> Dependency:
    target = str(raw.get("depends_on_id") or "").strip()
    if not target:
        raise MalformedInput("Dependency without target", issue_id=issue_id)
    try:
        kind = DependencyKind.parse(raw.get("type", raw.get("kind")))
    except MalformedInput as exc:
        raise MalformedInput(str(exc), issue_id=issue_id) from None
    return Dependency(
        issue_id=issue_id,
        depends_on_id=target,
        kind=kind,
        created_at=parse_dt(raw.get("created_at")),
        created_by=raw.get("created_by"),
    )


def map_issue(raw: dict[str, Any]) -> Issue:
    """Build a validated ``Issue`` from an exported JSON record.

    Raises
    ------
    MalformedInput
        If the record is not an object or violates a model invariant.
    """
    if not isinstance(raw, dict):
        raise MalformedInput(f"Record must be an object, got {type(raw).__name__}")
    issue_id = str(raw.get("id") or "").strip()
    try:
        status = normalize_status(raw.get("status") or "open")
    except MalformedInput as exc:
        raise MalformedInput(str(exc), issue_id=issue_id or None) from None

    deps_raw = raw.get("dependencies") or []
    comments_raw = raw.get("comments") or []
    issue = Issue(
        id=issue_id,
        title=str(raw.get("title") or "").strip(),
        status=status,
        priority=_parse_priority(raw.get("priority"), issue_id),
        issue_type=_parse_issue_type(raw.get("issue_type"), issue_id),
        description=raw.get("description") or "",
        design=raw.get("design") or "",
        acceptance_criteria=raw.get("acceptance_criteria") or "",
        notes=raw.get("notes") or "",
        assignee=raw.get("assignee") or None,
        estimated_minutes=raw.get("estimated_minutes"),
        created_at=parse_dt(raw.get("created_at")),
        updated_at=parse_dt(raw.get("updated_at")),
        closed_at=parse_dt(raw.get("closed_at")),
        external_ref=raw.get("external_ref") or None,
        source_repo=raw.get("source_repo") or None,
        labels=normalize_labels(raw.get("labels")),
        dependencies=[map_dependency(d, issue_id) for d in deps_raw if isinstance(d, dict)],
        comments=[
            Comment(
                author=c.get("author"),
                text=c.get("text"),
                created_at=parse_dt(c.get("created_at")),
            )
            for c in comments_raw
            if isinstance(c, dict)
        ],
    )
    issue.validate()
    return issue


def map_issues(raws: Iterable[Any]) -> tuple[list[Issue], list[AnalysisWarning]]:
    """Map records, skipping (with a warning) those that fail validation."""
    issues: list[Issue] = []
    warnings: list[AnalysisWarning] = []
    for raw in raws:
        try:
            issues.append(map_issue(raw))
        except MalformedInput as exc:
            logger.warning("Skipping invalid record: %s", exc)
            warnings.append(AnalysisWarning.from_error(exc))
    return issues, warnings


def issues_to_dataframe(issues: Iterable[Issue]) -> pd.DataFrame:
    rows = []
    for i in issues:
        labels = normalize_labels(i.labels)
        rows.append(
            {
                "id": i.id,
                "title": i.title,
                "status": str(i.status),
                "priority": int(i.priority),
                "issue_type": str(i.issue_type),
                "assignee": i.assignee or "Unassigned",
                "created": i.created_at,
                "updated": i.updated_at,
                "closed": i.closed_at,
                "labels": labels,
                "label_count": len(labels),
            }
        )
    df = pd.DataFrame(rows, columns=list(ISSUE_FRAME_COLUMNS))
    return df.sort_values(by="id", kind="stable").reset_index(drop=True)


def to_plain(obj: Any) -> Any:
    """Convert result dataclasses into JSON-ready structures with stable field order.

    Dataclass fields keep declaration order, dict keys are emitted as strings,
    enums collapse to their values, datetimes to ISO-8601, and timedeltas to
    seconds.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_plain(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(to_plain(v) for v in obj)
    if isinstance(obj, float) and obj != obj:  # NaN
        return None
    return obj

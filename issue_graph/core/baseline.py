"""Baseline snapshots: a compact per-issue state captured for later drift comparison."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import MalformedInput
from .fingerprint import hash_records
from .mappers import normalize_labels, parse_dt
from .models import Issue
from .status import normalize_status

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BaselineIssue:
    status: str
    priority: int
    title: str = ""
    issue_type: str = ""
    labels: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BaselineSnapshot:
    fingerprint: str
    description: str = ""
    created_at: datetime | None = None
    per_issue: dict[str, BaselineIssue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "per_issue": {
                issue_id: {
                    "status": entry.status,
                    "priority": entry.priority,
                    "title": entry.title,
                    "issue_type": entry.issue_type,
                    "labels": list(entry.labels),
                }
                for issue_id, entry in sorted(self.per_issue.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> BaselineSnapshot:
        if not isinstance(data, dict):
            raise MalformedInput("Baseline must be a JSON object")
        per_issue_raw = data.get("per_issue") or {}
        if not isinstance(per_issue_raw, dict):
            raise MalformedInput("Baseline per_issue must be an object")
        per_issue: dict[str, BaselineIssue] = {}
        for issue_id, raw in per_issue_raw.items():
            if not isinstance(raw, dict):
                raise MalformedInput("Baseline entry must be an object", issue_id=str(issue_id))
            try:
                priority = int(raw.get("priority", 0))
            except (TypeError, ValueError):
                raise MalformedInput("Baseline priority must be an integer", issue_id=str(issue_id)) from None
            per_issue[str(issue_id)] = BaselineIssue(
                status=str(normalize_status(raw.get("status") or "open")),
                priority=priority,
                title=str(raw.get("title") or ""),
                issue_type=str(raw.get("issue_type") or ""),
                labels=normalize_labels(raw.get("labels")),
            )
        return cls(
            fingerprint=str(data.get("fingerprint") or ""),
            description=str(data.get("description") or ""),
            created_at=parse_dt(data.get("created_at")),
            per_issue=per_issue,
        )


def capture_baseline(
    records: Iterable[Issue], *, description: str = "", created_at: datetime | None = None
) -> BaselineSnapshot:
    """Snapshot the status/priority/title/type/labels of every record."""
    records = list(records)
    return BaselineSnapshot(
        fingerprint=hash_records(records),
        description=description,
        created_at=created_at,
        per_issue={
            r.id: BaselineIssue(
                status=str(r.status),
                priority=int(r.priority),
                title=r.title,
                issue_type=str(r.issue_type),
                labels=normalize_labels(r.labels),
            )
            for r in sorted(records, key=lambda r: r.id)
        },
    )


def save_baseline(snapshot: BaselineSnapshot, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(snapshot.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    logger.debug("Saved baseline %s (%s issues) to %s", snapshot.fingerprint, len(snapshot.per_issue), target)
    return target


def load_baseline(path: str | Path) -> BaselineSnapshot:
    """Read a baseline written by ``save_baseline``.

    Raises
    ------
    MalformedInput
        If the file is not valid JSON or does not have the baseline shape.
    FileNotFoundError
        If ``path`` does not exist.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInput(f"Baseline is not valid JSON: {exc}") from exc
    return BaselineSnapshot.from_dict(data)

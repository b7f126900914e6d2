"""Domain data models for issues, their dependency edges, and comments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .errors import MalformedInput


class IssueStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    CLOSED = "closed"


class IssueType(StrEnum):
    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"


class DependencyKind(StrEnum):
    """Typed edge kinds; the empty kind is an alias for ``blocks``."""

    BLOCKS = "blocks"
    RELATED = "related"
    PARENT_CHILD = "parent-child"
    DISCOVERED_FROM = "discovered-from"

    @classmethod
    def parse(cls, value: str | DependencyKind | None) -> DependencyKind:
        if isinstance(value, DependencyKind):
            return value
        text = (value or "").strip().lower()
        if not text:
            return cls.BLOCKS
        try:
            return cls(text)
        except ValueError:
            raise MalformedInput(f"Unknown dependency kind: {value!r}") from None

    @property
    def is_blocking(self) -> bool:
        return self is DependencyKind.BLOCKS


BLOCKING_KINDS: frozenset[DependencyKind] = frozenset({DependencyKind.BLOCKS})
HIERARCHY_KINDS: frozenset[DependencyKind] = frozenset({DependencyKind.PARENT_CHILD})
CONNECTING_KINDS: frozenset[DependencyKind] = BLOCKING_KINDS | HIERARCHY_KINDS


@dataclass(slots=True)
class Dependency:
    issue_id: str
    depends_on_id: str
    kind: DependencyKind = DependencyKind.BLOCKS
    created_at: datetime | None = None
    created_by: str | None = None


@dataclass(slots=True)
class Comment:
    author: str | None
    text: str | None
    created_at: datetime | None = None


@dataclass(slots=True)
class Issue:
    id: str
    title: str
    status: IssueStatus = IssueStatus.OPEN
    priority: int = 2
    issue_type: IssueType = IssueType.TASK
    description: str = ""
    design: str = ""
    acceptance_criteria: str = ""
    notes: str = ""
    assignee: str | None = None
    estimated_minutes: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    external_ref: str | None = None
    source_repo: str | None = None
    labels: list[str] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.status == IssueStatus.CLOSED

    @property
    def is_in_progress(self) -> bool:
        return self.status == IssueStatus.IN_PROGRESS

    @property
    def label_set(self) -> frozenset[str]:
        return frozenset(self.labels)

    def validate(self) -> None:
        """Raise ``MalformedInput`` when the record breaks a model invariant."""
        if not self.id or not str(self.id).strip():
            raise MalformedInput("Issue id must be non-empty")
        if not self.title or not str(self.title).strip():
            raise MalformedInput("Issue title must be non-empty", issue_id=self.id)
        try:
            IssueStatus(self.status)
        except ValueError:
            raise MalformedInput(f"Invalid status {self.status!r}", issue_id=self.id) from None
        try:
            IssueType(self.issue_type)
        except ValueError:
            raise MalformedInput(f"Invalid issue type {self.issue_type!r}", issue_id=self.id) from None
        if self.created_at and self.updated_at and self.updated_at < self.created_at:
            raise MalformedInput("updated_at precedes created_at", issue_id=self.id)

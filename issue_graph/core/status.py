"""Status normalization and categorization utilities.

Centralizes how raw status strings from exported records map onto the four
canonical ``IssueStatus`` values, and the small predicates the planner, label
aggregator and workstream detector share.
"""

from __future__ import annotations

from .errors import MalformedInput
from .models import IssueStatus

# Keys are lowercase for case-insensitive matching
STATUS_ALIASES: dict[str, IssueStatus] = {
    "open": IssueStatus.OPEN,
    "todo": IssueStatus.OPEN,
    "to do": IssueStatus.OPEN,
    "in_progress": IssueStatus.IN_PROGRESS,
    "in progress": IssueStatus.IN_PROGRESS,
    "in-progress": IssueStatus.IN_PROGRESS,
    "inprogress": IssueStatus.IN_PROGRESS,
    "blocked": IssueStatus.BLOCKED,
    "closed": IssueStatus.CLOSED,
    "done": IssueStatus.CLOSED,
    "resolved": IssueStatus.CLOSED,
}

STATUS_DISPLAY_ORDER: tuple[IssueStatus, ...] = (
    IssueStatus.OPEN,
    IssueStatus.IN_PROGRESS,
    IssueStatus.BLOCKED,
    IssueStatus.CLOSED,
)

# Statuses eligible for the ready/blocked partition
ACTIONABLE_STATUSES: frozenset[IssueStatus] = frozenset({IssueStatus.OPEN, IssueStatus.BLOCKED})


def normalize_status(value: str | IssueStatus | None) -> IssueStatus:
    """Map a raw status string to its canonical ``IssueStatus``.

    Parameters
    ----------
    value : str | IssueStatus | None
        Raw status as found in an exported record.

    Returns
    -------
    IssueStatus
        Canonical status.

    Raises
    ------
    MalformedInput
        If the value is empty or not a known status or alias.

    Examples
    --------
    >>> normalize_status("In Progress")
    <IssueStatus.IN_PROGRESS: 'in_progress'>
    """
    if isinstance(value, IssueStatus):
        return value
    text = str(value or "").strip().lower()
    if text in STATUS_ALIASES:
        return STATUS_ALIASES[text]
    raise MalformedInput(f"Invalid status {value!r}")


def is_closed_status(value: str | IssueStatus | None) -> bool:
    return value == IssueStatus.CLOSED


def is_actionable_status(value: str | IssueStatus | None) -> bool:
    # Compare by value; plain strings and enum members hash differently
    return any(value == status for status in ACTIONABLE_STATUSES)


def empty_status_counts() -> dict[str, int]:
    """Zeroed counts for every status, in display order."""
    return {str(status): 0 for status in STATUS_DISPLAY_ORDER}

"""Per-issue causal chains: lifecycle events and commits joined on one timeline."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Protocol

from issue_graph.analytics.metrics.aging import resolve_now
from issue_graph.core.config import (
    BLOCKED_WARN_PERCENT,
    COMMIT_MESSAGE_MAX_CHARS,
    HEALTHY_FLOW_MESSAGE,
    LONG_GAP_DAYS,
)
from issue_graph.core.models import IssueStatus

logger = logging.getLogger(__name__)

NO_GAPS_MESSAGE = "No gaps between events"


class EventType(StrEnum):
    CREATED = "created"
    CLAIMED = "claimed"
    COMMIT = "commit"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    CLOSED = "closed"
    REOPENED = "reopened"


BLOCK_ENDING_EVENTS = frozenset({EventType.UNBLOCKED, EventType.CLOSED, EventType.REOPENED})


@dataclass(slots=True)
class LifecycleEvent:
    event_type: EventType
    timestamp: datetime
    actor: str | None = None
    note: str = ""


@dataclass(slots=True)
class CommitInfo:
    sha: str
    timestamp: datetime
    message: str = ""
    short_sha: str = ""
    author: str | None = None

    @property
    def display_sha(self) -> str:
        return self.short_sha or self.sha[:7]


@dataclass(slots=True)
class IssueHistory:
    issue_id: str
    title: str = ""
    status: str = str(IssueStatus.OPEN)
    events: list[LifecycleEvent] = field(default_factory=list)
    commits: list[CommitInfo] = field(default_factory=list)


class CommitProvider(Protocol):
    def commits_for(self, issue_id: str) -> Sequence[CommitInfo]: ...


@dataclass(slots=True)
class CausalEvent:
    id: int
    event_type: EventType
    timestamp: datetime
    description: str
    caused_by_id: int | None = None
    enables_ids: list[int] = field(default_factory=list)
    duration_next: timedelta | None = None
    commit_sha: str | None = None


@dataclass(slots=True)
class CausalChain:
    issue_id: str
    title: str
    status: str
    events: list[CausalEvent] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    total_time: timedelta = timedelta(0)
    is_complete: bool = False


@dataclass(slots=True)
class BlockedPeriod:
    start: datetime
    end: datetime
    duration: timedelta
    ended_by: EventType | None = None


@dataclass(slots=True)
class CausalInsights:
    total_duration: timedelta = timedelta(0)
    blocked_duration: timedelta = timedelta(0)
    active_duration: timedelta = timedelta(0)
    blocked_percentage: float = 0.0
    blocked_periods: list[BlockedPeriod] = field(default_factory=list)
    commit_count: int = 0
    longest_gap: timedelta | None = None
    longest_gap_desc: str = ""
    summary: str = ""
    recommendations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CausalityResult:
    chain: CausalChain
    insights: CausalInsights


@dataclass(slots=True)
class CausalityOptions:
    include_commits: bool = True
    now: datetime | None = None


# ------------------ Formatting ------------------
def truncate_message(message: str, limit: int = COMMIT_MESSAGE_MAX_CHARS) -> str:
    """First line of ``message`` cut to ``limit`` code points, with ``...`` when cut."""
    first_line = message.strip().splitlines()[0] if message.strip() else ""
    if len(first_line) <= limit:
        return first_line
    return first_line[:limit] + "..."


def format_duration_short(duration: timedelta) -> str:
    """Compact duration: ``30m``, ``5h``, ``3d``, ``1w``, ``1mo`` (whole units, truncated)."""
    seconds = max(0.0, duration.total_seconds())
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if hours < 1:
        return f"{minutes}m"
    if days < 1:
        return f"{hours}h"
    if days < 7:
        return f"{days}d"
    if days < 30:
        return f"{days // 7}w"
    return f"{days // 30}mo"


def format_percent(value: float) -> str:
    return f"{int(value)}%"


def _event_description(event: LifecycleEvent) -> str:
    label = {
        EventType.CREATED: "Issue created",
        EventType.CLAIMED: "Work claimed",
        EventType.BLOCKED: "Blocked",
        EventType.UNBLOCKED: "Unblocked",
        EventType.CLOSED: "Issue closed",
        EventType.REOPENED: "Issue reopened",
    }.get(event.event_type, str(event.event_type))
    if event.actor:
        label = f"{label} by {event.actor}"
    if event.note:
        label = f"{label}: {event.note}"
    return label


def _commit_description(commit: CommitInfo) -> str:
    return f"Commit {commit.display_sha}: {truncate_message(commit.message)}"


# ------------------ Builder ------------------
class CausalityBuilder:
    """Assemble causal chains from issue histories and (optionally) a commit provider."""

    def __init__(
        self,
        histories: Mapping[str, IssueHistory] | Iterable[IssueHistory],
        commits: CommitProvider | None = None,
    ):
        if isinstance(histories, Mapping):
            self.histories = dict(histories)
        else:
            self.histories = {h.issue_id: h for h in histories}
        self.commits = commits

    def _commits_for(self, history: IssueHistory) -> list[CommitInfo]:
        candidates = list(history.commits)
        if self.commits is not None:
            candidates.extend(self.commits.commits_for(history.issue_id))
        seen: set[str] = set()
        unique: list[CommitInfo] = []
        for commit in candidates:
            key = commit.sha or commit.short_sha
            if key in seen:
                continue
            seen.add(key)
            unique.append(commit)
        return unique

    def build(self, issue_id: str, options: CausalityOptions | None = None) -> CausalityResult | None:
        """Chain and insights for ``issue_id``; ``None`` when the issue has no history."""
        options = options or CausalityOptions()
        history = self.histories.get(issue_id)
        if history is None:
            logger.debug("No history for %s", issue_id)
            return None

        entries: list[tuple[datetime, EventType, str, str | None]] = [
            (e.timestamp, e.event_type, _event_description(e), None) for e in history.events
        ]
        if options.include_commits:
            entries.extend(
                (c.timestamp, EventType.COMMIT, _commit_description(c), c.sha or c.short_sha)
                for c in self._commits_for(history)
            )
        entries.sort(key=lambda entry: entry[0])

        events = [
            CausalEvent(id=i, event_type=kind, timestamp=ts, description=desc, commit_sha=sha)
            for i, (ts, kind, desc, sha) in enumerate(entries)
        ]
        for prev, nxt in zip(events, events[1:]):
            nxt.caused_by_id = prev.id
            prev.enables_ids = [nxt.id]
            prev.duration_next = nxt.timestamp - prev.timestamp

        is_complete = str(history.status) == str(IssueStatus.CLOSED)
        chain = CausalChain(
            issue_id=history.issue_id,
            title=history.title,
            status=str(history.status),
            events=events,
            is_complete=is_complete,
        )
        if events:
            chain.start_time = events[0].timestamp
            chain.end_time = events[-1].timestamp if is_complete else resolve_now(options.now)
            chain.total_time = max(timedelta(0), chain.end_time - chain.start_time)
        insights = compute_insights(chain)
        insights.summary = build_summary(chain, insights)
        insights.recommendations = generate_recommendations(chain, insights, include_commits=options.include_commits)
        return CausalityResult(chain=chain, insights=insights)


def blocked_periods(chain: CausalChain) -> list[BlockedPeriod]:
    """Intervals from each ``blocked`` event to the next unblocked/closed/reopened event or chain end."""
    periods: list[BlockedPeriod] = []
    start: datetime | None = None
    for event in chain.events:
        if event.event_type == EventType.BLOCKED and start is None:
            start = event.timestamp
        elif event.event_type in BLOCK_ENDING_EVENTS and start is not None:
            periods.append(
                BlockedPeriod(
                    start=start,
                    end=event.timestamp,
                    duration=event.timestamp - start,
                    ended_by=event.event_type,
                )
            )
            start = None
    if start is not None and chain.end_time is not None:
        end = max(start, chain.end_time)
        periods.append(BlockedPeriod(start=start, end=end, duration=end - start))
    return periods


def compute_insights(chain: CausalChain) -> CausalInsights:
    insights = CausalInsights(total_duration=chain.total_time)
    insights.blocked_periods = blocked_periods(chain)
    insights.blocked_duration = sum((p.duration for p in insights.blocked_periods), timedelta(0))
    insights.active_duration = max(timedelta(0), insights.total_duration - insights.blocked_duration)
    if insights.total_duration > timedelta(0):
        insights.blocked_percentage = (
            insights.blocked_duration.total_seconds() / insights.total_duration.total_seconds() * 100
        )
    insights.commit_count = sum(1 for e in chain.events if e.event_type == EventType.COMMIT)

    gaps = [(e, e.duration_next) for e in chain.events if e.duration_next is not None]
    if not gaps:
        insights.longest_gap_desc = NO_GAPS_MESSAGE
        return insights
    # First of equal gaps wins.
    event, gap = max(gaps, key=lambda pair: pair[1])
    insights.longest_gap = gap
    if gap <= timedelta(0):
        insights.longest_gap_desc = NO_GAPS_MESSAGE
    else:
        after = chain.events[event.enables_ids[0]]
        insights.longest_gap_desc = (
            f"{format_duration_short(gap)} between {event.event_type} and {after.event_type}"
        )
    return insights


def build_summary(chain: CausalChain, insights: CausalInsights) -> str:
    commits = f"{insights.commit_count} commit" + ("" if insights.commit_count == 1 else "s")
    if chain.is_complete:
        summary = f"Completed in {format_duration_short(insights.total_duration)} with {commits}"
    else:
        summary = f"In progress for {format_duration_short(insights.total_duration)} with {commits}"
    if insights.blocked_percentage > 0:
        summary += f", blocked {format_percent(insights.blocked_percentage)} of the time"
    return summary


def generate_recommendations(
    chain: CausalChain, insights: CausalInsights, *, include_commits: bool = True
) -> list[str]:
    recs: list[str] = []
    if insights.blocked_percentage >= BLOCKED_WARN_PERCENT:
        recs.append(
            f"Blocked for {format_percent(insights.blocked_percentage)} of its lifetime; "
            "resolve blocking dependencies earlier"
        )
    if insights.longest_gap is not None and insights.longest_gap >= timedelta(days=LONG_GAP_DAYS):
        recs.append(
            f"Longest idle gap was {format_duration_short(insights.longest_gap)}; "
            "consider breaking the work into smaller steps"
        )
    if chain.is_complete and include_commits and insights.commit_count == 0:
        recs.append("Closed without any correlated commits; verify the work was linked")
    if not recs:
        recs.append(HEALTHY_FLOW_MESSAGE)
    return recs

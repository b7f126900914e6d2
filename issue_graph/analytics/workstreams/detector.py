"""Workstream decomposition of a label- or epic-scoped issue view.

Pipeline: detect label families, pick the best-scoring one, let parent-child
descendants inherit their anchor's family label, partition primaries by family
label, attach context issues through parent-child links, compute per-stream
stats and cross-stream blockers, sort, and optionally subdivide recursively.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from issue_graph.analytics.graph.builder import IssueGraph, blocking_state, build_graph
from issue_graph.analytics.workstreams.families import (
    FamilyScore,
    FamilyType,
    LabelFamily,
    detect_label_families,
    format_workstream_name,
    select_family,
)
from issue_graph.core.config import (
    CONTEXT_ASSIGNMENT_ROUNDS,
    RELATED_LABEL_LIMIT,
    STANDALONE_ID,
    STANDALONE_NAME,
    STANDALONE_ORDER,
    USED_LABEL_FRACTION,
    WORKSTREAM_ID_PREFIX,
    GroupingOptions,
)
from issue_graph.core.deadline import Deadline
from issue_graph.core.errors import AnalysisWarning, ComputationDeadlineExceeded, ErrorKind
from issue_graph.core.mappers import normalize_labels
from issue_graph.core.models import CONNECTING_KINDS, DependencyKind, Issue, IssueStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CrossWorkstreamBlocker:
    blocker_id: str
    blocker_workstream: str
    blocked_id: str
    blocked_workstream: str


@dataclass(slots=True)
class Workstream:
    id: str
    name: str
    issue_ids: list[str] = field(default_factory=list)
    primary_count: int = 0
    context_count: int = 0
    progress: float = 0.0
    is_blocked: bool = False
    ready_count: int = 0
    blocked_count: int = 0
    in_progress_count: int = 0
    closed_count: int = 0
    related_labels: list[str] = field(default_factory=list)
    cross_blocked_by: list[CrossWorkstreamBlocker] = field(default_factory=list)
    cross_blocks: list[CrossWorkstreamBlocker] = field(default_factory=list)
    order: float = 0.0
    depth: int = 0
    grouped_by: str | None = None
    sub_workstreams: list[Workstream] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.issue_ids)

    @property
    def is_standalone(self) -> bool:
        return self.id == STANDALONE_ID or self.id.endswith(f"/{STANDALONE_ID}")


@dataclass(slots=True)
class WorkstreamResult:
    workstreams: list[Workstream] = field(default_factory=list)
    winning_family: str | None = None
    family_scores: list[FamilyScore] = field(default_factory=list)
    unassigned_context: list[str] = field(default_factory=list)
    partial: bool = False
    warnings: list[AnalysisWarning] = field(default_factory=list)


def _scoped_labels(issue: Issue, excluded: frozenset[str]) -> set[str]:
    return {label for label in normalize_labels(issue.labels) if label not in excluded}


def inherit_family_labels(
    graph: IssueGraph,
    labels: dict[str, set[str]],
    family: LabelFamily,
) -> dict[str, set[str]]:
    """Copy of ``labels`` where parent-child descendants inherit their anchor's family label.

    Anchors are visited in sorted order and the first anchor to reach a
    descendant wins. Only issues present in ``labels`` are touched.
    """
    members = set(family.labels)
    out = {issue_id: set(values) for issue_id, values in labels.items()}
    anchors = sorted(i for i, values in labels.items() if values & members)
    for anchor in anchors:
        anchor_label = sorted(out[anchor] & members, key=lambda lbl: (family.order_of(lbl), lbl))[0]
        queue = deque([anchor])
        seen = {anchor}
        while queue:
            current = queue.popleft()
            if current not in graph:
                continue
            for child in graph.children_ids(current):
                if child in seen or child not in out:
                    continue
                seen.add(child)
                if not out[child] & members:
                    out[child].add(anchor_label)
                queue.append(child)
    return out


def _workstream_for_label(family: LabelFamily, label: str) -> tuple[str, str, float]:
    key = family.group_key(label)
    return f"{WORKSTREAM_ID_PREFIX}{key}", format_workstream_name(key), family.order_of(label)


def _assign_context(
    graph: IssueGraph, assignment: dict[str, str], context_ids: Sequence[str]
) -> list[str]:
    """Attach context issues to the stream sharing most parent-child links; return leftovers."""
    pending = [i for i in context_ids if i not in assignment]
    for _ in range(CONTEXT_ASSIGNMENT_ROUNDS):
        placed: dict[str, str] = {}
        for issue_id in pending:
            if issue_id not in graph:
                continue
            votes: Counter[str] = Counter()
            for other in graph.parent_ids(issue_id) + graph.children_ids(issue_id):
                if other in assignment:
                    votes[assignment[other]] += 1
            if votes:
                best = min(votes.items(), key=lambda kv: (-kv[1], kv[0]))
                placed[issue_id] = best[0]
        if not placed:
            break
        assignment.update(placed)
        pending = [i for i in pending if i not in placed]
    return pending


def _stats(
    ws: Workstream,
    graph: IssueGraph,
    primary: set[str],
    labels: Mapping[str, set[str]],
) -> None:
    primary_closed = 0
    for issue_id in ws.issue_ids:
        issue = graph.issue(issue_id)
        if issue.status == IssueStatus.CLOSED:
            ws.closed_count += 1
            if issue_id in primary:
                primary_closed += 1
        elif issue.status == IssueStatus.BLOCKED:
            ws.blocked_count += 1
        elif issue.status == IssueStatus.IN_PROGRESS:
            ws.in_progress_count += 1
        elif blocking_state(graph, issue_id):
            ws.blocked_count += 1
        else:
            ws.ready_count += 1
    ws.primary_count = sum(1 for i in ws.issue_ids if i in primary)
    ws.context_count = ws.size - ws.primary_count
    ws.progress = primary_closed / ws.primary_count if ws.primary_count else 0.0
    ws.is_blocked = ws.ready_count == 0 and ws.in_progress_count == 0 and ws.closed_count < ws.size
    counts: Counter[str] = Counter(label for i in ws.issue_ids for label in labels.get(i, ()))
    ws.related_labels = [
        label for label, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:RELATED_LABEL_LIMIT]
    ]


def _cross_blockers(graph: IssueGraph, streams: list[Workstream], assignment: dict[str, str], scope: set[str]):
    by_id = {ws.id: ws for ws in streams}
    for ws in streams:
        for issue_id in ws.issue_ids:
            if graph.issue(issue_id).is_closed:
                continue
            for target in graph.blocking_successor_ids(issue_id):
                if target not in scope:
                    continue
                target_ws = assignment.get(target, "")
                if target_ws == ws.id:
                    continue
                record = CrossWorkstreamBlocker(
                    blocker_id=target,
                    blocker_workstream=target_ws,
                    blocked_id=issue_id,
                    blocked_workstream=ws.id,
                )
                ws.cross_blocked_by.append(record)
                if target_ws in by_id:
                    by_id[target_ws].cross_blocks.append(record)
    for ws in streams:
        ws.cross_blocked_by.sort(key=lambda r: (r.blocked_id, r.blocker_id))
        ws.cross_blocks.sort(key=lambda r: (r.blocker_id, r.blocked_id))


def sort_workstreams(streams: list[Workstream], family: LabelFamily | None) -> list[Workstream]:
    sequential = family is not None and family.family_type == FamilyType.SEQUENTIAL

    def key(ws: Workstream):
        if ws.is_standalone:
            return (1, 0.0, 0, "")
        if sequential:
            return (0, ws.order, 0, ws.name)
        return (0, 0.0, -ws.size, ws.name)

    return sorted(streams, key=key)


def detect_workstreams(
    issues: Sequence[Issue],
    primary_ids: Iterable[str],
    *,
    context_label: str | None = None,
    all_issues: Sequence[Issue] | None = None,
    options: GroupingOptions | None = None,
    deadline: Deadline | None = None,
) -> WorkstreamResult:
    """Partition a scoped issue view into workstreams.

    Parameters
    ----------
    issues : Sequence[Issue]
        The scoped view (primaries plus context issues).
    primary_ids : Iterable[str]
        Issues that define the scope; the rest of ``issues`` is context.
    context_label : str, optional
        Label that defines the scope; never used for family detection.
    all_issues : Sequence[Issue], optional
        Global record set, used so readiness honors blockers outside the view.
    options : GroupingOptions, optional
        Depth, group size, score threshold, and exclusions.
    deadline : Deadline, optional
        Stops subdivision early and marks the result partial.
    """
    options = options or GroupingOptions()
    graph = build_graph(all_issues if all_issues is not None else issues)
    scope = sorted({i.id for i in issues if i.id in graph})
    scope_set = set(scope)
    primary = {i for i in primary_ids if i in scope_set}
    result = WorkstreamResult()
    if not scope:
        return result

    excluded = options.exclude_labels | ({context_label} if context_label else set())
    labels = {issue_id: _scoped_labels(graph.issue(issue_id), excluded) for issue_id in scope}
    primary_labels = {issue_id: labels[issue_id] for issue_id in sorted(primary)}
    families = detect_label_families(
        (label for values in primary_labels.values() for label in values),
        exclude_labels=excluded,
        exclude_families=options.exclude_families,
    )
    family, result.family_scores = select_family(families, primary_labels, options.min_score_at_depth)

    assignment: dict[str, str] = {}
    streams: dict[str, Workstream] = {}
    if family is not None:
        result.winning_family = family.key
        labels = inherit_family_labels(graph, labels, family)
        members = set(family.labels)
        for issue_id in sorted(primary):
            carried = sorted(labels[issue_id] & members)
            if not carried:
                continue
            ws_id, name, order = _workstream_for_label(family, carried[0])
            ws = streams.setdefault(
                ws_id,
                Workstream(id=ws_id, name=name, order=order, depth=options.current_depth, grouped_by=family.key),
            )
            ws.order = min(ws.order, order)
            assignment[issue_id] = ws_id
    standalone = [i for i in sorted(primary) if i not in assignment]
    if standalone:
        streams[STANDALONE_ID] = Workstream(
            id=STANDALONE_ID, name=STANDALONE_NAME, order=STANDALONE_ORDER, depth=options.current_depth
        )
        for issue_id in standalone:
            assignment[issue_id] = STANDALONE_ID

    context = [i for i in scope if i not in primary]
    result.unassigned_context = _assign_context(graph, assignment, context)
    for issue_id in scope:
        ws_id = assignment.get(issue_id)
        if ws_id is not None:
            streams[ws_id].issue_ids.append(issue_id)

    ordered = sort_workstreams(list(streams.values()), family)
    for ws in ordered:
        _stats(ws, graph, primary, labels)
    _cross_blockers(graph, ordered, assignment, scope_set)
    result.workstreams = ordered

    if options.subdivide:
        for ws in ordered:
            try:
                if deadline is not None:
                    deadline.check("workstream subdivision")
            except ComputationDeadlineExceeded as exc:
                logger.warning("Skipping remaining subdivisions: %s", exc)
                result.partial = True
                result.warnings.append(
                    AnalysisWarning(kind=ErrorKind.COMPUTATION_DEADLINE_EXCEEDED, message=str(exc))
                )
                break
            sub = subdivide_workstream(
                ws,
                [graph.issue(i) for i in ws.issue_ids],
                graph.issues,
                primary_ids=primary,
                family_key=family.key if family else None,
                options=options,
                deadline=deadline,
            )
            ws.sub_workstreams = sub.workstreams
            if sub.partial:
                result.partial = True
                result.warnings.extend(sub.warnings)
    logger.debug(
        "Detected %s workstreams (family=%s, depth=%s)", len(ordered), result.winning_family, options.current_depth
    )
    return result


def used_labels(members: Sequence[Issue], fraction: float = USED_LABEL_FRACTION) -> list[str]:
    """Labels carried by at least ``fraction`` of ``members``."""
    if not members:
        return []
    counts = Counter(label for issue in members for label in normalize_labels(issue.labels))
    return sorted(label for label, count in counts.items() if count / len(members) >= fraction)


def subdivide_workstream(
    ws: Workstream,
    members: Sequence[Issue],
    all_issues: Sequence[Issue],
    *,
    primary_ids: Iterable[str] = (),
    family_key: str | None,
    options: GroupingOptions,
    deadline: Deadline | None = None,
) -> WorkstreamResult:
    """Split ``ws`` by a further family; empty result when the split is not worthwhile.

    Members of ``ws`` listed in ``primary_ids`` stay primary in the split and the
    rest stay context. When none of them is primary, every member is.
    """
    empty = WorkstreamResult()
    if options.current_depth >= options.max_depth or ws.size < 2 * options.min_group_size:
        return empty
    primary = set(primary_ids)
    sub_primary = [m.id for m in members if m.id in primary] or [m.id for m in members]
    child_options = options.for_subdivision(family_key or "", used_labels(members))
    sub = detect_workstreams(
        members,
        sub_primary,
        all_issues=all_issues,
        options=child_options,
        deadline=deadline,
    )
    groups = [s for s in sub.workstreams if not s.is_standalone and s.size >= options.min_group_size]
    if len(groups) < 2:
        return WorkstreamResult(partial=sub.partial, warnings=sub.warnings)
    _prefix_ids(sub.workstreams, ws.id)
    return sub


def iter_workstreams(streams: Iterable[Workstream]) -> Iterator[Workstream]:
    """Depth-first walk over ``streams`` and all their sub-workstreams."""
    for ws in streams:
        yield ws
        yield from iter_workstreams(ws.sub_workstreams)


def _prefix_ids(streams: list[Workstream], parent_id: str) -> None:
    """Namespace a subdivision's ids, and its blocker records, under ``parent_id``."""
    nested = list(iter_workstreams(streams))
    renamed = {ws.id: f"{parent_id}/{ws.id}" for ws in nested}
    records: dict[int, CrossWorkstreamBlocker] = {}
    for ws in nested:
        ws.id = renamed[ws.id]
        for record in ws.cross_blocked_by + ws.cross_blocks:
            records[id(record)] = record
    for record in records.values():
        record.blocker_workstream = renamed.get(record.blocker_workstream, record.blocker_workstream)
        record.blocked_workstream = renamed.get(record.blocked_workstream, record.blocked_workstream)


# ------------------ Scoped entry points ------------------
def detect_label_workstreams(
    records: Sequence[Issue],
    label: str,
    *,
    options: GroupingOptions | None = None,
    deadline: Deadline | None = None,
) -> WorkstreamResult:
    """Workstreams of the issues carrying ``label``; adjacent issues act as context."""
    graph = build_graph(records)
    primary = [i for i in graph.ids if label in normalize_labels(graph.issue(i).labels)]
    context: set[str] = set()
    for issue_id in primary:
        context.update(graph.neighbors(issue_id, CONNECTING_KINDS))
    context.difference_update(primary)
    scope = [graph.issue(i) for i in sorted(set(primary) | context)]
    return detect_workstreams(
        scope, primary, context_label=label, all_issues=records, options=options, deadline=deadline
    )


def epic_descendants(graph: IssueGraph, epic_id: str) -> list[str]:
    """Parent-child descendants of ``epic_id``; the epic itself need not be a record."""
    children: dict[str, list[str]] = {}
    for issue_id in graph.ids:
        for parent in graph.parent_ids(issue_id):
            children.setdefault(parent, []).append(issue_id)
    for edge in graph.dangling:
        if edge.kind == DependencyKind.PARENT_CHILD:
            children.setdefault(edge.target, []).append(edge.source)
    found: set[str] = set()
    queue = deque(sorted(children.get(epic_id, [])))
    while queue:
        current = queue.popleft()
        if current in found or current == epic_id:
            continue
        found.add(current)
        queue.extend(sorted(children.get(current, [])))
    return sorted(found)


def detect_epic_workstreams(
    records: Sequence[Issue],
    epic_id: str,
    *,
    options: GroupingOptions | None = None,
    deadline: Deadline | None = None,
) -> WorkstreamResult:
    """Workstreams of every descendant of ``epic_id`` (all treated as primaries)."""
    graph = build_graph(records)
    descendants = epic_descendants(graph, epic_id)
    scope = [graph.issue(i) for i in descendants]
    return detect_workstreams(scope, descendants, all_issues=records, options=options, deadline=deadline)

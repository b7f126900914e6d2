"""Workstream detection: label families and their partition of a scoped issue view."""

from issue_graph.analytics.workstreams.detector import (
    CrossWorkstreamBlocker,
    Workstream,
    WorkstreamResult,
    detect_epic_workstreams,
    detect_label_workstreams,
    detect_workstreams,
    iter_workstreams,
)
from issue_graph.analytics.workstreams.families import (
    FamilyScore,
    FamilyType,
    LabelFamily,
    detect_label_families,
    find_distinguishing_labels,
    format_workstream_name,
)

__all__ = [
    "CrossWorkstreamBlocker",
    "Workstream",
    "WorkstreamResult",
    "detect_epic_workstreams",
    "detect_label_workstreams",
    "detect_workstreams",
    "iter_workstreams",
    "FamilyScore",
    "FamilyType",
    "LabelFamily",
    "detect_label_families",
    "find_distinguishing_labels",
    "format_workstream_name",
]

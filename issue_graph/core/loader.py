"""JSONL record store: file discovery, tolerant parsing, and review-tree extraction."""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .config import PREFERRED_ISSUE_FILES, SKIPPED_FILE_MARKERS
from .errors import AnalysisWarning, ErrorKind, MalformedInput
from .fingerprint import hash_records
from .mappers import map_issue
from .models import DependencyKind, Issue

logger = logging.getLogger(__name__)

BOM = "\ufeff"


def parse_issues_jsonl(text: str) -> tuple[list[Issue], list[AnalysisWarning]]:
    """Parse JSONL text into issues; bad lines are skipped with a warning, never raised."""
    issues: list[Issue] = []
    warnings: list[AnalysisWarning] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if line_no == 1 and line.startswith(BOM):
            line = line[len(BOM) :]
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Skipping malformed JSON on line %s: %s", line_no, exc)
            warnings.append(
                AnalysisWarning(kind=ErrorKind.MALFORMED_INPUT, message=f"line {line_no}: malformed JSON ({exc})")
            )
            continue
        try:
            issues.append(map_issue(raw))
        except MalformedInput as exc:
            logger.warning("Skipping invalid issue on line %s: %s", line_no, exc)
            warnings.append(
                AnalysisWarning(
                    kind=ErrorKind.MALFORMED_INPUT, message=f"line {line_no}: {exc}", issue_id=exc.issue_id
                )
            )
    return issues, warnings


def is_skipped_file(name: str) -> bool:
    return any(marker in name for marker in SKIPPED_FILE_MARKERS)


def find_issues_file(directory: str | Path) -> Path:
    """Pick the issues file in ``directory``.

    Preferred names are tried in order (non-empty files only), then any other
    non-empty ``.jsonl`` candidate, then the first candidate even if empty.

    Raises
    ------
    FileNotFoundError
        If no loadable ``.jsonl`` file exists.
    """
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Issue directory not found: {base}")
    candidates = sorted(
        p for p in base.iterdir() if p.is_file() and p.name.endswith(".jsonl") and not is_skipped_file(p.name)
    )
    artifacts = sorted(p.name for p in base.iterdir() if p.name.startswith(("beads.left", "beads.right")))
    if artifacts:
        logger.warning("Merge artifacts present and ignored: %s", ", ".join(artifacts))
    if not candidates:
        raise FileNotFoundError(f"No issues JSONL file found in {base}")
    by_name = {p.name: p for p in candidates}
    for name in PREFERRED_ISSUE_FILES:
        path = by_name.get(name)
        if path is not None and path.stat().st_size > 0:
            return path
    for path in candidates:
        if path.stat().st_size > 0:
            return path
    return candidates[0]


class JsonlRecordStore:
    """Record store backed by a JSONL file (or a directory holding one)."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.warnings: list[AnalysisWarning] = []

    @property
    def path(self) -> Path:
        return find_issues_file(self.root) if self.root.is_dir() else self.root

    def snapshot(self) -> tuple[list[Issue], str]:
        """Current records and their content fingerprint."""
        path = self.path
        if not path.exists():
            raise FileNotFoundError(f"No issues found at {path}")
        records, self.warnings = parse_issues_jsonl(path.read_text(encoding="utf-8"))
        data_hash = hash_records(records)
        logger.debug("Loaded %s records from %s (hash=%s)", len(records), path, data_hash)
        return records, data_hash


@dataclass(slots=True)
class ReviewTree:
    root: Issue
    descendants: list[Issue] = field(default_factory=list)
    blockers: list[Issue] = field(default_factory=list)

    def all_issues(self) -> list[Issue]:
        return [self.root, *self.descendants]

    @property
    def total_count(self) -> int:
        return 1 + len(self.descendants)


def review_tree(records: Sequence[Issue], root_id: str) -> ReviewTree:
    """Root, its parent-child descendants (BFS order), and blockers from outside the tree.

    Raises
    ------
    KeyError
        If ``root_id`` is not among ``records``.
    """
    by_id: dict[str, Issue] = {}
    for record in records:
        by_id.setdefault(record.id, record)
    if root_id not in by_id:
        raise KeyError(f"Issue not found: {root_id}")

    children: dict[str, list[str]] = {}
    for record in sorted(by_id.values(), key=lambda r: r.id):
        for dep in record.dependencies:
            if dep.kind == DependencyKind.PARENT_CHILD:
                children.setdefault(dep.depends_on_id, []).append(record.id)

    tree = ReviewTree(root=by_id[root_id])
    member_ids = {root_id}
    queue = deque([root_id])
    while queue:
        current = queue.popleft()
        for child_id in children.get(current, []):
            if child_id in member_ids:
                continue
            member_ids.add(child_id)
            tree.descendants.append(by_id[child_id])
            queue.append(child_id)

    seen_blockers: set[str] = set()
    for issue in tree.all_issues():
        for dep in issue.dependencies:
            target = dep.depends_on_id
            if not dep.kind.is_blocking or target in member_ids or target in seen_blockers:
                continue
            if target in by_id:
                seen_blockers.add(target)
                tree.blockers.append(by_id[target])
    return tree

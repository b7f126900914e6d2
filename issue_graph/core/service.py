"""AnalysisService: orchestrates graph building, metrics, planning, labels, and caching."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from issue_graph.analytics.causality.chain import (
    CausalityBuilder,
    CausalityOptions,
    CausalityResult,
    CommitProvider,
    IssueHistory,
)
from issue_graph.analytics.graph.builder import build_graph
from issue_graph.analytics.labels.health import LabelAnalysisResult, analyze_label_health
from issue_graph.analytics.labels.stats import LabelExtraction, extract_labels
from issue_graph.analytics.metrics.aging import resolve_now
from issue_graph.analytics.metrics.structural import StructuralMetrics, compute_metrics
from issue_graph.analytics.planning.planner import ExecutionPlan, build_plan
from issue_graph.analytics.temporal.diff import SnapshotDiff, diff_snapshots
from issue_graph.analytics.workstreams.detector import (
    WorkstreamResult,
    detect_epic_workstreams,
    detect_label_workstreams,
)

from .baseline import BaselineSnapshot
from .cache import AnalysisCache, CacheKey
from .config import AnalysisOptions
from .errors import AnalysisWarning
from .fingerprint import hash_options, hash_records
from .loader import JsonlRecordStore
from .models import Issue

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int | None, int | None], None]

_STAGES = 5


@dataclass(slots=True)
class AnalysisResult:
    data_hash: str
    generated_at: datetime
    node_count: int
    metrics: StructuralMetrics
    plan: ExecutionPlan
    labels: LabelAnalysisResult
    label_stats: LabelExtraction
    diff: SnapshotDiff | None = None
    warnings: list[AnalysisWarning] = field(default_factory=list)
    partial: bool = False


def analyze_records(
    records: Sequence[Issue],
    options: AnalysisOptions | None = None,
    baseline: BaselineSnapshot | None = None,
    *,
    progress: ProgressCallback | None = None,
) -> AnalysisResult:
    """Run the full analysis pass over one immutable records snapshot.

    Parameters
    ----------
    records : Sequence[Issue]
        Validated issue records.
    options : AnalysisOptions, optional
        Clock, deadline, and per-stage settings.
    baseline : BaselineSnapshot, optional
        When given, the result also carries a drift diff against it.
    progress : ProgressCallback, optional
        Called as ``progress(message, step, total)`` before each stage.

    Returns
    -------
    AnalysisResult
        Metrics, plan, label analysis, optional diff, warnings, and the
        ``partial`` flag raised when a deadline cut a stage short.
    """
    options = options or AnalysisOptions()
    now = resolve_now(options.now)
    started = time.perf_counter()
    data_hash = hash_records(records)

    if progress:
        progress("Building dependency graph", 1, _STAGES)
    graph = build_graph(records)
    if progress:
        progress("Computing structural metrics", 2, _STAGES)
    metrics = compute_metrics(
        graph,
        now=now,
        deadline=options.deadline,
        sample_threshold=options.betweenness_sample_threshold,
        sample_size=options.betweenness_sample_size,
        seed=options.betweenness_seed,
    )
    if progress:
        progress("Planning execution", 3, _STAGES)
    plan = build_plan(
        graph,
        metrics,
        honor_parent_blocking=options.honor_parent_blocking,
        max_tracks=options.max_tracks,
    )
    if progress:
        progress("Aggregating labels", 4, _STAGES)
    label_stats = extract_labels(
        graph.issues, now=now, stale_days=options.label_health.stale_threshold_days
    )
    labels = analyze_label_health(graph, metrics, config=options.label_health, now=now)

    diff = None
    if baseline is not None:
        if progress:
            progress("Comparing against baseline", 5, _STAGES)
        diff = diff_snapshots(
            baseline, graph.issues, current_fingerprint=data_hash, thresholds=options.drift
        )

    logger.debug(
        "Analyzed %s issues (hash=%s) in %.3fs", len(graph), data_hash, time.perf_counter() - started
    )
    return AnalysisResult(
        data_hash=data_hash,
        generated_at=now,
        node_count=len(graph),
        metrics=metrics,
        plan=plan,
        labels=labels,
        label_stats=label_stats,
        diff=diff,
        warnings=[*graph.warnings, *metrics.warnings],
        partial=metrics.partial,
    )


class AnalysisService:
    def __init__(self, options: AnalysisOptions | None = None, cache: AnalysisCache | None = None):
        self.options = options or AnalysisOptions()
        self.cache = cache or AnalysisCache(
            max_age=self.options.cache.max_age_seconds, max_size=self.options.cache.max_entries
        )
        self._options_hash = hash_options(self.options)
        self._last_data_hash: str | None = None

    # ------------------ Full Pass ------------------
    def analyze(
        self,
        records: Sequence[Issue],
        *,
        head_id: str = "",
        baseline: BaselineSnapshot | None = None,
        progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        """Cached ``analyze_records``; baseline comparisons always recompute."""
        if baseline is not None:
            return analyze_records(records, self.options, baseline, progress=progress)
        key = CacheKey(head_id=head_id, data_hash=hash_records(records), options_hash=self._options_hash)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached
        result = analyze_records(records, self.options, progress=progress)
        # Deadline-truncated results are not reusable.
        if not result.partial:
            self.cache.put(key, result)
        return result

    def analyze_store(
        self,
        store: JsonlRecordStore,
        *,
        head_id: str = "",
        baseline: BaselineSnapshot | None = None,
        progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        if progress:
            progress("Loading issues", None, None)
        records, data_hash = store.snapshot()
        if self._last_data_hash is not None and data_hash != self._last_data_hash:
            logger.info("Record store changed (%s -> %s)", self._last_data_hash, data_hash)
            self.cache.invalidate()
        self._last_data_hash = data_hash
        result = self.analyze(records, head_id=head_id, baseline=baseline, progress=progress)
        if store.warnings:
            result = replace(result, warnings=[*store.warnings, *result.warnings])
        return result

    # ------------------ Scoped Views ------------------
    def label_workstreams(self, records: Sequence[Issue], label: str) -> WorkstreamResult:
        return detect_label_workstreams(
            records, label, options=self.options.grouping, deadline=self.options.deadline
        )

    def epic_workstreams(self, records: Sequence[Issue], epic_id: str) -> WorkstreamResult:
        return detect_epic_workstreams(
            records, epic_id, options=self.options.grouping, deadline=self.options.deadline
        )

    def causality(
        self,
        histories: Iterable[IssueHistory],
        issue_id: str,
        *,
        commits: CommitProvider | None = None,
        include_commits: bool = True,
    ) -> CausalityResult | None:
        builder = CausalityBuilder(histories, commits)
        return builder.build(
            issue_id, CausalityOptions(include_commits=include_commits, now=self.options.now)
        )

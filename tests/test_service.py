import json

from issue_graph.core.baseline import capture_baseline
from issue_graph.core.cache import AnalysisCache
from issue_graph.core.config import AnalysisOptions
from issue_graph.core.deadline import Deadline
from issue_graph.core.loader import JsonlRecordStore
from issue_graph.core.mappers import to_plain
from issue_graph.core.models import Issue
from issue_graph.core.service import AnalysisService, analyze_records


def test_full_pass(project_records, fixed_options):
    result = analyze_records(project_records, fixed_options)
    assert result.node_count == 5
    assert result.plan.ready == ["db-1"]
    assert result.plan.blocked == ["api-1", "api-2", "ui-1"]
    assert result.metrics.critical_path[0] == "ui-1"
    assert result.labels.total_labels == 4
    assert result.label_stats.stats["api"].total == 2
    assert result.diff is None
    assert not result.partial


def test_output_is_deterministic(project_records, fixed_options):
    first = json.dumps(to_plain(analyze_records(project_records, fixed_options)))
    second = json.dumps(to_plain(analyze_records(list(reversed(project_records)), fixed_options)))
    assert first == second


def test_empty_records(fixed_options):
    result = analyze_records([], fixed_options)
    assert result.node_count == 0
    assert result.plan.tracks == []
    assert result.labels.labels == []


def test_progress_callback_sees_each_stage(project_records, fixed_options):
    calls = []
    analyze_records(project_records, fixed_options, progress=lambda msg, step, total: calls.append(step))
    assert calls == [1, 2, 3, 4]


def test_baseline_adds_diff(project_records, fixed_options):
    baseline = capture_baseline(project_records[:-1])
    result = analyze_records(project_records, fixed_options, baseline)
    assert result.diff.new_ids == ["docs-1"]
    assert result.diff.current_fingerprint == result.data_hash


def test_service_caches_by_snapshot(project_records, fixed_options):
    service = AnalysisService(fixed_options)
    first = service.analyze(project_records, head_id="main")
    assert service.analyze(project_records, head_id="main") is first
    assert service.cache.stats().hits == 1
    changed = project_records + [Issue(id="new-1", title="New")]
    assert service.analyze(changed, head_id="main") is not first


def test_partial_results_are_not_cached(project_records, fixed_now):
    expired = Deadline(expires_at=0.0, clock=lambda: 1.0)
    service = AnalysisService(AnalysisOptions(now=fixed_now, deadline=expired), cache=AnalysisCache())
    result = service.analyze(project_records)
    assert result.partial
    assert len(service.cache) == 0


def test_store_change_invalidates_cache(tmp_path, fixed_options):
    path = tmp_path / "issues.jsonl"
    path.write_text(json.dumps({"id": "a", "title": "A"}) + "\n{oops\n", encoding="utf-8")
    service = AnalysisService(fixed_options)
    result = service.analyze_store(JsonlRecordStore(tmp_path))
    assert result.node_count == 1
    assert result.warnings[0].message.startswith("line 2")
    assert len(service.cache) == 1

    path.write_text(json.dumps({"id": "b", "title": "B"}) + "\n", encoding="utf-8")
    result = service.analyze_store(JsonlRecordStore(tmp_path))
    assert result.plan.ready == ["b"]
    assert len(service.cache) == 1


def test_scoped_views(project_records, fixed_options):
    service = AnalysisService(fixed_options)
    streams = service.label_workstreams(project_records, "api")
    assert sum(ws.size for ws in streams.workstreams) >= 2
    assert service.epic_workstreams(project_records, "missing").workstreams == []
    assert service.causality([], "missing") is None

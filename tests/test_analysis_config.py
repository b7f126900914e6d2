import pytest

from issue_graph.core.analysis_config import load_analysis_options, options_from_mapping
from issue_graph.core.config import AnalysisOptions
from issue_graph.core.errors import MalformedInput


def test_missing_file_gives_defaults(tmp_path):
    assert load_analysis_options(tmp_path) == AnalysisOptions()


def test_yaml_overrides_only_named_settings(tmp_path):
    (tmp_path / "analysis.yaml").write_text(
        """
planner:
  honor_parent_blocking: true
  max_tracks: 6
betweenness:
  seed: 7
label_health:
  stale_threshold_days: 21
grouping:
  exclude_labels: [wontfix]
drift:
  medium: 0.25
""",
        encoding="utf-8",
    )
    options = load_analysis_options(tmp_path)
    defaults = AnalysisOptions()
    assert options.honor_parent_blocking is True
    assert options.max_tracks == 6
    assert options.betweenness_seed == 7
    assert options.label_health.stale_threshold_days == 21
    assert options.grouping.exclude_labels == frozenset({"wontfix"})
    assert options.drift.medium == 0.25
    assert options.drift.low == defaults.drift.low
    assert options.betweenness_sample_size == defaults.betweenness_sample_size
    assert options.cache == defaults.cache


def test_unreadable_yaml_falls_back_to_defaults(tmp_path, caplog):
    (tmp_path / "analysis.yaml").write_text("planner: [unclosed", encoding="utf-8")
    assert load_analysis_options(tmp_path) == AnalysisOptions()
    assert "using defaults" in caplog.text


def test_non_mapping_yaml_is_ignored(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    assert load_analysis_options(path) == AnalysisOptions()


def test_unknown_keys_are_skipped(caplog):
    options = options_from_mapping({"planner": {"bogus": 1}, "drift": {"extreme": 0.9}})
    assert options == AnalysisOptions()
    assert "planner.bogus" in caplog.text
    assert "drift.extreme" in caplog.text


def test_label_weights_must_sum_to_one():
    with pytest.raises(MalformedInput):
        options_from_mapping({"label_health": {"velocity_weight": 0.9}})

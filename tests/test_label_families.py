from issue_graph.analytics.workstreams.families import (
    FamilyType,
    detect_label_families,
    find_distinguishing_labels,
    format_workstream_name,
    looks_sequential,
    score_family,
    select_family,
)


def _keys(families):
    return [f.key for f in families]


def test_sequential_family_orders_by_number():
    families = detect_label_families(["phase10", "phase2", "phase1"])
    seq = families[0]
    assert seq.key == "seq:phase"
    assert seq.family_type == FamilyType.SEQUENTIAL
    assert seq.labels == ["phase1", "phase2", "phase10"]
    assert seq.order_of("phase10") == 10.0


def test_version_and_quarter_patterns():
    assert _keys(detect_label_families(["v1", "v2"])) == ["seq:v"]
    assert _keys(detect_label_families(["q1", "q3"])) == ["seq:q"]
    assert _keys(detect_label_families(["sprint-1", "sprint-2"])) == ["seq:sprint-"]


def test_colon_prefix_family():
    families = detect_label_families(["feat:search", "feat:export", "bug"])
    assert _keys(families) == ["pre:feat:", "gen:bug"]
    assert families[0].labels == ["feat:export", "feat:search"]


def test_separator_prefix_skips_sequential_suffixes():
    families = detect_label_families(["auth-login", "auth-signup", "auth-v2"])
    assert families[0].key == "sep-pre:auth"
    assert families[0].labels == ["auth-login", "auth-signup"]
    assert "gen:auth-v2" in _keys(families)


def test_single_suffix_group():
    families = detect_label_families(["api-backend", "db-backend"])
    assert _keys(families) == ["suf:backend"]


def test_multiple_suffix_groups_collapse():
    # Distinct first segments so the prefix pass leaves them alone.
    labels = ["api-backend", "db-backend", "web-frontend", "ios-frontend"]
    families = detect_label_families(labels)
    assert _keys(families) == ["suf:_by_suffix_"]
    family = families[0]
    assert family.group_key("api-backend") == "backend"
    assert family.group_key("ios-frontend") == "frontend"


def test_leftovers_become_generic_and_exclusions_apply():
    families = detect_label_families(["alpha", "beta", "skip"], exclude_labels=["skip"])
    assert _keys(families) == ["gen:alpha", "gen:beta"]
    families = detect_label_families(["alpha", "beta"], exclude_families=["gen:alpha"])
    assert _keys(families) == ["gen:beta"]


def test_perfect_partition_scores_with_boost():
    family = detect_label_families(["phase1", "phase2"])[0]
    issues = {"a": ["phase1"], "b": ["phase1"], "c": ["phase2"], "d": ["phase2"]}
    score = score_family(family, issues)
    assert score.coverage == 1.0
    assert score.exclusivity == 1.0
    assert score.balance == 1.0
    assert score.score == 1.4


def test_overlapping_labels_reduce_exclusivity():
    family = detect_label_families(["phase1", "phase2"])[0]
    issues = {"a": ["phase1", "phase2"], "b": ["phase1"], "c": ["phase2"]}
    score = score_family(family, issues)
    assert score.multi_count == 1
    assert score.exclusivity < 1.0


def test_cross_cutting_generic_label_is_penalized():
    family = detect_label_families(["everywhere"])[0]
    issues = {str(n): ["everywhere"] for n in range(5)}
    assert score_family(family, issues).score == 0.3


def test_select_family_respects_threshold():
    families = detect_label_families(["phase1", "phase2"])
    issues = {"a": ["phase1"], "b": ["phase2"]}
    winner, scores = select_family(families, issues, 0.1)
    assert winner is not None and winner.key == "seq:phase"
    winner, _ = select_family(families, issues, 2.0)
    assert winner is None
    assert scores[0].key == "seq:phase"


def test_distinguishing_labels_prefer_even_split():
    issues = {"a": ["x", "y"], "b": ["x"], "c": ["x", "z"], "d": ["x", "y"]}
    assert find_distinguishing_labels(issues) == ["y", "z"]


def test_workstream_names():
    assert format_workstream_name("phase1") == "Phase1"
    assert format_workstream_name("feat:search") == "Search"
    assert format_workstream_name("backend") == "Backend"


def test_looks_sequential():
    assert looks_sequential("3")
    assert looks_sequential("v2")
    assert looks_sequential("q4")
    assert not looks_sequential("login")

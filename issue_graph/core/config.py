"""Central configuration, constants, and option dataclasses for the analytics engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .deadline import Deadline

# =============================================================================
# Time Settings
# =============================================================================
TIMEZONE = "UTC"
SECONDS_PER_DAY = 86400.0

# =============================================================================
# PageRank
# =============================================================================
PAGERANK_DAMPING: float = 0.85
PAGERANK_TOLERANCE: float = 1e-6
PAGERANK_MAX_ITER: int = 100

# =============================================================================
# Betweenness (Brandes, optionally sampled)
# =============================================================================
BETWEENNESS_SAMPLE_THRESHOLD: int = 500  # sample sources above this node count
BETWEENNESS_SAMPLE_SIZE: int = 200
BETWEENNESS_SEED: int = 42
BETWEENNESS_BATCH_SIZE: int = 25  # sources per deadline check

# =============================================================================
# Triage Score
# =============================================================================
TRIAGE_WEIGHT_PAGERANK: float = 0.35
TRIAGE_WEIGHT_BETWEENNESS: float = 0.15
TRIAGE_WEIGHT_PRIORITY: float = 0.30
TRIAGE_WEIGHT_AGE: float = 0.20
AGE_DECAY_DAYS: float = 30.0
DEFAULT_PRIORITY: int = 2

# =============================================================================
# Execution Planner
# =============================================================================
MAX_TRACKS: int = 8
IMPACT_PRIORITY_FACTOR: float = 0.25
MAX_START_NEXT: int = 3
UNBLOCK_MIN_DEPENDENTS: int = 2

# =============================================================================
# Labels
# =============================================================================
DEFAULT_STALE_DAYS: int = 14
HEALTHY_THRESHOLD: int = 70
WARNING_THRESHOLD: int = 40
TREND_THRESHOLD_PERCENT: float = 10.0
TREND_SCORE_ADJUSTMENT: int = 10
NEUTRAL_CRITICALITY: int = 50
MAX_LABEL_PATHS: int = 10
MAX_LABEL_PATH_LENGTH: int = 6
MAX_LABEL_PATH_EXPANSIONS: int = 5000
BOTTLENECK_BLOCKS_COUNT: int = 2

HEALTH_LEVEL_HEALTHY = "healthy"
HEALTH_LEVEL_WARNING = "warning"
HEALTH_LEVEL_CRITICAL = "critical"

# =============================================================================
# Workstreams
# =============================================================================
STANDALONE_ID = "standalone"
STANDALONE_NAME = "Standalone"
STANDALONE_ORDER: int = 9999
WORKSTREAM_ID_PREFIX = "ws:"
CONTEXT_ASSIGNMENT_ROUNDS: int = 5
RELATED_LABEL_LIMIT: int = 3
USED_LABEL_FRACTION: float = 0.5

FAMILY_BOOST_SEQUENTIAL: float = 1.4
FAMILY_BOOST_PREFIXED: float = 1.2
FAMILY_BOOST_SUFFIXED: float = 1.1
LOW_COVERAGE_THRESHOLD: float = 0.3
CROSS_CUTTING_COVERAGE: float = 0.6
CROSS_CUTTING_PENALTY: float = 0.3

DEFAULT_MAX_DEPTH: int = 3
DEFAULT_MIN_GROUP_SIZE: int = 2
DEFAULT_MIN_FAMILY_SCORE: float = 0.1
SUBDIVISION_SCORE_DECAY: float = 0.7
SUBDIVISION_SCORE_FLOOR: float = 0.08

# =============================================================================
# Temporal Diff
# =============================================================================
DRIFT_LOW_RATIO: float = 0.10
DRIFT_MEDIUM_RATIO: float = 0.30

# =============================================================================
# Causality
# =============================================================================
COMMIT_MESSAGE_MAX_CHARS: int = 50
BLOCKED_WARN_PERCENT: float = 50.0
LONG_GAP_DAYS: float = 7.0
HEALTHY_FLOW_MESSAGE = "No significant issues detected in the causal flow"

# =============================================================================
# Cache
# =============================================================================
CACHE_MAX_AGE_SECONDS: float = 300.0
CACHE_MAX_ENTRIES: int = 10
FINGERPRINT_LENGTH: int = 12

# =============================================================================
# Record Store Files
# =============================================================================
# Preferred issue files, in lookup order
PREFERRED_ISSUE_FILES: Sequence[str] = (
    "issues.jsonl",
    "beads.jsonl",
    "beads.base.jsonl",
)

# Fragments marking merge artifacts and backups that must never be loaded
SKIPPED_FILE_MARKERS: frozenset[str] = frozenset(
    {
        ".backup",
        ".orig",
        ".merge",
        "deletions.jsonl",
        "beads.left",
        "beads.right",
    }
)

ANALYSIS_CONFIG_FILE = "analysis.yaml"


@dataclass(slots=True)
class LabelHealthConfig:
    stale_threshold_days: int = DEFAULT_STALE_DAYS
    velocity_weight: float = 0.25
    freshness_weight: float = 0.25
    flow_weight: float = 0.25
    criticality_weight: float = 0.25
    min_issues_for_health: int = 1
    include_closed_in_flow: bool = False

    def weight_total(self) -> float:
        return self.velocity_weight + self.freshness_weight + self.flow_weight + self.criticality_weight


@dataclass(slots=True)
class GroupingOptions:
    """Knobs for workstream detection and recursive subdivision.

    ``exclude_labels`` and ``exclude_families`` grow as subdivision recurses so
    a child level never re-splits on the dimension its parent already used.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    current_depth: int = 0
    min_group_size: int = DEFAULT_MIN_GROUP_SIZE
    min_score_at_depth: float = DEFAULT_MIN_FAMILY_SCORE
    subdivide: bool = True
    exclude_labels: frozenset[str] = frozenset()
    exclude_families: frozenset[str] = frozenset()

    def for_subdivision(self, family_key: str, used_labels: Sequence[str]) -> GroupingOptions:
        return GroupingOptions(
            max_depth=self.max_depth,
            current_depth=self.current_depth + 1,
            min_group_size=self.min_group_size,
            min_score_at_depth=max(
                SUBDIVISION_SCORE_FLOOR, self.min_score_at_depth * SUBDIVISION_SCORE_DECAY
            ),
            subdivide=self.subdivide,
            exclude_labels=self.exclude_labels | frozenset(used_labels),
            exclude_families=self.exclude_families | {family_key},
        )


@dataclass(slots=True)
class DriftThresholds:
    low: float = DRIFT_LOW_RATIO
    medium: float = DRIFT_MEDIUM_RATIO


@dataclass(slots=True)
class CacheSettings:
    max_age_seconds: float = CACHE_MAX_AGE_SECONDS
    max_entries: int = CACHE_MAX_ENTRIES


@dataclass(slots=True)
class AnalysisOptions:
    """Options for one analysis pass.

    ``now`` pins the clock for every age-based computation so repeated runs are
    byte-identical; ``deadline`` bounds the expensive stages (betweenness,
    workstream subdivision) which then return partial results.
    """

    now: datetime | None = None
    deadline: Deadline | None = None
    honor_parent_blocking: bool = False
    max_tracks: int = MAX_TRACKS
    betweenness_sample_threshold: int = BETWEENNESS_SAMPLE_THRESHOLD
    betweenness_sample_size: int = BETWEENNESS_SAMPLE_SIZE
    betweenness_seed: int = BETWEENNESS_SEED
    label_health: LabelHealthConfig = field(default_factory=LabelHealthConfig)
    grouping: GroupingOptions = field(default_factory=GroupingOptions)
    drift: DriftThresholds = field(default_factory=DriftThresholds)
    cache: CacheSettings = field(default_factory=CacheSettings)

    def fingerprint_payload(self) -> dict:
        """Settings that change computed artifacts (clock and deadline excluded)."""
        lh = self.label_health
        grouping = self.grouping
        return {
            "honor_parent_blocking": self.honor_parent_blocking,
            "max_tracks": self.max_tracks,
            "betweenness": [
                self.betweenness_sample_threshold,
                self.betweenness_sample_size,
                self.betweenness_seed,
            ],
            "label_health": [
                lh.stale_threshold_days,
                lh.velocity_weight,
                lh.freshness_weight,
                lh.flow_weight,
                lh.criticality_weight,
                lh.min_issues_for_health,
                lh.include_closed_in_flow,
            ],
            "grouping": [
                grouping.max_depth,
                grouping.min_group_size,
                grouping.min_score_at_depth,
                grouping.subdivide,
            ],
            "drift": [self.drift.low, self.drift.medium],
        }

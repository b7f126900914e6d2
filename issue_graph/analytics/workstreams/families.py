"""Label-family detection and scoring.

A label family is a set of labels that look like alternative values of one
partitioning dimension (``phase1``/``phase2``, ``feat:search``/``feat:export``,
``api-backend``/``db-backend``). Families are found by ordered regex passes over
lower-cased labels; a label consumed by one pass is not offered to later ones.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from issue_graph.core.config import (
    CROSS_CUTTING_COVERAGE,
    CROSS_CUTTING_PENALTY,
    FAMILY_BOOST_PREFIXED,
    FAMILY_BOOST_SEQUENTIAL,
    FAMILY_BOOST_SUFFIXED,
    LOW_COVERAGE_THRESHOLD,
)

SEQUENTIAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(v)(\d+(?:\.\d+)?)$"),
    re.compile(r"^(q)([1-4])$"),
    re.compile(r"^(.+?-)(\d+)$"),
    re.compile(r"^(.+?)\s+(\d+)$"),
    re.compile(r"^(.+?)(\d+)$"),
)
COLON_PREFIX_PATTERN = re.compile(r"^([a-z][a-z0-9]*):(.+)$")
SEPARATOR_PREFIX_PATTERN = re.compile(r"^([a-z][a-z0-9]*)[-_](.+)$")
SEPARATOR_SUFFIX_PATTERN = re.compile(r"^(.+)[-_]([a-z][a-z0-9]*)$")
BY_SUFFIX_PREFIX = "_by_suffix_"


class FamilyType(StrEnum):
    SEQUENTIAL = "sequential"
    PREFIXED = "prefixed"
    SUFFIXED = "suffixed"
    GENERIC = "generic"


@dataclass(slots=True)
class LabelFamily:
    key: str
    family_type: FamilyType
    prefix: str
    labels: list[str] = field(default_factory=list)
    orders: dict[str, float] = field(default_factory=dict)
    group_keys: dict[str, str] = field(default_factory=dict)

    def order_of(self, label: str) -> float:
        return self.orders.get(label, float(self.labels.index(label)) if label in self.labels else 0.0)

    def group_key(self, label: str) -> str:
        """Workstream key for ``label`` (the suffix for collapsed suffix families)."""
        return self.group_keys.get(label, label)


@dataclass(slots=True)
class FamilyScore:
    key: str
    score: float
    coverage: float = 0.0
    exclusivity: float = 0.0
    balance: float = 1.0
    covered_count: int = 0
    multi_count: int = 0


def looks_sequential(suffix: str) -> bool:
    """True for suffixes such as ``3``, ``v2``, or ``q1`` that number a series."""
    text = suffix.lower()
    if text.isdigit():
        return True
    if text.startswith("v") and len(text) <= 4:
        return True
    return text in {"q1", "q2", "q3", "q4"}


def _sequence_number(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _sequential_families(labels: list[str]) -> list[LabelFamily]:
    groups: dict[str, list[tuple[str, float]]] = defaultdict(list)
    for label in labels:
        lowered = label.lower()
        for pattern in SEQUENTIAL_PATTERNS:
            match = pattern.match(lowered)
            if match:
                groups[match.group(1)].append((label, _sequence_number(match.group(2))))
                break
    families = []
    for prefix in sorted(groups):
        members = groups[prefix]
        if len(members) < 2:
            continue
        members.sort(key=lambda m: (m[1], m[0]))
        families.append(
            LabelFamily(
                key=f"seq:{prefix}",
                family_type=FamilyType.SEQUENTIAL,
                prefix=prefix,
                labels=[m[0] for m in members],
                orders={m[0]: m[1] for m in members},
            )
        )
    return families


def _prefix_families(
    labels: list[str], pattern: re.Pattern[str], key_format: str, prefix_format: str, *, skip_sequential: bool
) -> list[LabelFamily]:
    groups: dict[str, list[str]] = defaultdict(list)
    for label in labels:
        match = pattern.match(label.lower())
        if not match:
            continue
        if skip_sequential and looks_sequential(match.group(2)):
            continue
        groups[match.group(1)].append(label)
    families = []
    for prefix in sorted(groups):
        members = sorted(groups[prefix])
        if len(members) < 2:
            continue
        families.append(
            LabelFamily(
                key=key_format.format(prefix=prefix),
                family_type=FamilyType.PREFIXED,
                prefix=prefix_format.format(prefix=prefix),
                labels=members,
                orders={label: float(i) for i, label in enumerate(members)},
            )
        )
    return families


def _suffix_families(labels: list[str]) -> list[LabelFamily]:
    groups: dict[str, list[str]] = defaultdict(list)
    for label in labels:
        match = SEPARATOR_SUFFIX_PATTERN.match(label.lower())
        if match:
            groups[match.group(2)].append(label)
    valid = {suffix: sorted(members) for suffix, members in groups.items() if len(members) >= 2}
    if not valid:
        return []
    if len(valid) >= 2:
        members = sorted(label for group in valid.values() for label in group)
        return [
            LabelFamily(
                key=f"suf:{BY_SUFFIX_PREFIX}",
                family_type=FamilyType.SUFFIXED,
                prefix=BY_SUFFIX_PREFIX,
                labels=members,
                orders={label: float(i) for i, label in enumerate(members)},
                group_keys={label: suffix for suffix, group in valid.items() for label in group},
            )
        ]
    suffix, members = next(iter(valid.items()))
    return [
        LabelFamily(
            key=f"suf:{suffix}",
            family_type=FamilyType.SUFFIXED,
            prefix=f"-{suffix}",
            labels=members,
            orders={label: float(i) for i, label in enumerate(members)},
        )
    ]


def detect_label_families(
    labels: Iterable[str],
    *,
    exclude_labels: Iterable[str] = (),
    exclude_families: Iterable[str] = (),
) -> list[LabelFamily]:
    """Detect families among ``labels``.

    Parameters
    ----------
    labels : Iterable[str]
        Labels present in the scoped view.
    exclude_labels : Iterable[str]
        Labels never offered to any pass (context label, labels used upstream).
    exclude_families : Iterable[str]
        Family keys dropped from the result.

    Returns
    -------
    list[LabelFamily]
        Sequential, prefixed, suffixed, then generic singleton families.
    """
    excluded = set(exclude_labels)
    remaining = sorted({label for label in labels if label and label not in excluded})
    families: list[LabelFamily] = []

    def consume(found: list[LabelFamily]) -> None:
        nonlocal remaining
        used = {label for family in found for label in family.labels}
        families.extend(found)
        remaining = [label for label in remaining if label not in used]

    consume(_sequential_families(remaining))
    consume(_prefix_families(remaining, COLON_PREFIX_PATTERN, "pre:{prefix}:", "{prefix}:", skip_sequential=False))
    consume(
        _prefix_families(
            remaining, SEPARATOR_PREFIX_PATTERN, "sep-pre:{prefix}", "{prefix}-", skip_sequential=True
        )
    )
    consume(_suffix_families(remaining))
    families.extend(
        LabelFamily(
            key=f"gen:{label}",
            family_type=FamilyType.GENERIC,
            prefix=label,
            labels=[label],
            orders={label: 0.0},
        )
        for label in remaining
    )
    dropped = set(exclude_families)
    return [family for family in families if family.key not in dropped]


def score_family(family: LabelFamily, issue_labels: Mapping[str, Iterable[str]]) -> FamilyScore:
    """Score how cleanly ``family`` partitions the issues in ``issue_labels``.

    ``score = coverage * exclusivity * balance`` with a type boost, a linear
    penalty below 30% coverage, and a cross-cutting penalty for generic
    singletons above 60% coverage.
    """
    members = set(family.labels)
    total = len(issue_labels)
    counts = {label: 0 for label in family.labels}
    covered = 0
    multi = 0
    for labels in issue_labels.values():
        carried = members.intersection(labels)
        for label in carried:
            counts[label] += 1
        if carried:
            covered += 1
        if len(carried) > 1:
            multi += 1
    present = [c for c in counts.values() if c > 0]
    if total == 0 or covered == 0:
        return FamilyScore(key=family.key, score=0.0)
    if family.family_type != FamilyType.GENERIC and len(present) < 2:
        return FamilyScore(key=family.key, score=0.0, covered_count=covered, multi_count=multi)

    coverage = covered / total
    exclusivity = (covered - multi) / covered
    if len(present) < 2:
        balance = 1.0
    else:
        mean = sum(present) / len(present)
        variance = sum((c - mean) ** 2 for c in present) / len(present)
        balance = 1.0 - min(1.0, variance / (mean * mean))

    score = coverage * exclusivity * balance
    if family.family_type == FamilyType.SEQUENTIAL:
        score *= FAMILY_BOOST_SEQUENTIAL
    elif family.family_type == FamilyType.PREFIXED:
        score *= FAMILY_BOOST_PREFIXED
    elif family.family_type == FamilyType.SUFFIXED:
        score *= FAMILY_BOOST_SUFFIXED
    if coverage < LOW_COVERAGE_THRESHOLD:
        score *= coverage / LOW_COVERAGE_THRESHOLD
    if family.family_type == FamilyType.GENERIC and coverage > CROSS_CUTTING_COVERAGE:
        score *= CROSS_CUTTING_PENALTY
    return FamilyScore(
        key=family.key,
        score=score,
        coverage=coverage,
        exclusivity=exclusivity,
        balance=balance,
        covered_count=covered,
        multi_count=multi,
    )


def select_family(
    families: list[LabelFamily], issue_labels: Mapping[str, Iterable[str]], min_score: float
) -> tuple[LabelFamily | None, list[FamilyScore]]:
    """Best-scoring family strictly above ``min_score`` (ties go to the family key)."""
    scores = [score_family(family, issue_labels) for family in families]
    ranked = sorted(zip(scores, families, strict=True), key=lambda pair: (-pair[0].score, pair[0].key))
    ordered_scores = [score for score, _ in ranked]
    if ranked and ranked[0][0].score > min_score:
        return ranked[0][1], ordered_scores
    return None, ordered_scores


def find_distinguishing_labels(
    issue_labels: Mapping[str, Iterable[str]], exclude: Iterable[str] = ()
) -> list[str]:
    """Labels carried by some but not all issues, closest to an even split first."""
    excluded = set(exclude)
    total = len(issue_labels)
    counts: dict[str, int] = defaultdict(int)
    for labels in issue_labels.values():
        for label in set(labels):
            if label not in excluded:
                counts[label] += 1
    candidates = [label for label, count in counts.items() if 0 < count < total]
    return sorted(candidates, key=lambda label: (abs(counts[label] / total - 0.5), label))


def format_workstream_name(key: str) -> str:
    """Human name for a workstream key: text after the first colon, capitalized."""
    name = key.split(":", 1)[1] if ":" in key else key
    if not name:
        return key
    return name[0].upper() + name[1:]

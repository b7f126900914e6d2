"""Load analysis option overrides from YAML (with fallbacks to the built-in defaults).

Example ``analysis.yaml``::

    planner:
      honor_parent_blocking: true
      max_tracks: 6
    label_health:
      stale_threshold_days: 21
    drift:
      medium: 0.25
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from .config import ANALYSIS_CONFIG_FILE, AnalysisOptions
from .errors import MalformedInput

logger = logging.getLogger(__name__)

# YAML key -> AnalysisOptions attribute, for the flat sections
_PLANNER_KEYS = {"honor_parent_blocking": "honor_parent_blocking", "max_tracks": "max_tracks"}
_BETWEENNESS_KEYS = {
    "sample_threshold": "betweenness_sample_threshold",
    "sample_size": "betweenness_sample_size",
    "seed": "betweenness_seed",
}
_FROZENSET_FIELDS = {"exclude_labels", "exclude_families"}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        logger.warning("Ignoring analysis config section %s: expected a mapping", name)
        return {}
    return section


def _override(instance: Any, values: dict[str, Any], section: str) -> Any:
    known = {f.name for f in dataclasses.fields(instance)}
    changes: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown analysis setting %s.%s", section, key)
            continue
        changes[key] = frozenset(value or ()) if key in _FROZENSET_FIELDS else value
    return dataclasses.replace(instance, **changes)


def options_from_mapping(data: dict[str, Any], base: AnalysisOptions | None = None) -> AnalysisOptions:
    """Apply the sections of ``data`` on top of ``base`` (or the defaults).

    Raises
    ------
    MalformedInput
        If the resulting label-health weights do not sum to 1.
    """
    options = base or AnalysisOptions()
    flat: dict[str, Any] = {}
    for section, mapping in (("planner", _PLANNER_KEYS), ("betweenness", _BETWEENNESS_KEYS)):
        for key, value in _section(data, section).items():
            if key in mapping:
                flat[mapping[key]] = value
            else:
                logger.warning("Ignoring unknown analysis setting %s.%s", section, key)
    options = dataclasses.replace(
        options,
        **flat,
        label_health=_override(options.label_health, _section(data, "label_health"), "label_health"),
        grouping=_override(options.grouping, _section(data, "grouping"), "grouping"),
        drift=_override(options.drift, _section(data, "drift"), "drift"),
        cache=_override(options.cache, _section(data, "cache"), "cache"),
    )
    total = options.label_health.weight_total()
    if abs(total - 1.0) > 1e-6:
        raise MalformedInput(f"Label health weights must sum to 1 (got {total:.3f})")
    return options


def load_analysis_options(base_path: str | Path | None = None) -> AnalysisOptions:
    """Read ``analysis.yaml`` from ``base_path`` (defaults to the working directory)."""
    base = Path(base_path or Path.cwd())
    yaml_path = base / ANALYSIS_CONFIG_FILE if base.is_dir() else base
    if not yaml_path.exists():
        return AnalysisOptions()
    try:
        data = yaml.safe_load(yaml_path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read %s, using defaults: %s", yaml_path, exc)
        return AnalysisOptions()
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level must be a mapping", yaml_path)
        return AnalysisOptions()
    return options_from_mapping(data)

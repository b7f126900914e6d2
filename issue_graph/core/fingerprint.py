"""Content fingerprints for records snapshots and analysis options."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import Any

from .config import FINGERPRINT_LENGTH, AnalysisOptions
from .mappers import to_plain
from .models import Issue


def _digest(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def hash_records(records: Iterable[Issue]) -> str:
    """Stable 12-hex fingerprint of a snapshot, independent of record order."""
    plain = [to_plain(r) for r in sorted(records, key=lambda r: r.id)]
    return _digest(plain)


def hash_options(options: AnalysisOptions) -> str:
    return _digest(options.fingerprint_payload())

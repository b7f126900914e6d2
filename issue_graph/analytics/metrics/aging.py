"""Issue age columns (days open, since update, to close) over record frames."""

from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytz

from issue_graph.core.config import SECONDS_PER_DAY, TIMEZONE

AGING_COLUMNS: tuple[str, ...] = (
    "created_dt",
    "updated_dt",
    "closed_dt",
    "days_open",
    "days_since_update",
    "days_to_close",
)


def resolve_now(now: datetime | None = None) -> datetime:
    """Return a timezone-aware "now", localizing naive values to the engine timezone."""
    tz = pytz.timezone(TIMEZONE)
    if now is None:
        return datetime.now(tz=tz)
    if now.tzinfo is None:
        return tz.localize(now)
    return now


def add_aging_metrics(df: pd.DataFrame, now: datetime | None = None) -> pd.DataFrame:
    """Attach age columns (in fractional days) to an issue frame.

    ``days_since_update`` falls back to the creation time when an issue was
    never updated, and to 0 when neither timestamp is known, so downstream
    decay and staleness terms never see NaN.
    """
    out = df.copy()
    if out.empty:
        for col in AGING_COLUMNS:
            out[col] = pd.Series(dtype="float64")
        return out
    tz = pytz.timezone(TIMEZONE)
    now_ts = pd.Timestamp(resolve_now(now)).tz_convert(tz)
    out["created_dt"] = pd.to_datetime(out["created"], utc=True, errors="coerce").dt.tz_convert(tz)
    out["updated_dt"] = pd.to_datetime(out["updated"], utc=True, errors="coerce").dt.tz_convert(tz)
    out["closed_dt"] = pd.to_datetime(out["closed"], utc=True, errors="coerce").dt.tz_convert(tz)
    out["days_open"] = (now_ts - out["created_dt"]).dt.total_seconds() / SECONDS_PER_DAY
    since_update = (now_ts - out["updated_dt"]).dt.total_seconds() / SECONDS_PER_DAY
    out["days_since_update"] = since_update.fillna(out["days_open"]).fillna(0.0).clip(lower=0.0)
    out["days_to_close"] = (out["closed_dt"] - out["created_dt"]).dt.total_seconds() / SECONDS_PER_DAY
    return out


def days_since_update_by_id(df: pd.DataFrame) -> dict[str, float]:
    if df.empty or "days_since_update" not in df.columns:
        return {}
    return {str(k): float(v) for k, v in zip(df["id"], df["days_since_update"], strict=True)}


def compute_stale(df: pd.DataFrame, days_threshold: int) -> pd.DataFrame:
    if df.empty or "days_since_update" not in df.columns:
        return pd.DataFrame()
    out = df.copy()
    out["days_since_update"] = pd.to_numeric(out["days_since_update"], errors="coerce").fillna(0)
    return out[out["days_since_update"] >= float(days_threshold)].sort_values(
        by="days_since_update", ascending=False
    )
